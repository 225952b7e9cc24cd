"""Side actions whose failure is logged and otherwise ignored.

Only call sites that may legitimately lose their write go through here:
placeholder cleanup before a bulk insert, deep-dive detail storage, and the
audit note / dashboard widgets created when a plan is applied. Anything
else that fails ends the run.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import TypeVar

from services.planner.interfaces import StoreResult


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(label: str, action: Awaitable[StoreResult[T]]) -> T | None:
    """Await ``action``; on a failed result or any exception log and return None."""
    try:
        result = await action
    except Exception:  # noqa: BLE001
        logger.warning("Best-effort action %s raised; ignoring", label, exc_info=True)
        return None
    if not result.ok:
        logger.warning(
            "Best-effort action %s failed; ignoring: %s", label, result.error
        )
        return None
    return result.data
