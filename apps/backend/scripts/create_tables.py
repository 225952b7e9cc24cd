"""Idempotent schema bootstrap for the planner tables.

Creates any missing ``plans``, ``plan_steps``, ``plan_step_details``,
``tasks``, ``notes`` and ``dashboard_widgets`` tables; existing tables are
left untouched.

Usage (local, with DATABASE_URL or POSTGRES_* set):
  PYTHONPATH=apps/backend/src python apps/backend/scripts/create_tables.py
"""

from __future__ import annotations

import asyncio

from dependencies.db import engine
from models import Base


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print(f"Ensured tables: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(main())
