"""Expose commonly used ORM models at package level.

These re-exports are intentional so callers can import from
``models`` (e.g. `from models import Plan`) and so that importing the
package registers every table on ``Base.metadata``. The `F401` noqa
suppresses unused-import warnings for the explicit re-exports.
"""

from .base import Base  # noqa: F401
from .plans import Plan, PlanStep, PlanStepDetail  # noqa: F401
from .tasks import DashboardWidget, Note, Task  # noqa: F401
