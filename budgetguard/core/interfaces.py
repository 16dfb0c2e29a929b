"""
Protocol definitions for the collaborators of the admission core.
"""

from typing import List, Protocol, runtime_checkable

from budgetguard.core.schemas import Pod, ProjectBudget, ProjectBudgetStatus

EVENT_NORMAL = "Normal"
EVENT_WARNING = "Warning"


@runtime_checkable
class BudgetSource(Protocol):
    """Read access to ProjectBudget objects, plus the reconciler's status write."""

    async def list_budgets(self) -> List[ProjectBudget]:
        """Return every known budget in the listing order of the backend."""
        ...

    async def update_status(self, budget: ProjectBudget, status: ProjectBudgetStatus) -> None:
        """Persist the observed status snapshot of a budget."""
        ...


@runtime_checkable
class WorkloadSource(Protocol):
    """Enumeration of the pods of a namespace."""

    async def list_pods(self, namespace: str) -> List[Pod]:
        ...


@runtime_checkable
class EventRecorder(Protocol):
    """Audit-event sink attaching human-readable records to a budget."""

    async def record(
        self, budget: ProjectBudget, event_type: str, reason: str, message: str
    ) -> None:
        ...
