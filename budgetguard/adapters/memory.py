"""
In-memory collaborators for offline checks and tests.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from budgetguard.core.schemas import (
    BUDGET_KIND,
    Pod,
    ProjectBudget,
    ProjectBudgetStatus,
)
from budgetguard.utils.errors import PolicyLookupError, UsageEnumerationError

logger = logging.getLogger(__name__)


def _flatten(documents: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Expand `kind: List` documents into their items and drop empty documents."""
    objects: List[Dict[str, Any]] = []
    for doc in documents:
        if not doc:
            continue
        if doc.get("kind", "").endswith("List") and "items" in doc:
            objects.extend(item for item in doc["items"] if item)
        else:
            objects.append(doc)
    return objects


class InMemoryBudgetSource:
    """Budget source backed by a list; listing order is insertion order."""

    def __init__(self, budgets: Optional[List[ProjectBudget]] = None):
        self.budgets: List[ProjectBudget] = list(budgets or [])
        self.fail_listing = False
        self.status_updates: List[ProjectBudgetStatus] = []

    @classmethod
    def from_documents(cls, documents: Iterable[Dict[str, Any]]) -> "InMemoryBudgetSource":
        """Build a source from parsed YAML/JSON objects, skipping non-budgets."""
        budgets = []
        for obj in _flatten(documents):
            if obj.get("kind", BUDGET_KIND) != BUDGET_KIND:
                continue
            try:
                budgets.append(ProjectBudget.model_validate(obj))
            except ValidationError as e:
                name = obj.get("metadata", {}).get("name")
                logger.warning(f"Ignoring malformed ProjectBudget '{name}': {e}")
        return cls(budgets)

    def add(self, budget: ProjectBudget) -> None:
        self.budgets.append(budget)

    async def list_budgets(self) -> List[ProjectBudget]:
        if self.fail_listing:
            raise PolicyLookupError("budget listing unavailable")
        return list(self.budgets)

    async def update_status(self, budget: ProjectBudget, status: ProjectBudgetStatus) -> None:
        budget.status = status
        self.status_updates.append(status)


class InMemoryWorkloadSource:
    """Pods grouped by namespace."""

    def __init__(self, pods: Optional[Iterable[Pod]] = None):
        self.pods: Dict[str, List[Pod]] = {}
        self.failing_namespaces: set = set()
        for pod in pods or []:
            self.add(pod)

    @classmethod
    def from_documents(cls, documents: Iterable[Dict[str, Any]]) -> "InMemoryWorkloadSource":
        pods = [Pod.model_validate(obj) for obj in _flatten(documents) if obj.get("kind") == "Pod"]
        return cls(pods)

    def add(self, pod: Pod, namespace: Optional[str] = None) -> None:
        ns = namespace or pod.metadata.namespace or "default"
        self.pods.setdefault(ns, []).append(pod)

    async def list_pods(self, namespace: str) -> List[Pod]:
        if namespace in self.failing_namespaces:
            raise UsageEnumerationError(
                f"failed to list existing pods in namespace '{namespace}'", scope=namespace
            )
        return list(self.pods.get(namespace, []))


@dataclass
class RecordedEvent:
    budget_name: Optional[str]
    event_type: str
    reason: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryEventRecorder:
    """Keeps audit events in a list."""

    def __init__(self) -> None:
        self.events: List[RecordedEvent] = []

    async def record(
        self, budget: ProjectBudget, event_type: str, reason: str, message: str
    ) -> None:
        self.events.append(
            RecordedEvent(
                budget_name=budget.metadata.name,
                event_type=event_type,
                reason=reason,
                message=message,
            )
        )

    def reasons(self) -> List[str]:
        return [e.reason for e in self.events]
