"""
Budget decision engine for pod admission.

For every pod the enforcer resolves the budget of the pod's scope, recomputes
the scope's usage live from the cluster, projects the usage with the incoming
pod, and renders Allow, AllowWithWarning (DryRun) or Deny (Enforce). CPU is
checked before memory and the first violation decides; a pod that overflows
both dimensions is reported for CPU only.
"""

import logging
from typing import Optional

from budgetguard.core.policy import (
    CallSite,
    Collaborator,
    FailureAction,
    ResultKind,
    action_for,
)
from budgetguard.core.quantity import parse_limit, pod_cost
from budgetguard.core.schemas import (
    Decision,
    Pod,
    ProjectBudget,
    ResourceDimension,
    ResourceUsage,
    Violation,
)
from budgetguard.core.signals import SignalEmitter
from budgetguard.core.store import BudgetStore
from budgetguard.core.usage import UsageAggregator
from budgetguard.utils.errors import (
    MalformedBudgetLimitError,
    UsageEnumerationError,
    expect_kind,
)
from budgetguard.utils.logging import get_scope_logger

logger = logging.getLogger(__name__)


class BudgetEnforcer:
    """Renders admission decisions for pods against ProjectBudgets."""

    def __init__(self, store: BudgetStore, usage: UsageAggregator, signals: SignalEmitter):
        """
        Initialize the enforcer.

        Args:
            store: Budget lookup
            usage: Live usage aggregation
            signals: Counter and event sink for violating decisions
        """
        self.store = store
        self.usage = usage
        self.signals = signals

    async def decide(self, pod: Pod, scope: str, dry_run: bool = False) -> Decision:
        """
        Evaluate a pod creation against the budget of its scope.

        Args:
            pod: Pod under admission, after auto-sizing
            scope: Tenant scope the pod is created in
            dry_run: The request will not be persisted (server-side dry run);
                the decision is rendered but no counter or Event is written

        Returns:
            Decision with outcome ALLOW, ALLOW_WITH_WARNING or DENY

        Raises:
            ContractViolationError: If pod is not a Pod
            UsageEnumerationError: If the current usage of scope cannot be computed
        """
        expect_kind(pod, Pod, "Pod")
        scope_logger = get_scope_logger(__name__, scope)

        scope_logger.info(
            f"Validating Pod creation for Financial Compliance: {pod.metadata.name}"
        )

        lookup = await self.store.lookup(scope)
        if action_for(CallSite.VALIDATE, Collaborator.BUDGET_LOOKUP, lookup.kind) != FailureAction.PROCEED:
            if lookup.kind == ResultKind.TRANSIENT_FAILURE:
                scope_logger.warning("Failed to list budgets, allowing pod safely")
            return Decision.allow()
        budget = lookup.budget

        incoming = pod_cost(pod)

        try:
            current = await self.usage.current_usage(scope)
        except UsageEnumerationError:
            if action_for(CallSite.VALIDATE, Collaborator.USAGE, ResultKind.TRANSIENT_FAILURE) == FailureAction.RAISE:
                raise
            return Decision.allow()

        violation = self._find_violation(budget, scope, current, incoming)
        if violation is None:
            return Decision.allow()

        if not dry_run:
            await self.signals.violation(budget, violation, incoming.cpu_millicores)

        if budget.is_dry_run:
            decision = Decision.warn(violation)
        else:
            decision = Decision.deny(violation)
        scope_logger.info(decision.reason)
        return decision

    def _find_violation(
        self,
        budget: ProjectBudget,
        scope: str,
        current: ResourceUsage,
        incoming: ResourceUsage,
    ) -> Optional[Violation]:
        """Return the first violated dimension, CPU before memory."""
        cpu_limit = self._limit(budget, "maxCpuLimit", budget.spec.max_cpu_limit, millis=True)
        if cpu_limit is not None:
            if current.cpu_millicores + incoming.cpu_millicores > cpu_limit:
                return Violation(
                    dimension=ResourceDimension.CPU,
                    scope=scope,
                    used=current.cpu_millicores,
                    limit=cpu_limit,
                    requested=incoming.cpu_millicores,
                )

        if budget.spec.max_memory_limit:
            memory_limit = self._limit(
                budget, "maxMemoryLimit", budget.spec.max_memory_limit, millis=False
            )
            if memory_limit is not None:
                if current.memory_bytes + incoming.memory_bytes > memory_limit:
                    return Violation(
                        dimension=ResourceDimension.MEMORY,
                        scope=scope,
                        used=current.memory_bytes,
                        limit=memory_limit,
                        requested=incoming.memory_bytes,
                    )

        return None

    def _limit(
        self, budget: ProjectBudget, field_name: str, value: str, millis: bool
    ) -> Optional[int]:
        """Parse a limit; a malformed one disables its check."""
        try:
            return parse_limit(field_name, value, millis=millis)
        except MalformedBudgetLimitError as e:
            if action_for(CallSite.VALIDATE, Collaborator.LIMIT_PARSE, ResultKind.MALFORMED) == FailureAction.RAISE:
                raise
            logger.warning(f"{e}; not enforcing it", extra={"budget": budget.metadata.name})
            return None
