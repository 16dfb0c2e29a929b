"""
Opt-in CPU auto-sizing applied before the budget decision.
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
from budgetguard.core.quantity import CPU, container_cpu_limit, format_millicores, parse_limit
from budgetguard.core.schemas import Pod, ProjectBudget
from budgetguard.core.signals import SignalEmitter
from budgetguard.core.store import BudgetStore
from budgetguard.core.usage import UsageAggregator
from budgetguard.utils.errors import (
    MalformedBudgetLimitError,
    UsageEnumerationError,
    expect_kind,
)

logger = logging.getLogger(__name__)

DEFAULT_ANNOTATION_PREFIX = "finops.budgetguard.io"


class AutoSizer:
    """
    Shrinks the CPU limit of an opted-in pod to the headroom left in its budget.

    Only pods annotated ``<prefix>/auto-resize: "true"`` are touched, and only
    container index 0 is inspected. The limit is clamped to exactly the
    remaining headroom; nothing is scaled proportionally. The sizer never
    denies: every failure leaves the pod as it was.
    """

    def __init__(
        self,
        store: BudgetStore,
        usage: UsageAggregator,
        signals: SignalEmitter,
        annotation_prefix: str = DEFAULT_ANNOTATION_PREFIX,
    ):
        self.store = store
        self.usage = usage
        self.signals = signals
        self.opt_in_annotation = f"{annotation_prefix}/auto-resize"
        self.resized_annotation = f"{annotation_prefix}/resized"

    def opted_in(self, pod: Pod) -> bool:
        return pod.annotations.get(self.opt_in_annotation) == "true"

    async def auto_size(self, pod: Pod, scope: str, dry_run: bool = False) -> Pod:
        """
        Return pod, resized in place when it opted in and does not fit.

        Args:
            pod: Pod under admission
            scope: Tenant scope the pod is created in
            dry_run: Resize as usual but record no Event

        Returns:
            The same pod object, possibly with a lowered first-container CPU
            limit and the resized annotation

        Raises:
            ContractViolationError: If pod is not a Pod
        """
        expect_kind(pod, Pod, "Pod")

        if not self.opted_in(pod):
            return pod

        logger.info(
            "Mutating Pod: Checking for auto-sizing opportunities",
            extra={"pod": pod.metadata.name, "scope": scope},
        )

        lookup = await self.store.lookup(scope)
        if action_for(CallSite.MUTATE, Collaborator.BUDGET_LOOKUP, lookup.kind) != FailureAction.PROCEED:
            return pod
        budget = lookup.budget

        remaining = await self._remaining_cpu(budget, scope)
        # No headroom left: the enforcer will deny
        if remaining is None or remaining <= 0:
            return pod

        if not pod.spec.containers:
            return pod

        container = pod.spec.containers[0]
        requested = container_cpu_limit(container)
        if requested is None or requested <= remaining:
            return pod

        container.resources.limits[CPU] = format_millicores(remaining)
        pod.metadata.annotations[self.resized_annotation] = "true"

        if not dry_run:
            await self.signals.auto_sized(budget, requested, remaining)
        return pod

    async def _remaining_cpu(self, budget: ProjectBudget, scope: str) -> Optional[int]:
        try:
            limit = parse_limit("maxCpuLimit", budget.spec.max_cpu_limit, millis=True)
        except MalformedBudgetLimitError as e:
            if action_for(CallSite.MUTATE, Collaborator.LIMIT_PARSE, ResultKind.MALFORMED) == FailureAction.RAISE:
                raise
            logger.warning(f"Skipping auto-size for scope '{scope}': {e}")
            return None

        try:
            usage = await self.usage.current_usage(scope)
        except UsageEnumerationError as e:
            if action_for(CallSite.MUTATE, Collaborator.USAGE, ResultKind.TRANSIENT_FAILURE) == FailureAction.RAISE:
                raise
            logger.warning(f"Skipping auto-size for scope '{scope}': {e}")
            return None

        return limit - usage.cpu_millicores
