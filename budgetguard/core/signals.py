"""
Decision signals: Prometheus counters and audit events on the budget.

Counters live on an explicitly constructed CollectorRegistry that is created
once at process start and injected, so tests can use an isolated registry.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter

from budgetguard.core.interfaces import EVENT_NORMAL, EVENT_WARNING, EventRecorder
from budgetguard.core.schemas import ProjectBudget, ResourceDimension, Violation

logger = logging.getLogger(__name__)

REASON_BUDGET_EXCEEDED = "BudgetExceeded"
REASON_DRY_RUN_VIOLATION = "DryRunViolation"
REASON_POD_AUTO_SIZED = "PodAutoSized"


class GuardMetrics:
    """Process-wide decision counters."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Create the counters on a registry.

        Args:
            registry: Registry to register on; a fresh one is created when omitted
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        self.rejected_pods = Counter(
            "finops_rejected_pods_total",
            "Total number of pods rejected by the FinOps operator due to budget overflow",
            labelnames=["team_namespace"],
            registry=self.registry,
        )

        self.saved_cpu = Counter(
            "finops_saved_cpu_millicores_total",
            "Total CPU millicores saved/prevented from being provisioned",
            labelnames=["team_namespace"],
            registry=self.registry,
        )

    def rejected(self, scope: str) -> float:
        """Current value of the rejection counter for scope."""
        value = self.registry.get_sample_value(
            "finops_rejected_pods_total", {"team_namespace": scope}
        )
        return value or 0.0

    def saved_cpu_millicores(self, scope: str) -> float:
        value = self.registry.get_sample_value(
            "finops_saved_cpu_millicores_total", {"team_namespace": scope}
        )
        return value or 0.0


class SignalEmitter:
    """Writes counters and audit events for decisions. Write-only for the core."""

    def __init__(self, metrics: GuardMetrics, recorder: EventRecorder):
        self.metrics = metrics
        self.recorder = recorder

    async def violation(
        self, budget: ProjectBudget, violation: Violation, incoming_cpu: int
    ) -> None:
        """
        Record one violating decision.

        Increments the rejection counter, adds the incoming CPU to the saved
        counter on a CPU violation, and attaches an event to the budget.
        Called exactly once per Deny or AllowWithWarning.
        """
        scope = violation.scope
        self.metrics.rejected_pods.labels(team_namespace=scope).inc()
        if violation.dimension == ResourceDimension.CPU:
            self.metrics.saved_cpu.labels(team_namespace=scope).inc(incoming_cpu)

        if budget.is_dry_run:
            await self.recorder.record(
                budget, EVENT_WARNING, REASON_DRY_RUN_VIOLATION, violation.dry_run_message
            )
        else:
            await self.recorder.record(
                budget, EVENT_WARNING, REASON_BUDGET_EXCEEDED, violation.message
            )

    async def auto_sized(self, budget: ProjectBudget, old_cpu: int, new_cpu: int) -> None:
        msg = f"Auto-Sized Pod CPU from {old_cpu}m to {new_cpu}m to fit budget"
        logger.info(msg)
        await self.recorder.record(budget, EVENT_NORMAL, REASON_POD_AUTO_SIZED, msg)
