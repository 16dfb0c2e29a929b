"""
Periodic status snapshot of every ProjectBudget.

The snapshot is informational only. Admission decisions always recompute
usage live and never read the status written here.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from budgetguard.core.interfaces import BudgetSource
from budgetguard.core.quantity import format_millicores, parse_limit
from budgetguard.core.schemas import ProjectBudget, ProjectBudgetStatus
from budgetguard.core.usage import UsageAggregator
from budgetguard.utils.errors import (
    BudgetGuardError,
    MalformedBudgetLimitError,
    PolicyLookupError,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BudgetReconciler:
    """Recomputes CPU usage per budget and republishes it in the budget status."""

    def __init__(
        self,
        source: BudgetSource,
        usage: UsageAggregator,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.source = source
        self.usage = usage
        self.clock = clock or _utcnow

    async def reconcile(self, budget: ProjectBudget) -> Optional[ProjectBudgetStatus]:
        """
        Refresh the status of one budget.

        Args:
            budget: Budget to refresh

        Returns:
            The status written, or None when the budget's CPU limit is malformed
            (such budgets are skipped until they are fixed)

        Raises:
            UsageEnumerationError: If the pods of the team cannot be listed
        """
        team = budget.spec.team_name
        usage = await self.usage.current_usage(team)

        try:
            limit = parse_limit("maxCpuLimit", budget.spec.max_cpu_limit, millis=True)
        except MalformedBudgetLimitError as e:
            logger.error(f"Invalid MaxCpuLimit format in ProjectBudget: {e}")
            return None

        if usage.cpu_millicores > limit:
            logger.info(
                "VIOLATION DETECTED",
                extra={"namespace": team, "current": usage.cpu_millicores, "limit": limit},
            )
        else:
            logger.info("Budget OK", extra={"namespace": team, "usage": usage.cpu_millicores})

        status = ProjectBudgetStatus(
            current_cpu_usage=format_millicores(usage.cpu_millicores),
            last_check_time=self.clock().isoformat(),
        )
        await self.source.update_status(budget, status)
        budget.status = status
        return status

    async def reconcile_all(self) -> int:
        """
        Refresh every budget; failures are logged per budget.

        Returns:
            Number of budgets whose status was written
        """
        try:
            budgets = await self.source.list_budgets()
        except PolicyLookupError as e:
            logger.error(f"Failed to list budgets for reconciliation: {e}")
            return 0

        updated = 0
        for budget in budgets:
            try:
                if await self.reconcile(budget) is not None:
                    updated += 1
            except BudgetGuardError as e:
                logger.error(f"Failed to reconcile ProjectBudget '{budget.metadata.name}': {e}")

        logger.debug(f"Reconciled {updated}/{len(budgets)} budgets")
        return updated
