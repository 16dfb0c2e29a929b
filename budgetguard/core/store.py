"""
Read-only budget lookup by tenant scope.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from budgetguard.core.interfaces import BudgetSource
from budgetguard.core.policy import ResultKind
from budgetguard.core.schemas import ProjectBudget
from budgetguard.utils.errors import PolicyLookupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetLookup:
    """Result of resolving the budget of a scope."""

    kind: ResultKind
    budget: Optional[ProjectBudget] = None
    error: Optional[str] = None


class BudgetStore:
    """Resolves the ProjectBudget governing a tenant scope."""

    def __init__(self, source: BudgetSource):
        self.source = source

    async def lookup(self, scope: str) -> BudgetLookup:
        """
        Find the budget whose teamName equals scope.

        The first match in listing order wins. Extra matches are reported in
        the log and otherwise ignored.

        Args:
            scope: Tenant scope (namespace) to resolve

        Returns:
            BudgetLookup with kind OK, NOT_FOUND or TRANSIENT_FAILURE
        """
        try:
            budgets = await self.source.list_budgets()
        except PolicyLookupError as e:
            logger.error(f"Failed to list budgets for scope '{scope}': {e}")
            return BudgetLookup(kind=ResultKind.TRANSIENT_FAILURE, error=str(e))

        matches = [b for b in budgets if b.spec.team_name == scope]
        if not matches:
            return BudgetLookup(kind=ResultKind.NOT_FOUND)

        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} ProjectBudgets target scope '{scope}', "
                f"using '{matches[0].metadata.name}'",
                extra={"budgets": [b.metadata.name for b in matches]},
            )

        return BudgetLookup(kind=ResultKind.OK, budget=matches[0])

    async def resolve_budget(self, scope: str) -> Optional[ProjectBudget]:
        """Return the budget of scope, or None when absent or unavailable."""
        return (await self.lookup(scope)).budget
