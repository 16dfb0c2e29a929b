"""
budgetguard

Admission-time enforcement of per-team CPU and memory budgets for Kubernetes.
Pods are optionally shrunk to fit the remaining budget of their namespace,
then allowed, allowed with a warning (DryRun) or denied (Enforce).
"""

__version__ = "0.1.0"
__author__ = "budgetguard Contributors"
__description__ = "Admission-time resource budgets for multi-tenant clusters"

# Core exports
from budgetguard.core.autosizer import AutoSizer
from budgetguard.core.enforcer import BudgetEnforcer
from budgetguard.core.schemas import (
    Decision,
    DecisionOutcome,
    Pod,
    ProjectBudget,
    ResourceUsage,
    ValidationMode,
)
from budgetguard.core.signals import GuardMetrics, SignalEmitter
from budgetguard.core.store import BudgetStore
from budgetguard.core.usage import UsageAggregator

# Common exceptions
from budgetguard.utils.errors import (
    BudgetGuardError,
    ConfigurationError,
    ContractViolationError,
    UsageEnumerationError,
)

__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__description__",
    # Core classes
    "AutoSizer",
    "BudgetEnforcer",
    "BudgetStore",
    "UsageAggregator",
    "GuardMetrics",
    "SignalEmitter",
    "Decision",
    "DecisionOutcome",
    "Pod",
    "ProjectBudget",
    "ResourceUsage",
    "ValidationMode",
    # Exceptions
    "BudgetGuardError",
    "ConfigurationError",
    "ContractViolationError",
    "UsageEnumerationError",
]
