"""
Pytest configuration and fixtures for budgetguard tests.
"""

from typing import Callable, Dict, Optional

import pytest
from prometheus_client import CollectorRegistry

from budgetguard.adapters.memory import (
    InMemoryBudgetSource,
    InMemoryEventRecorder,
    InMemoryWorkloadSource,
)
from budgetguard.core.autosizer import AutoSizer
from budgetguard.core.enforcer import BudgetEnforcer
from budgetguard.core.schemas import (
    Container,
    ObjectMeta,
    Pod,
    PodSpec,
    PodStatus,
    ProjectBudget,
    ProjectBudgetSpec,
    ResourceRequirements,
    ValidationMode,
)
from budgetguard.core.signals import GuardMetrics, SignalEmitter
from budgetguard.core.store import BudgetStore
from budgetguard.core.usage import UsageAggregator

TEAM = "team-beta"
AUTO_RESIZE = "finops.budgetguard.io/auto-resize"
RESIZED = "finops.budgetguard.io/resized"

GI = 1024**3


# ============================================================================
# Object factories
# ============================================================================


def _container(name: str, cpu: Optional[str], memory: Optional[str]) -> Container:
    limits: Dict[str, str] = {}
    if cpu is not None:
        limits["cpu"] = cpu
    if memory is not None:
        limits["memory"] = memory
    return Container(name=name, image="nginx", resources=ResourceRequirements(limits=limits))


@pytest.fixture
def make_pod() -> Callable[..., Pod]:
    """Factory for pods with one container per (cpu, memory) pair."""
    counter = {"n": 0}

    def _make(
        cpu: Optional[str] = None,
        memory: Optional[str] = None,
        namespace: str = TEAM,
        annotations: Optional[Dict[str, str]] = None,
        phase: Optional[str] = "Running",
        extra_containers: Optional[list] = None,
    ) -> Pod:
        counter["n"] += 1
        containers = [_container("main", cpu, memory)]
        for i, (c, m) in enumerate(extra_containers or []):
            containers.append(_container(f"sidecar-{i}", c, m))
        return Pod(
            metadata=ObjectMeta(
                name=f"pod-{counter['n']}",
                namespace=namespace,
                annotations=dict(annotations or {}),
            ),
            spec=PodSpec(containers=containers),
            status=PodStatus(phase=phase),
        )

    return _make


@pytest.fixture
def make_budget() -> Callable[..., ProjectBudget]:
    def _make(
        team: str = TEAM,
        cpu: str = "500m",
        memory: Optional[str] = None,
        mode: ValidationMode = ValidationMode.ENFORCE,
        name: Optional[str] = None,
    ) -> ProjectBudget:
        return ProjectBudget(
            metadata=ObjectMeta(name=name or f"{team}-budget", namespace="finops-system"),
            spec=ProjectBudgetSpec(
                team_name=team,
                max_cpu_limit=cpu,
                max_memory_limit=memory,
                validation_mode=mode,
            ),
        )

    return _make


# ============================================================================
# Collaborators
# ============================================================================


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated metrics registry per test."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> GuardMetrics:
    return GuardMetrics(registry)


@pytest.fixture
def budgets() -> InMemoryBudgetSource:
    return InMemoryBudgetSource()


@pytest.fixture
def workloads() -> InMemoryWorkloadSource:
    return InMemoryWorkloadSource()


@pytest.fixture
def recorder() -> InMemoryEventRecorder:
    return InMemoryEventRecorder()


@pytest.fixture
def signals(metrics: GuardMetrics, recorder: InMemoryEventRecorder) -> SignalEmitter:
    return SignalEmitter(metrics, recorder)


@pytest.fixture
def store(budgets: InMemoryBudgetSource) -> BudgetStore:
    return BudgetStore(budgets)


@pytest.fixture
def usage(workloads: InMemoryWorkloadSource) -> UsageAggregator:
    return UsageAggregator(workloads)


@pytest.fixture
def enforcer(store, usage, signals) -> BudgetEnforcer:
    return BudgetEnforcer(store, usage, signals)


@pytest.fixture
def autosizer(store, usage, signals) -> AutoSizer:
    return AutoSizer(store, usage, signals)
