"""
Tests for the budget decision engine.
"""

import pytest

from budgetguard.core.schemas import (
    DecisionOutcome,
    ObjectMeta,
    ProjectBudget,
    ProjectBudgetSpec,
    ResourceDimension,
    ValidationMode,
)
from budgetguard.core.signals import REASON_BUDGET_EXCEEDED, REASON_DRY_RUN_VIOLATION
from budgetguard.utils.errors import ContractViolationError, UsageEnumerationError

from conftest import GI, TEAM


@pytest.fixture
def enforced(budgets, make_budget):
    budget = make_budget(cpu="500m")
    budgets.add(budget)
    return budget


class TestDecide:
    @pytest.mark.asyncio
    async def test_allows_within_budget(self, enforcer, enforced, make_pod, recorder, metrics):
        decision = await enforcer.decide(make_pod(cpu="400m"), TEAM)

        assert decision.outcome == DecisionOutcome.ALLOW
        assert decision.allowed
        assert recorder.events == []
        assert metrics.rejected(TEAM) == 0

    @pytest.mark.asyncio
    async def test_denies_cpu_overflow(self, enforcer, enforced, workloads, make_pod, metrics):
        workloads.add(make_pod(cpu="300m"))

        decision = await enforcer.decide(make_pod(cpu="400m"), TEAM)

        assert decision.outcome == DecisionOutcome.DENY
        assert not decision.allowed
        assert decision.reason == (
            "DENIED by FinOps: CPU Budget exceeded for team 'team-beta'. "
            "Used: 300m, Limit: 500m, Request: 400m"
        )
        assert metrics.rejected(TEAM) == 1
        assert metrics.saved_cpu_millicores(TEAM) == 400

    @pytest.mark.asyncio
    async def test_deny_records_budget_exceeded_event(
        self, enforcer, enforced, workloads, make_pod, recorder
    ):
        workloads.add(make_pod(cpu="300m"))

        decision = await enforcer.decide(make_pod(cpu="400m"), TEAM)

        assert recorder.reasons() == [REASON_BUDGET_EXCEEDED]
        event = recorder.events[0]
        assert event.event_type == "Warning"
        assert event.budget_name == enforced.metadata.name
        assert event.message == decision.reason

    @pytest.mark.asyncio
    async def test_exact_fit_is_allowed(self, enforcer, enforced, workloads, make_pod):
        workloads.add(make_pod(cpu="100m"))

        decision = await enforcer.decide(make_pod(cpu="400m"), TEAM)

        assert decision.outcome == DecisionOutcome.ALLOW

    @pytest.mark.asyncio
    async def test_dry_run_warns(self, enforcer, budgets, workloads, make_budget, make_pod, recorder, metrics):
        budgets.add(make_budget(mode=ValidationMode.DRY_RUN))
        workloads.add(make_pod(cpu="300m"))
        pod = make_pod(cpu="400m")
        before = pod.model_copy(deep=True)

        decision = await enforcer.decide(pod, TEAM)

        assert decision.outcome == DecisionOutcome.ALLOW_WITH_WARNING
        assert decision.allowed
        assert decision.reason.startswith("[DRY-RUN] Violation detected but allowed: DENIED by FinOps")
        assert metrics.rejected(TEAM) == 1
        assert recorder.reasons() == [REASON_DRY_RUN_VIOLATION]
        assert pod == before

    @pytest.mark.asyncio
    async def test_memory_overflow(self, enforcer, budgets, workloads, make_budget, make_pod, metrics):
        budgets.add(make_budget(cpu="4", memory="4Gi"))
        workloads.add(make_pod(cpu="100m", memory="3Gi"))

        decision = await enforcer.decide(make_pod(cpu="100m", memory="2Gi"), TEAM)

        assert decision.outcome == DecisionOutcome.DENY
        assert decision.violation.dimension == ResourceDimension.MEMORY
        assert f"Used: {3 * GI} bytes, Limit: {4 * GI} bytes, Request: {2 * GI} bytes" in decision.reason
        assert decision.reason.startswith("DENIED by FinOps: RAM Budget exceeded")
        assert metrics.rejected(TEAM) == 1
        assert metrics.saved_cpu_millicores(TEAM) == 0

    @pytest.mark.asyncio
    async def test_dry_run_memory_overflow(
        self, enforcer, budgets, workloads, make_budget, make_pod, recorder, metrics
    ):
        budgets.add(make_budget(cpu="4", memory="4Gi", mode=ValidationMode.DRY_RUN))
        workloads.add(make_pod(cpu="100m", memory="3Gi"))

        decision = await enforcer.decide(make_pod(cpu="100m", memory="2Gi"), TEAM)

        assert decision.outcome == DecisionOutcome.ALLOW_WITH_WARNING
        assert decision.violation.dimension == ResourceDimension.MEMORY
        assert metrics.rejected(TEAM) == 1
        assert metrics.saved_cpu_millicores(TEAM) == 0
        assert recorder.reasons() == [REASON_DRY_RUN_VIOLATION]

    @pytest.mark.asyncio
    async def test_server_dry_run_skips_signals(
        self, enforcer, enforced, workloads, make_pod, recorder, metrics
    ):
        workloads.add(make_pod(cpu="300m"))

        decision = await enforcer.decide(make_pod(cpu="400m"), TEAM, dry_run=True)

        assert decision.outcome == DecisionOutcome.DENY
        assert metrics.rejected(TEAM) == 0
        assert metrics.saved_cpu_millicores(TEAM) == 0
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_cpu_reported_before_memory(self, enforcer, budgets, workloads, make_budget, make_pod):
        budgets.add(make_budget(cpu="500m", memory="1Gi"))
        workloads.add(make_pod(cpu="300m", memory="1Gi"))

        decision = await enforcer.decide(make_pod(cpu="400m", memory="1Gi"), TEAM)

        assert decision.violation.dimension == ResourceDimension.CPU

    @pytest.mark.asyncio
    async def test_memory_ignored_without_memory_limit(self, enforcer, enforced, workloads, make_pod):
        workloads.add(make_pod(cpu="100m", memory="64Gi"))

        decision = await enforcer.decide(make_pod(cpu="100m", memory="64Gi"), TEAM)

        assert decision.outcome == DecisionOutcome.ALLOW

    @pytest.mark.asyncio
    async def test_terminal_pods_do_not_count(self, enforcer, enforced, workloads, make_pod):
        workloads.add(make_pod(cpu="500m", phase="Succeeded"))

        decision = await enforcer.decide(make_pod(cpu="400m"), TEAM)

        assert decision.outcome == DecisionOutcome.ALLOW

    @pytest.mark.asyncio
    async def test_violations_accumulate_saved_cpu(self, enforcer, enforced, workloads, make_pod, metrics):
        workloads.add(make_pod(cpu="500m"))

        for cpu in ("100m", "250m"):
            await enforcer.decide(make_pod(cpu=cpu), TEAM)

        assert metrics.rejected(TEAM) == 2
        assert metrics.saved_cpu_millicores(TEAM) == 350


class TestFailOpen:
    @pytest.mark.asyncio
    async def test_no_budget_allows(self, enforcer, workloads, make_pod, recorder):
        workloads.add(make_pod(cpu="64"))

        decision = await enforcer.decide(make_pod(cpu="64"), TEAM)

        assert decision.outcome == DecisionOutcome.ALLOW
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_budget_listing_failure_allows(self, enforcer, enforced, budgets, workloads, make_pod):
        budgets.fail_listing = True
        workloads.add(make_pod(cpu="500m"))

        decision = await enforcer.decide(make_pod(cpu="400m"), TEAM)

        assert decision.outcome == DecisionOutcome.ALLOW

    @pytest.mark.asyncio
    async def test_malformed_cpu_limit_skips_cpu_check(self, enforcer, budgets, workloads, make_pod):
        spec = ProjectBudgetSpec.model_construct(
            team_name=TEAM,
            max_cpu_limit="half a core",
            max_memory_limit="1Gi",
            validation_mode=ValidationMode.ENFORCE,
        )
        budgets.add(ProjectBudget(metadata=ObjectMeta(name="broken"), spec=spec))
        workloads.add(make_pod(cpu="8", memory="512Mi"))

        decision = await enforcer.decide(make_pod(cpu="8", memory="1Gi"), TEAM)

        # CPU is not enforced, memory still is
        assert decision.outcome == DecisionOutcome.DENY
        assert decision.violation.dimension == ResourceDimension.MEMORY


class TestFailClosed:
    @pytest.mark.asyncio
    async def test_usage_failure_propagates(self, enforcer, enforced, workloads, make_pod, recorder):
        workloads.failing_namespaces.add(TEAM)

        with pytest.raises(UsageEnumerationError):
            await enforcer.decide(make_pod(cpu="100m"), TEAM)

        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_rejects_non_pod(self, enforcer, enforced):
        with pytest.raises(ContractViolationError) as exc_info:
            await enforcer.decide({"kind": "Deployment"}, TEAM)

        assert exc_info.value.expected == "Pod"
        assert exc_info.value.received == "dict"
