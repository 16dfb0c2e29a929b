"""
Tests for BudgetStore and UsageAggregator.
"""

import logging

import pytest

from budgetguard.core.policy import ResultKind
from budgetguard.utils.errors import UsageEnumerationError

from conftest import GI, TEAM


class TestBudgetStore:
    @pytest.mark.asyncio
    async def test_resolves_by_team_name(self, store, budgets, make_budget):
        budgets.add(make_budget(team="team-alpha", cpu="2"))
        budgets.add(make_budget(team=TEAM, cpu="500m"))

        budget = await store.resolve_budget(TEAM)

        assert budget is not None
        assert budget.spec.max_cpu_limit == "500m"

    @pytest.mark.asyncio
    async def test_not_found(self, store, budgets, make_budget):
        budgets.add(make_budget(team="team-alpha"))

        lookup = await store.lookup(TEAM)

        assert lookup.kind == ResultKind.NOT_FOUND
        assert lookup.budget is None

    @pytest.mark.asyncio
    async def test_listing_failure_is_transient(self, store, budgets, make_budget):
        budgets.add(make_budget())
        budgets.fail_listing = True

        lookup = await store.lookup(TEAM)

        assert lookup.kind == ResultKind.TRANSIENT_FAILURE
        assert "unavailable" in lookup.error
        assert await store.resolve_budget(TEAM) is None

    @pytest.mark.asyncio
    async def test_first_duplicate_wins(self, store, budgets, make_budget, caplog):
        budgets.add(make_budget(cpu="1", name="first"))
        budgets.add(make_budget(cpu="2", name="second"))

        with caplog.at_level(logging.WARNING, logger="budgetguard.core.store"):
            lookup = await store.lookup(TEAM)

        assert lookup.kind == ResultKind.OK
        assert lookup.budget.metadata.name == "first"
        assert "2 ProjectBudgets target scope" in caplog.text


class TestUsageAggregator:
    @pytest.mark.asyncio
    async def test_empty_scope(self, usage):
        current = await usage.current_usage(TEAM)
        assert current.cpu_millicores == 0
        assert current.memory_bytes == 0

    @pytest.mark.asyncio
    async def test_sums_active_pods(self, usage, workloads, make_pod):
        workloads.add(make_pod(cpu="200m", memory="1Gi"))
        workloads.add(make_pod(cpu="100m", phase="Pending"))
        workloads.add(make_pod(cpu="1", namespace="team-alpha"))

        current = await usage.current_usage(TEAM)

        assert current.cpu_millicores == 300
        assert current.memory_bytes == GI

    @pytest.mark.asyncio
    async def test_terminal_pods_ignored(self, usage, workloads, make_pod):
        workloads.add(make_pod(cpu="200m"))
        workloads.add(make_pod(cpu="1", phase="Succeeded"))
        workloads.add(make_pod(cpu="1", phase="Failed"))

        current = await usage.current_usage(TEAM)

        assert current.cpu_millicores == 200

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self, usage, workloads):
        workloads.failing_namespaces.add(TEAM)

        with pytest.raises(UsageEnumerationError) as exc_info:
            await usage.current_usage(TEAM)

        assert exc_info.value.scope == TEAM
