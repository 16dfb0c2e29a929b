"""
Tests for the Kubernetes API collaborators, with the API clients mocked.
"""

from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from budgetguard.adapters.kubernetes import (
    KubernetesBudgetSource,
    KubernetesEventRecorder,
    KubernetesWorkloadSource,
)
from budgetguard.core.schemas import ProjectBudgetStatus
from budgetguard.utils.errors import BudgetGuardError, PolicyLookupError, UsageEnumerationError

from conftest import TEAM


def _budget_item(name, team, cpu):
    return {
        "apiVersion": "finops.budgetguard.io/v1",
        "kind": "ProjectBudget",
        "metadata": {"name": name, "namespace": "finops-system"},
        "spec": {"teamName": team, "maxCpuLimit": cpu},
    }


class TestKubernetesBudgetSource:
    @pytest.mark.asyncio
    async def test_lists_and_skips_malformed(self):
        api = MagicMock()
        api.list_cluster_custom_object.return_value = {
            "items": [
                _budget_item("good", TEAM, "500m"),
                _budget_item("bad", TEAM, "half"),
                _budget_item("other", "team-alpha", "2"),
            ]
        }
        source = KubernetesBudgetSource(api)

        budgets = await source.list_budgets()

        assert [b.metadata.name for b in budgets] == ["good", "other"]
        api.list_cluster_custom_object.assert_called_once_with(
            group="finops.budgetguard.io", version="v1", plural="projectbudgets"
        )

    @pytest.mark.asyncio
    async def test_api_error_is_lookup_error(self):
        api = MagicMock()
        api.list_cluster_custom_object.side_effect = ApiException(status=503, reason="Unavailable")

        with pytest.raises(PolicyLookupError):
            await KubernetesBudgetSource(api).list_budgets()

    @pytest.mark.asyncio
    async def test_update_status_patches_subresource(self, make_budget):
        api = MagicMock()
        budget = make_budget()
        status = ProjectBudgetStatus(current_cpu_usage="300m", last_check_time="2024-05-01T12:00:00+00:00")

        await KubernetesBudgetSource(api).update_status(budget, status)

        kwargs = api.patch_namespaced_custom_object_status.call_args.kwargs
        assert kwargs["name"] == budget.metadata.name
        assert kwargs["namespace"] == "finops-system"
        assert kwargs["body"] == {
            "status": {"currentCpuUsage": "300m", "lastCheckTime": "2024-05-01T12:00:00+00:00"}
        }

    @pytest.mark.asyncio
    async def test_update_status_failure(self, make_budget):
        api = MagicMock()
        api.patch_namespaced_custom_object_status.side_effect = ApiException(status=409)

        with pytest.raises(BudgetGuardError):
            await KubernetesBudgetSource(api).update_status(make_budget(), ProjectBudgetStatus())


class TestKubernetesWorkloadSource:
    @pytest.mark.asyncio
    async def test_converts_api_pods(self):
        api = MagicMock()
        api.list_namespaced_pod.return_value = client.V1PodList(
            items=[
                client.V1Pod(
                    metadata=client.V1ObjectMeta(name="web", namespace=TEAM),
                    spec=client.V1PodSpec(
                        containers=[
                            client.V1Container(
                                name="app",
                                resources=client.V1ResourceRequirements(limits={"cpu": "250m"}),
                            )
                        ]
                    ),
                    status=client.V1PodStatus(phase="Running"),
                )
            ]
        )

        pods = await KubernetesWorkloadSource(api).list_pods(TEAM)

        assert len(pods) == 1
        assert pods[0].metadata.name == "web"
        assert pods[0].spec.containers[0].resources.limits == {"cpu": "250m"}
        assert not pods[0].is_terminal
        api.list_namespaced_pod.assert_called_once_with(namespace=TEAM)

    @pytest.mark.asyncio
    async def test_api_error_is_usage_error(self):
        api = MagicMock()
        api.list_namespaced_pod.side_effect = ApiException(status=500)

        with pytest.raises(UsageEnumerationError) as exc_info:
            await KubernetesWorkloadSource(api).list_pods(TEAM)

        assert exc_info.value.scope == TEAM


class TestKubernetesEventRecorder:
    @pytest.mark.asyncio
    async def test_records_event_on_budget(self, make_budget):
        api = MagicMock()
        budget = make_budget()

        await KubernetesEventRecorder(api).record(budget, "Warning", "BudgetExceeded", "DENIED")

        kwargs = api.create_namespaced_event.call_args.kwargs
        event = kwargs["body"]
        assert kwargs["namespace"] == "finops-system"
        assert event.reason == "BudgetExceeded"
        assert event.type == "Warning"
        assert event.involved_object.kind == "ProjectBudget"
        assert event.involved_object.name == budget.metadata.name
        assert event.source.component == "finops-webhook"

    @pytest.mark.asyncio
    async def test_write_failure_is_logged(self, make_budget, caplog):
        api = MagicMock()
        api.create_namespaced_event.side_effect = ApiException(status=403)

        await KubernetesEventRecorder(api).record(make_budget(), "Normal", "PodAutoSized", "ok")

        assert "Failed to record event 'PodAutoSized'" in caplog.text
