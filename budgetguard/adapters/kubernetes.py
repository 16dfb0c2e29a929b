"""
Kubernetes API collaborators.

The kubernetes client is synchronous; every call is pushed to a worker thread
with asyncio.to_thread so the admission handler stays responsive and can be
cancelled while a call is in flight.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from budgetguard.core.schemas import (
    BUDGET_GROUP,
    BUDGET_PLURAL,
    BUDGET_VERSION,
    Pod,
    ProjectBudget,
    ProjectBudgetStatus,
)
from budgetguard.utils.errors import (
    BudgetGuardError,
    PolicyLookupError,
    UsageEnumerationError,
)

logger = logging.getLogger(__name__)

_API_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


def load_kube_config(kubeconfig: Optional[str] = None) -> None:
    """Load the kubeconfig file when given, in-cluster config otherwise."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()


class KubernetesBudgetSource:
    """Reads ProjectBudget custom resources across all namespaces."""

    def __init__(
        self,
        custom_api: Optional[client.CustomObjectsApi] = None,
        group: str = BUDGET_GROUP,
        version: str = BUDGET_VERSION,
        plural: str = BUDGET_PLURAL,
    ):
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.group = group
        self.version = version
        self.plural = plural

    def _list(self) -> Dict[str, Any]:
        try:
            return self.custom_api.list_cluster_custom_object(
                group=self.group, version=self.version, plural=self.plural
            )
        except _API_ERRORS as e:
            raise PolicyLookupError(f"Failed to list {self.plural}: {e}") from e

    async def list_budgets(self) -> List[ProjectBudget]:
        """
        List budgets in API server order.

        Objects that do not validate against the ProjectBudget schema are
        logged and left out, so a malformed budget never blocks admission.

        Raises:
            PolicyLookupError: If the API call fails
        """
        response = await asyncio.to_thread(self._list)

        budgets = []
        for item in response.get("items", []):
            try:
                budgets.append(ProjectBudget.model_validate(item))
            except ValidationError as e:
                name = item.get("metadata", {}).get("name")
                logger.warning(f"Ignoring malformed ProjectBudget '{name}': {e}")
        return budgets

    def _patch_status(self, budget: ProjectBudget, body: Dict[str, Any]) -> None:
        try:
            self.custom_api.patch_namespaced_custom_object_status(
                group=self.group,
                version=self.version,
                namespace=budget.metadata.namespace,
                plural=self.plural,
                name=budget.metadata.name,
                body=body,
            )
        except _API_ERRORS as e:
            raise BudgetGuardError(
                f"Failed to update ProjectBudget status: {e}",
                details={"budget": budget.metadata.name},
            ) from e

    async def update_status(self, budget: ProjectBudget, status: ProjectBudgetStatus) -> None:
        body = {"status": status.model_dump(by_alias=True, exclude_none=True)}
        await asyncio.to_thread(self._patch_status, budget, body)


class KubernetesWorkloadSource:
    """Lists pods of a namespace through the core/v1 API."""

    def __init__(self, core_api: Optional[client.CoreV1Api] = None):
        self.core_api = core_api or client.CoreV1Api()
        self._serializer = client.ApiClient()

    def _list(self, namespace: str) -> List[Dict[str, Any]]:
        try:
            pod_list = self.core_api.list_namespaced_pod(namespace=namespace)
        except _API_ERRORS as e:
            raise UsageEnumerationError(
                f"failed to list existing pods: {e}", scope=namespace
            ) from e
        return [self._serializer.sanitize_for_serialization(p) for p in pod_list.items]

    async def list_pods(self, namespace: str) -> List[Pod]:
        """
        Raises:
            UsageEnumerationError: If the API call fails
        """
        raw_pods = await asyncio.to_thread(self._list, namespace)
        return [Pod.model_validate(raw) for raw in raw_pods]


class KubernetesEventRecorder:
    """Attaches core/v1 Events to ProjectBudget objects."""

    def __init__(
        self,
        core_api: Optional[client.CoreV1Api] = None,
        component: str = "finops-webhook",
    ):
        self.core_api = core_api or client.CoreV1Api()
        self.component = component

    def _build_event(
        self, budget: ProjectBudget, event_type: str, reason: str, message: str
    ) -> client.CoreV1Event:
        now = datetime.now(timezone.utc)
        name = budget.metadata.name or budget.spec.team_name
        return client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{name}."),
            involved_object=client.V1ObjectReference(
                api_version=budget.api_version,
                kind=budget.kind,
                name=name,
                namespace=budget.metadata.namespace,
                uid=budget.metadata.uid,
            ),
            reason=reason,
            message=message,
            type=event_type,
            count=1,
            first_timestamp=now,
            last_timestamp=now,
            source=client.V1EventSource(component=self.component),
        )

    def _create(self, namespace: str, event: client.CoreV1Event) -> None:
        try:
            self.core_api.create_namespaced_event(namespace=namespace, body=event)
        except _API_ERRORS as e:
            # Events are best-effort, a failed write never changes a decision
            logger.error(f"Failed to record event '{event.reason}': {e}")

    async def record(
        self, budget: ProjectBudget, event_type: str, reason: str, message: str
    ) -> None:
        event = self._build_event(budget, event_type, reason, message)
        namespace = budget.metadata.namespace or "default"
        await asyncio.to_thread(self._create, namespace, event)


def build_kubernetes_collaborators(
    kubeconfig: Optional[str] = None,
    group: str = BUDGET_GROUP,
    version: str = BUDGET_VERSION,
    plural: str = BUDGET_PLURAL,
    component: str = "finops-webhook",
) -> Tuple[KubernetesBudgetSource, KubernetesWorkloadSource, KubernetesEventRecorder]:
    """Load cluster credentials and build the three API-backed collaborators."""
    load_kube_config(kubeconfig)
    core_api = client.CoreV1Api()
    return (
        KubernetesBudgetSource(client.CustomObjectsApi(), group, version, plural),
        KubernetesWorkloadSource(core_api),
        KubernetesEventRecorder(core_api, component),
    )
