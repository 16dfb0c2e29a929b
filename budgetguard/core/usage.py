"""
Live aggregation of the declared resource ceilings of a scope.
"""

import logging

from budgetguard.core.interfaces import WorkloadSource
from budgetguard.core.quantity import pod_cost
from budgetguard.core.schemas import ResourceUsage

logger = logging.getLogger(__name__)


class UsageAggregator:
    """Sums CPU and memory limits over the active pods of a namespace."""

    def __init__(self, source: WorkloadSource):
        self.source = source

    async def current_usage(self, scope: str) -> ResourceUsage:
        """
        Compute the current usage of a scope.

        Pods in a terminal phase (Succeeded, Failed) are ignored. Containers
        without a declared limit contribute zero.

        Args:
            scope: Tenant scope (namespace) to aggregate

        Returns:
            ResourceUsage in millicores and bytes

        Raises:
            UsageEnumerationError: If the pods of the scope cannot be listed
        """
        pods = await self.source.list_pods(scope)

        usage = ResourceUsage()
        active = 0
        for pod in pods:
            if pod.is_terminal:
                continue
            active += 1
            usage = usage + pod_cost(pod)

        logger.debug(
            f"Scope '{scope}': {active} active pods, "
            f"{usage.cpu_millicores}m CPU, {usage.memory_bytes} bytes memory"
        )
        return usage
