"""
Kubernetes resource quantity helpers.

Parsing is delegated to ``kubernetes.utils.parse_quantity``; the helpers here
convert the resulting Decimal to integer millicores and bytes with the same
round-up semantics as the API machinery's MilliValue()/Value().
"""

import math
from decimal import Decimal, InvalidOperation
from typing import Optional

from kubernetes.utils import parse_quantity

from budgetguard.core.schemas import Container, Pod, ResourceUsage
from budgetguard.utils.errors import MalformedBudgetLimitError

CPU = "cpu"
MEMORY = "memory"


def _parse(value: str) -> Decimal:
    try:
        return parse_quantity(value)
    except (ValueError, InvalidOperation, TypeError) as e:
        raise ValueError(f"invalid quantity {value!r}: {e}") from e


def to_millicores(value: str) -> int:
    """Return the quantity in millicores, rounded up."""
    return int(math.ceil(_parse(value) * 1000))


def to_bytes(value: str) -> int:
    """Return the quantity in whole units (bytes for memory), rounded up."""
    return int(math.ceil(_parse(value)))


def format_millicores(millicores: int) -> str:
    return f"{millicores}m"


def parse_limit(field_name: str, value: str, millis: bool) -> int:
    """Parse a budget limit, raising MalformedBudgetLimitError on bad input."""
    try:
        return to_millicores(value) if millis else to_bytes(value)
    except ValueError as e:
        raise MalformedBudgetLimitError(
            f"Invalid {field_name} format in ProjectBudget: {value!r}",
            field_name=field_name,
            field_value=value,
        ) from e


def container_cpu_limit(container: Container) -> Optional[int]:
    """CPU ceiling of a container in millicores, or None when undeclared."""
    value = container.resources.limits.get(CPU)
    return None if value is None else to_millicores(value)


def container_memory_limit(container: Container) -> Optional[int]:
    value = container.resources.limits.get(MEMORY)
    return None if value is None else to_bytes(value)


def pod_cost(pod: Pod) -> ResourceUsage:
    """Sum the declared ceilings of every container; undeclared ones count as zero."""
    cpu = 0
    memory = 0
    for container in pod.spec.containers:
        cpu += container_cpu_limit(container) or 0
        memory += container_memory_limit(container) or 0
    return ResourceUsage(cpu_millicores=cpu, memory_bytes=memory)
