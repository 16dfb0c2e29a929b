"""
Core Pydantic schemas for budgetguard data structures.

ProjectBudget mirrors the custom resource served by the API server and Pod
models the subset of a core/v1 Pod the admission core reads.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

BUDGET_GROUP = "finops.budgetguard.io"
BUDGET_VERSION = "v1"
BUDGET_PLURAL = "projectbudgets"
BUDGET_KIND = "ProjectBudget"


class ValidationMode(str, Enum):
    """Enforcement mode of a budget."""

    ENFORCE = "Enforce"
    DRY_RUN = "DryRun"


class PodPhase(str, Enum):
    """Lifecycle phase of a pod."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


TERMINAL_PHASES = {PodPhase.SUCCEEDED.value, PodPhase.FAILED.value}


class ObjectMeta(BaseModel):
    """Object metadata shared by budgets and pods."""

    name: Optional[str] = None
    namespace: Optional[str] = None
    uid: Optional[str] = None
    annotations: Dict[str, str] = Field(default_factory=dict)
    labels: Dict[str, str] = Field(default_factory=dict)

    @field_validator("annotations", "labels", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or {}


class ProjectBudgetSpec(BaseModel):
    """Desired state of a ProjectBudget."""

    model_config = ConfigDict(populate_by_name=True)

    team_name: str = Field(..., min_length=1, alias="teamName")
    max_cpu_limit: str = Field(..., pattern=r"^\d+(m|)$", alias="maxCpuLimit")
    max_memory_limit: Optional[str] = Field(
        None, pattern=r"^\d+(Mi|Gi)$", alias="maxMemoryLimit"
    )
    validation_mode: ValidationMode = Field(ValidationMode.ENFORCE, alias="validationMode")


class ProjectBudgetStatus(BaseModel):
    """Observed snapshot written by the reconciler. Never used for admission."""

    model_config = ConfigDict(populate_by_name=True)

    current_cpu_usage: Optional[str] = Field(None, alias="currentCpuUsage")
    last_check_time: Optional[str] = Field(None, alias="lastCheckTime")


class ProjectBudget(BaseModel):
    """Per-team CPU and memory budget."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(f"{BUDGET_GROUP}/{BUDGET_VERSION}", alias="apiVersion")
    kind: str = BUDGET_KIND
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: ProjectBudgetSpec
    status: ProjectBudgetStatus = Field(default_factory=ProjectBudgetStatus)

    @property
    def team_name(self) -> str:
        return self.spec.team_name

    @property
    def is_dry_run(self) -> bool:
        return self.spec.validation_mode == ValidationMode.DRY_RUN


class ResourceRequirements(BaseModel):
    """Declared resource ceilings of a container."""

    limits: Dict[str, str] = Field(default_factory=dict)
    requests: Dict[str, str] = Field(default_factory=dict)

    @field_validator("limits", "requests", mode="before")
    @classmethod
    def _quantities_as_strings(cls, value):
        # YAML authors write `cpu: 1`; the API server always returns strings
        return {k: str(v) for k, v in (value or {}).items()}


class Container(BaseModel):
    name: str = ""
    image: Optional[str] = None
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)


class PodSpec(BaseModel):
    containers: List[Container] = Field(default_factory=list)


class PodStatus(BaseModel):
    phase: Optional[str] = None


class Pod(BaseModel):
    """Workload as seen by the admission core."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field("v1", alias="apiVersion")
    kind: str = "Pod"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PodSpec = Field(default_factory=PodSpec)
    status: PodStatus = Field(default_factory=PodStatus)

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.annotations

    @property
    def is_terminal(self) -> bool:
        """True once the pod has Succeeded or Failed."""
        return self.status.phase in TERMINAL_PHASES


@dataclass(frozen=True)
class ResourceUsage:
    """Summed CPU (millicores) and memory (bytes) ceilings."""

    cpu_millicores: int = 0
    memory_bytes: int = 0

    def __add__(self, other: "ResourceUsage") -> "ResourceUsage":
        return ResourceUsage(
            cpu_millicores=self.cpu_millicores + other.cpu_millicores,
            memory_bytes=self.memory_bytes + other.memory_bytes,
        )


class ResourceDimension(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"


class DecisionOutcome(str, Enum):
    """Outcome of a budget decision."""

    ALLOW = "allow"
    ALLOW_WITH_WARNING = "allow_with_warning"
    DENY = "deny"


@dataclass(frozen=True)
class Violation:
    """A budget overflow in one resource dimension."""

    dimension: ResourceDimension
    scope: str
    used: int
    limit: int
    requested: int

    @property
    def message(self) -> str:
        """User-facing denial message."""
        if self.dimension == ResourceDimension.CPU:
            return (
                f"DENIED by FinOps: CPU Budget exceeded for team '{self.scope}'. "
                f"Used: {self.used}m, Limit: {self.limit}m, Request: {self.requested}m"
            )
        return (
            f"DENIED by FinOps: RAM Budget exceeded for team '{self.scope}'. "
            f"Used: {self.used} bytes, Limit: {self.limit} bytes, "
            f"Request: {self.requested} bytes"
        )

    @property
    def dry_run_message(self) -> str:
        return f"[DRY-RUN] Violation detected but allowed: {self.message}"


@dataclass(frozen=True)
class Decision:
    """Ephemeral result of evaluating one workload against its budget."""

    outcome: DecisionOutcome
    reason: Optional[str] = None
    violation: Optional[Violation] = None

    @property
    def allowed(self) -> bool:
        return self.outcome != DecisionOutcome.DENY

    @classmethod
    def allow(cls) -> "Decision":
        return cls(outcome=DecisionOutcome.ALLOW)

    @classmethod
    def deny(cls, violation: Violation) -> "Decision":
        return cls(outcome=DecisionOutcome.DENY, reason=violation.message, violation=violation)

    @classmethod
    def warn(cls, violation: Violation) -> "Decision":
        return cls(
            outcome=DecisionOutcome.ALLOW_WITH_WARNING,
            reason=violation.dry_run_message,
            violation=violation,
        )
