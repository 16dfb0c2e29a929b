"""
Pydantic models for the admission webhook API and server configuration.

AdmissionReview models cover the admission.k8s.io/v1 fields the webhook reads
and writes; unknown fields sent by the API server are ignored.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from budgetguard.core.schemas import BUDGET_GROUP, BUDGET_PLURAL, BUDGET_VERSION

ADMISSION_API_VERSION = "admission.k8s.io/v1"


class GroupVersionKind(BaseModel):
    group: str = ""
    version: str = ""
    kind: str = ""


class AdmissionRequest(BaseModel):
    """The request half of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str = Field(..., description="Identifier echoed back in the response")
    kind: GroupVersionKind = Field(default_factory=GroupVersionKind)
    name: Optional[str] = None
    namespace: Optional[str] = Field(None, description="Namespace the object is created in")
    operation: str = Field("CREATE", description="CREATE, UPDATE, DELETE or CONNECT")
    object: Optional[Dict[str, Any]] = Field(None, description="Object under admission")
    dry_run: bool = Field(False, alias="dryRun")


class AdmissionStatus(BaseModel):
    code: int = Field(..., description="HTTP status code reported to the requester")
    message: str = Field(..., description="Human-readable reason")
    reason: Optional[str] = None


class AdmissionResponse(BaseModel):
    """The response half of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    allowed: bool
    status: Optional[AdmissionStatus] = None
    patch_type: Optional[str] = Field(None, alias="patchType")
    patch: Optional[str] = Field(None, description="Base64-encoded JSONPatch")
    warnings: Optional[List[str]] = None


class AdmissionReview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = "AdmissionReview"
    request: Optional[AdmissionRequest] = None
    response: Optional[AdmissionResponse] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(..., description="Current timestamp")
    in_flight_reviews: int = Field(0, description="Admission reviews currently being evaluated")
    reconciler_active: Optional[bool] = Field(
        None, description="Whether the status reconciler loop is running"
    )


class ServerSettings(BaseModel):
    """Webhook HTTP server configuration."""

    host: str = Field("0.0.0.0", description="Host to bind to")
    port: int = Field(9443, description="Port to bind to")
    tls_cert_file: Optional[str] = Field(None, description="Serving certificate (PEM)")
    tls_key_file: Optional[str] = Field(None, description="Serving key (PEM)")
    max_concurrent_reviews: int = Field(64, ge=1, description="In-flight review bound")
    default_timeout_seconds: float = Field(
        10.0, gt=0, description="Timeout used when the API server sends none"
    )


class KubernetesSettings(BaseModel):
    kubeconfig: Optional[str] = Field(None, description="kubeconfig path; in-cluster otherwise")
    budget_group: str = BUDGET_GROUP
    budget_version: str = BUDGET_VERSION
    budget_plural: str = BUDGET_PLURAL
    event_component: str = Field("finops-webhook", description="Event source component")


class ReconcilerSettings(BaseModel):
    enabled: bool = Field(True, description="Run the status reconciler in the server")
    interval_seconds: int = Field(60, ge=1, description="Seconds between reconciliations")


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = Field("standard", pattern=r"^(standard|structured)$")
    file: Optional[str] = None


class GuardConfig(BaseModel):
    """Top-level budgetguard configuration."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    reconciler: ReconcilerSettings = Field(default_factory=ReconcilerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    annotation_prefix: str = Field(
        BUDGET_GROUP, min_length=1, description="Prefix of the auto-resize/resized annotations"
    )
