"""
FastAPI admission webhook server.

Serves the mutating (auto-size) and validating (budget decision) pod webhooks,
the Prometheus scrape endpoint and a health check.
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from pydantic import ValidationError

from budgetguard import __version__
from budgetguard.core.autosizer import AutoSizer
from budgetguard.core.enforcer import BudgetEnforcer
from budgetguard.core.interfaces import BudgetSource, EventRecorder, WorkloadSource
from budgetguard.core.reconciler import BudgetReconciler
from budgetguard.core.schemas import DecisionOutcome, Pod
from budgetguard.core.signals import GuardMetrics, SignalEmitter
from budgetguard.core.store import BudgetStore
from budgetguard.core.usage import UsageAggregator
from budgetguard.http.models import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    AdmissionStatus,
    GuardConfig,
    HealthResponse,
)
from budgetguard.http.patch import JSON_PATCH, build_patch, encode_patch
from budgetguard.http.scheduler import BackgroundScheduler, reconcile_scheduler
from budgetguard.utils.errors import ContractViolationError, UsageEnumerationError

logger = logging.getLogger(__name__)

MUTATE_PATH = "/mutate--v1-pod"
VALIDATE_PATH = "/validate--v1-pod"

_TIMEOUT_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m)?$")
_TIMEOUT_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, None: 1.0}


def parse_timeout(value: Optional[str], default: float) -> float:
    """Parse the API server's `timeout` query parameter (e.g. "10s")."""
    if not value:
        return default
    match = _TIMEOUT_PATTERN.match(value.strip())
    if not match:
        logger.warning(f"Ignoring unparseable webhook timeout {value!r}")
        return default
    return float(match.group(1)) * _TIMEOUT_UNITS[match.group(2)]


class BudgetGuardServer:
    """Admission webhook server for pod budget enforcement."""

    def __init__(
        self,
        enforcer: BudgetEnforcer,
        autosizer: AutoSizer,
        metrics: GuardMetrics,
        config: Optional[GuardConfig] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        """
        Initialize the server.

        Args:
            enforcer: Decision engine behind the validating webhook
            autosizer: Rewrite step behind the mutating webhook
            metrics: Counters exposed on /metrics
            config: Server configuration
            scheduler: Optional background reconciler loop
        """
        self.config = config or GuardConfig()
        self.enforcer = enforcer
        self.autosizer = autosizer
        self.metrics = metrics
        self.scheduler = scheduler
        self.in_flight = 0
        # Created on the first review, inside the serving event loop
        self._review_slots: Optional[asyncio.Semaphore] = None
        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create and configure FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncIterator[None]:
            if self.scheduler:
                await self.scheduler.start()
            try:
                yield
            finally:
                if self.scheduler:
                    await self.scheduler.stop()

        app = FastAPI(
            title="budgetguard admission webhook",
            description="Admission-time CPU and memory budget enforcement for pods",
            version=__version__,
            lifespan=lifespan,
        )

        @app.exception_handler(ContractViolationError)
        async def contract_violation_handler(request: Request, exc: ContractViolationError):
            return JSONResponse(
                status_code=400,
                content={
                    "error": "contract_violation",
                    "message": exc.message,
                    "details": exc.details,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )

        app.add_api_route("/healthz", self.health_check, methods=["GET"])
        app.add_api_route("/metrics", self.scrape_metrics, methods=["GET"])
        app.add_api_route(MUTATE_PATH, self.mutate_pod, methods=["POST"])
        app.add_api_route(VALIDATE_PATH, self.validate_pod, methods=["POST"])

        return app

    async def health_check(self) -> HealthResponse:
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=datetime.now(timezone.utc),
            in_flight_reviews=self.in_flight,
            reconciler_active=self.scheduler.running if self.scheduler else None,
        )

    async def scrape_metrics(self) -> Response:
        return Response(
            content=generate_latest(self.metrics.registry), media_type=CONTENT_TYPE_LATEST
        )

    @asynccontextmanager
    async def _review_slot(self) -> AsyncIterator[None]:
        if self._review_slots is None:
            self._review_slots = asyncio.Semaphore(self.config.server.max_concurrent_reviews)
        async with self._review_slots:
            self.in_flight += 1
            try:
                yield
            finally:
                self.in_flight -= 1

    def _request_of(self, review: AdmissionReview) -> AdmissionRequest:
        if review.request is None:
            raise HTTPException(status_code=400, detail="AdmissionReview has no request")
        return review.request

    def _pod_of(self, request: AdmissionRequest) -> Pod:
        """Decode the object under admission, which must be a Pod."""
        if request.kind.kind and request.kind.kind != "Pod":
            raise ContractViolationError(
                f"expected a Pod but got a {request.kind.kind}",
                expected="Pod",
                received=request.kind.kind,
            )
        try:
            return Pod.model_validate(request.object or {})
        except ValidationError as e:
            raise ContractViolationError(
                f"expected a Pod but could not decode the object: {e}", expected="Pod"
            ) from e

    @staticmethod
    def _scope_of(request: AdmissionRequest, pod: Pod) -> str:
        return request.namespace or pod.metadata.namespace or "default"

    def _respond(self, review: AdmissionReview, response: AdmissionResponse) -> Dict[str, Any]:
        return AdmissionReview(api_version=review.api_version, response=response).model_dump(
            by_alias=True, exclude_none=True
        )

    async def mutate_pod(self, review: AdmissionReview, timeout: Optional[str] = None) -> Dict[str, Any]:
        """
        Mutating webhook: auto-size opted-in pods.

        Any internal failure admits the pod exactly as it was sent. Server-side
        dry runs get the same patch but leave no Event behind.
        """
        request = self._request_of(review)
        allow_unchanged = AdmissionResponse(uid=request.uid, allowed=True)
        if request.operation != "CREATE":
            return self._respond(review, allow_unchanged)

        before = self._pod_of(request)
        after = before.model_copy(deep=True)
        scope = self._scope_of(request, before)
        seconds = parse_timeout(timeout, self.config.server.default_timeout_seconds)

        try:
            async with self._review_slot():
                after = await asyncio.wait_for(
                    self.autosizer.auto_size(after, scope, dry_run=request.dry_run), seconds
                )
        except ContractViolationError:
            raise
        except Exception as e:
            logger.error(f"Auto-sizing failed for pod in '{scope}', admitting unchanged: {e}")
            return self._respond(review, allow_unchanged)

        ops: List[Dict[str, Any]] = build_patch(before, after)
        if not ops:
            return self._respond(review, allow_unchanged)

        return self._respond(
            review,
            AdmissionResponse(
                uid=request.uid, allowed=True, patch_type=JSON_PATCH, patch=encode_patch(ops)
            ),
        )

    async def validate_pod(self, review: AdmissionReview, timeout: Optional[str] = None) -> Dict[str, Any]:
        """
        Validating webhook: render the budget decision for a pod creation.

        Deny carries the FinOps message with code 403; a dry-run violation is
        admitted with the message as an admission warning; a usage failure
        blocks the request with code 500.
        Server-side dry runs get the same answer without touching counters
        or Events.
        """
        request = self._request_of(review)
        if request.operation != "CREATE":
            return self._respond(review, AdmissionResponse(uid=request.uid, allowed=True))

        pod = self._pod_of(request)
        scope = self._scope_of(request, pod)
        seconds = parse_timeout(timeout, self.config.server.default_timeout_seconds)

        try:
            async with self._review_slot():
                decision = await asyncio.wait_for(
                    self.enforcer.decide(pod, scope, dry_run=request.dry_run), seconds
                )
        except UsageEnumerationError as e:
            logger.error(f"Failed to evaluate budget for '{scope}': {e}")
            return self._respond(review, self._evaluation_failure(request, str(e)))
        except asyncio.TimeoutError:
            logger.error(f"Budget evaluation for '{scope}' timed out after {seconds}s")
            return self._respond(
                review, self._evaluation_failure(request, f"timed out after {seconds}s")
            )

        if decision.outcome == DecisionOutcome.DENY:
            response = AdmissionResponse(
                uid=request.uid,
                allowed=False,
                status=AdmissionStatus(code=403, message=decision.reason, reason="Forbidden"),
            )
        elif decision.outcome == DecisionOutcome.ALLOW_WITH_WARNING:
            response = AdmissionResponse(uid=request.uid, allowed=True, warnings=[decision.reason])
        else:
            response = AdmissionResponse(uid=request.uid, allowed=True)
        return self._respond(review, response)

    @staticmethod
    def _evaluation_failure(request: AdmissionRequest, cause: str) -> AdmissionResponse:
        return AdmissionResponse(
            uid=request.uid,
            allowed=False,
            status=AdmissionStatus(
                code=500, message=f"failed to evaluate budget: {cause}", reason="InternalError"
            ),
        )

    async def start(self) -> None:
        """Serve the webhook with uvicorn, over TLS when a certificate is configured."""
        settings = self.config.server
        config = uvicorn.Config(
            app=self.app,
            host=settings.host,
            port=settings.port,
            ssl_certfile=settings.tls_cert_file,
            ssl_keyfile=settings.tls_key_file,
            log_level=self.config.logging.level.lower(),
        )
        logger.info(f"Starting budgetguard webhook on {settings.host}:{settings.port}")
        await uvicorn.Server(config).serve()


def build_server(
    budget_source: BudgetSource,
    workload_source: WorkloadSource,
    recorder: EventRecorder,
    config: Optional[GuardConfig] = None,
    registry: Optional[CollectorRegistry] = None,
) -> BudgetGuardServer:
    """
    Wire the admission core onto its collaborators.

    Args:
        budget_source: Where ProjectBudgets are listed from
        workload_source: Where pods are listed from
        recorder: Audit-event sink
        config: Server configuration; defaults when omitted
        registry: Metrics registry; a fresh one when omitted

    Returns:
        Ready-to-serve BudgetGuardServer
    """
    config = config or GuardConfig()
    metrics = GuardMetrics(registry)
    signals = SignalEmitter(metrics, recorder)
    store = BudgetStore(budget_source)
    usage = UsageAggregator(workload_source)

    scheduler = None
    if config.reconciler.enabled:
        reconciler = BudgetReconciler(budget_source, usage)
        scheduler = reconcile_scheduler(reconciler, config.reconciler.interval_seconds)

    return BudgetGuardServer(
        enforcer=BudgetEnforcer(store, usage, signals),
        autosizer=AutoSizer(store, usage, signals, annotation_prefix=config.annotation_prefix),
        metrics=metrics,
        config=config,
        scheduler=scheduler,
    )


def create_server(config: Optional[GuardConfig] = None) -> BudgetGuardServer:
    """Build a server backed by the Kubernetes API of the current cluster."""
    from budgetguard.adapters.kubernetes import build_kubernetes_collaborators

    config = config or GuardConfig()
    k8s = config.kubernetes
    budget_source, workload_source, recorder = build_kubernetes_collaborators(
        kubeconfig=k8s.kubeconfig,
        group=k8s.budget_group,
        version=k8s.budget_version,
        plural=k8s.budget_plural,
        component=k8s.event_component,
    )
    return build_server(budget_source, workload_source, recorder, config)


def create_app(config: Optional[GuardConfig] = None) -> FastAPI:
    """
    Factory function to create the FastAPI app against the live cluster.

    Args:
        config: budgetguard configuration

    Returns:
        Configured FastAPI application
    """
    return create_server(config).app
