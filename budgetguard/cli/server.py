"""
CLI commands for running the webhook server and the status reconciler.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
import httpx

from budgetguard.core.reconciler import BudgetReconciler
from budgetguard.core.usage import UsageAggregator
from budgetguard.http.models import GuardConfig
from budgetguard.utils.config import load_guard_config
from budgetguard.utils.errors import BudgetGuardError
from budgetguard.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def _load(config: Optional[Path], log_level: Optional[str]) -> GuardConfig:
    try:
        guard_config = load_guard_config(config)
    except BudgetGuardError as e:
        raise click.ClickException(str(e))

    if log_level:
        guard_config.logging.level = log_level.upper()
    try:
        configure_logging(guard_config.logging)
    except BudgetGuardError as e:
        raise click.ClickException(str(e))
    return guard_config


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to budgetguard configuration file",
)
@click.option("--host", default=None, help="Host to bind to (overrides config)")
@click.option("--port", "-p", default=None, type=int, help="Port to bind to (overrides config)")
@click.option("--tls-cert", type=click.Path(exists=True), help="Serving certificate (PEM)")
@click.option("--tls-key", type=click.Path(exists=True), help="Serving key (PEM)")
@click.option("--no-reconciler", is_flag=True, help="Do not run the status reconciler loop")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level",
)
def serve(
    config: Optional[Path],
    host: Optional[str],
    port: Optional[int],
    tls_cert: Optional[str],
    tls_key: Optional[str],
    no_reconciler: bool,
    log_level: Optional[str],
) -> None:
    """
    Start the admission webhook server.

    Examples:

    \b
    # In-cluster, with the serving certificate mounted by cert-manager
    budgetguard serve --tls-cert /certs/tls.crt --tls-key /certs/tls.key

    \b
    # Against a local kubeconfig, without TLS
    budgetguard serve --config budgetguard.yaml --port 8443
    """
    from budgetguard.http.server import create_server

    guard_config = _load(config, log_level)
    settings = guard_config.server
    if host:
        settings.host = host
    if port:
        settings.port = port
    if tls_cert:
        settings.tls_cert_file = tls_cert
    if tls_key:
        settings.tls_key_file = tls_key
    if no_reconciler:
        guard_config.reconciler.enabled = False

    try:
        server = create_server(guard_config)
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise click.ClickException(f"Server startup failed: {e}")

    scheme = "https" if settings.tls_cert_file else "http"
    click.echo("\n🚀 Starting budgetguard admission webhook")
    click.echo(f"   Listening: {scheme}://{settings.host}:{settings.port}")
    click.echo(f"   Reconciler: {'on' if guard_config.reconciler.enabled else 'off'}")

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        click.echo("\n🛑 Server stopped by user")


@click.command()
@click.option("--url", default="https://localhost:9443", help="Base URL of the webhook server")
@click.option("--insecure", is_flag=True, help="Skip TLS certificate verification")
@click.option("--timeout", default=5.0, type=float, help="Request timeout in seconds")
def health(url: str, insecure: bool, timeout: float) -> None:
    """
    Check the health status of a running budgetguard server.
    """
    endpoint = f"{url.rstrip('/')}/healthz"
    click.echo(f"🔍 Checking server health at {endpoint}")

    try:
        response = httpx.get(endpoint, timeout=timeout, verify=not insecure)
        response.raise_for_status()
    except httpx.TimeoutException:
        raise click.ClickException(f"Health check timed out after {timeout} seconds")
    except httpx.HTTPError as e:
        raise click.ClickException(f"Health check failed: {e}")

    data = response.json()
    click.echo(f"✅ Server is {data.get('status', 'unknown')}")
    click.echo(f"   Version: {data.get('version', 'unknown')}")
    click.echo(f"   In-flight reviews: {data.get('in_flight_reviews', 0)}")


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to budgetguard configuration file",
)
def reconcile(config: Optional[Path]) -> None:
    """
    Refresh the status of every ProjectBudget once and exit.
    """
    from budgetguard.adapters.kubernetes import build_kubernetes_collaborators

    guard_config = _load(config, None)
    k8s = guard_config.kubernetes
    budget_source, workload_source, _ = build_kubernetes_collaborators(
        kubeconfig=k8s.kubeconfig,
        group=k8s.budget_group,
        version=k8s.budget_version,
        plural=k8s.budget_plural,
        component=k8s.event_component,
    )
    reconciler = BudgetReconciler(budget_source, UsageAggregator(workload_source))
    updated = asyncio.run(reconciler.reconcile_all())
    click.echo(f"✅ Updated status of {updated} ProjectBudget(s)")
