"""
CLI command for evaluating a pod manifest offline.
"""

import asyncio
from pathlib import Path
from typing import Optional, Tuple

import click
from pydantic import ValidationError

from budgetguard.adapters.memory import (
    InMemoryBudgetSource,
    InMemoryEventRecorder,
    InMemoryWorkloadSource,
)
from budgetguard.core.autosizer import AutoSizer
from budgetguard.core.enforcer import BudgetEnforcer
from budgetguard.core.quantity import container_cpu_limit
from budgetguard.core.schemas import Decision, DecisionOutcome, Pod
from budgetguard.core.signals import GuardMetrics, SignalEmitter
from budgetguard.core.store import BudgetStore
from budgetguard.core.usage import UsageAggregator
from budgetguard.utils.config import load_documents
from budgetguard.utils.errors import BudgetGuardError


async def _evaluate(
    pod: Pod,
    scope: str,
    budgets: InMemoryBudgetSource,
    pods: InMemoryWorkloadSource,
    annotation_prefix: str,
) -> Tuple[Pod, Decision, InMemoryEventRecorder]:
    recorder = InMemoryEventRecorder()
    signals = SignalEmitter(GuardMetrics(), recorder)
    store = BudgetStore(budgets)
    usage = UsageAggregator(pods)

    sized = await AutoSizer(store, usage, signals, annotation_prefix).auto_size(pod, scope)
    decision = await BudgetEnforcer(store, usage, signals).decide(sized, scope)
    return sized, decision, recorder


def _first_cpu_limit(pod: Pod) -> Optional[int]:
    return container_cpu_limit(pod.spec.containers[0]) if pod.spec.containers else None


@click.command()
@click.argument("pod_manifest", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--budgets",
    "-b",
    "budgets_file",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="YAML file with ProjectBudget objects",
)
@click.option(
    "--pods",
    "pods_file",
    type=click.Path(exists=True, path_type=Path),
    help="YAML file with the pods already running",
)
@click.option("--namespace", "-n", default=None, help="Namespace of the pod (overrides manifest)")
@click.option(
    "--annotation-prefix",
    default="finops.budgetguard.io",
    show_default=True,
    help="Prefix of the auto-resize annotation",
)
def check(
    pod_manifest: Path,
    budgets_file: Path,
    pods_file: Optional[Path],
    namespace: Optional[str],
    annotation_prefix: str,
) -> None:
    """
    Show what the webhooks would do with POD_MANIFEST.

    Exits with status 1 when the pod would be denied.

    Examples:

    \b
    budgetguard check pod.yaml --budgets budgets.yaml --pods running.yaml
    """
    try:
        pod_docs = [d for d in load_documents(pod_manifest) if d.get("kind", "Pod") == "Pod"]
        if not pod_docs:
            raise click.ClickException(f"No Pod found in {pod_manifest}")
        pod = Pod.model_validate(pod_docs[0])
        budgets = InMemoryBudgetSource.from_documents(load_documents(budgets_file))
        running = InMemoryWorkloadSource.from_documents(
            load_documents(pods_file) if pods_file else []
        )
    except (BudgetGuardError, ValidationError) as e:
        raise click.ClickException(str(e))

    scope = namespace or pod.metadata.namespace or "default"
    try:
        before = _first_cpu_limit(pod)
        sized, decision, recorder = asyncio.run(
            _evaluate(pod, scope, budgets, running, annotation_prefix)
        )
    except ValueError as e:
        raise click.ClickException(f"Malformed resource quantity: {e}")

    click.echo(f"📄 Pod '{pod.metadata.name}' in namespace '{scope}'")
    after = _first_cpu_limit(sized)
    if before != after:
        click.echo(f"✂️  Auto-sized first container CPU: {before}m -> {after}m")

    for event in recorder.events:
        click.echo(f"   event {event.event_type}/{event.reason}: {event.message}")

    if decision.outcome == DecisionOutcome.DENY:
        click.echo(f"❌ {decision.reason}")
        raise SystemExit(1)
    if decision.outcome == DecisionOutcome.ALLOW_WITH_WARNING:
        click.echo(f"⚠️  {decision.reason}")
    else:
        click.echo("✅ Allowed")
