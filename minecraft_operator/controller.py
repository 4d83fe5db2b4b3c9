"""
Reconciler — the body of every kopf handler for Minecraft objects.

Flow per handler call (kopf serializes change handlers per object):
  1. Finalizer state machine picks a branch:
       apply   → StatefulSet, then Service (server-side apply)
       cleanup → delete Service, then StatefulSet → event
  2. Success: kopf's timer re-runs apply every 5m for drift
  3. Errors of any kind → error_policy → kopf.TemporaryError, retried in 5m

A failure reconciling one object never affects the others; kopf runs each
object's handlers in its own task.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import NoReturn, Optional

import kopf
from prometheus_client import CollectorRegistry, Counter, Histogram

from minecraft_operator import manifests
from minecraft_operator.config import Settings, settings as default_settings
from minecraft_operator.diagnostics import Diagnostics, DiagnosticsStore
from minecraft_operator.errors import FinalizerError
from minecraft_operator.finalizer import run_finalizer
from minecraft_operator.manifests import ChildKind
from minecraft_operator.models import Minecraft, ObjectKey
from minecraft_operator.services.kubernetes_service import KubernetesService

logger = logging.getLogger("minecraft-operator")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class Metrics:
    """Prometheus metrics on a registry owned by one Manager."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.reconciliations = Counter(
            "minecraft_operator_reconciliations_total",
            "Total reconciliations",
            registry=self.registry,
        )
        self.failures = Counter(
            "minecraft_operator_reconciliation_errors_total",
            "Total reconciliation failures",
            ["error"],
            registry=self.registry,
        )
        self.duration = Histogram(
            "minecraft_operator_reconcile_duration_seconds",
            "Duration of one reconciliation",
            registry=self.registry,
        )


@dataclass
class Context:
    """Shared by every reconciliation."""
    kube: KubernetesService
    diagnostics: DiagnosticsStore
    metrics: Metrics
    settings: Settings = default_settings


# ---------------------------------------------------------------------------
# Apply / cleanup branches
# ---------------------------------------------------------------------------

async def apply_minecraft(mc: Minecraft, ctx: Context):
    """Bring the children of `mc` to their desired state."""
    await ctx.diagnostics.touch()
    workload = manifests.build_workload(mc)
    service = manifests.build_service(mc)

    await asyncio.to_thread(ctx.kube.apply, ChildKind.WORKLOAD, mc.namespace, workload)
    await asyncio.to_thread(ctx.kube.apply, ChildKind.SERVICE, mc.namespace, service)


async def cleanup_minecraft(mc: Minecraft, ctx: Context):
    """Delete the children of `mc` and record the deletion as an event."""
    await ctx.diagnostics.touch()
    reporter = await ctx.diagnostics.reporter()

    await asyncio.to_thread(
        ctx.kube.delete, ChildKind.SERVICE, mc.namespace, manifests.service_name(mc)
    )
    await asyncio.to_thread(
        ctx.kube.delete, ChildKind.WORKLOAD, mc.namespace, manifests.workload_name(mc)
    )

    await asyncio.to_thread(
        ctx.kube.publish_event,
        mc,
        reporter,
        "DeleteMinecraft",
        f"Delete `{mc.name}`",
        "Reconciling",
    )


async def reconcile(mc: Minecraft, ctx: Context):
    """Reconcile one observation of `mc`. Failures leave via error_policy."""
    started = time.monotonic()
    try:
        await run_finalizer(
            ctx.settings.FINALIZER,
            mc,
            apply=lambda obj: apply_minecraft(obj, ctx),
            cleanup=lambda obj: cleanup_minecraft(obj, ctx),
        )
    except FinalizerError as e:
        error_policy(mc.key, e, ctx)
    finally:
        ctx.metrics.reconciliations.inc()
        ctx.metrics.duration.observe(time.monotonic() - started)
        logger.info(f'Reconciled Minecraft "{mc.name}" in "{mc.namespace}"')


def error_policy(key: ObjectKey, error: BaseException, ctx: Context) -> NoReturn:
    """Every failure gets the same flat backoff."""
    kind = type(error.cause if isinstance(error, FinalizerError) else error).__name__
    ctx.metrics.failures.labels(error=kind).inc()
    logger.warning(f"reconcile failed minecraft.guni.dev resource: {key}, Error: {error}")
    raise kopf.TemporaryError(str(error), delay=ctx.settings.ERROR_REQUEUE_INTERVAL) from error


# ---------------------------------------------------------------------------
# Manager — shared state handed to kopf and the status server
# ---------------------------------------------------------------------------

class Manager:
    """Owns the shared reconcile context."""

    def __init__(self, kube: KubernetesService, cfg: Settings = default_settings):
        self.settings = cfg
        self.context = Context(
            kube=kube,
            diagnostics=DiagnosticsStore(reporter=cfg.CONTROLLER_NAME),
            metrics=Metrics(),
            settings=cfg,
        )

    @property
    def metrics(self) -> Metrics:
        return self.context.metrics

    async def diagnostics(self) -> Diagnostics:
        return await self.context.diagnostics.read()

    def check_crd(self):
        """Fail fast when the Minecraft CRD is not installed."""
        try:
            self.context.kube.list_minecrafts(
                namespace=self.settings.WATCH_NAMESPACE or None, limit=1
            )
        except Exception as e:
            raise RuntimeError(
                "is the crd installed? please run: "
                "minecraft-operator crd-gen | kubectl apply -f -"
            ) from e
