"""
Kopf wiring — Minecraft handlers on top of the shared Manager.

kopf owns the watch stream, per-object serialization, the finalizer marker
and retries; the Manager's context owns the reconcile body.

On startup:             verify the CRD is installed, configure kopf
On create/update/resume: apply children
On delete:              clean up children (kopf then drops the finalizer)
Every 5 minutes:        re-apply children to correct drift
"""

import asyncio
import logging

import kopf

from minecraft_operator.config import settings
from minecraft_operator.controller import Context, error_policy, reconcile
from minecraft_operator.errors import SerializationError
from minecraft_operator.finalizer import FinalizerState, observe_state
from minecraft_operator.models import Minecraft, ObjectKey

logger = logging.getLogger("minecraft-operator")

RESOURCE = (settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL)


@kopf.on.startup()
async def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **kwargs):
    cfg = memo.manager.settings
    settings.peering.standalone = True
    settings.posting.level = logging.WARNING
    settings.watching.server_timeout = 300
    settings.persistence.finalizer = cfg.FINALIZER
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=cfg.CRD_GROUP
    )
    settings.execution.max_workers = cfg.MAX_WORKERS

    try:
        await asyncio.to_thread(memo.manager.check_crd)
    except RuntimeError as e:
        raise kopf.PermanentError(str(e)) from e
    logger.info(
        f"Minecraft Operator started (max_workers={cfg.MAX_WORKERS}, "
        f"namespace={cfg.WATCH_NAMESPACE or '*'})"
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse(body, namespace: str, name: str, ctx: Context) -> Minecraft:
    try:
        return Minecraft.from_body(dict(body))
    except SerializationError as e:
        error_policy(ObjectKey(namespace, name), e, ctx)


def _object_lock(memo: kopf.Memo) -> asyncio.Lock:
    """Per-object lock; kopf runs timers alongside change handlers."""
    lock = memo.get("reconcile_lock")
    if lock is None:
        lock = memo["reconcile_lock"] = asyncio.Lock()
    return lock


async def _reconcile(body, namespace: str, name: str, memo: kopf.Memo):
    ctx = memo.manager.context
    mc = _parse(body, namespace, name, ctx)
    async with _object_lock(memo):
        await reconcile(mc, ctx)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

@kopf.on.create(*RESOURCE)
@kopf.on.update(*RESOURCE)
@kopf.on.resume(*RESOURCE)
async def reconcile_minecraft(body, namespace, name, memo: kopf.Memo, **kwargs):
    await _reconcile(body, namespace, name, memo)


@kopf.on.delete(*RESOURCE)
async def delete_minecraft(body, namespace, name, memo: kopf.Memo, **kwargs):
    await _reconcile(body, namespace, name, memo)


@kopf.timer(*RESOURCE, interval=settings.REQUEUE_INTERVAL, idle=settings.REQUEUE_INTERVAL)
async def resync_minecraft(body, namespace, name, memo: kopf.Memo, **kwargs):
    """Periodic drift correction for live objects."""
    ctx = memo.manager.context
    mc = _parse(body, namespace, name, ctx)
    if observe_state(mc, ctx.settings.FINALIZER) is not FinalizerState.ACTIVE:
        return
    async with _object_lock(memo):
        await reconcile(mc, ctx)
