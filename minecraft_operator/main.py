"""
Minecraft Operator — status server and process entrypoint.

Sets up FastAPI with:
  - Diagnostics (/) — last reconcile time + reporter identity
  - Health check (/health)
  - Prometheus metrics (/metrics)

`run()` serves the app with uvicorn next to the kopf operator in a single
event loop; whichever exits first stops the other.
"""

import asyncio
import logging

import kopf
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from minecraft_operator import __version__
from minecraft_operator.config import Settings, settings as default_settings
from minecraft_operator.controller import Manager
from minecraft_operator.models import DiagnosticsResponse

logger = logging.getLogger("minecraft-operator")


def configure_logging(cfg: Settings = default_settings):
    logging.basicConfig(
        level=cfg.LOG_LEVEL,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_app(manager: Manager) -> FastAPI:
    app = FastAPI(
        title="Minecraft Operator",
        description="Status surface of the Minecraft reconciler",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )

    @app.get("/", response_model=DiagnosticsResponse)
    async def index():
        d = await manager.diagnostics()
        return DiagnosticsResponse(last_event=d.last_event, reporter=d.reporter)

    @app.get("/health")
    async def health():
        return "healthy"

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics():
        """Expose Prometheus metrics."""
        return PlainTextResponse(
            content=generate_latest(manager.metrics.registry).decode("utf-8"),
            media_type=CONTENT_TYPE_LATEST,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


async def serve(manager: Manager, cfg: Settings = default_settings):
    """Run the operator and the status server until either one exits."""
    server = uvicorn.Server(uvicorn.Config(
        create_app(manager),
        host=cfg.API_HOST,
        port=cfg.API_PORT,
        log_level=cfg.LOG_LEVEL.lower(),
    ))
    if cfg.WATCH_NAMESPACE:
        scope = {"namespaces": [cfg.WATCH_NAMESPACE]}
    else:
        scope = {"clusterwide": True}
    operator = asyncio.create_task(
        kopf.operator(standalone=True, memo=kopf.Memo(manager=manager), **scope),
        name="operator",
    )
    web = asyncio.create_task(server.serve(), name="status-server")

    done, pending = await asyncio.wait({operator, web}, return_when=asyncio.FIRST_COMPLETED)
    if operator in done:
        logger.warning("controller exited")
    else:
        logger.info("status server exited")
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    for task in done:
        task.result()


def run(cfg: Settings = default_settings):
    """Process entrypoint used by `minecraft-operator run`."""
    # Registers the kopf handlers
    from minecraft_operator import operator  # noqa: F401
    from minecraft_operator.services.kubernetes_service import KubernetesService, load_kube_config

    configure_logging(cfg)
    load_kube_config(cfg)
    manager = Manager(KubernetesService(cfg=cfg), cfg)
    asyncio.run(serve(manager, cfg))
