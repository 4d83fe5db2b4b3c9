"""
Operator settings.

Tunables (kubeconfig, watched namespace, worker count, retry intervals,
status server bind) come from the environment; the CRD identity and the
finalizer name are fixed.
"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"
    # Empty means cluster-wide
    WATCH_NAMESPACE: str = os.environ.get("WATCH_NAMESPACE", "")

    # CRD
    CRD_GROUP: str = "guni.dev"
    CRD_VERSION: str = "v1"
    CRD_PLURAL: str = "minecrafts"
    CRD_KIND: str = "Minecraft"
    CRD_SHORTNAME: str = "mc"
    FINALIZER: str = "minecraft.guni.dev"

    # Controller identity (server-side apply field manager + event reporter)
    CONTROLLER_NAME: str = "minecraft-operator"

    # Control loop
    MAX_WORKERS: int = int(os.environ.get("MAX_WORKERS", "4"))
    REQUEUE_INTERVAL: int = int(os.environ.get("REQUEUE_INTERVAL", "300"))
    ERROR_REQUEUE_INTERVAL: int = int(os.environ.get("ERROR_REQUEUE_INTERVAL", "300"))

    # Status server
    API_HOST: str = os.environ.get("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.environ.get("API_PORT", "8080"))

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()


settings = Settings()
