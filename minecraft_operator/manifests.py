"""
Manifest builder — desired child resources for a Minecraft instance.

Pure functions: no API calls, no clock, no randomness. Equal input yields
equal output, which is what makes repeated server-side applies no-ops.

Children:
  - StatefulSet  minecraft-{name}        (1 replica, claim templated inside)
  - Service      minecraft-{name}        (ClusterIP or NodePort)
  - PVC          minecraft-{name}-data
"""
from enum import Enum
from typing import Dict, List

from minecraft_operator.config import settings
from minecraft_operator.models import Minecraft

NAME_PREFIX = "minecraft-"
CLAIM_SUFFIX = "-data"
CONTAINER_NAME = "minecraft-server"


class ChildKind(str, Enum):
    WORKLOAD = "StatefulSet"
    SERVICE = "Service"
    STORAGE_CLAIM = "PersistentVolumeClaim"


# (name, protocol, port, nodePort)
PORTS = (
    ("minecraft", "TCP", 25565, 30565),
    ("minecraft-udp", "UDP", 25565, 30565),
    ("rcon", "UDP", 25575, 30575),
)


# ---------------------------------------------------------------------------
# Names, labels, ownership
# ---------------------------------------------------------------------------

def workload_name(mc: Minecraft) -> str:
    return f"{NAME_PREFIX}{mc.name}"


def service_name(mc: Minecraft) -> str:
    return f"{NAME_PREFIX}{mc.name}"


def storage_claim_name(mc: Minecraft) -> str:
    return f"{workload_name(mc)}{CLAIM_SUFFIX}"


def selector_labels(mc: Minecraft) -> Dict[str, str]:
    """Labels used by the Service selector and the StatefulSet selector."""
    return {
        "app.kubernetes.io/name": "minecraft",
        "app.kubernetes.io/instance": mc.name,
    }


def labels(mc: Minecraft) -> Dict[str, str]:
    """Labels stamped on every child and on the pod template."""
    result = selector_labels(mc)
    result["app.kubernetes.io/managed-by"] = settings.CONTROLLER_NAME
    return result


def owner_reference(mc: Minecraft) -> dict:
    return {
        "apiVersion": mc.apiVersion,
        "kind": mc.kind,
        "name": mc.name,
        "uid": mc.metadata.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def _metadata(mc: Minecraft, name: str) -> dict:
    return {
        "name": name,
        "namespace": mc.namespace,
        "labels": labels(mc),
        "ownerReferences": [owner_reference(mc)],
    }


def _env(mc: Minecraft) -> List[dict]:
    env = {
        "EULA": "TRUE",
        "MOTD": mc.spec.server.motd,
        "MODE": mc.spec.server.gamemode.value.lower(),
    }
    overrides = mc.spec.server.env or {}
    # Generated variables keep their position, extra ones follow in key order
    for key in sorted(overrides):
        env[key] = overrides[key]
    return [{"name": k, "value": v} for k, v in env.items()]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_storage_claim(mc: Minecraft) -> dict:
    """PersistentVolumeClaim holding the world data."""
    storage = mc.spec.storage
    spec = {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": storage.size}},
    }
    if storage.storageClassName:
        spec["storageClassName"] = storage.storageClassName
    return {
        "apiVersion": "v1",
        "kind": ChildKind.STORAGE_CLAIM.value,
        "metadata": _metadata(mc, storage_claim_name(mc)),
        "spec": spec,
    }


def build_workload(mc: Minecraft) -> dict:
    """
    Single-replica StatefulSet running the server image.

    The storage claim is embedded as a volumeClaimTemplate, so applying the
    workload also provisions the claim.
    """
    claim = build_storage_claim(mc)
    claim_template = {
        "metadata": {"name": claim["metadata"]["name"], "labels": labels(mc)},
        "spec": claim["spec"],
    }
    container = {
        "name": CONTAINER_NAME,
        "image": mc.spec.image,
        "env": _env(mc),
        "ports": [
            {"name": name, "containerPort": port, "protocol": protocol}
            for name, protocol, port, _ in PORTS
        ],
        "volumeMounts": [
            {"name": claim["metadata"]["name"], "mountPath": mc.spec.storage.mountPath},
        ],
    }
    return {
        "apiVersion": "apps/v1",
        "kind": ChildKind.WORKLOAD.value,
        "metadata": _metadata(mc, workload_name(mc)),
        "spec": {
            "replicas": 1,
            "serviceName": service_name(mc),
            "selector": {"matchLabels": selector_labels(mc)},
            "template": {
                "metadata": {"labels": labels(mc)},
                "spec": {"containers": [container]},
            },
            "volumeClaimTemplates": [claim_template],
        },
    }


def build_service(mc: Minecraft) -> dict:
    """Service in front of the server pod; NodePort only when requested."""
    expose = mc.spec.nodePort
    ports = []
    for name, protocol, port, node_port in PORTS:
        entry = {
            "name": name,
            "protocol": protocol,
            "port": port,
            "targetPort": port,
        }
        if expose:
            entry["nodePort"] = node_port
        ports.append(entry)
    return {
        "apiVersion": "v1",
        "kind": ChildKind.SERVICE.value,
        "metadata": _metadata(mc, service_name(mc)),
        "spec": {
            "type": "NodePort" if expose else "ClusterIP",
            "selector": selector_labels(mc),
            "ports": ports,
        },
    }
