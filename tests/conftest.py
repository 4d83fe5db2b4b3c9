"""Shared pytest fixtures for minecraft_operator tests."""

from __future__ import annotations

from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from minecraft_operator.controller import Context, Metrics
from minecraft_operator.diagnostics import DiagnosticsStore
from minecraft_operator.models import Minecraft
from minecraft_operator.services.kubernetes_service import KubernetesService

FINALIZER = "minecraft.guni.dev"


def make_body(
    name: str = "survival",
    namespace: str = "games",
    *,
    image: str = "itzg/minecraft-server",
    node_port: bool = False,
    finalizers: list[str] | None = None,
    deleting: bool = False,
    storage: dict[str, Any] | None = None,
    env: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build a raw Minecraft object as the API server would return it."""
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "uid": f"uid-{name}",
        "resourceVersion": "1",
    }
    if finalizers is not None:
        metadata["finalizers"] = finalizers
    if deleting:
        metadata["deletionTimestamp"] = "2026-01-01T00:00:00Z"
    server: dict[str, Any] = {"motd": "My World", "gamemode": "Survival"}
    if env is not None:
        server["env"] = env
    return {
        "apiVersion": "guni.dev/v1",
        "kind": "Minecraft",
        "metadata": metadata,
        "spec": {
            "image": image,
            "server": server,
            "storage": storage or {"size": "10Gi", "mountPath": "/data"},
            "nodePort": node_port,
        },
    }


@pytest.fixture
def minecraft_factory() -> Callable[..., Minecraft]:
    """Create parsed Minecraft objects."""

    def factory(**kwargs: Any) -> Minecraft:
        return Minecraft.from_body(make_body(**kwargs))

    return factory


@pytest.fixture
def minecraft(minecraft_factory: Callable[..., Minecraft]) -> Minecraft:
    """An active Minecraft object (finalizer attached)."""
    return minecraft_factory(finalizers=[FINALIZER])


@pytest.fixture
def mock_kube() -> MagicMock:
    """Create a mock Kubernetes service layer."""
    return MagicMock(spec=KubernetesService)


@pytest.fixture
def ctx(mock_kube: MagicMock) -> Context:
    """Reconcile context backed by the mock service layer."""
    return Context(kube=mock_kube, diagnostics=DiagnosticsStore(), metrics=Metrics())
