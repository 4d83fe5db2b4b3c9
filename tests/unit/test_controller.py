"""Unit tests for the reconciler, error policy and manager."""

from __future__ import annotations

from typing import Callable
from unittest.mock import MagicMock, call

import kopf
import pytest
from kubernetes.client import ApiException

from minecraft_operator import manifests
from minecraft_operator.controller import (
    Context,
    Manager,
    error_policy,
    reconcile,
)
from minecraft_operator.errors import FinalizerError, FinalizerStage
from minecraft_operator.manifests import ChildKind
from minecraft_operator.models import Minecraft, ObjectKey
from tests.conftest import FINALIZER


class TestApplyBranch:
    """Tests for reconciling active objects."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scenario_create(self, ctx: Context, mock_kube: MagicMock, minecraft: Minecraft) -> None:
        """Applies the workload then the internal-only service."""
        await reconcile(minecraft, ctx)

        assert mock_kube.apply.call_args_list == [
            call(ChildKind.WORKLOAD, "games", manifests.build_workload(minecraft)),
            call(ChildKind.SERVICE, "games", manifests.build_service(minecraft)),
        ]
        service = mock_kube.apply.call_args_list[1].args[2]
        assert service["spec"]["type"] == "ClusterIP"
        assert all("nodePort" not in port for port in service["spec"]["ports"])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scenario_enable_node_ports(
        self, ctx: Context, mock_kube: MagicMock, minecraft_factory: Callable[..., Minecraft]
    ) -> None:
        """Flipping the exposure flag re-applies the service with node ports only."""
        await reconcile(minecraft_factory(finalizers=[FINALIZER]), ctx)
        before = [c.args[2] for c in mock_kube.apply.call_args_list]
        mock_kube.apply.reset_mock()

        await reconcile(minecraft_factory(finalizers=[FINALIZER], node_port=True), ctx)
        after = [c.args[2] for c in mock_kube.apply.call_args_list]

        assert after[0] == before[0]
        assert after[1]["spec"]["type"] == "NodePort"
        assert [p["nodePort"] for p in after[1]["spec"]["ports"]] == [30565, 30565, 30575]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_is_idempotent(self, ctx: Context, mock_kube: MagicMock, minecraft: Minecraft) -> None:
        """A second reconcile of an unchanged object sends identical manifests."""
        await reconcile(minecraft, ctx)
        first = mock_kube.apply.call_args_list[:]
        mock_kube.apply.reset_mock()

        await reconcile(minecraft, ctx)

        assert mock_kube.apply.call_args_list == first

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_records_diagnostics(self, ctx: Context, minecraft: Minecraft) -> None:
        """Each reconcile moves the diagnostics timestamp forward."""
        before = await ctx.diagnostics.read()

        await reconcile(minecraft, ctx)

        after = await ctx.diagnostics.read()
        assert after.last_event >= before.last_event
        assert after.reporter == "minecraft-operator"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_counts_reconciliation(self, ctx: Context, minecraft: Minecraft) -> None:
        await reconcile(minecraft, ctx)

        assert ctx.metrics.registry.get_sample_value("minecraft_operator_reconciliations_total") == 1.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_workload_failure_skips_service(
        self, ctx: Context, mock_kube: MagicMock, minecraft: Minecraft
    ) -> None:
        """A failed workload apply is retried by kopf without touching the service."""
        mock_kube.apply.side_effect = ApiException(status=500)

        with pytest.raises(kopf.TemporaryError) as exc_info:
            await reconcile(minecraft, ctx)

        assert exc_info.value.delay == 300
        assert isinstance(exc_info.value.__cause__, FinalizerError)
        assert exc_info.value.__cause__.stage is FinalizerStage.APPLY
        assert mock_kube.apply.call_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unmarked_object_creates_nothing(
        self, ctx: Context, mock_kube: MagicMock, minecraft_factory: Callable[..., Minecraft]
    ) -> None:
        """No child is applied before kopf attached the marker."""
        with pytest.raises(kopf.TemporaryError):
            await reconcile(minecraft_factory(), ctx)

        mock_kube.apply.assert_not_called()
        assert ctx.metrics.registry.get_sample_value(
            "minecraft_operator_reconciliation_errors_total", {"error": "TemporaryError"}
        ) is None


class TestCleanupBranch:
    """Tests for reconciling objects being deleted."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scenario_delete(
        self, ctx: Context, mock_kube: MagicMock, minecraft_factory: Callable[..., Minecraft]
    ) -> None:
        """Service, then workload, then one event."""
        mc = minecraft_factory(finalizers=[FINALIZER], deleting=True)

        await reconcile(mc, ctx)

        assert [c[0] for c in mock_kube.method_calls] == ["delete", "delete", "publish_event"]
        assert mock_kube.delete.call_args_list == [
            call(ChildKind.SERVICE, "games", "minecraft-survival"),
            call(ChildKind.WORKLOAD, "games", "minecraft-survival"),
        ]
        mock_kube.publish_event.assert_called_once_with(
            mc, "minecraft-operator", "DeleteMinecraft", "Delete `survival`", "Reconciling"
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_already_absent_children_are_success(
        self, ctx: Context, mock_kube: MagicMock, minecraft_factory: Callable[..., Minecraft]
    ) -> None:
        """Re-deleting gone children completes without error."""
        mock_kube.delete.return_value = False
        mc = minecraft_factory(finalizers=[FINALIZER], deleting=True)

        await reconcile(mc, ctx)

        mock_kube.publish_event.assert_called_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delete_failure_keeps_marker(
        self, ctx: Context, mock_kube: MagicMock, minecraft_factory: Callable[..., Minecraft]
    ) -> None:
        """A failed delete raises for kopf to retry, so the marker stays; no event."""
        mock_kube.delete.side_effect = ApiException(status=403)
        mc = minecraft_factory(finalizers=[FINALIZER], deleting=True)

        with pytest.raises(kopf.TemporaryError) as exc_info:
            await reconcile(mc, ctx)

        assert exc_info.value.__cause__.stage is FinalizerStage.CLEANUP
        mock_kube.publish_event.assert_not_called()


class TestErrorPolicy:
    """Tests for the retry policy."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error",
        [
            ApiException(status=409),
            FinalizerError(FinalizerStage.CLEANUP, ApiException(status=404)),
            ConnectionError("connection refused"),
            ValueError("anything"),
        ],
    )
    def test_flat_backoff(self, ctx: Context, error: Exception) -> None:
        """Every error maps to the same 5 minute retry."""
        with pytest.raises(kopf.TemporaryError) as exc_info:
            error_policy(ObjectKey("games", "survival"), error, ctx)

        assert exc_info.value.delay == 300
        assert exc_info.value.__cause__ is error

    @pytest.mark.unit
    def test_counts_failures_by_cause(self, ctx: Context) -> None:
        """Wrapped errors are counted under their cause's type."""
        error = FinalizerError(FinalizerStage.APPLY, ApiException(status=500))

        with pytest.raises(kopf.TemporaryError):
            error_policy(ObjectKey("games", "survival"), error, ctx)

        value = ctx.metrics.registry.get_sample_value(
            "minecraft_operator_reconciliation_errors_total", {"error": "ApiException"}
        )
        assert value == 1.0

    @pytest.mark.unit
    def test_logs_warning_with_identity(self, ctx: Context, caplog: pytest.LogCaptureFixture) -> None:
        """The warning names the object."""
        with caplog.at_level("WARNING", logger="minecraft-operator"):
            with pytest.raises(kopf.TemporaryError):
                error_policy(ObjectKey("games", "survival"), ValueError("boom"), ctx)

        assert "games/survival" in caplog.text
        assert "boom" in caplog.text


class TestManager:
    """Tests for the manager."""

    @pytest.fixture
    def manager(self, mock_kube: MagicMock) -> Manager:
        return Manager(mock_kube)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_diagnostics(self, manager: Manager) -> None:
        diagnostics = await manager.diagnostics()

        assert diagnostics.reporter == "minecraft-operator"

    @pytest.mark.unit
    def test_check_crd_missing(self, manager: Manager, mock_kube: MagicMock) -> None:
        """A missing CRD fails fast with a hint."""
        mock_kube.list_minecrafts.side_effect = ApiException(status=404)

        with pytest.raises(RuntimeError, match="crd-gen"):
            manager.check_crd()

    @pytest.mark.unit
    def test_check_crd_present(self, manager: Manager, mock_kube: MagicMock) -> None:
        """An installed CRD passes with a single-item list."""
        mock_kube.list_minecrafts.return_value = []

        manager.check_crd()

        mock_kube.list_minecrafts.assert_called_once_with(namespace=None, limit=1)
