"""
Kubernetes service layer — abstracts all K8s API interactions for the operator.

Design principles:
  - Idempotent: children are written with server-side apply under a fixed
    field manager, deletes treat 404 as success
  - Transparent: API exceptions are surfaced unchanged, never retried here
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from kubernetes import client, config
from kubernetes.client import ApiException

from minecraft_operator.config import Settings, settings as default_settings
from minecraft_operator.manifests import ChildKind
from minecraft_operator.models import Minecraft

logger = logging.getLogger("kubernetes_service")

APPLY_CONTENT_TYPE = "application/apply-patch+yaml"


def load_kube_config(cfg: Settings = default_settings):
    """Load Kubernetes config: in-cluster when asked, kubeconfig otherwise."""
    if cfg.IN_CLUSTER:
        config.load_incluster_config()
        return
    try:
        config.load_kube_config(config_file=cfg.KUBECONFIG or None)
    except config.ConfigException:
        config.load_incluster_config()


class KubernetesService:
    """Thin, stateless wrapper over the typed Kubernetes API clients."""

    def __init__(self, api_client: Optional[client.ApiClient] = None,
                 cfg: Settings = default_settings):
        self.settings = cfg
        self.core_v1 = client.CoreV1Api(api_client)
        self.apps_v1 = client.AppsV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)
        self.events_v1 = client.EventsV1Api(api_client)

    # -----------------------------------------------------------------------
    # Custom resource
    # -----------------------------------------------------------------------

    def get_minecraft(self, namespace: str, name: str) -> Optional[dict]:
        """Get a single Minecraft object. Returns None if not found."""
        s = self.settings
        try:
            return self.custom.get_namespaced_custom_object(
                s.CRD_GROUP, s.CRD_VERSION, namespace, s.CRD_PLURAL, name
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def list_minecrafts(self, namespace: Optional[str] = None,
                        limit: Optional[int] = None) -> list[dict]:
        """List Minecraft objects cluster-wide or in one namespace."""
        s = self.settings
        kwargs = {}
        if limit is not None:
            kwargs["limit"] = limit
        if namespace:
            result = self.custom.list_namespaced_custom_object(
                s.CRD_GROUP, s.CRD_VERSION, namespace, s.CRD_PLURAL, **kwargs
            )
        else:
            result = self.custom.list_cluster_custom_object(
                s.CRD_GROUP, s.CRD_VERSION, s.CRD_PLURAL, **kwargs
            )
        return result.get("items", [])

    # -----------------------------------------------------------------------
    # Children: server-side apply
    # -----------------------------------------------------------------------

    def _apply_kwargs(self) -> dict:
        return {
            "field_manager": self.settings.CONTROLLER_NAME,
            "force": True,
            "_content_type": APPLY_CONTENT_TYPE,
        }

    def apply_workload(self, namespace: str, manifest: dict):
        name = manifest["metadata"]["name"]
        logger.debug(f"apply StatefulSet {namespace}/{name}")
        return self.apps_v1.patch_namespaced_stateful_set(
            name, namespace, manifest, **self._apply_kwargs()
        )

    def apply_service(self, namespace: str, manifest: dict):
        name = manifest["metadata"]["name"]
        logger.debug(f"apply Service {namespace}/{name}")
        return self.core_v1.patch_namespaced_service(
            name, namespace, manifest, **self._apply_kwargs()
        )

    def apply_storage_claim(self, namespace: str, manifest: dict):
        name = manifest["metadata"]["name"]
        logger.debug(f"apply PersistentVolumeClaim {namespace}/{name}")
        return self.core_v1.patch_namespaced_persistent_volume_claim(
            name, namespace, manifest, **self._apply_kwargs()
        )

    def apply(self, kind: ChildKind, namespace: str, manifest: dict):
        """Apply a child manifest of the given kind."""
        if kind is ChildKind.WORKLOAD:
            return self.apply_workload(namespace, manifest)
        if kind is ChildKind.SERVICE:
            return self.apply_service(namespace, manifest)
        if kind is ChildKind.STORAGE_CLAIM:
            return self.apply_storage_claim(namespace, manifest)
        raise ValueError(f"Unknown child kind: {kind}")

    # -----------------------------------------------------------------------
    # Children: delete
    # -----------------------------------------------------------------------

    def delete_workload(self, namespace: str, name: str) -> bool:
        """Delete the StatefulSet. Returns True if deleted, False if already gone."""
        try:
            self.apps_v1.delete_namespaced_stateful_set(name, namespace)
            logger.info(f"StatefulSet {namespace}/{name} deletion initiated")
            return True
        except ApiException as e:
            if e.status == 404:
                logger.info(f"StatefulSet {namespace}/{name} already gone")
                return False
            raise

    def delete_service(self, namespace: str, name: str) -> bool:
        """Delete the Service. Returns True if deleted, False if already gone."""
        try:
            self.core_v1.delete_namespaced_service(name, namespace)
            logger.info(f"Service {namespace}/{name} deletion initiated")
            return True
        except ApiException as e:
            if e.status == 404:
                logger.info(f"Service {namespace}/{name} already gone")
                return False
            raise

    def delete(self, kind: ChildKind, namespace: str, name: str) -> bool:
        """Delete a child of the given kind. Storage claims are retained."""
        if kind is ChildKind.WORKLOAD:
            return self.delete_workload(namespace, name)
        if kind is ChildKind.SERVICE:
            return self.delete_service(namespace, name)
        raise ValueError(f"Deleting {kind.value} is not supported")

    # -----------------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------------

    def publish_event(self, mc: Minecraft, reporter: str, reason: str,
                      note: str, action: str, type_: str = "Normal"):
        """Publish an events.k8s.io/v1 Event regarding the custom resource."""
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        body = {
            "apiVersion": "events.k8s.io/v1",
            "kind": "Event",
            "metadata": {"generateName": f"{mc.name}.", "namespace": mc.namespace},
            "eventTime": now,
            "type": type_,
            "reason": reason,
            "note": note,
            "action": action,
            "reportingController": reporter,
            "reportingInstance": reporter,
            "regarding": {
                "apiVersion": mc.apiVersion,
                "kind": mc.kind,
                "name": mc.name,
                "namespace": mc.namespace,
                "uid": mc.metadata.uid,
            },
        }
        result = self.events_v1.create_namespaced_event(mc.namespace, body)
        logger.info(f"Event {reason} published for {mc.key}: {note}")
        return result
