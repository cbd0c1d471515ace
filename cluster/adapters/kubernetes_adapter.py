"""
Kubernetes adapter for the directory operator's record store.

This adapter provides a clean interface to the custom resources that carry
desired and observed directory state, and to the secrets they reference.
Kubernetes API errors are translated into the cluster exception hierarchy
here so callers never handle ``ApiException`` directly.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from directory.models.resources import ResourceKey, ResourceKind

from ..exceptions import ClusterError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def _translate(error: ApiException, what: str) -> ClusterError:
    if error.status == 404:
        return NotFoundError(f"{what} not found")
    if error.status == 409:
        return ConflictError(f"conflict writing {what}: {error.reason}")
    return ClusterError(f"API error for {what}: {error.status} {error.reason}")


class KubernetesAdapter:
    """
    Record store backed by the Kubernetes custom-objects API.

    Handles reads of LDAPServer/LDAPUser/LDAPGroup records, finalizer and
    annotation patches, optimistic-concurrency status replacement, and
    secret reads.
    """

    def __init__(
        self,
        api_group: str,
        api_version: str,
        custom_api: Optional[client.CustomObjectsApi] = None,
        core_api: Optional[client.CoreV1Api] = None,
    ):
        """
        Initialize the adapter.

        Args:
            api_group: API group of the directory custom resources
            api_version: API version of the directory custom resources
            custom_api: Optional pre-built CustomObjectsApi (loads cluster config if omitted)
            core_api: Optional pre-built CoreV1Api (loads cluster config if omitted)
        """
        if custom_api is None or core_api is None:
            self._load_cluster_config()

        self.api_group = api_group
        self.api_version = api_version
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.core_api = core_api or client.CoreV1Api()

        logger.debug(f"Kubernetes adapter initialized for {api_group}/{api_version}")

    @staticmethod
    def _load_cluster_config() -> None:
        """Load in-cluster configuration, falling back to the local kubeconfig."""
        try:
            kube_config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except ConfigException:
            kube_config.load_kube_config()
            logger.info("Loaded Kubernetes configuration from kubeconfig")

    # =========================================================================
    # CUSTOM RESOURCE OPERATIONS
    # =========================================================================

    def get(self, kind: ResourceKind, key: ResourceKey) -> Dict[str, Any]:
        """
        Fetch one record.

        Raises:
            NotFoundError: If the record does not exist
            ClusterError: For any other API failure
        """
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=self.api_group,
                version=self.api_version,
                namespace=key.namespace,
                plural=kind.value,
                name=key.name,
            )
        except ApiException as e:
            raise _translate(e, f"{kind.value} {key}") from e

    def list(self, kind: ResourceKind, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        """List records of one kind, in one namespace or cluster-wide."""
        try:
            if namespace:
                response = self.custom_api.list_namespaced_custom_object(
                    group=self.api_group,
                    version=self.api_version,
                    namespace=namespace,
                    plural=kind.value,
                )
            else:
                response = self.custom_api.list_cluster_custom_object(
                    group=self.api_group,
                    version=self.api_version,
                    plural=kind.value,
                )
        except ApiException as e:
            raise _translate(e, f"{kind.value} list") from e
        return response.get("items", [])

    def set_finalizers(
        self,
        kind: ResourceKind,
        key: ResourceKey,
        finalizers: List[str],
        resource_version: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Replace the record's finalizer list.

        When ``resource_version`` is given the patch only applies to that
        version of the record.

        Raises:
            NotFoundError: If the record is already gone
            ConflictError: If the record changed since ``resource_version``
        """
        metadata = {"finalizers": finalizers or None}
        if resource_version:
            metadata["resourceVersion"] = resource_version
        return self._patch(kind, key, {"metadata": metadata})

    def annotate(self, kind: ResourceKind, key: ResourceKey, annotations: Dict[str, str]) -> Dict[str, Any]:
        """Merge annotations into the record's metadata."""
        return self._patch(kind, key, {"metadata": {"annotations": annotations}})

    def _patch(self, kind: ResourceKind, key: ResourceKey, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self.custom_api.patch_namespaced_custom_object(
                group=self.api_group,
                version=self.api_version,
                namespace=key.namespace,
                plural=kind.value,
                name=key.name,
                body=body,
            )
        except ApiException as e:
            raise _translate(e, f"{kind.value} {key}") from e

    def replace_status(self, kind: ResourceKind, key: ResourceKey, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write the status subresource.

        ``body`` must carry ``metadata.resourceVersion`` from the read it was
        built on; the API server rejects the write if the record moved on.

        Raises:
            ConflictError: If the resource version is stale
            NotFoundError: If the record no longer exists
        """
        try:
            return self.custom_api.replace_namespaced_custom_object_status(
                group=self.api_group,
                version=self.api_version,
                namespace=key.namespace,
                plural=kind.value,
                name=key.name,
                body=body,
            )
        except ApiException as e:
            raise _translate(e, f"{kind.value} {key} status") from e

    # =========================================================================
    # SECRETS
    # =========================================================================

    def read_secret_value(self, namespace: str, name: str, key: str) -> bytes:
        """
        Read and decode one key of a secret.

        Raises:
            NotFoundError: If the secret or the key does not exist
        """
        try:
            secret = self.core_api.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            raise _translate(e, f"secret {namespace}/{name}") from e

        data = secret.data or {}
        if key not in data:
            raise NotFoundError(f"key {key} not found in secret {name}")
        return base64.b64decode(data[key])
