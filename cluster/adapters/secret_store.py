"""
Secret stores for bind credentials, principal passwords and CA bundles.

Both stores expose ``get_value(namespace, name, key) -> bytes`` and raise
``NotFoundError`` when the value is absent. The Kubernetes store reads
cluster secrets; the keyring store serves the same lookups from the local
system keyring when the operator runs outside a cluster.
"""

import logging
from typing import Optional

import keyring

from ..exceptions import NotFoundError
from .kubernetes_adapter import KubernetesAdapter

logger = logging.getLogger(__name__)


class KubernetesSecretStore:
    """Reads values out of Kubernetes secrets."""

    def __init__(self, adapter: KubernetesAdapter):
        self.adapter = adapter

    def get_value(self, namespace: str, name: str, key: str) -> bytes:
        logger.debug(f"Reading key {key} from secret {namespace}/{name}")
        return self.adapter.read_secret_value(namespace, name, key)


class KeyringSecretStore:
    """
    Reads values from the system keyring.

    Entries are stored under the configured service name with the username
    ``<namespace>/<secret-name>/<key>``, e.g.::

        keyring set directory-operator default/ldap-bind/password
    """

    def __init__(self, service_name: str = "directory-operator"):
        self.service_name = service_name

    @staticmethod
    def entry_name(namespace: Optional[str], name: str, key: str) -> str:
        return f"{namespace or 'default'}/{name}/{key}"

    def get_value(self, namespace: str, name: str, key: str) -> bytes:
        entry = self.entry_name(namespace, name, key)
        value = keyring.get_password(self.service_name, entry)
        if value is None:
            raise NotFoundError(f"secret {entry} not found in keyring service {self.service_name}")
        return value.encode("utf-8")


def create_secret_store(backend: str, adapter: Optional[KubernetesAdapter] = None,
                        keyring_service: str = "directory-operator"):
    """
    Build the secret store named by ``backend``.

    Args:
        backend: ``kubernetes`` or ``keyring``
        adapter: Kubernetes adapter, required for the ``kubernetes`` backend
        keyring_service: Keyring service name for the ``keyring`` backend

    Raises:
        ValueError: For an unknown backend or a missing adapter
    """
    backend = (backend or "kubernetes").lower()
    if backend == "keyring":
        logger.info(f"Using keyring secret store (service={keyring_service})")
        return KeyringSecretStore(keyring_service)
    if backend == "kubernetes":
        if adapter is None:
            raise ValueError("kubernetes secret backend requires a KubernetesAdapter")
        return KubernetesSecretStore(adapter)
    raise ValueError(f"Unknown secret backend: {backend}")
