from .adapters.kubernetes_adapter import KubernetesAdapter
from .adapters.secret_store import KeyringSecretStore, KubernetesSecretStore, create_secret_store
from .exceptions import ClusterError, ConflictError, NotFoundError, PersistError

__all__ = [
    'KubernetesAdapter', 'KeyringSecretStore', 'KubernetesSecretStore', 'create_secret_store',
    'ClusterError', 'ConflictError', 'NotFoundError', 'PersistError',
]
