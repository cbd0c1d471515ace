from .kubernetes_adapter import KubernetesAdapter
from .secret_store import KeyringSecretStore, KubernetesSecretStore, create_secret_store

__all__ = ['KubernetesAdapter', 'KeyringSecretStore', 'KubernetesSecretStore', 'create_secret_store']
