from .group_kind import GroupKind, MEMBERSHIP_ATTRIBUTES, MEMBERSHIP_FALLBACK_ORDER
from .resources import (
    ConnectionReference,
    ConnectionSpec,
    ConnectionStatus,
    GroupPhase,
    GroupSpec,
    PrincipalPhase,
    PrincipalSpec,
    ResourceKey,
    ResourceKind,
    ResourceRecord,
    SecretReference,
    TLSConfig,
)

__all__ = [
    'GroupKind', 'MEMBERSHIP_ATTRIBUTES', 'MEMBERSHIP_FALLBACK_ORDER',
    'ConnectionReference', 'ConnectionSpec', 'ConnectionStatus', 'GroupPhase',
    'GroupSpec', 'PrincipalPhase', 'PrincipalSpec', 'ResourceKey', 'ResourceKind',
    'ResourceRecord', 'SecretReference', 'TLSConfig',
]
