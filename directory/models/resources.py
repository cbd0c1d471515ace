"""
Record types for the three managed resource kinds.

Records arrive from the control plane as plain dictionaries with camelCase
keys. These dataclasses give the reconcilers typed access to the desired
state; observed state stays a dictionary because it is written back verbatim.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .group_kind import GroupKind

DEFAULT_LDAPS_PORT = 636
DEFAULT_LDAP_PORT = 389
DEFAULT_CONNECTION_TIMEOUT = 30
DEFAULT_USERS_OU = "users"
DEFAULT_GROUPS_OU = "groups"


class ConnectionStatus(str, Enum):
    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"
    ERROR = "Error"
    UNKNOWN = "Unknown"


class PrincipalPhase(str, Enum):
    PENDING = "Pending"
    READY = "Ready"
    WARNING = "Warning"
    ERROR = "Error"
    DELETING = "Deleting"


class GroupPhase(str, Enum):
    PENDING = "Pending"
    READY = "Ready"
    ERROR = "Error"
    DELETING = "Deleting"


class ResourceKind(str, Enum):
    """Managed kinds, valued by their custom-resource plural."""

    CONNECTION = "ldapservers"
    PRINCIPAL = "ldapusers"
    GROUP = "ldapgroups"


@dataclass(frozen=True)
class ResourceKey:
    """Reference identity of a record: name plus optional namespace."""

    name: str
    namespace: Optional[str] = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass
class SecretReference:
    name: str
    key: str

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SecretReference"]:
        if not data:
            return None
        return cls(name=data.get("name", ""), key=data.get("key", ""))


@dataclass
class TLSConfig:
    """TLS settings. TLS stays on unless ``enabled`` is explicitly false."""

    enabled: bool = True
    insecure_skip_verify: bool = False
    ca_cert_secret: Optional[SecretReference] = None
    client_cert_secret: Optional[SecretReference] = None
    client_key_secret: Optional[SecretReference] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["TLSConfig"]:
        if data is None:
            return None
        return cls(
            enabled=data.get("enabled") is not False,
            insecure_skip_verify=bool(data.get("insecureSkipVerify", False)),
            ca_cert_secret=SecretReference.from_dict(data.get("caCertSecret")),
            client_cert_secret=SecretReference.from_dict(data.get("clientCertSecret")),
            client_key_secret=SecretReference.from_dict(data.get("clientKeySecret")),
        )


@dataclass
class ConnectionReference:
    name: str
    namespace: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ConnectionReference":
        data = data or {}
        return cls(name=data.get("name", ""), namespace=data.get("namespace") or None)

    def resolve(self, default_namespace: Optional[str]) -> ResourceKey:
        """Key of the referenced Connection, defaulting to the referrer's namespace."""
        return ResourceKey(name=self.name, namespace=self.namespace or default_namespace)


@dataclass
class ConnectionSpec:
    """Desired state of a directory connection (LDAPServer)."""

    host: str
    bind_dn: str
    base_dn: str
    bind_password_secret: SecretReference
    port: Optional[int] = None
    tls: Optional[TLSConfig] = None
    connection_timeout: Optional[int] = None
    health_check_interval: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionSpec":
        return cls(
            host=data.get("host", ""),
            bind_dn=data.get("bindDN", ""),
            base_dn=data.get("baseDN", ""),
            bind_password_secret=SecretReference.from_dict(data.get("bindPasswordSecret"))
            or SecretReference(name="", key=""),
            port=data.get("port") or None,
            tls=TLSConfig.from_dict(data.get("tls")),
            connection_timeout=data.get("connectionTimeout") or None,
            health_check_interval=data.get("healthCheckInterval"),
        )

    @property
    def use_tls(self) -> bool:
        return self.tls is None or self.tls.enabled

    @property
    def insecure_skip_verify(self) -> bool:
        return self.tls is not None and self.tls.insecure_skip_verify

    @property
    def effective_port(self) -> int:
        if self.port:
            return int(self.port)
        return DEFAULT_LDAPS_PORT if self.use_tls else DEFAULT_LDAP_PORT

    @property
    def effective_timeout(self) -> int:
        if self.connection_timeout and self.connection_timeout > 0:
            return int(self.connection_timeout)
        return DEFAULT_CONNECTION_TIMEOUT


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _attribute_map(data: Optional[Dict[str, Any]]) -> Dict[str, List[str]]:
    attributes = {}
    for name, values in (data or {}).items():
        if isinstance(values, (str, int)):
            values = [values]
        attributes[name] = [str(v) for v in values]
    return attributes


@dataclass
class PrincipalSpec:
    """Desired state of a directory user (LDAPUser)."""

    connection_ref: ConnectionReference
    username: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    display_name: str = ""
    password_secret: Optional[SecretReference] = None
    groups: List[str] = field(default_factory=list)
    organizational_unit: str = DEFAULT_USERS_OU
    user_id: Optional[int] = None
    group_id: Optional[int] = None
    home_directory: str = ""
    login_shell: str = ""
    enabled: bool = True
    additional_attributes: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_ou: str = DEFAULT_USERS_OU) -> "PrincipalSpec":
        return cls(
            connection_ref=ConnectionReference.from_dict(data.get("ldapServerRef")),
            username=data.get("username", ""),
            email=data.get("email") or "",
            first_name=data.get("firstName") or "",
            last_name=data.get("lastName") or "",
            display_name=data.get("displayName") or "",
            password_secret=SecretReference.from_dict(data.get("passwordSecret")),
            groups=list(data.get("groups") or []),
            organizational_unit=data.get("organizationalUnit", default_ou),
            user_id=_optional_int(data.get("userID")),
            group_id=_optional_int(data.get("groupID")),
            home_directory=data.get("homeDirectory") or "",
            login_shell=data.get("loginShell") or "",
            enabled=data.get("enabled") is not False,
            additional_attributes=_attribute_map(data.get("additionalAttributes")),
        )


@dataclass
class GroupSpec:
    """Desired state of a directory group (LDAPGroup)."""

    connection_ref: ConnectionReference
    group_name: str
    description: str = ""
    group_type: GroupKind = GroupKind.NAMES
    organizational_unit: str = DEFAULT_GROUPS_OU
    group_id: Optional[int] = None
    additional_attributes: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_ou: str = DEFAULT_GROUPS_OU) -> "GroupSpec":
        return cls(
            connection_ref=ConnectionReference.from_dict(data.get("ldapServerRef")),
            group_name=data.get("groupName", ""),
            description=data.get("description") or "",
            group_type=GroupKind.from_value(data.get("groupType")),
            organizational_unit=data.get("organizationalUnit", default_ou),
            group_id=_optional_int(data.get("groupID")),
            additional_attributes=_attribute_map(data.get("additionalAttributes")),
        )


@dataclass
class ResourceRecord:
    """
    One declarative record as loaded from the record store.

    ``spec`` is the typed desired state; ``status`` is the raw observed-state
    block; ``body`` keeps the full object for callers that need it.
    """

    kind: ResourceKind
    key: ResourceKey
    generation: int
    finalizers: List[str]
    deletion_timestamp: Optional[str]
    spec: Any
    status: Dict[str, Any]
    resource_version: Optional[str] = None
    annotations: Dict[str, str] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(
        cls,
        kind: ResourceKind,
        obj: Dict[str, Any],
        spec_parser: Callable[[Dict[str, Any]], Any],
    ) -> "ResourceRecord":
        metadata = obj.get("metadata") or {}
        return cls(
            kind=kind,
            key=ResourceKey(name=metadata.get("name", ""), namespace=metadata.get("namespace")),
            generation=int(metadata.get("generation") or 0),
            finalizers=list(metadata.get("finalizers") or []),
            deletion_timestamp=metadata.get("deletionTimestamp"),
            spec=spec_parser(obj.get("spec") or {}),
            status=dict(obj.get("status") or {}),
            resource_version=metadata.get("resourceVersion"),
            annotations=dict(metadata.get("annotations") or {}),
            body=obj,
        )

    @property
    def is_tombstoned(self) -> bool:
        return bool(self.deletion_timestamp)

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers
