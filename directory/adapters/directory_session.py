import logging
import ssl
from typing import Any, Dict, List, Optional

from ldap3 import BASE, LEVEL, NONE, SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException, LDAPNoSuchObjectResult

from ..exceptions import ConnectError, DirectoryError, NoSuchEntryError
from ..models.resources import ConnectionSpec

logger = logging.getLogger(__name__)

EXISTENCE_FILTER = "(objectClass=*)"

_SCOPES = {"base": BASE, "level": LEVEL, "subtree": SUBTREE}


class DirectorySession:
    """
    One authenticated connection to a directory server.

    A session is opened at the start of a reconciliation pass and closed at
    its end; nothing is cached between passes. Every request on the session
    is bounded by the connection's configured timeout, and every ldap3 failure
    is translated into ``DirectoryError`` (or ``NoSuchEntryError`` when the
    target entry does not exist) at this boundary.
    """

    def __init__(self, connection: Connection, spec: ConnectionSpec):
        """
        Wrap an already-bound ldap3 connection.

        Use ``DirectorySession.open()`` to build one from a connection record.

        Args:
            connection: Bound ldap3 Connection object
            spec: Desired state of the directory connection it was built from
        """
        self._connection = connection
        self.spec = spec
        self.timeout = spec.effective_timeout

    @classmethod
    def open(
        cls,
        spec: ConnectionSpec,
        credential: str,
        ca_certificate: Optional[str] = None,
    ) -> "DirectorySession":
        """
        Open and bind a session against the directory described by ``spec``.

        TLS is used unless the record explicitly disables it. With TLS the
        server name is verified and TLS 1.0/1.1 are refused, unless the record
        asks to skip verification.

        Args:
            spec: Desired state of the directory connection
            credential: Bind password for ``spec.bind_dn``
            ca_certificate: Optional PEM bundle of trusted CA certificates

        Returns:
            DirectorySession: Bound session

        Raises:
            ConnectError: If the transport cannot be opened or the bind fails
        """
        server = cls._create_server(spec, ca_certificate)
        connection = Connection(
            server,
            user=spec.bind_dn,
            password=credential,
            raise_exceptions=True,
            receive_timeout=spec.effective_timeout,
            read_only=False,
        )

        try:
            connection.open()
        except LDAPException as e:
            cls._release(connection)
            logger.error(f"Failed to connect to {spec.host}:{spec.effective_port}: {e}")
            raise ConnectError(f"failed to connect to LDAP server: {e}", stage="connect")

        try:
            bound = connection.bind()
        except LDAPException as e:
            cls._release(connection)
            logger.error(f"Failed to bind to {spec.host} as {spec.bind_dn}: {e}")
            raise ConnectError(f"failed to bind to LDAP server: {e}", stage="bind")

        if not bound:
            cls._release(connection)
            raise ConnectError(
                f"failed to bind to LDAP server: {connection.result}", stage="bind"
            )

        session = cls(connection, spec)
        logger.debug(f"Directory session opened: {session.get_connection_info()}")
        return session

    @staticmethod
    def _create_server(spec: ConnectionSpec, ca_certificate: Optional[str] = None) -> Server:
        """
        Create the ldap3 Server object for a connection record.

        Returns:
            Server: Configured ldap3 Server object
        """
        tls = None
        if spec.use_tls:
            validate = ssl.CERT_NONE if spec.insecure_skip_verify else ssl.CERT_REQUIRED
            tls = Tls(
                validate=validate,
                ssl_options=[ssl.OP_NO_TLSv1, ssl.OP_NO_TLSv1_1],
                ca_certs_data=ca_certificate,
                sni=spec.host,
            )
            if spec.insecure_skip_verify:
                logger.warning(f"TLS certificate verification disabled for {spec.host}")

        server = Server(
            spec.host,
            port=spec.effective_port,
            use_ssl=spec.use_tls,
            tls=tls,
            get_info=NONE,
            connect_timeout=spec.effective_timeout,
        )
        logger.debug(f"LDAP server object created: {spec.host}:{spec.effective_port}")
        return server

    @staticmethod
    def _release(connection: Connection) -> None:
        """Tear down a half-open connection after a failed open or bind."""
        try:
            connection.unbind()
        except LDAPException as e:
            logger.debug(f"Ignoring error while releasing connection: {e}")

    def close(self) -> None:
        """Unbind and close the underlying connection."""
        if self._connection is None:
            return
        self._release(self._connection)
        self._connection = None
        logger.debug(f"Directory session closed: {self.spec.host}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Core request primitives

    def search(
        self,
        search_base: str,
        search_filter: str = EXISTENCE_FILTER,
        scope: str = "base",
        attributes: Optional[List[str]] = None,
        size_limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Search the directory.

        Args:
            search_base: Base DN for the search
            search_filter: LDAP filter string (default matches any entry)
            scope: Search scope - 'base', 'level', or 'subtree' (default: 'base')
            attributes: Attributes to return (None for the DN only)
            size_limit: Maximum number of entries (0 for the server's limit)

        Returns:
            List[Dict[str, Any]]: One ``{"dn": ..., "attributes": {...}}`` dict
            per entry, attribute values always as lists of strings

        Raises:
            NoSuchEntryError: If ``search_base`` does not exist
            DirectoryError: If the search fails for any other reason
        """
        if scope.lower() not in _SCOPES:
            raise ValueError(f"scope must be one of: {list(_SCOPES.keys())}")

        connection = self._require_connection()
        logger.debug(
            f"Executing search: filter='{search_filter}', base='{search_base}', scope='{scope}'"
        )

        try:
            connection.search(
                search_base=search_base,
                search_filter=search_filter,
                search_scope=_SCOPES[scope.lower()],
                attributes=attributes or ["1.1"],
                size_limit=size_limit,
                time_limit=self.timeout,
            )
        except LDAPNoSuchObjectResult as e:
            raise NoSuchEntryError(f"no such entry: {search_base}") from e
        except LDAPException as e:
            logger.error(f"LDAP search failed at {search_base}: {e}")
            raise DirectoryError(f"search failed at {search_base}: {e}") from e

        results = []
        for item in connection.response or []:
            if item.get("type") != "searchResEntry":
                continue
            results.append(
                {
                    "dn": item.get("dn", ""),
                    "attributes": _normalize_attributes(item.get("attributes") or {}),
                }
            )
        return results

    def entry_exists(self, dn: str) -> bool:
        """
        Base-scoped existence check.

        A "no such object" result means the entry is absent; any other
        failure propagates as ``DirectoryError``.
        """
        try:
            entries = self.search(dn, EXISTENCE_FILTER, scope="base", size_limit=1)
        except NoSuchEntryError:
            return False
        return len(entries) == 1

    def add(self, dn: str, attributes: Dict[str, List[str]]) -> None:
        """
        Add a new entry.

        Raises:
            DirectoryError: If the add request fails
        """
        connection = self._require_connection()
        try:
            connection.add(dn, attributes=attributes)
        except LDAPException as e:
            raise DirectoryError(f"add failed for {dn}: {e}") from e
        logger.info(f"Added directory entry {dn}")

    def modify(self, dn: str, changes: Dict[str, List[Any]]) -> None:
        """
        Apply ldap3-style changes, e.g. ``{"mail": [(MODIFY_REPLACE, ["x@y"])]}``.

        Raises:
            NoSuchEntryError: If ``dn`` does not exist
            DirectoryError: If the modify request fails
        """
        connection = self._require_connection()
        try:
            connection.modify(dn, changes)
        except LDAPNoSuchObjectResult as e:
            raise NoSuchEntryError(f"no such entry: {dn}") from e
        except LDAPException as e:
            raise DirectoryError(f"modify failed for {dn}: {e}") from e
        logger.debug(f"Modified directory entry {dn}: {sorted(changes.keys())}")

    def delete(self, dn: str) -> None:
        """
        Delete an entry.

        Raises:
            NoSuchEntryError: If ``dn`` does not exist
            DirectoryError: If the delete request fails
        """
        connection = self._require_connection()
        try:
            connection.delete(dn)
        except LDAPNoSuchObjectResult as e:
            raise NoSuchEntryError(f"no such entry: {dn}") from e
        except LDAPException as e:
            raise DirectoryError(f"delete failed for {dn}: {e}") from e
        logger.info(f"Deleted directory entry {dn}")

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise DirectoryError("directory session is closed")
        return self._connection

    def get_connection_info(self) -> Dict[str, Any]:
        """
        Get information about the session's connection settings.

        Returns:
            Dict[str, Any]: Configuration information (credentials excluded)
        """
        return {
            "server": self.spec.host,
            "port": self.spec.effective_port,
            "use_tls": self.spec.use_tls,
            "insecure_skip_verify": self.spec.insecure_skip_verify,
            "base_dn": self.spec.base_dn,
            "bind_dn": self.spec.bind_dn,
            "timeout": self.timeout,
            "open": self._connection is not None,
        }

    def __str__(self) -> str:
        tls_status = "TLS" if self.spec.use_tls else "plaintext"
        return f"DirectorySession({self.spec.host}:{self.spec.effective_port}, {tls_status})"

    def __repr__(self) -> str:
        return (
            f"DirectorySession(host='{self.spec.host}', port={self.spec.effective_port}, "
            f"use_tls={self.spec.use_tls}, base_dn='{self.spec.base_dn}', "
            f"bind_dn='{self.spec.bind_dn}')"
        )


def _normalize_attributes(attributes: Dict[str, Any]) -> Dict[str, List[str]]:
    normalized = {}
    for name, value in attributes.items():
        if value is None:
            values = []
        elif isinstance(value, (list, tuple)):
            values = value
        else:
            values = [value]
        normalized[name] = [v.decode() if isinstance(v, bytes) else str(v) for v in values]
    return normalized


def get_attribute_values(entry: Dict[str, Any], attribute: str) -> List[str]:
    """Case-insensitive attribute lookup on a normalized search result entry."""
    wanted = attribute.lower()
    for name, values in entry.get("attributes", {}).items():
        if name.lower() == wanted:
            return list(values)
    return []
