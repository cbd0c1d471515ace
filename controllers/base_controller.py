"""
Base controllers for directory resources.

Every managed kind goes through the same lifecycle, implemented here once:

- load the record (a record that no longer exists is done)
- tombstoned and still carrying the finalizer: run cleanup, then remove the
  finalizer; cleanup is best-effort so a record is never stuck
- finalizer missing: add it and ask to run again immediately
- otherwise run the kind-specific pass and publish its outcome

``DirectoryEntryController`` adds the shared directory-entry template used by
principals and groups: resolve the owning connection, gate on its published
connectivity, open a directory session and hand it to ``apply()``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from tenacity import retry_if_exception_type, retry_if_not_exception_type

from cluster.exceptions import ClusterError, NotFoundError
from directory.exceptions import DirectoryServiceError
from directory.facade.directory_facade import DirectoryFacade
from directory.models.resources import (
    ConnectionSpec,
    ConnectionStatus,
    ResourceKey,
    ResourceKind,
    ResourceRecord,
    SecretReference,
)

from .results import ReconcileResult
from .status_publisher import StatusPublisher, ready_condition, utc_timestamp

logger = logging.getLogger(__name__)

REQUEUE_PHASES = ("Pending", "Error")


class BaseController(ABC):
    """
    Abstract base class for all resource controllers.

    Each controller must implement:
    - parse_spec(): Turn a raw desired-state block into a typed spec
    - reconcile_active(): Run one pass for a live record that has the finalizer

    and may override:
    - cleanup(): Tear down external state for a tombstoned record

    The base class handles:
    - Loading records and ignoring ones that are gone
    - The finalizer add/remove protocol
    - Reading secret values and the owning connection record
    """

    kind: ResourceKind

    def __init__(
        self,
        store,
        secrets,
        config: Dict[str, Any],
        publisher: Optional[StatusPublisher] = None,
        facade_factory: Optional[Callable[..., DirectoryFacade]] = None,
    ):
        """
        Initialize the controller.

        Args:
            store: Record store (KubernetesAdapter or compatible)
            secrets: Secret store exposing get_value(namespace, name, key)
            config: Operator configuration from OperatorConfig.get_config()
            publisher: Status publisher (built from config if omitted)
            facade_factory: Callable opening a DirectoryFacade (DirectoryFacade.open if omitted)
        """
        self.store = store
        self.secrets = secrets
        self.config = config
        self.finalizer = config['finalizer']
        self.requeue_after = config['requeue_after']
        self.publisher = publisher or StatusPublisher(
            store,
            attempts=config['status_retry_attempts'],
            backoff=config['status_retry_backoff'],
        )
        self.facade_factory = facade_factory or DirectoryFacade.open

    @abstractmethod
    def parse_spec(self, data: Dict[str, Any]) -> Any:
        pass

    @abstractmethod
    def reconcile_active(self, record: ResourceRecord) -> ReconcileResult:
        pass

    def cleanup(self, record: ResourceRecord) -> None:
        """Tear down external state for a tombstoned record. Must not raise."""
        pass

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def load(self, key: ResourceKey) -> Optional[ResourceRecord]:
        try:
            obj = self.store.get(self.kind, key)
        except NotFoundError:
            return None
        return ResourceRecord.from_dict(self.kind, obj, self.parse_spec)

    def reconcile(self, key: ResourceKey) -> ReconcileResult:
        """
        Run one reconciliation pass for the record named by ``key``.

        Returns:
            ReconcileResult: done, or a requeue request

        Raises:
            PersistError: If the outcome could not be published
            ClusterError: If the finalizer could not be added or removed
        """
        record = self.load(key)
        if record is None:
            logger.info(f"{self.kind.value} {key} not found, ignoring since it must be deleted")
            return ReconcileResult.done()

        if record.is_tombstoned:
            if record.has_finalizer(self.finalizer):
                self.finalize(record)
            return ReconcileResult.done()

        if not record.has_finalizer(self.finalizer):
            self.add_finalizer(record)
            return ReconcileResult.requeue(after=0)

        return self.reconcile_active(record)

    def finalize(self, record: ResourceRecord) -> None:
        logger.info(f"Finalizing {self.kind.value} {record.key}")
        self.cleanup(record)
        self.remove_finalizer(record)

    def add_finalizer(self, record: ResourceRecord) -> None:
        self.store.set_finalizers(
            self.kind, record.key, record.finalizers + [self.finalizer], record.resource_version
        )
        logger.debug(f"Added finalizer to {self.kind.value} {record.key}")

    def remove_finalizer(self, record: ResourceRecord) -> None:
        """
        Remove our finalizer, re-reading the record on every attempt.

        Version conflicts and transient store errors are retried with the
        publisher's backoff policy.

        Raises:
            ClusterError: If every attempt failed
        """
        retry = retry_if_exception_type(ClusterError) & retry_if_not_exception_type(NotFoundError)
        what = f"finalizers of {self.kind.value} {record.key}"
        for attempt in self.publisher.retrying(what, retry, reraise=True):
            with attempt:
                self._remove_finalizer_once(record.key)

    def _remove_finalizer_once(self, key: ResourceKey) -> None:
        # Status writes during cleanup bump the resource version; patch against a fresh read.
        latest = self.load(key)
        if latest is None:
            return
        remaining = [f for f in latest.finalizers if f != self.finalizer]
        try:
            self.store.set_finalizers(self.kind, key, remaining, latest.resource_version)
        except NotFoundError:
            return
        logger.info(f"Removed finalizer from {self.kind.value} {key}")

    # =========================================================================
    # SHARED LOOKUPS
    # =========================================================================

    def read_secret(self, namespace: Optional[str], ref: SecretReference) -> str:
        """
        Read a secret value as text.

        Raises:
            NotFoundError: If the secret or key does not exist
        """
        return self.secrets.get_value(namespace, ref.name, ref.key).decode("utf-8")

    def resolve_credentials(self, connection: ResourceRecord) -> Tuple[str, Optional[str]]:
        """
        Read the bind password and optional CA bundle for ``connection``.

        Secrets are read from the connection record's namespace.

        Returns:
            Tuple of (bind password, CA PEM text or None)

        Raises:
            NotFoundError: If the bind password or CA secret is missing
        """
        spec: ConnectionSpec = connection.spec
        namespace = connection.key.namespace
        credential = self.read_secret(namespace, spec.bind_password_secret)

        ca_certificate = None
        if spec.tls is not None:
            if spec.tls.ca_cert_secret:
                ca_certificate = self.read_secret(namespace, spec.tls.ca_cert_secret)
            if spec.tls.client_cert_secret or spec.tls.client_key_secret:
                logger.warning(
                    f"Client certificate authentication is not supported, ignoring "
                    f"client certificate settings on {connection.key}"
                )
        return credential, ca_certificate

    def open_directory(
        self, connection: ResourceRecord, credentials: Optional[Tuple[str, Optional[str]]] = None
    ) -> DirectoryFacade:
        """
        Open a facade for ``connection``, resolving credentials unless given.

        Raises:
            NotFoundError: If the bind password or CA secret is missing
            ConnectError: If the session cannot be opened or bound
        """
        spec: ConnectionSpec = connection.spec
        if not spec.connection_timeout:
            spec.connection_timeout = self.config['connection_timeout']

        credential, ca_certificate = credentials or self.resolve_credentials(connection)
        return self.facade_factory(
            spec,
            credential,
            ca_certificate,
            placeholder_member=self.config['placeholder_member'],
        )


class DirectoryEntryController(BaseController):
    """
    Template for kinds that own one directory entry (principals and groups).

    Subclasses implement:
    - apply(): Converge the entry and return (phase, message, status fields)
    - delete_entry(): Remove the entry during finalization
    """

    phases: Any

    @abstractmethod
    def apply(self, record: ResourceRecord, facade: DirectoryFacade) -> Tuple[Any, str, Dict[str, Any]]:
        pass

    @abstractmethod
    def delete_entry(self, record: ResourceRecord, facade: DirectoryFacade) -> None:
        pass

    def load_connection(self, record: ResourceRecord) -> ResourceRecord:
        """
        Load the connection record referenced by ``record``.

        Raises:
            NotFoundError: If the referenced connection does not exist
        """
        key = record.spec.connection_ref.resolve(record.key.namespace)
        obj = self.store.get(ResourceKind.CONNECTION, key)
        return ResourceRecord.from_dict(ResourceKind.CONNECTION, obj, ConnectionSpec.from_dict)

    def reconcile_active(self, record: ResourceRecord) -> ReconcileResult:
        try:
            connection = self.load_connection(record)
        except ClusterError as e:
            logger.error(f"Failed to get LDAP server for {self.kind.value} {record.key}: {e}")
            return self.set_phase(record, self.phases.ERROR, f"Failed to get LDAP server: {e}")

        if connection.status.get("connectionStatus") != ConnectionStatus.CONNECTED.value:
            return self.set_phase(record, self.phases.PENDING, "LDAP server is not connected")

        try:
            facade = self.open_directory(connection)
        except (DirectoryServiceError, ClusterError) as e:
            logger.error(f"Failed to connect to LDAP for {self.kind.value} {record.key}: {e}")
            return self.set_phase(record, self.phases.ERROR, f"Failed to connect to LDAP: {e}")

        with facade:
            phase, message, fields = self.apply(record, facade)
        return self.set_phase(record, phase, message, fields)

    def cleanup(self, record: ResourceRecord) -> None:
        self.publish_deleting(record)

        try:
            connection = self.load_connection(record)
        except ClusterError as e:
            logger.error(f"Failed to get LDAP server during deletion of {record.key}, continuing: {e}")
            return

        try:
            facade = self.open_directory(connection)
        except (DirectoryServiceError, ClusterError) as e:
            logger.error(f"Failed to connect to LDAP during deletion of {record.key}, continuing: {e}")
            return

        with facade:
            try:
                self.delete_entry(record, facade)
            except DirectoryServiceError as e:
                logger.error(f"Failed to delete {self.kind.value} {record.key} from LDAP: {e}")

    def publish_deleting(self, record: ResourceRecord) -> None:
        message = "Removing entry from directory"
        try:
            self.publisher.publish(
                self.kind,
                record.key,
                {"phase": self.phases.DELETING.value, "message": message},
                ready_condition(self.phases.DELETING.value, message, record.generation),
            )
        except ClusterError as e:
            logger.warning(f"Could not publish Deleting phase for {record.key}: {e}")

    def set_phase(
        self,
        record: ResourceRecord,
        phase,
        message: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> ReconcileResult:
        """
        Publish the outcome of a pass and decide whether to requeue.

        Pending and Error requeue after the fixed interval; Ready and Warning
        wait for the next change.

        Raises:
            PersistError: If the status write kept conflicting
        """
        status = {
            "phase": phase.value,
            "message": message,
            "lastModified": utc_timestamp(),
            "observedGeneration": record.generation,
        }
        status.update(fields or {})

        try:
            self.publisher.publish(
                self.kind, record.key, status, ready_condition(phase.value, message, record.generation)
            )
        except NotFoundError:
            logger.info(f"{self.kind.value} {record.key} disappeared before its status was written")
            return ReconcileResult.done()

        previous = record.status.get("phase")
        if previous != phase.value:
            logger.info(f"{self.kind.value} {record.key} phase {previous or 'None'} -> {phase.value}: {message}")

        if phase.value in REQUEUE_PHASES:
            return ReconcileResult.requeue(after=self.requeue_after)
        return ReconcileResult.done()
