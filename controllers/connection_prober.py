"""
Connection prober for LDAPServer records.

A probe resolves the bind password, opens and binds a session, and runs a
base-scoped search of the base DN. The outcome is published as the record's
``connectionStatus``, which the principal and group controllers use as a
gate. When the published status changes, every principal and group that
references the connection is annotated so their controllers run again.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from cluster.exceptions import ClusterError
from directory.exceptions import ConnectError, DirectoryError
from directory.models.resources import (
    ConnectionReference,
    ConnectionSpec,
    ConnectionStatus,
    ResourceKey,
    ResourceKind,
    ResourceRecord,
)

from .base_controller import BaseController
from .config import parse_duration
from .results import ReconcileResult
from .status_publisher import available_condition, utc_timestamp

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class ConnectionProber(BaseController):
    """
    Health-checks LDAPServer records and publishes their connectivity.

    Deleting a connection only removes the finalizer; no directory state is
    owned by the connection record itself.
    """

    kind = ResourceKind.CONNECTION

    def parse_spec(self, data: Dict[str, Any]) -> ConnectionSpec:
        return ConnectionSpec.from_dict(data)

    def health_check_interval(self, record: ResourceRecord) -> float:
        try:
            interval = parse_duration(record.spec.health_check_interval)
        except ValueError:
            logger.warning(
                f"Invalid healthCheckInterval {record.spec.health_check_interval!r} on {record.key}, "
                f"using default"
            )
            interval = None
        if not interval or interval <= 0:
            return self.config['health_check_interval']
        return interval

    def probe(self, record: ResourceRecord) -> Tuple[ConnectionStatus, str]:
        """
        Test connectivity, bind and search against the connection.

        Returns:
            Tuple of (connection status, human-readable message)
        """
        try:
            credentials = self.resolve_credentials(record)
        except ClusterError as e:
            return ConnectionStatus.ERROR, f"Failed to get bind password: {e}"

        try:
            facade = self.open_directory(record, credentials)
        except ConnectError as e:
            if e.stage == "bind":
                return ConnectionStatus.ERROR, f"Failed to bind to LDAP server: {e}"
            return ConnectionStatus.DISCONNECTED, f"Failed to connect to LDAP server: {e}"

        with facade:
            try:
                facade.probe()
            except DirectoryError as e:
                return ConnectionStatus.ERROR, f"Failed to perform test search: {e}"

        return ConnectionStatus.CONNECTED, "Successfully connected to LDAP server"

    def reconcile_active(self, record: ResourceRecord) -> ReconcileResult:
        status, message = self.probe(record)
        if status is not ConnectionStatus.CONNECTED:
            logger.error(f"Failed to test LDAP connection {record.key}: {message}")

        fields = {
            "connectionStatus": status.value,
            "message": message,
            "lastChecked": utc_timestamp(),
            "observedGeneration": record.generation,
        }
        self.publisher.publish(
            self.kind,
            record.key,
            fields,
            available_condition(status is ConnectionStatus.CONNECTED, message, record.generation),
        )

        previous = record.status.get("connectionStatus")
        if previous != status.value:
            logger.info(f"LDAP server {record.key} connection status {previous or 'None'} -> {status.value}")
            self.notify_dependents(record.key, status)

        return ReconcileResult.requeue(after=self.health_check_interval(record))

    def reconcile_if_due(self, key: ResourceKey, now: Optional[datetime] = None) -> ReconcileResult:
        """
        Probe the connection only when its health-check interval has elapsed.

        Records that are gone, tombstoned or not yet finalized are left to the
        regular handlers.
        """
        record = self.load(key)
        if record is None or record.is_tombstoned or not record.has_finalizer(self.finalizer):
            return ReconcileResult.done()

        now = now or datetime.now(timezone.utc)
        last_checked = self._parse_timestamp(record.status.get("lastChecked"))
        interval = self.health_check_interval(record)
        if last_checked is not None and (now - last_checked).total_seconds() < interval:
            return ReconcileResult.done()

        logger.debug(f"Health check due for LDAP server {key}")
        return self.reconcile_active(record)

    @staticmethod
    def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        try:
            return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            return None

    def notify_dependents(self, key: ResourceKey, status: ConnectionStatus) -> int:
        """
        Annotate every principal and group that references ``key``.

        The annotation change is delivered to their controllers as an update,
        so they re-run against the new connectivity status. Failures are
        logged and skipped.

        Returns:
            int: Number of records annotated
        """
        annotation = {f"{self.config['api_group']}/connection-status": status.value}
        notified = 0
        for kind in (ResourceKind.PRINCIPAL, ResourceKind.GROUP):
            try:
                items = self.store.list(kind, self.config['watch_namespace'])
            except ClusterError as e:
                logger.warning(f"Could not list {kind.value} to notify of {key} status change: {e}")
                continue

            for obj in items:
                metadata = obj.get("metadata") or {}
                ref = ConnectionReference.from_dict((obj.get("spec") or {}).get("ldapServerRef"))
                if ref.resolve(metadata.get("namespace")) != key:
                    continue
                dependent = ResourceKey(name=metadata.get("name", ""), namespace=metadata.get("namespace"))
                try:
                    self.store.annotate(kind, dependent, annotation)
                    notified += 1
                except ClusterError as e:
                    logger.warning(f"Could not annotate {kind.value} {dependent}: {e}")

        logger.debug(f"Notified {notified} dependents of LDAP server {key}")
        return notified
