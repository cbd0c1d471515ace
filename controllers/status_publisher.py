"""
Status publisher for directory resources.

Observed state is written with a read-modify-write cycle: the latest version
of the record is re-read, only the observed-state fields owned by the
operator are applied, and the write is sent with the resource version that
was read. A stale version is rejected by the record store with
``ConflictError``, in which case the whole cycle is retried with exponential
backoff. When the retries are exhausted ``PersistError`` is raised for the
caller's framework to re-invoke the pass.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from cluster.exceptions import ConflictError, PersistError
from directory.models.resources import ResourceKey, ResourceKind

logger = logging.getLogger(__name__)

READY_CONDITION = "Ready"
AVAILABLE_CONDITION = "Available"
READY_WITH_WARNINGS_REASON = "ReadyWithWarnings"
MAX_BACKOFF_SECONDS = 2.0


def utc_timestamp() -> str:
    """RFC 3339 timestamp with second precision, as Kubernetes renders them."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def ready_condition(phase: str, message: str, generation: int) -> Dict[str, Any]:
    """
    Build the Ready condition for a phase.

    True for Ready and Warning, False otherwise. The reason is the phase
    name, except Warning which reports ``ReadyWithWarnings``.
    """
    ready = phase in ("Ready", "Warning")
    return {
        "type": READY_CONDITION,
        "status": "True" if ready else "False",
        "reason": READY_WITH_WARNINGS_REASON if phase == "Warning" else phase,
        "message": message,
        "observedGeneration": generation,
    }


def available_condition(connected: bool, message: str, generation: int) -> Dict[str, Any]:
    return {
        "type": AVAILABLE_CONDITION,
        "status": "True" if connected else "False",
        "reason": "ConnectionSuccessful" if connected else "ConnectionFailed",
        "message": message,
        "observedGeneration": generation,
    }


def upsert_condition(
    conditions: List[Dict[str, Any]], condition: Dict[str, Any], now: str
) -> List[Dict[str, Any]]:
    """
    Replace the condition of the same type, or append it.

    ``lastTransitionTime`` only moves when the condition's status flips.
    """
    updated = []
    replaced = False
    for existing in conditions:
        if existing.get("type") != condition["type"]:
            updated.append(existing)
            continue
        merged = dict(condition)
        if existing.get("status") == condition["status"] and existing.get("lastTransitionTime"):
            merged["lastTransitionTime"] = existing["lastTransitionTime"]
        else:
            merged["lastTransitionTime"] = now
        updated.append(merged)
        replaced = True

    if not replaced:
        updated.append(dict(condition, lastTransitionTime=now))
    return updated


class StatusPublisher:
    """
    Conflict-retrying status writer, shared by every resource kind.

    The record store must provide ``get(kind, key) -> dict`` and
    ``replace_status(kind, key, body)``, raising ``ConflictError`` when the
    body's resource version is stale.
    """

    def __init__(
        self,
        store,
        attempts: int = 5,
        backoff: float = 0.1,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], str] = utc_timestamp,
    ):
        """
        Initialize the publisher.

        Args:
            store: Record store used for the re-read and the write
            attempts: Total write attempts before giving up
            backoff: Initial backoff in seconds, doubled per retry
            max_backoff: Upper bound on a single backoff
            sleep: Sleep function used between attempts
            clock: Timestamp source for condition transitions
        """
        self.store = store
        self.attempts = max(1, attempts)
        self.backoff = backoff
        self.max_backoff = max_backoff
        self.sleep = sleep
        self.clock = clock

    def retrying(self, what: str, retry=None, reraise: bool = False) -> Retrying:
        """
        Bounded exponential-backoff retry policy for writes against the store.

        Args:
            what: Description of the write, used in the retry log line
            retry: tenacity retry predicate (ConflictError only if omitted)
            reraise: Raise the last error instead of RetryError when exhausted

        Returns:
            Retrying: Iterate it and run one attempt per ``with attempt:`` block
        """
        return Retrying(
            retry=retry or retry_if_exception_type(ConflictError),
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff, max=self.max_backoff),
            sleep=self.sleep,
            reraise=reraise,
            before_sleep=lambda state: logger.warning(
                f"Write to {what} failed with {type(state.outcome.exception()).__name__}, retrying "
                f"(attempt {state.attempt_number}/{self.attempts})"
            ),
        )

    def publish(
        self,
        kind: ResourceKind,
        key: ResourceKey,
        fields: Dict[str, Any],
        condition: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Apply ``fields`` (and optionally ``condition``) to the record's status.

        Args:
            kind: Resource kind of the record
            key: Record identity
            fields: Observed-state fields to set; other status fields are kept
            condition: Condition to upsert by type

        Returns:
            Dict[str, Any]: The status block that was written

        Raises:
            PersistError: If every attempt hit a version conflict
            NotFoundError: If the record disappeared
        """
        try:
            for attempt in self.retrying(f"status of {kind.value} {key}"):
                with attempt:
                    return self._write_once(kind, key, fields, condition)
        except RetryError as e:
            raise PersistError(
                f"status update for {kind.value} {key} still conflicting after {self.attempts} attempts"
            ) from e.last_attempt.exception()

    def _write_once(self, kind, key, fields, condition) -> Dict[str, Any]:
        latest = self.store.get(kind, key)
        status = dict(latest.get("status") or {})
        status.update(fields)
        if condition is not None:
            status["conditions"] = upsert_condition(
                list(status.get("conditions") or []), condition, self.clock()
            )

        body = dict(latest)
        body["status"] = status
        self.store.replace_status(kind, key, body)
        logger.debug(f"Published status for {kind.value} {key}: phase={status.get('phase')}")
        return status
