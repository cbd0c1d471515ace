import os
from typing import Any, Dict, Optional, Union

import durationpy
from dotenv import load_dotenv

load_dotenv()

DEFAULT_API_GROUP = "directory.lsats.io"
DEFAULT_FINALIZER = f"{DEFAULT_API_GROUP}/finalizer"
DEFAULT_REQUEUE_AFTER_SECONDS = 300
DEFAULT_HEALTH_CHECK_INTERVAL = "5m"


def parse_duration(value: Union[str, int, float, None]) -> Optional[float]:
    """
    Convert a duration to seconds.

    Accepts Kubernetes duration text (``"1h30m"``, ``"45s"``, ``"300ms"``, ``"2d"``)
    or a bare number of seconds. Returns None for None or an empty string.

    Raises:
        ValueError: If the text is not a valid duration
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        pass

    try:
        return durationpy.from_str(text).total_seconds()
    except durationpy.DurationError as e:
        raise ValueError(f"Invalid duration: {value!r}") from e


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


class OperatorConfig:
    """Centralized directory operator configuration management."""

    @staticmethod
    def get_config() -> Dict[str, Any]:
        """Get operator configuration from environment variables."""
        api_group = os.getenv('DIRECTORY_API_GROUP', DEFAULT_API_GROUP)

        return {
            'api_group': api_group,
            'api_version': os.getenv('DIRECTORY_API_VERSION', 'v1'),
            'finalizer': os.getenv('DIRECTORY_FINALIZER', f"{api_group}/finalizer"),
            'requeue_after': _int_env('DIRECTORY_REQUEUE_AFTER_SECONDS', DEFAULT_REQUEUE_AFTER_SECONDS),
            'users_ou': os.getenv('DIRECTORY_USERS_OU', 'users'),
            'groups_ou': os.getenv('DIRECTORY_GROUPS_OU', 'groups'),
            'placeholder_member': os.getenv('DIRECTORY_PLACEHOLDER_MEMBER', 'cn=dummy'),
            'status_retry_attempts': _int_env('DIRECTORY_STATUS_RETRY_ATTEMPTS', 5),
            'status_retry_backoff': _float_env('DIRECTORY_STATUS_RETRY_BACKOFF_SECONDS', 0.1),
            'health_check_interval': parse_duration(
                os.getenv('DIRECTORY_HEALTH_CHECK_INTERVAL', DEFAULT_HEALTH_CHECK_INTERVAL)
            ),
            'probe_tick': _int_env('DIRECTORY_PROBE_TICK_SECONDS', 30),
            'connection_timeout': _int_env('DIRECTORY_CONNECTION_TIMEOUT_SECONDS', 30),
            'secret_backend': os.getenv('DIRECTORY_SECRET_BACKEND', 'kubernetes').lower(),
            'keyring_service': os.getenv('DIRECTORY_KEYRING_SERVICE', 'directory-operator'),
            'watch_namespace': os.getenv('DIRECTORY_WATCH_NAMESPACE') or None,
            'log_level': os.getenv('DIRECTORY_LOG_LEVEL', 'INFO').upper(),
        }
