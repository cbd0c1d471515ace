class ClusterError(Exception):
    """Base exception for record store and secret store errors."""
    pass

class NotFoundError(ClusterError):
    """Raised when a record, secret or secret key does not exist."""
    pass

class ConflictError(ClusterError):
    """Raised when a write was made against a stale resource version."""
    pass

class PersistError(ClusterError):
    """Raised when a status write still conflicts after all retries."""
    pass
