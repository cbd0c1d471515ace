class DirectoryServiceError(Exception):
    """Base exception for directory service errors."""
    pass

class ConnectError(DirectoryServiceError):
    """
    Raised when the transport, TLS negotiation or bind fails.

    ``stage`` is ``"connect"`` for transport/TLS failures and ``"bind"`` when
    the server was reached but refused the credential.
    """

    def __init__(self, message: str, stage: str = "connect"):
        super().__init__(message)
        self.stage = stage

class DirectoryError(DirectoryServiceError):
    """Raised when a single search, add, modify or delete request fails."""
    pass

class NoSuchEntryError(DirectoryError):
    """Raised when the target of a request does not exist in the directory."""
    pass

class SyncError(DirectoryServiceError):
    """Raised when membership synchronization cannot proceed at all."""
    pass
