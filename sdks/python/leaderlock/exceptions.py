"""Leader lock exception classes."""

class LeaderLockError(Exception):
    """Base exception for all leader lock errors."""
    pass


class ValidationError(LeaderLockError):
    """Raised when input validation fails."""
    pass


class NotFoundError(LeaderLockError):
    """Raised when the lock object does not exist in the store."""

    def __init__(self, message: str, namespace: str = None, name: str = None):
        super().__init__(message)
        self.namespace = namespace
        self.name = name


class AlreadyExistsError(LeaderLockError):
    """Raised when creating an object that already exists."""

    def __init__(self, message: str, namespace: str = None, name: str = None):
        super().__init__(message)
        self.namespace = namespace
        self.name = name


class VersionConflictError(LeaderLockError):
    """Raised when a conditioned replace loses to a concurrent writer."""

    def __init__(self, message: str, expected_version: str = None, current_version: str = None):
        super().__init__(message)
        self.expected_version = expected_version
        self.current_version = current_version


class TransportError(LeaderLockError):
    """Raised when the store cannot be reached or its reply cannot be used."""
    pass


class AuthenticationError(TransportError):
    """Raised when the store rejects our credentials."""
    pass


class MalformedRecordError(TransportError):
    """Raised when a stored leadership annotation cannot be decoded."""
    pass
