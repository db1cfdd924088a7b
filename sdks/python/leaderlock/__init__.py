"""Leader Lock SDK - Leader election locks on remote object annotations."""

from .client import HttpResourceStore
from .exceptions import (
    LeaderLockError,
    AlreadyExistsError,
    AuthenticationError,
    MalformedRecordError,
    NotFoundError,
    TransportError,
    ValidationError,
    VersionConflictError,
)
from .lock import LEADER_ANNOTATION_KEY, AnnotationLock, Lock
from .models import (
    FailureKind,
    LeaderElectionRecord,
    RemoteObject,
    WriteResult,
)
from .settings import LockSettings
from .store import InMemoryResourceStore, ResourceStore

__version__ = "1.0.0"
__all__ = [
    "AnnotationLock",
    "Lock",
    "LEADER_ANNOTATION_KEY",
    "ResourceStore",
    "InMemoryResourceStore",
    "HttpResourceStore",
    "LockSettings",
    "LeaderLockError",
    "AlreadyExistsError",
    "AuthenticationError",
    "MalformedRecordError",
    "NotFoundError",
    "TransportError",
    "ValidationError",
    "VersionConflictError",
    "FailureKind",
    "LeaderElectionRecord",
    "RemoteObject",
    "WriteResult",
]
