"""Leadership locks stored on remote objects.

A lock is a thin adapter between an election loop and a ResourceStore.
It caches the last object it observed so writes can be conditioned on
that object's version; the store's compare-and-swap decides which of
several concurrent candidates wins.

Example:
    store = HttpResourceStore(token=token)
    lock = AnnotationLock("kube-system", "controller", "pod-7", store)

    try:
        current = lock.get()
    except NotFoundError:
        lock.create(LeaderElectionRecord().next_for(lock.identity(), 15))
    else:
        if current.is_expired() or current.holder_identity == lock.identity():
            lock.update(current.next_for(lock.identity(), 15))
"""

import abc
import logging
import re
from typing import TYPE_CHECKING, Optional

from .exceptions import (
    AlreadyExistsError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from .models import FailureKind, LeaderElectionRecord, RemoteObject, WriteResult
from .store import ResourceStore

if TYPE_CHECKING:
    from .settings import LockSettings

logger = logging.getLogger(__name__)

LEADER_ANNOTATION_KEY = "control-plane.alpha.kubernetes.io/leader"

_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$")


def _validate_name(kind: str, value: str) -> None:
    """Validate a namespace or object name."""
    if not value or len(value) > 253:
        raise ValidationError(f"Lock {kind} must be 1-253 characters")
    if not _NAME_PATTERN.match(value):
        raise ValidationError(
            f"Lock {kind} can only contain lowercase alphanumeric characters, hyphens, and dots"
        )


class Lock(abc.ABC):
    """What an election loop needs from a leadership lock backend."""

    @abc.abstractmethod
    def get(self) -> LeaderElectionRecord:
        """Return the current leadership record; read errors propagate."""
        raise NotImplementedError

    @abc.abstractmethod
    def create(self, record: LeaderElectionRecord) -> bool:
        """Create the lock object holding ``record``; False if not created."""
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, record: LeaderElectionRecord) -> bool:
        """Replace the record if nobody wrote since our last observation."""
        raise NotImplementedError

    @abc.abstractmethod
    def identity(self) -> str:
        """This candidate's identity."""
        raise NotImplementedError

    @abc.abstractmethod
    def describe(self) -> str:
        """Human-readable label of the lock object."""
        raise NotImplementedError


class AnnotationLock(Lock):
    """Lock that keeps the leadership record in an object annotation.

    Each instance owns its cached object and does no locking of its own.
    One election loop should drive an instance; threads sharing one must
    serialize their calls.

    Args:
        namespace: Namespace of the lock object
        name: Name of the lock object
        identity: This candidate's identity
        store: Store holding the lock object
    """

    def __init__(self, namespace: str, name: str, identity: str, store: ResourceStore):
        _validate_name("namespace", namespace)
        _validate_name("name", name)
        if not identity:
            raise ValidationError("Lock identity must not be empty")

        self._namespace = namespace
        self._name = name
        self._identity = identity
        self._store = store
        self._cached: Optional[RemoteObject] = None

    @classmethod
    def from_settings(
        cls, settings: "LockSettings", store: Optional[ResourceStore] = None
    ) -> "AnnotationLock":
        """Build a lock from settings, over HTTP unless a store is given."""
        if not settings.name:
            raise ValidationError("Lock name is not configured")
        if store is None:
            from .client import HttpResourceStore

            store = HttpResourceStore.from_settings(settings)
        return cls(settings.namespace, settings.name, settings.identity, store)

    @property
    def cached_version(self) -> Optional[str]:
        """Version token writes are currently conditioned on."""
        return self._cached.resource_version if self._cached else None

    def get(self) -> LeaderElectionRecord:
        obj = self._store.read_object(self._namespace, self._name)
        record = LeaderElectionRecord.from_annotation(obj.annotation(LEADER_ANNOTATION_KEY))
        self._cached = obj
        return record

    def create(self, record: LeaderElectionRecord) -> bool:
        return bool(self.try_create(record))

    def update(self, record: LeaderElectionRecord) -> bool:
        return bool(self.try_update(record))

    def try_create(self, record: LeaderElectionRecord) -> WriteResult:
        """Like create, but report why a failed attempt failed."""
        try:
            created = self._store.create_object(
                self._namespace,
                self._name,
                {LEADER_ANNOTATION_KEY: record.to_annotation()},
            )
        except AlreadyExistsError as e:
            return self._failed("create", FailureKind.ALREADY_EXISTS, e)
        except Exception as e:
            return self._failed("create", FailureKind.TRANSPORT, e)

        self._cached = created
        logger.debug(f"Created leader record for '{self.describe()}' as {record.holder_identity}")
        return WriteResult.success()

    def try_update(self, record: LeaderElectionRecord) -> WriteResult:
        """Like update, but report why a failed attempt failed."""
        cached = self._cached
        if cached is None:
            return self._failed("update", FailureKind.NOT_CACHED)

        candidate = cached.with_annotation(LEADER_ANNOTATION_KEY, record.to_annotation())
        try:
            replaced = self._store.replace_object(candidate)
        except VersionConflictError as e:
            return self._failed("update", FailureKind.VERSION_CONFLICT, e)
        except NotFoundError as e:
            return self._failed("update", FailureKind.NOT_FOUND, e)
        except Exception as e:
            return self._failed("update", FailureKind.TRANSPORT, e)

        self._cached = replaced
        logger.debug(f"Updated leader record for '{self.describe()}' as {record.holder_identity}")
        return WriteResult.success()

    def _failed(
        self, action: str, kind: FailureKind, error: Optional[Exception] = None
    ) -> WriteResult:
        logger.debug(
            f"Failed to {action} leader record for '{self.describe()}' ({kind.value}): {error or ''}"
        )
        return WriteResult.failure(kind, error)

    def identity(self) -> str:
        return self._identity

    def describe(self) -> str:
        return f"{self._namespace}/{self._name}"

    def __repr__(self) -> str:
        return f"AnnotationLock({self.describe()!r}, identity={self._identity!r})"
