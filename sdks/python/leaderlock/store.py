"""Remote object store contract and a process-local implementation."""

import abc
import copy
import logging
import threading
from typing import Dict, Mapping, Tuple

from .exceptions import AlreadyExistsError, NotFoundError, VersionConflictError
from .models import RemoteObject

logger = logging.getLogger(__name__)


class ResourceStore(abc.ABC):
    """Namespaced objects with annotations and a version token per write.

    Every write is atomic: a call that raises leaves the stored object
    exactly as it was.
    """

    @abc.abstractmethod
    def read_object(self, namespace: str, name: str) -> RemoteObject:
        """Fetch an object with its current version.

        Raises:
            NotFoundError: No object exists under this name
            TransportError: The store could not be reached or understood
        """
        raise NotImplementedError

    @abc.abstractmethod
    def create_object(
        self, namespace: str, name: str, annotations: Mapping[str, str]
    ) -> RemoteObject:
        """Create a new object carrying ``annotations``.

        Raises:
            AlreadyExistsError: An object with this name already exists
            TransportError: The store could not be reached or understood
        """
        raise NotImplementedError

    @abc.abstractmethod
    def replace_object(self, obj: RemoteObject) -> RemoteObject:
        """Write ``obj`` back if the stored version is still ``obj.resource_version``.

        Everything in ``obj.raw`` besides annotations and version is kept as
        observed.

        Raises:
            VersionConflictError: The object changed since it was observed
            NotFoundError: The object no longer exists
            TransportError: The store could not be reached or understood
        """
        raise NotImplementedError


class InMemoryResourceStore(ResourceStore):
    """Thread-safe store kept in process memory.

    Versions are decimal strings starting at "1" and bumped on every
    write. Returned objects are copies, so callers never share state with
    the store or with each other.
    """

    def __init__(self):
        self._objects: Dict[Tuple[str, str], RemoteObject] = {}
        self._mutex = threading.Lock()

    def __len__(self) -> int:
        with self._mutex:
            return len(self._objects)

    @staticmethod
    def _copy(obj: RemoteObject) -> RemoteObject:
        return RemoteObject(
            namespace=obj.namespace,
            name=obj.name,
            resource_version=obj.resource_version,
            annotations=dict(obj.annotations),
            raw=copy.deepcopy(obj.raw),
        )

    def read_object(self, namespace: str, name: str) -> RemoteObject:
        with self._mutex:
            obj = self._objects.get((namespace, name))
            if obj is None:
                raise NotFoundError(
                    f"Object '{namespace}/{name}' not found", namespace=namespace, name=name
                )
            return self._copy(obj)

    def create_object(
        self, namespace: str, name: str, annotations: Mapping[str, str]
    ) -> RemoteObject:
        with self._mutex:
            if (namespace, name) in self._objects:
                raise AlreadyExistsError(
                    f"Object '{namespace}/{name}' already exists", namespace=namespace, name=name
                )
            obj = RemoteObject(namespace, name, "1", dict(annotations))
            self._objects[(namespace, name)] = obj
            logger.debug(f"Created {namespace}/{name} at version {obj.resource_version}")
            return self._copy(obj)

    def replace_object(self, obj: RemoteObject) -> RemoteObject:
        namespace, name = obj.namespace, obj.name
        with self._mutex:
            current = self._objects.get((namespace, name))
            if current is None:
                raise NotFoundError(
                    f"Object '{namespace}/{name}' not found", namespace=namespace, name=name
                )
            if current.resource_version != obj.resource_version:
                raise VersionConflictError(
                    f"Object '{namespace}/{name}' was modified",
                    expected_version=obj.resource_version,
                    current_version=current.resource_version,
                )
            stored = self._copy(obj)
            stored.resource_version = str(int(current.resource_version) + 1)
            self._objects[(namespace, name)] = stored
            logger.debug(f"Replaced {namespace}/{name} at version {stored.resource_version}")
            return self._copy(stored)

    def delete_object(self, namespace: str, name: str) -> None:
        """Remove an object; removing a missing one raises NotFoundError."""
        with self._mutex:
            if self._objects.pop((namespace, name), None) is None:
                raise NotFoundError(
                    f"Object '{namespace}/{name}' not found", namespace=namespace, name=name
                )
