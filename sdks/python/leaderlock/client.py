"""HTTP resource store for Kubernetes-compatible API servers."""

import copy
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import httpx

from .exceptions import (
    AlreadyExistsError,
    AuthenticationError,
    NotFoundError,
    TransportError,
    ValidationError,
    VersionConflictError,
)
from .models import RemoteObject
from .store import ResourceStore

if TYPE_CHECKING:
    from .settings import LockSettings

logger = logging.getLogger(__name__)

# Plural resource path -> object kind
RESOURCE_KINDS = {
    "endpoints": "Endpoints",
    "configmaps": "ConfigMap",
}


class HttpResourceStore(ResourceStore):
    """Resource store backed by the core/v1 REST API.

    Optimistic concurrency relies on the API server rejecting a PUT whose
    ``metadata.resourceVersion`` is stale with 409 Conflict.
    """

    def __init__(
        self,
        base_url: str = "https://kubernetes.default.svc",
        token: str = None,
        resource_kind: str = "endpoints",
        timeout: float = 30.0,
        verify: bool = True,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the HTTP store.

        Args:
            base_url: The base URL of the API server
            token: Bearer token for authentication
            resource_kind: Plural resource name of the lock objects
            timeout: Per-request timeout in seconds
            verify: Whether to verify the server's TLS certificate
            client: Preconfigured httpx client, used as-is when given
        """
        if resource_kind not in RESOURCE_KINDS:
            raise ValidationError(
                f"Unsupported resource kind '{resource_kind}', expected one of "
                f"{', '.join(sorted(RESOURCE_KINDS))}"
            )
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.resource_kind = resource_kind
        self.client = client or httpx.Client(
            headers={"Authorization": f"Bearer {token}"} if token else {},
            timeout=timeout,
            verify=verify,
        )

    @classmethod
    def from_settings(cls, settings: "LockSettings") -> "HttpResourceStore":
        """Build a store from environment-driven settings."""
        return cls(
            base_url=settings.api_url,
            token=settings.resolve_token(),
            resource_kind=settings.resource_kind,
            timeout=settings.timeout,
            verify=settings.verify_tls,
        )

    def _collection_url(self, namespace: str) -> str:
        return f"{self.base_url}/api/v1/namespaces/{namespace}/{self.resource_kind}"

    def _object_url(self, namespace: str, name: str) -> str:
        return f"{self._collection_url(namespace)}/{name}"

    def _body(
        self,
        namespace: str,
        name: str,
        annotations: Mapping[str, str],
        resource_version: str = None,
        raw: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Request body: ``raw`` as observed, with our metadata laid over it."""
        body = copy.deepcopy(raw) if raw else {}
        body.setdefault("apiVersion", "v1")
        body.setdefault("kind", RESOURCE_KINDS[self.resource_kind])
        metadata = body.get("metadata")
        if not isinstance(metadata, dict):
            metadata = body["metadata"] = {}
        metadata["name"] = name
        metadata["namespace"] = namespace
        metadata["annotations"] = dict(annotations)
        if resource_version is not None:
            metadata["resourceVersion"] = resource_version
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error_data = response.json()
            return error_data.get("message", f"HTTP {response.status_code}")
        except (ValueError, AttributeError):
            return f"HTTP {response.status_code}: {response.text}"

    def _handle_response(self, response: httpx.Response, namespace: str, name: str) -> RemoteObject:
        """Turn an API response into a RemoteObject or a typed error.

        409 is left to the caller, since its meaning depends on the verb.
        """
        logger.debug(f"{response.request.method} {response.request.url} -> {response.status_code}")
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Not authorized for '{namespace}/{name}': {self._error_message(response)}"
            )
        elif response.status_code == 404:
            raise NotFoundError(
                f"Object '{namespace}/{name}' not found", namespace=namespace, name=name
            )
        elif response.status_code >= 400:
            raise TransportError(self._error_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"Failed to parse response: {e}")

        metadata = data.get("metadata") if isinstance(data, dict) else None
        if not isinstance(metadata, dict):
            raise TransportError("Response object has no metadata")
        annotations = metadata.get("annotations") or {}
        if not isinstance(annotations, dict):
            raise TransportError("Response annotations must be an object")

        return RemoteObject(
            namespace=metadata.get("namespace", namespace),
            name=metadata.get("name", name),
            resource_version=metadata.get("resourceVersion"),
            annotations=dict(annotations),
            raw=data,
        )

    def read_object(self, namespace: str, name: str) -> RemoteObject:
        try:
            response = self.client.get(self._object_url(namespace, name))
        except httpx.RequestError as e:
            raise TransportError(f"Network error reading '{namespace}/{name}': {e}")

        return self._handle_response(response, namespace, name)

    def create_object(
        self, namespace: str, name: str, annotations: Mapping[str, str]
    ) -> RemoteObject:
        try:
            response = self.client.post(
                self._collection_url(namespace),
                json=self._body(namespace, name, annotations),
            )
        except httpx.RequestError as e:
            raise TransportError(f"Network error creating '{namespace}/{name}': {e}")

        if response.status_code == 409:
            raise AlreadyExistsError(
                f"Object '{namespace}/{name}' already exists", namespace=namespace, name=name
            )
        return self._handle_response(response, namespace, name)

    def replace_object(self, obj: RemoteObject) -> RemoteObject:
        namespace, name = obj.namespace, obj.name
        try:
            response = self.client.put(
                self._object_url(namespace, name),
                json=self._body(namespace, name, obj.annotations, obj.resource_version, obj.raw),
            )
        except httpx.RequestError as e:
            raise TransportError(f"Network error replacing '{namespace}/{name}': {e}")

        if response.status_code == 409:
            raise VersionConflictError(
                f"Object '{namespace}/{name}' was modified: {self._error_message(response)}",
                expected_version=obj.resource_version,
            )
        return self._handle_response(response, namespace, name)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
