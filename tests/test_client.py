"""Tests for the HTTP resource store against a fake API server."""

import json
from typing import Dict, Tuple

import httpx
import pytest

from leaderlock.client import HttpResourceStore
from leaderlock.exceptions import (
    AlreadyExistsError,
    AuthenticationError,
    NotFoundError,
    TransportError,
    ValidationError,
    VersionConflictError,
)
from leaderlock.lock import LEADER_ANNOTATION_KEY, AnnotationLock
from leaderlock.models import FailureKind, LeaderElectionRecord, RemoteObject
from leaderlock.settings import LockSettings

BASE_URL = "http://api.test"
PREFIX = "/api/v1/namespaces/"


class FakeApiServer:
    """Minimal core/v1 API that honours resourceVersion preconditions."""

    def __init__(self, kind: str = "endpoints") -> None:
        self.kind = kind
        self.objects: Dict[Tuple[str, str], dict] = {}
        self.version = 0
        self.requests = []

    def _status(self, code: int, message: str) -> httpx.Response:
        return httpx.Response(code, json={"kind": "Status", "message": message, "code": code})

    def _store(self, namespace: str, name: str, body: dict) -> dict:
        self.version += 1
        metadata = dict(body["metadata"])
        metadata["resourceVersion"] = str(self.version)
        obj = dict(body, metadata=metadata)
        self.objects[(namespace, name)] = obj
        return obj

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path[len(PREFIX):].split("/")
        namespace, kind = parts[0], parts[1]
        name = parts[2] if len(parts) > 2 else None
        assert kind == self.kind

        if request.method == "GET":
            obj = self.objects.get((namespace, name))
            if obj is None:
                return self._status(404, f"{kind} \"{name}\" not found")
            return httpx.Response(200, json=obj)

        body = json.loads(request.content)
        if request.method == "POST":
            name = body["metadata"]["name"]
            if (namespace, name) in self.objects:
                return self._status(409, f"{kind} \"{name}\" already exists")
            return httpx.Response(201, json=self._store(namespace, name, body))

        if request.method == "PUT":
            current = self.objects.get((namespace, name))
            if current is None:
                return self._status(404, f"{kind} \"{name}\" not found")
            expected = body["metadata"].get("resourceVersion")
            if expected != current["metadata"]["resourceVersion"]:
                return self._status(409, "the object has been modified")
            return httpx.Response(200, json=self._store(namespace, name, body))

        return self._status(405, "method not allowed")


@pytest.fixture
def server() -> FakeApiServer:
    return FakeApiServer()


@pytest.fixture
def http_store(server: FakeApiServer) -> HttpResourceStore:
    client = httpx.Client(transport=httpx.MockTransport(server))
    with HttpResourceStore(base_url=BASE_URL, client=client) as store:
        yield store


def static_store(response: httpx.Response) -> HttpResourceStore:
    client = httpx.Client(transport=httpx.MockTransport(lambda request: response))
    return HttpResourceStore(base_url=BASE_URL, client=client)


class TestHttpResourceStore:
    """Test request shapes and status mapping."""

    def test_create_and_read(self, server: FakeApiServer, http_store: HttpResourceStore) -> None:
        """Objects are created with annotations and read back with a version."""
        created = http_store.create_object("kube-system", "controller", {"k": "v"})
        assert created.resource_version == "1"
        assert created.annotations == {"k": "v"}

        request = server.requests[-1]
        assert request.method == "POST"
        assert request.url.path == "/api/v1/namespaces/kube-system/endpoints"
        body = json.loads(request.content)
        assert body["kind"] == "Endpoints"
        assert body["metadata"]["name"] == "controller"
        assert "resourceVersion" not in body["metadata"]

        read = http_store.read_object("kube-system", "controller")
        assert read == created

    def test_read_missing(self, http_store: HttpResourceStore) -> None:
        """404 maps to NotFoundError."""
        with pytest.raises(NotFoundError):
            http_store.read_object("ns", "missing")

    def test_create_conflict(self, http_store: HttpResourceStore) -> None:
        """409 on create maps to AlreadyExistsError."""
        http_store.create_object("ns", "obj", {})
        with pytest.raises(AlreadyExistsError):
            http_store.create_object("ns", "obj", {})

    def test_replace_sends_precondition(
        self, server: FakeApiServer, http_store: HttpResourceStore
    ) -> None:
        """Replace carries the expected version in the body."""
        http_store.create_object("ns", "obj", {})
        replaced = http_store.replace_object(RemoteObject("ns", "obj", "1", {"k": "w"}))
        assert replaced.resource_version == "2"

        request = server.requests[-1]
        assert request.method == "PUT"
        assert request.url.path == "/api/v1/namespaces/ns/endpoints/obj"
        assert json.loads(request.content)["metadata"]["resourceVersion"] == "1"

    def test_replace_conflict(self, http_store: HttpResourceStore) -> None:
        """409 on replace maps to VersionConflictError."""
        http_store.create_object("ns", "obj", {})
        http_store.replace_object(RemoteObject("ns", "obj", "1", {}))
        with pytest.raises(VersionConflictError) as exc_info:
            http_store.replace_object(RemoteObject("ns", "obj", "1", {}))
        assert exc_info.value.expected_version == "1"
        assert "modified" in str(exc_info.value)

    def test_configmap_kind(self) -> None:
        """The resource kind selects the path and object kind."""
        server = FakeApiServer(kind="configmaps")
        client = httpx.Client(transport=httpx.MockTransport(server))
        store = HttpResourceStore(base_url=BASE_URL, resource_kind="configmaps", client=client)
        store.create_object("ns", "obj", {})
        assert json.loads(server.requests[-1].content)["kind"] == "ConfigMap"

    def test_unknown_kind_rejected(self) -> None:
        """Only supported resource kinds are accepted."""
        with pytest.raises(ValidationError):
            HttpResourceStore(resource_kind="pods")

    @pytest.mark.parametrize("code", [401, 403])
    def test_auth_errors(self, code: int) -> None:
        """Authorization failures are transport errors."""
        store = static_store(httpx.Response(code, json={"message": "forbidden"}))
        with pytest.raises(AuthenticationError):
            store.read_object("ns", "obj")
        assert issubclass(AuthenticationError, TransportError)

    def test_server_error(self) -> None:
        """Other failures carry the server message."""
        store = static_store(httpx.Response(500, json={"message": "etcd unavailable"}))
        with pytest.raises(TransportError, match="etcd unavailable"):
            store.read_object("ns", "obj")

    def test_server_error_without_json(self) -> None:
        """Non-JSON error bodies are reported verbatim."""
        store = static_store(httpx.Response(502, text="bad gateway"))
        with pytest.raises(TransportError, match="bad gateway"):
            store.read_object("ns", "obj")

    def test_unparsable_success(self) -> None:
        """A success response that is not JSON is a transport error."""
        store = static_store(httpx.Response(200, text="<html>"))
        with pytest.raises(TransportError):
            store.read_object("ns", "obj")

    def test_response_without_metadata(self) -> None:
        """Objects without metadata are rejected."""
        store = static_store(httpx.Response(200, json={"kind": "Endpoints"}))
        with pytest.raises(TransportError):
            store.read_object("ns", "obj")

    def test_network_error(self) -> None:
        """Connection failures become transport errors."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = HttpResourceStore(
            base_url=BASE_URL, client=httpx.Client(transport=httpx.MockTransport(refuse))
        )
        with pytest.raises(TransportError, match="connection refused"):
            store.read_object("ns", "obj")
        with pytest.raises(TransportError):
            store.create_object("ns", "obj", {})
        with pytest.raises(TransportError):
            store.replace_object(RemoteObject("ns", "obj", "1", {}))

    def test_token_header(self) -> None:
        """A token is sent as a bearer credential."""
        store = HttpResourceStore(base_url=BASE_URL, token="secret")
        assert store.client.headers["Authorization"] == "Bearer secret"
        store.close()

    def test_from_settings(self, tmp_path) -> None:
        """Settings configure URL, token file and kind."""
        token_file = tmp_path / "token"
        token_file.write_text("from-file\n")
        settings = LockSettings(
            api_url="http://api.test/",
            token_file=token_file,
            resource_kind="configmaps",
            identity="me",
        )
        store = HttpResourceStore.from_settings(settings)
        assert store.base_url == "http://api.test"
        assert store.token == "from-file"
        assert store.resource_kind == "configmaps"
        store.close()


class TestAnnotationLockOverHttp:
    """Test the lock protocol end to end over HTTP."""

    def test_contention(self, server: FakeApiServer, http_store: HttpResourceStore) -> None:
        """Create once, then only the up-to-date writer wins."""
        pod7 = AnnotationLock("kube-system", "controller", "pod-7", http_store)
        pod9 = AnnotationLock("kube-system", "controller", "pod-9", http_store)

        first = LeaderElectionRecord().next_for("pod-7", 15)
        assert pod7.create(first)
        assert not pod9.create(LeaderElectionRecord().next_for("pod-9", 15))
        assert pod9.get() == first

        assert pod7.update(first.next_for("pod-7", 15))
        result = pod9.try_update(first.next_for("pod-9", 15))
        assert result.kind is FailureKind.VERSION_CONFLICT

        stored = server.objects[("kube-system", "controller")]
        record = LeaderElectionRecord.from_annotation(
            stored["metadata"]["annotations"][LEADER_ANNOTATION_KEY]
        )
        assert record.holder_identity == "pod-7"
        assert stored["metadata"]["resourceVersion"] == "2"

    def test_get_missing_propagates(self, http_store: HttpResourceStore) -> None:
        """Reading a lock whose object is gone raises NotFoundError."""
        with pytest.raises(NotFoundError):
            AnnotationLock("ns", "obj", "me", http_store).get()

    def test_update_keeps_fields_it_does_not_own(
        self, server: FakeApiServer, http_store: HttpResourceStore
    ) -> None:
        """Renewing sends the observed object back with only the leader annotation changed."""
        subsets = [{"addresses": [{"ip": "10.0.0.5"}], "ports": [{"port": 8080}]}]
        server.version = 7
        server.objects[("ns", "web")] = {
            "apiVersion": "v1",
            "kind": "Endpoints",
            "metadata": {
                "name": "web",
                "namespace": "ns",
                "resourceVersion": "7",
                "labels": {"app": "web"},
                "finalizers": ["example.com/cleanup"],
                "annotations": {"owner": "team-a"},
            },
            "subsets": subsets,
        }

        lock = AnnotationLock("ns", "web", "me", http_store)
        assert lock.get() == LeaderElectionRecord()
        assert lock.update(LeaderElectionRecord("me", 15)) is True

        sent = json.loads(server.requests[-1].content)
        assert sent["metadata"]["resourceVersion"] == "7"

        stored = server.objects[("ns", "web")]
        assert stored["metadata"]["labels"] == {"app": "web"}
        assert stored["metadata"]["finalizers"] == ["example.com/cleanup"]
        assert stored["subsets"] == subsets
        assert stored["metadata"]["annotations"]["owner"] == "team-a"
        assert stored["metadata"]["resourceVersion"] == "8"
        assert lock.get() == LeaderElectionRecord("me", 15)
        assert lock.cached_version == "8"
