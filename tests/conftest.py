import json
import os as _os
import sys
import threading

import httpx
import pytest
from docker.errors import NotFound

# Ensure project root is importable (so `import main` / `import cli` work without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from registrator import db  # noqa: E402
from registrator.consul import ConsulRegistry  # noqa: E402
from registrator.docker_ops import ContainerSnapshot  # noqa: E402
from registrator.registrar import NodeInfo, Registrar  # noqa: E402
from registrator.runtime import RuntimeState  # noqa: E402


@pytest.fixture(autouse=True)
def journal(tmp_path, monkeypatch):
    """Every test gets its own sqlite event journal."""
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "journal.db"))
    db.init_db()
    return db


class FakeConsul:
    """Just enough of the Consul agent HTTP API, served through httpx.MockTransport."""

    def __init__(self):
        self.services = {}
        self.calls = []
        self.fail_ports = set()
        self.down = False
        self.lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        with self.lock:
            self.calls.append((request.method, path, body))
            if self.down:
                raise httpx.ConnectError("connection refused", request=request)

            if request.method == "GET" and path == "/v1/agent/self":
                return httpx.Response(200, json={"Config": {"NodeName": "consul-node1"}})

            if request.method == "GET" and path == "/v1/agent/services":
                return httpx.Response(200, json=self.services)

            if request.method == "PUT" and path == "/v1/agent/service/register":
                if body["Port"] in self.fail_ports:
                    return httpx.Response(500, text="Unexpected response code: 500")
                self.services[body["ID"]] = {
                    "ID": body["ID"],
                    "Service": body["Name"],
                    "Address": body["Address"],
                    "Port": body["Port"],
                    "Tags": body["Tags"],
                    "Meta": body["Meta"],
                }
                return httpx.Response(200)

            prefix = "/v1/agent/service/deregister/"
            if request.method == "PUT" and path.startswith(prefix):
                sid = path[len(prefix):]
                if sid not in self.services:
                    return httpx.Response(404, text=f'Unknown service ID "{sid}"')
                del self.services[sid]
                return httpx.Response(200)

        return httpx.Response(404, text="not found")

    def writes(self):
        return [c for c in self.calls if c[0] == "PUT"]


@pytest.fixture
def consul():
    return FakeConsul()


@pytest.fixture
def registry(consul):
    reg = ConsulRegistry("http://consul.test:8500", transport=httpx.MockTransport(consul.handler))
    yield reg
    reg.close()


@pytest.fixture
def node():
    return NodeInfo(hostname="node1", address="10.0.0.5")


@pytest.fixture
def runtime():
    return RuntimeState()


@pytest.fixture
def registrar(registry, node, runtime):
    return Registrar(registry, node, runtime, prefix="sentiric-")


def make_snapshot(
    cid="abcdef1234567890",
    name="/sentiric-auth",
    env=None,
    ports=None,
    image="sentiric/auth:latest",
    running=True,
):
    return ContainerSnapshot(
        id=cid,
        name=name,
        env=list(env or []),
        ports=dict(ports or {}),
        image=image,
        running=running,
    )


def binding(host_port):
    return [{"HostIp": "0.0.0.0", "HostPort": str(host_port)}]


class FakeSource:
    """In-memory stand-in for DockerSource."""

    def __init__(self, snapshots=None, events=None):
        self.snapshots = {s.id: s for s in (snapshots or [])}
        self._events = list(events or [])
        self.list_error = None
        self.inspect_errors = {}
        self.inspect_sequence = {}
        self.inspected = []
        self.closed = False
        self.events_closed = threading.Event()
        self.block_after_events = False

    def list_running_ids(self):
        if self.list_error is not None:
            raise self.list_error
        return [s.id for s in self.snapshots.values() if s.running]

    def inspect(self, container_id):
        self.inspected.append(container_id)
        if container_id in self.inspect_errors:
            raise self.inspect_errors[container_id]
        seq = self.inspect_sequence.get(container_id)
        if seq:
            return seq.pop(0)
        return self.snapshots.get(container_id)

    def events(self):
        def gen():
            for e in self._events:
                if isinstance(e, Exception):
                    raise e
                yield e
            if self.block_after_events:
                self.events_closed.wait(5)

        return gen()

    def close_events(self):
        self.events_closed.set()

    def close(self):
        self.closed = True
        self.close_events()


@pytest.fixture
def not_found():
    return NotFound("No such container")
