import httpx
import pytest

from registrator.consul import ConsulRegistry, HealthCheck, RegistrationRecord, normalize_base_url
from registrator.errors import RegistryError


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("http://discovery-service:8500", "http://discovery-service:8500"),
        ("discovery-service:8500", "http://discovery-service:8500"),
        ("https://consul.example/", "https://consul.example"),
    ],
)
def test_normalize_base_url(raw, expected):
    assert normalize_base_url(raw) == expected


def test_record_payload():
    rec = RegistrationRecord(
        id="node1-auth-1",
        name="auth",
        address="10.0.0.5",
        port=1,
        tags=("tcp", "sentiric"),
        meta={"container_id": "abc"},
        check=HealthCheck("TCP Check auth", "10.0.0.5:1", "15s", "5s", "1m"),
    )
    payload = rec.to_payload()
    assert payload["Tags"] == ["tcp", "sentiric"]
    assert payload["Check"]["DeregisterCriticalServiceAfter"] == "1m"
    assert "Check" not in RegistrationRecord("i", "n", "a", 1, ()).to_payload()


def test_node_name_and_token_header():
    seen = {}

    def handler(request):
        seen["token"] = request.headers.get("X-Consul-Token")
        return httpx.Response(200, json={"Config": {"NodeName": "agent-7"}})

    reg = ConsulRegistry("consul:8500", token="s3cret", transport=httpx.MockTransport(handler))
    assert reg.node_name() == "agent-7"
    assert seen["token"] == "s3cret"


def test_http_errors_become_registry_error():
    reg = ConsulRegistry("http://consul:8500", transport=httpx.MockTransport(lambda r: httpx.Response(403, text="ACL not found")))
    with pytest.raises(RegistryError) as exc:
        reg.services()
    assert exc.value.status_code == 403


def test_deregister_404_is_success(registry, consul):
    registry.deregister("node1-missing-1")
    assert consul.calls[-1][1] == "/v1/agent/service/deregister/node1-missing-1"


def test_services_for_container_filters_by_owner_and_meta(registry, consul):
    consul.services = {
        "a": {"ID": "a", "Tags": ["tcp", "auto-registered"], "Meta": {"container_id": "abcdef123456"}},
        "b": {"ID": "b", "Tags": ["tcp"], "Meta": {"container_id": "abcdef123456"}},
        "c": {"ID": "c", "Tags": ["auto-registered"], "Meta": {"container_id": "000000000000"}},
        "d": {"ID": "d", "Tags": None, "Meta": None},
    }
    assert [s["ID"] for s in registry.services_for_container("abcdef1234567890")] == ["a"]
