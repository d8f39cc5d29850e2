"""Tests for topology_client/api_client.py against a fake requests session."""

import pytest
import requests

from topology_client.api_client import APIClient


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    def __init__(self):
        self.routes = {}
        self.calls = []
        self.fail_with = None

    def _respond(self, method, url):
        if self.fail_with is not None:
            raise self.fail_with
        return self.routes.get((method, url), FakeResponse(404, {"detail": "Not Found"}))

    def get(self, url, timeout=None):
        self.calls.append(("GET", url, None))
        return self._respond("GET", url)

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json))
        return self._respond(method, url)


BASE = "http://ts:6060"


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    return APIClient(BASE + "/", session=session)


class TestSnapshotSource:
    def test_fetch_snapshot(self, client, session):
        session.routes[("GET", f"{BASE}/agents")] = FakeResponse(body=[
            {"id": "1", "last_heartbeat": "2026-10-16T11:59:00Z", "host": "WS01"},
            {"host": "no id"},
        ])
        session.routes[("GET", f"{BASE}/links")] = FakeResponse(body=[
            {"id": "l1", "source_id": "1", "destination_id": "2", "label": "smb"},
        ])
        session.routes[("GET", f"{BASE}/custom-nodes")] = FakeResponse(body=[
            {"id": 1, "hostname": "fw01", "parent_id": "1", "parent_type": "callback"},
        ])
        snap = client.fetch_snapshot()
        assert [a.id for a in snap.agents] == ["1"]
        assert snap.agents[0].metadata == {"host": "WS01"}
        assert snap.links[0].label == "smb"
        assert snap.custom_nodes[0].id == "custom-1"
        assert snap.custom_nodes[0].parent_id == "1"
        assert snap.dropped == 1

    def test_fetch_error_raises(self, client, session):
        session.routes[("GET", f"{BASE}/agents")] = FakeResponse(500, text="boom")
        with pytest.raises(requests.HTTPError):
            client.fetch_snapshot()


class TestMutationGateway:
    def test_success_carries_link_id(self, client, session):
        session.routes[("POST", f"{BASE}/links")] = FakeResponse(body={"status": "success", "link_id": "abc"})
        result = client.create_link("2", "1", "tcp")
        assert result.ok and result.link_id == "abc"
        assert session.calls[-1] == ("POST", f"{BASE}/links", {"source_id": "2", "destination_id": "1", "label": "tcp"})

    def test_http_error_uses_detail(self, client, session):
        session.routes[("PUT", f"{BASE}/agents/9/visibility")] = FakeResponse(404, {"detail": "Agent not found"})
        result = client.set_visibility("9", False)
        assert result.status == "error"
        assert result.error == "Agent not found"

    def test_http_error_without_json(self, client, session):
        session.routes[("DELETE", f"{BASE}/links/x")] = FakeResponse(502, text="bad gateway")
        assert client.end_link("x").error == "bad gateway"

    def test_error_status_in_body(self, client, session):
        session.routes[("PUT", f"{BASE}/agents/1/lock")] = FakeResponse(body={"status": "error", "error": "locked elsewhere"})
        assert client.set_locked("1", True).error == "locked elsewhere"

    def test_error_body_that_is_not_an_object(self, client, session):
        session.routes[("DELETE", f"{BASE}/links/l1")] = FakeResponse(500, ["not", "a", "dict"], text='["not","a","dict"]')
        result = client.end_link("l1")
        assert result.status == "error"
        assert result.error == '["not","a","dict"]'

    @pytest.mark.parametrize("body", [["ok"], "success", 7])
    def test_success_body_that_is_not_an_object(self, client, session, body):
        session.routes[("DELETE", f"{BASE}/links/l1")] = FakeResponse(200, body)
        result = client.end_link("l1")
        assert result.ok and result.link_id is None

    def test_success_carries_node_id(self, client, session):
        session.routes[("POST", f"{BASE}/custom-nodes")] = FakeResponse(body={"status": "success", "node_id": "custom-3"})
        result = client.create_custom_node("fw01", ip_address="10.0.0.1")
        assert result.ok and result.node_id == "custom-3"
        assert session.calls[-1] == ("POST", f"{BASE}/custom-nodes", {"hostname": "fw01", "ip_address": "10.0.0.1"})

    def test_transport_failure_is_an_error_result(self, client, session):
        session.fail_with = requests.ConnectionError("refused")
        result = client.disconnect_parent("1")
        assert result.status == "error"
        assert "refused" in result.error

    @pytest.mark.parametrize("call, method, path, body", [
        (lambda c: c.set_description("1", "x"), "PUT", "/agents/1/description", {"description": "x"}),
        (lambda c: c.set_parent("3", "2"), "PUT", "/agents/3/parent", {"parent_id": "2", "label": None}),
        (lambda c: c.disconnect_parent("3"), "DELETE", "/agents/3/parent", None),
        (lambda c: c.end_link("l1"), "DELETE", "/links/l1", None),
        (lambda c: c.update_custom_node("custom-1", hidden=True), "PUT", "/custom-nodes/custom-1", {"hidden": True}),
        (lambda c: c.delete_custom_node("custom-1"), "DELETE", "/custom-nodes/custom-1", None),
        (lambda c: c.set_custom_parent("custom-1", "2", "tcp"), "PUT", "/custom-nodes/custom-1/parent",
         {"parent_id": "2", "label": "tcp"}),
        (lambda c: c.disconnect_custom_parent("custom-1"), "DELETE", "/custom-nodes/custom-1/parent", None),
    ])
    def test_routes(self, client, session, call, method, path, body):
        session.routes[(method, BASE + path)] = FakeResponse(body={"status": "success"})
        assert call(client).ok
        assert session.calls[-1] == (method, BASE + path, body)
