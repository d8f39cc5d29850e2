"""Tests for topology/store.py: the mutation contract behind the gateway."""

import pytest

from topology.models import MalformedRecord
from topology.reconcile import ReconciliationEngine
from topology.config import EngineConfig
from topology.store import TopologyStore

from conftest import NOW


@pytest.fixture
def store():
    s = TopologyStore()
    for aid in ("1", "2", "3"):
        s.register_agent({"id": aid, "last_heartbeat": NOW.isoformat(), "host": f"WS0{aid}"})
    return s


def active(store):
    return [l for l in store.list_links() if l.is_active]


class TestAgents:
    def test_register_assigns_display_ids(self):
        s = TopologyStore()
        a = s.register_agent({"id": "abc"})
        b = s.register_agent({"id": "def"})
        assert (a.display_id, b.display_id) == ("1", "2")

    def test_reregister_keeps_display_id(self, store):
        again = store.register_agent({"id": "2", "user": "alice"})
        assert again.display_id == "2"
        assert again.metadata == {"user": "alice"}
        assert len(store.list_agents()) == 3

    def test_root_id_is_reserved(self):
        with pytest.raises(MalformedRecord):
            TopologyStore().register_agent({"id": "root"})

    def test_missing_id_is_malformed(self):
        with pytest.raises(MalformedRecord):
            TopologyStore().register_agent({"host": "x"})

    def test_list_agents_sorted_numerically(self):
        s = TopologyStore()
        for aid in ("10", "9", "b", "1"):
            s.register_agent({"id": aid})
        assert [a.id for a in s.list_agents()] == ["1", "9", "10", "b"]

    def test_visibility_lock_description(self, store):
        assert store.set_visibility("1", False).ok
        assert store.set_locked("1", True).ok
        assert store.set_description("1", "jump box").ok
        agent = store.get_agent("1")
        assert agent.visible is False
        assert agent.locked is True
        assert agent.metadata["description"] == "jump box"

    @pytest.mark.parametrize("op", ["set_visibility", "set_locked", "set_description", "heartbeat"])
    def test_unknown_agent(self, store, op):
        fn = getattr(store, op)
        result = fn("nope") if op == "heartbeat" else fn("nope", True)
        assert result.status == "error"
        assert result.error == "Agent not found"

    def test_heartbeat(self, store):
        assert store.heartbeat("1", "2026-10-16T12:30:00Z").ok
        assert store.get_agent("1").last_heartbeat.minute == 30
        bad = store.heartbeat("1", "yesterday-ish")
        assert not bad.ok
        assert "unparsable" in bad.error


class TestLinks:
    def test_create_link(self, store):
        result = store.create_link("2", "1", "smb")
        assert result.ok and result.link_id
        link = store.active_parent_link("2")
        assert (link.source_id, link.destination_id, link.label) == ("2", "1", "smb")

    def test_create_link_errors(self, store):
        assert store.create_link("9", "1").error == "Source agent not found"
        assert store.create_link("1", "9").error == "Destination agent not found"
        assert store.create_link("1", "1").error == "An agent cannot be linked to itself"

    def test_cycle_rejected(self, store):
        assert store.create_link("2", "1").ok
        assert store.create_link("3", "2").ok
        result = store.create_link("1", "3")
        assert result.status == "error"
        assert "cycle" in result.error
        assert len(active(store)) == 2

    def test_same_link_twice_is_noop(self, store):
        first = store.create_link("2", "1", "tcp")
        second = store.create_link("2", "1", "tcp")
        assert second.ok and second.link_id == first.link_id
        assert len(store.list_links()) == 1

    def test_new_link_supersedes_old(self, store):
        first = store.create_link("3", "1")
        second = store.create_link("3", "2")
        assert second.link_id != first.link_id
        assert [l.destination_id for l in active(store)] == ["2"]
        assert all(l.id != first.link_id for l in store.list_links())

    def test_end_link_is_idempotent(self, store):
        lid = store.create_link("2", "1").link_id
        assert store.end_link(lid).ok
        ended_at = [l for l in store.list_links() if l.id == lid][0].end_timestamp
        assert ended_at is not None
        assert store.end_link(lid).ok
        assert [l for l in store.list_links() if l.id == lid][0].end_timestamp == ended_at
        assert store.active_parent_link("2") is None

    def test_end_unknown_link(self, store):
        assert store.end_link("missing").error == "Link not found"

    def test_set_parent_ends_previous(self, store):
        store.create_link("3", "1")
        result = store.set_parent("3", "2", "pivot")
        assert result.ok
        assert [(l.destination_id, l.label) for l in active(store)] == [("2", "pivot")]
        ended = [l for l in store.list_links() if not l.is_active]
        assert [l.destination_id for l in ended] == ["1"]

    def test_set_parent_errors(self, store):
        assert store.set_parent("3", "9").error == "Agent not found"
        assert store.set_parent("3", "3").error == "An agent cannot be linked to itself"
        store.create_link("2", "1")
        assert "cycle" in store.set_parent("1", "2").error

    def test_disconnect_parent(self, store):
        store.create_link("2", "1")
        assert store.disconnect_parent("2").ok
        assert store.active_parent_link("2") is None
        assert store.disconnect_parent("2").error == "No parent connection found"


class TestCustomNodes:
    def test_create_assigns_sequential_ids(self, store):
        first = store.create_custom_node({"hostname": "fw01", "ip_address": "10.0.0.1"})
        second = store.create_custom_node({"hostname": "dc01"})
        assert first.ok and first.node_id == "custom-1"
        assert second.node_id == "custom-2"
        node = store.get_custom_node("1")
        assert node is store.get_custom_node("custom-1")
        assert node.ip_address == "10.0.0.1"
        assert node.timestamp is not None
        assert [n.id for n in store.list_custom_nodes()] == ["custom-1", "custom-2"]

    def test_create_requires_hostname(self, store):
        result = store.create_custom_node({"hostname": "  "})
        assert result.status == "error"
        assert "hostname" in result.error
        assert store.list_custom_nodes() == []

    def test_create_with_unknown_parent(self, store):
        assert store.create_custom_node({"hostname": "fw01", "parent_id": "9"}).error == "Parent not found"

    def test_update_patches_given_fields(self, store):
        nid = store.create_custom_node({"hostname": "fw01", "description": "edge"}).node_id
        assert store.update_custom_node(nid, {"hidden": True, "position": {"x": 5, "y": 6}}).ok
        node = store.get_custom_node(nid)
        assert node.hidden is True and node.visible is False
        assert node.position == (5.0, 6.0)
        assert node.description == "edge"
        assert store.update_custom_node(nid, {"hostname": ""}).status == "error"
        assert store.update_custom_node("custom-9", {"hidden": False}).error == "Custom node not found"

    def test_custom_node_is_a_link_destination(self, store):
        nid = store.create_custom_node({"hostname": "fw01"}).node_id
        assert store.create_link("2", nid, "smb").ok
        assert store.set_parent("3", nid).ok
        assert sorted(l.source_id for l in active(store)) == ["2", "3"]
        assert store.create_link(nid, "1").error == "Source agent not found"

    def test_custom_parent_and_cycles(self, store):
        nid = store.create_custom_node({"hostname": "fw01"}).node_id
        assert store.set_custom_parent(nid, "1", "tcp").ok
        node = store.get_custom_node(nid)
        assert (node.parent_id, node.c2profile) == ("1", "tcp")
        # 1 -> fw01 -> 1 would loop
        assert "cycle" in store.create_link("1", nid).error
        assert store.set_custom_parent(nid, nid).error == "A node cannot be linked to itself"
        assert store.set_custom_parent(nid, "9").error == "Parent not found"
        assert store.disconnect_custom_parent(nid).ok
        assert store.disconnect_custom_parent(nid).error == "No parent connection found"
        assert store.create_link("1", nid).ok

    def test_cycle_through_two_custom_nodes(self, store):
        a = store.create_custom_node({"hostname": "a"}).node_id
        b = store.create_custom_node({"hostname": "b", "parent_id": a, "parent_type": "custom"}).node_id
        assert store.get_custom_node(b).parent_id == a
        assert "cycle" in store.update_custom_node(a, {"parent_id": b}).error
        assert store.get_custom_node(a).parent_id is None

    def test_delete_cleans_up_references(self, store):
        nid = store.create_custom_node({"hostname": "fw01"}).node_id
        child = store.create_custom_node({"hostname": "dmz", "parent_id": nid}).node_id
        store.create_link("2", nid)
        result = store.delete_custom_node(nid)
        assert result.ok and result.node_id == nid
        assert store.get_custom_node(nid) is None
        assert store.active_parent_link("2") is None
        assert store.get_custom_node(child).parent_id is None
        assert store.delete_custom_node(nid).error == "Custom node not found"

    def test_custom_prefix_reserved_for_agents(self):
        with pytest.raises(MalformedRecord):
            TopologyStore().register_agent({"id": "custom-1"})


class TestSnapshot:
    def test_snapshot_round_trips_through_engine(self, store):
        store.create_link("2", "1", "smb")
        store.set_visibility("3", False)
        snap = store.snapshot()
        assert snap.dropped == 0
        assert [a.id for a in snap.agents] == ["1", "2", "3"]

        graph = ReconciliationEngine(config=EngineConfig(liveness_delay=0)).reconcile(snap, now=NOW)
        assert {(e.source, e.destination) for e in graph.edges} == {("root", "1"), ("2", "1")}
        assert graph.node("1").metadata == {"host": "WS01"}
        assert graph.node("3") is None

    def test_ended_links_stay_in_snapshot(self, store):
        lid = store.create_link("2", "1").link_id
        store.end_link(lid)
        links = store.snapshot_payload()["links"]
        assert len(links) == 1
        assert links[0]["end_timestamp"] is not None
