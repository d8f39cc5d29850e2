from __future__ import annotations

import threading, uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .liveness import Timestamp, parse_timestamp, utcnow
from .logutil import get_logger
from .models import (
	CUSTOM_PREFIX, ROOT_ID, Agent, CustomNode, Link, MalformedRecord, MutationResult, Snapshot,
	custom_node_id, id_sort_key,
)

logger = get_logger(__name__)


class TopologyStore:
	"""
	In-memory backing store for agents, links and custom nodes.

	Every mutation runs under one lock, so racing edits on the same agent are
	serialized and the last one wins. Links are child -> parent: an agent has
	at most one active link with itself as source, and creating a new one
	deletes the one it supersedes. Agents are never deleted, only hidden.
	Custom nodes can be deleted; a custom node keeps its own parent on the
	node rather than as a link.
	"""
	def __init__(self):
		self._agents: Dict[str, Agent] = {}
		self._links: Dict[str, Link] = {}
		self._lock = threading.RLock()
		self._next_display = 1
		self._custom: Dict[str, CustomNode] = {}
		self._next_custom = 1

	def _new_link_id(self) -> str:
		return uuid.uuid4().hex[:12]

	# ---------- agents ----------
	def register_agent(self, record: Dict[str, Any]) -> Agent:
		"""Create or refresh an agent from a wire-shaped record."""
		with self._lock:
			record = dict(record)
			existing = self._agents.get(str(record.get("id") or ""))
			if record.get("display_id") in (None, ""):
				record["display_id"] = existing.display_id if existing else str(self._next_display)
			agent = Agent.from_dict(record)
			if agent.id == ROOT_ID:
				raise MalformedRecord("agent id 'root' is reserved")
			if agent.id.startswith(CUSTOM_PREFIX):
				raise MalformedRecord(f"agent ids starting with '{CUSTOM_PREFIX}' are reserved")
			if agent.id not in self._agents:
				self._next_display += 1
			self._agents[agent.id] = agent
			logger.info("agent registered", extra={"agent_id": agent.id})
			return agent

	def get_agent(self, agent_id: str) -> Optional[Agent]:
		return self._agents.get(agent_id)

	def list_agents(self) -> List[Agent]:
		with self._lock:
			return sorted(self._agents.values(), key=lambda a: id_sort_key(a.id))

	def heartbeat(self, agent_id: str, at: Optional[Timestamp] = None) -> MutationResult:
		with self._lock:
			agent = self._agents.get(agent_id)
			if agent is None:
				return MutationResult.failure("Agent not found")
			try:
				agent.last_heartbeat = parse_timestamp(at) or utcnow()
			except ValueError as e:
				return MutationResult.failure(str(e))
			return MutationResult.success()

	def set_visibility(self, agent_id: str, visible: bool) -> MutationResult:
		with self._lock:
			agent = self._agents.get(agent_id)
			if agent is None:
				return MutationResult.failure("Agent not found")
			agent.visible = bool(visible)
			logger.info("visibility set", extra={"agent_id": agent_id, "visible": agent.visible})
			return MutationResult.success()

	def set_locked(self, agent_id: str, locked: bool) -> MutationResult:
		with self._lock:
			agent = self._agents.get(agent_id)
			if agent is None:
				return MutationResult.failure("Agent not found")
			agent.locked = bool(locked)
			logger.info("lock set", extra={"agent_id": agent_id, "locked": agent.locked})
			return MutationResult.success()

	def set_description(self, agent_id: str, description: str) -> MutationResult:
		with self._lock:
			agent = self._agents.get(agent_id)
			if agent is None:
				return MutationResult.failure("Agent not found")
			agent.metadata["description"] = description
			return MutationResult.success()

	# ---------- links ----------
	def list_links(self) -> List[Link]:
		with self._lock:
			return list(self._links.values())

	def active_parent_link(self, agent_id: str) -> Optional[Link]:
		with self._lock:
			for link in self._links.values():
				if link.source_id == agent_id and link.is_active and link.destination_id != agent_id:
					return link
			return None

	def create_link(self, source_id: str, destination_id: str, label: Optional[str] = None) -> MutationResult:
		with self._lock:
			if source_id not in self._agents:
				return MutationResult.failure("Source agent not found")
			if not self._node_exists(destination_id):
				return MutationResult.failure("Destination agent not found")
			if source_id == destination_id:
				return MutationResult.failure("An agent cannot be linked to itself")
			if self._would_cycle(source_id, destination_id):
				return MutationResult.failure("Link would create a cycle")
			for lid, link in list(self._links.items()):
				if link.source_id == source_id and link.is_active:
					if link.destination_id == destination_id and link.label == (label or None):
						# same parent, same label: retrying is a no-op
						return MutationResult.success(link_id=lid)
					del self._links[lid]
					logger.info("link superseded", extra={"link_id": lid, "agent_id": source_id})
			lid = self._new_link_id()
			self._links[lid] = Link(source_id=source_id, destination_id=destination_id,
			                        label=label or None, id=lid)
			logger.info("link created", extra={"link_id": lid, "source": source_id, "destination": destination_id})
			return MutationResult.success(link_id=lid)

	def end_link(self, link_id: str, at: Optional[datetime] = None) -> MutationResult:
		with self._lock:
			link = self._links.get(link_id)
			if link is None:
				return MutationResult.failure("Link not found")
			if link.is_active:
				link.end_timestamp = at or utcnow()
				logger.info("link ended", extra={"link_id": link_id})
			return MutationResult.success(link_id=link_id)

	def set_parent(self, agent_id: str, parent_id: str, label: Optional[str] = None) -> MutationResult:
		"""End the agent's current parent link(s), then link it under `parent_id`."""
		with self._lock:
			if agent_id not in self._agents or not self._node_exists(parent_id):
				return MutationResult.failure("Agent not found")
			if agent_id == parent_id:
				return MutationResult.failure("An agent cannot be linked to itself")
			if self._would_cycle(agent_id, parent_id):
				return MutationResult.failure("Link would create a cycle")
			for lid, link in list(self._links.items()):
				if link.source_id == agent_id and link.is_active:
					self.end_link(lid)
			return self.create_link(agent_id, parent_id, label)

	def disconnect_parent(self, agent_id: str) -> MutationResult:
		with self._lock:
			link = self.active_parent_link(agent_id)
			if link is None:
				return MutationResult.failure("No parent connection found")
			return self.end_link(link.id)  # type: ignore[arg-type]

	def _would_cycle(self, child_id: str, parent_id: str) -> bool:
		# walk up from the proposed parent; reaching the child means a loop
		current: Optional[str] = parent_id
		visited = set()
		while current is not None and current not in visited:
			if current == child_id:
				return True
			visited.add(current)
			current = self._parent_of(current)
		return False

	def _parent_of(self, node_id: str) -> Optional[str]:
		node = self._custom.get(node_id)
		if node is not None:
			return node.parent_id
		link = self.active_parent_link(node_id)
		return link.destination_id if link else None

	def _node_exists(self, node_id: str) -> bool:
		return node_id in self._agents or node_id in self._custom

	# ---------- custom nodes ----------
	def _custom_key(self, node_id: Any) -> Optional[str]:
		try:
			return custom_node_id(node_id)
		except MalformedRecord:
			return None

	def get_custom_node(self, node_id: Any) -> Optional[CustomNode]:
		key = self._custom_key(node_id)
		return self._custom.get(key) if key else None

	def list_custom_nodes(self) -> List[CustomNode]:
		with self._lock:
			return sorted(self._custom.values(), key=lambda n: n.db_id)

	def _check_custom_parent(self, node_id: str, parent_id: Optional[str]) -> Optional[str]:
		"""Error text for an unusable parent, None when `parent_id` is fine."""
		if parent_id is None:
			return None
		if not self._node_exists(parent_id):
			return "Parent not found"
		if parent_id == node_id:
			return "A node cannot be linked to itself"
		if self._would_cycle(node_id, parent_id):
			return "Link would create a cycle"
		return None

	def create_custom_node(self, record: Dict[str, Any]) -> MutationResult:
		with self._lock:
			record = dict(record)
			record["id"] = self._next_custom
			try:
				node = CustomNode.from_dict(record)
			except MalformedRecord as e:
				return MutationResult.failure(str(e))
			error = self._check_custom_parent(node.id, node.parent_id)
			if error:
				return MutationResult.failure(error)
			if node.timestamp is None:
				node.timestamp = utcnow()
			self._custom[node.id] = node
			self._next_custom += 1
			logger.info("custom node created", extra={"node_id": node.id, "parent": node.parent_id})
			return MutationResult.success(node_id=node.id)

	def update_custom_node(self, node_id: Any, fields: Dict[str, Any]) -> MutationResult:
		"""Patch a custom node; fields not given keep their value."""
		with self._lock:
			node = self.get_custom_node(node_id)
			if node is None:
				return MutationResult.failure("Custom node not found")
			fields = dict(fields)
			record = node.to_dict()
			if "parent_id" in fields and "parent_type" not in fields:
				record.pop("parent_type", None)
			record.update(fields)
			record["id"] = node.db_id
			try:
				updated = CustomNode.from_dict(record)
			except MalformedRecord as e:
				return MutationResult.failure(str(e))
			if updated.parent_id != node.parent_id:
				error = self._check_custom_parent(node.id, updated.parent_id)
				if error:
					return MutationResult.failure(error)
			self._custom[node.id] = updated
			logger.info("custom node updated", extra={"node_id": node.id, "fields": sorted(fields)})
			return MutationResult.success(node_id=node.id)

	def delete_custom_node(self, node_id: Any) -> MutationResult:
		"""Remove the node, end links pointing at it and orphan its custom children."""
		with self._lock:
			node = self.get_custom_node(node_id)
			if node is None:
				return MutationResult.failure("Custom node not found")
			del self._custom[node.id]
			for lid, link in list(self._links.items()):
				if link.destination_id == node.id and link.is_active:
					self.end_link(lid)
			for child in self._custom.values():
				if child.parent_id == node.id:
					child.parent_id = None
					child.c2profile = None
			logger.info("custom node deleted", extra={"node_id": node.id})
			return MutationResult.success(node_id=node.id)

	def set_custom_parent(self, node_id: Any, parent_id: str, label: Optional[str] = None) -> MutationResult:
		with self._lock:
			node = self.get_custom_node(node_id)
			if node is None:
				return MutationResult.failure("Custom node not found")
			error = self._check_custom_parent(node.id, parent_id)
			if error:
				return MutationResult.failure(error)
			node.parent_id = parent_id
			node.c2profile = label or None
			logger.info("custom node parent set", extra={"node_id": node.id, "parent": parent_id})
			return MutationResult.success(node_id=node.id)

	def disconnect_custom_parent(self, node_id: Any) -> MutationResult:
		with self._lock:
			node = self.get_custom_node(node_id)
			if node is None:
				return MutationResult.failure("Custom node not found")
			if node.parent_id is None:
				return MutationResult.failure("No parent connection found")
			node.parent_id = None
			node.c2profile = None
			return MutationResult.success(node_id=node.id)

	# ---------- snapshot ----------
	def snapshot_payload(self) -> Dict[str, Any]:
		with self._lock:
			return {
				"agents": [a.to_dict() for a in self.list_agents()],
				"links": [l.to_dict() for l in self._links.values()],
				"custom_nodes": [n.to_dict() for n in self.list_custom_nodes()],
			}

	def snapshot(self) -> Snapshot:
		return Snapshot.from_payload(self.snapshot_payload())
