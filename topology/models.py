from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

from .liveness import parse_timestamp

ROOT_ID = "root"
ROOT_LABEL = "Team Server"
DEFAULT_LINK_LABEL = "Linked"
CUSTOM_PREFIX = "custom-"

Position = Tuple[float, float]
NODE_KIND = Literal["agent", "custom", "root"]

# keys lifted into Agent fields; everything else is passed through as metadata
_AGENT_KEYS = {
	"id", "display_id", "last_heartbeat", "last_checkin", "visible", "active",
	"locked", "integrity_level", "channels",
}


class TopologyError(Exception):
	pass


class MalformedRecord(TopologyError, ValueError):
	"""A snapshot record that cannot be turned into an Agent or Link."""


def id_sort_key(value: str) -> Tuple[int, Any]:
	"""Numeric ids sort numerically and before non-numeric ones."""
	s = str(value)
	if s.isdigit():
		return (0, int(s))
	return (1, s)


def _clean_id(value: Any, what: str) -> str:
	if value is None or isinstance(value, bool):
		raise MalformedRecord(f"missing {what}")
	s = str(value).strip()
	if not s:
		raise MalformedRecord(f"missing {what}")
	return s


_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def _flag(value: Any, default: bool, what: str) -> bool:
	if value is None:
		return default
	if isinstance(value, bool):
		return value
	if isinstance(value, int) and value in (0, 1):
		return bool(value)
	if isinstance(value, str):
		text = value.strip().lower()
		if text in _TRUE:
			return True
		if text in _FALSE:
			return False
	raise MalformedRecord(f"{what}: not a boolean: {value!r}")


def _timestamp(value: Any, what: str) -> Optional[datetime]:
	try:
		return parse_timestamp(value)
	except ValueError as e:
		raise MalformedRecord(f"{what}: {e}") from None


@dataclass
class Agent:
	id: str
	display_id: str
	last_heartbeat: Optional[datetime] = None
	visible: bool = True
	locked: bool = False
	integrity_level: int = 0
	channels: List[str] = field(default_factory=list)
	metadata: Dict[str, Any] = field(default_factory=dict)  # host/user/process, opaque

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "Agent":
		if not isinstance(d, dict):
			raise MalformedRecord(f"agent record is not a mapping: {type(d).__name__}")
		aid = _clean_id(d.get("id"), "agent id")
		hb_raw = d.get("last_heartbeat", d.get("last_checkin"))
		visible = d.get("visible", d.get("active"))
		display_id = d.get("display_id")
		try:
			integrity = int(d.get("integrity_level") or 0)
		except (TypeError, ValueError, OverflowError):
			integrity = 0
		channels = d.get("channels") or []
		if not isinstance(channels, (list, tuple)):
			channels = [channels]
		return cls(
			id=aid,
			display_id=aid if display_id is None or display_id == "" else str(display_id),
			last_heartbeat=_timestamp(hb_raw, "last_heartbeat"),
			visible=_flag(visible, True, "visible"),
			locked=_flag(d.get("locked"), False, "locked"),
			integrity_level=integrity,
			channels=[str(c) for c in channels if c],
			metadata={k: v for k, v in d.items() if k not in _AGENT_KEYS},
		)

	def to_dict(self) -> Dict[str, Any]:
		d = dict(self.metadata)
		d.update({
			"id": self.id,
			"display_id": self.display_id,
			"last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
			"visible": self.visible,
			"locked": self.locked,
			"integrity_level": self.integrity_level,
			"channels": list(self.channels),
		})
		return d


@dataclass
class Link:
	source_id: str
	destination_id: str
	end_timestamp: Optional[datetime] = None
	label: Optional[str] = None
	id: Optional[str] = None

	@property
	def is_active(self) -> bool:
		return self.end_timestamp is None

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "Link":
		if not isinstance(d, dict):
			raise MalformedRecord(f"link record is not a mapping: {type(d).__name__}")
		lid = d.get("id")
		label = d.get("label")
		return cls(
			source_id=_clean_id(d.get("source_id"), "link source"),
			destination_id=_clean_id(d.get("destination_id"), "link destination"),
			end_timestamp=_timestamp(d.get("end_timestamp"), "end_timestamp"),
			label=str(label) if label else None,
			id=str(lid) if lid is not None else None,
		)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"source_id": self.source_id,
			"destination_id": self.destination_id,
			"end_timestamp": self.end_timestamp.isoformat() if self.end_timestamp else None,
			"label": self.label,
		}


def custom_node_id(value: Any) -> str:
	"""`3`, `"3"` and `"custom-3"` all name the custom node `custom-3`."""
	if isinstance(value, bool):
		raise MalformedRecord(f"not a custom node id: {value!r}")
	s = str(value).strip() if value is not None else ""
	if s.startswith(CUSTOM_PREFIX):
		s = s[len(CUSTOM_PREFIX):]
	if not s.isdigit():
		raise MalformedRecord(f"not a custom node id: {value!r}")
	return f"{CUSTOM_PREFIX}{int(s)}"


def _position(value: Any) -> Optional[Position]:
	if value is None:
		return None
	try:
		if isinstance(value, dict):
			return (float(value["x"]), float(value["y"]))
		if isinstance(value, (list, tuple)) and len(value) == 2:
			return (float(value[0]), float(value[1]))
	except (KeyError, TypeError, ValueError):
		pass
	raise MalformedRecord(f"bad position: {value!r}")


@dataclass
class CustomNode:
	"""
	Operator-drawn node for a host the platform has no agent on (an external
	system, a planned target). It has no heartbeat and so no liveness, but
	agents and other custom nodes can hang off it. Its own parent, if any, is
	kept on the node: `parent_id` is a graph id (agent id or `custom-N`).
	"""
	db_id: int
	hostname: str
	ip_address: str = ""
	operating_system: str = ""
	architecture: str = ""
	username: Optional[str] = None
	description: str = ""
	hidden: bool = False
	timestamp: Optional[datetime] = None
	position: Optional[Position] = None
	parent_id: Optional[str] = None
	c2profile: Optional[str] = None

	@property
	def id(self) -> str:
		return f"{CUSTOM_PREFIX}{self.db_id}"

	@property
	def visible(self) -> bool:
		return not self.hidden

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "CustomNode":
		if not isinstance(d, dict):
			raise MalformedRecord(f"custom node record is not a mapping: {type(d).__name__}")
		node_id = custom_node_id(d.get("id"))
		hostname = d.get("hostname")
		if not isinstance(hostname, str) or not hostname.strip():
			raise MalformedRecord("custom node is missing a hostname")
		parent_raw = d.get("parent_id")
		if parent_raw is None or parent_raw == "":
			parent = None
		elif d.get("parent_type") == "custom":
			parent = custom_node_id(parent_raw)
		else:
			parent = _clean_id(parent_raw, "custom node parent")
		return cls(
			db_id=int(node_id[len(CUSTOM_PREFIX):]),
			hostname=hostname.strip(),
			ip_address=str(d.get("ip_address") or ""),
			operating_system=str(d.get("operating_system") or ""),
			architecture=str(d.get("architecture") or ""),
			username=d.get("username") or None,
			description=str(d.get("description") or ""),
			hidden=_flag(d.get("hidden"), False, "hidden"),
			timestamp=_timestamp(d.get("timestamp"), "timestamp"),
			position=_position(d.get("position")),
			parent_id=parent,
			c2profile=d.get("c2profile") or None,
		)

	def to_dict(self) -> Dict[str, Any]:
		parent_type = None
		if self.parent_id is not None:
			parent_type = "custom" if self.parent_id.startswith(CUSTOM_PREFIX) else "callback"
		return {
			"id": self.db_id,
			"node_id": self.id,
			"hostname": self.hostname,
			"ip_address": self.ip_address,
			"operating_system": self.operating_system,
			"architecture": self.architecture,
			"username": self.username,
			"description": self.description,
			"hidden": self.hidden,
			"timestamp": self.timestamp.isoformat() if self.timestamp else None,
			"position": {"x": self.position[0], "y": self.position[1]} if self.position else None,
			"parent_id": self.parent_id,
			"parent_type": parent_type,
			"c2profile": self.c2profile,
		}

	def metadata(self) -> Dict[str, Any]:
		return {
			"host": self.hostname,
			"ip": self.ip_address,
			"os": self.operating_system,
			"architecture": self.architecture,
			"user": self.username or "N/A",
			"description": self.description,
		}


@dataclass
class Snapshot:
	"""One poll: the full agent, link and custom node lists, no ordering guarantees."""
	agents: List[Agent] = field(default_factory=list)
	links: List[Link] = field(default_factory=list)
	dropped: int = 0
	custom_nodes: List[CustomNode] = field(default_factory=list)

	@classmethod
	def from_payload(cls, payload: Dict[str, Any]) -> "Snapshot":
		"""
		Build a snapshot from wire records. Malformed records are dropped and
		counted in `dropped`; agents or custom nodes with a duplicate id keep
		the first record.
		"""
		payload = payload or {}
		agents: List[Agent] = []
		links: List[Link] = []
		custom: List[CustomNode] = []
		dropped = 0
		seen_ids = set()
		for rec in payload.get("agents") or []:
			try:
				agent = Agent.from_dict(rec)
			except MalformedRecord:
				dropped += 1
				continue
			if agent.id in seen_ids:
				dropped += 1
				continue
			seen_ids.add(agent.id)
			agents.append(agent)
		for rec in payload.get("links") or []:
			try:
				links.append(Link.from_dict(rec))
			except MalformedRecord:
				dropped += 1
		for rec in payload.get("custom_nodes") or []:
			try:
				node = CustomNode.from_dict(rec)
			except MalformedRecord:
				dropped += 1
				continue
			if node.id in seen_ids:
				dropped += 1
				continue
			seen_ids.add(node.id)
			custom.append(node)
		return cls(agents=agents, links=links, dropped=dropped, custom_nodes=custom)

	def to_payload(self) -> Dict[str, Any]:
		return {
			"agents": [a.to_dict() for a in self.agents],
			"links": [l.to_dict() for l in self.links],
			"custom_nodes": [c.to_dict() for c in self.custom_nodes],
		}


@dataclass(frozen=True)
class RenderableEdge:
	source: str
	destination: str
	label: Optional[str] = None
	is_implicit: bool = False
	active: bool = False          # heartbeat pulse, implicit edges only
	high_integrity: bool = False
	link_id: Optional[str] = None

	@property
	def id(self) -> str:
		if self.is_implicit:
			return f"{ROOT_ID}-{self.destination}"
		return f"e{self.source}-{self.destination}"

	def to_dict(self) -> Dict[str, Any]:
		d = asdict(self)
		d["id"] = self.id
		return d


@dataclass
class RenderableNode:
	id: str
	kind: NODE_KIND
	label: str
	position: Position
	display_id: Optional[str] = None
	liveness: Optional[str] = None
	is_newly_seen: bool = False
	never_checked_in: bool = False
	checkin: Optional[str] = None
	visible: bool = True
	locked: bool = False
	integrity_level: int = 0
	metadata: Dict[str, Any] = field(default_factory=dict)

	def to_dict(self) -> Dict[str, Any]:
		d = asdict(self)
		d["position"] = [float(self.position[0]), float(self.position[1])]
		return d


@dataclass
class RenderableGraph:
	nodes: List[RenderableNode] = field(default_factory=list)
	edges: FrozenSet[RenderableEdge] = frozenset()
	dropped_records: int = 0
	anomalies: int = 0
	stale: bool = False

	def node(self, node_id: str) -> Optional[RenderableNode]:
		for n in self.nodes:
			if n.id == node_id:
				return n
		return None

	@property
	def positions(self) -> Dict[str, Position]:
		return {n.id: n.position for n in self.nodes}

	def sorted_edges(self) -> List[RenderableEdge]:
		return sorted(self.edges, key=lambda e: (id_sort_key(e.source), id_sort_key(e.destination)))

	def summary(self) -> Dict[str, int]:
		agents = [n for n in self.nodes if n.kind == "agent"]
		return {
			"agents": len(agents),
			"alive": sum(1 for n in agents if n.liveness == "alive"),
			"dead": sum(1 for n in agents if n.liveness == "dead"),
			"hidden": sum(1 for n in agents if not n.visible),
			"custom": sum(1 for n in self.nodes if n.kind == "custom"),
			"links": sum(1 for e in self.edges if not e.is_implicit),
		}

	def to_dict(self) -> Dict[str, Any]:
		return {
			"nodes": [n.to_dict() for n in self.nodes],
			"edges": [e.to_dict() for e in self.sorted_edges()],
			"dropped_records": self.dropped_records,
			"anomalies": self.anomalies,
			"stale": self.stale,
			"summary": self.summary(),
		}


@dataclass
class MutationResult:
	status: Literal["success", "error"]
	error: Optional[str] = None
	link_id: Optional[str] = None
	node_id: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.status == "success"

	@classmethod
	def success(cls, link_id: Optional[str] = None, node_id: Optional[str] = None) -> "MutationResult":
		return cls(status="success", link_id=link_id, node_id=node_id)

	@classmethod
	def failure(cls, error: str) -> "MutationResult":
		return cls(status="error", error=error)

	def to_dict(self) -> Dict[str, Any]:
		return asdict(self)
