from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Union

from .liveness import PULSE_WINDOW, is_recent
from .logutil import get_logger
from .models import (
	DEFAULT_LINK_LABEL, ROOT_ID, Agent, CustomNode, Link, MalformedRecord, RenderableEdge, id_sort_key,
)

logger = get_logger(__name__)

LinkLike = Union[Link, Dict[str, Any]]


@dataclass
class EdgeResolution:
	edges: FrozenSet[RenderableEdge] = frozenset()
	parents: Dict[str, str] = field(default_factory=dict)  # child id -> parent id (root included)
	dropped: int = 0
	conflicts: int = 0


def _as_link(raw: LinkLike) -> Link:
	if isinstance(raw, Link):
		if not raw.source_id or not raw.destination_id:
			raise MalformedRecord("link is missing an endpoint")
		return raw
	return Link.from_dict(raw)


def _implicit_label(agent: Optional[Agent]) -> Optional[str]:
	if agent is None or not agent.channels:
		return None
	return ", ".join(agent.channels)


def _pulse(agent: Optional[Agent], now: Optional[datetime], window: float) -> bool:
	if agent is None or now is None:
		return False
	try:
		return is_recent(agent.last_heartbeat, now, window)
	except (TypeError, ValueError):
		return False


def resolve_edges(
	agent_ids: Iterable[str],
	raw_links: Iterable[LinkLike],
	*,
	agents: Optional[Mapping[str, Agent]] = None,
	now: Optional[datetime] = None,
	pulse_window: float = PULSE_WINDOW,
	custom_nodes: Iterable[CustomNode] = (),
) -> EdgeResolution:
	"""
	Compute the drawn edge set: active explicit links between present agents
	(child -> parent, one per child) plus a root -> agent edge for every agent
	without an explicit parent.

	Custom nodes take part as link endpoints and bring their own parent
	(`parent_id`) as an explicit link, but never get a root edge: a custom
	node without a parent floats.

	Malformed links and self-loops are dropped and counted. A child with more
	than one active link keeps the one with the lowest destination id.
	"""
	agent_set: Set[str] = {str(a) for a in agent_ids}
	agent_set.discard(ROOT_ID)
	custom_nodes = list(custom_nodes)
	ids = agent_set | {c.id for c in custom_nodes}
	ids.discard(ROOT_ID)
	agents = agents or {}
	res = EdgeResolution()

	custom_links = [
		Link(source_id=c.id, destination_id=c.parent_id, label=c.c2profile)
		for c in custom_nodes if c.parent_id
	]

	by_source: Dict[str, List[Link]] = {}
	for raw in [*raw_links, *custom_links]:
		try:
			link = _as_link(raw)
		except MalformedRecord:
			res.dropped += 1
			continue
		if not link.is_active:
			continue
		if link.source_id not in ids or link.destination_id not in ids:
			continue
		if link.source_id == link.destination_id:
			res.dropped += 1
			continue
		by_source.setdefault(link.source_id, []).append(link)

	kept: List[Link] = []
	for source_id, candidates in by_source.items():
		candidates.sort(key=lambda l: (id_sort_key(l.destination_id), id_sort_key(l.id or "")))
		if len(candidates) > 1:
			res.conflicts += 1
			logger.warning(
				"agent has multiple active parent links, keeping lowest destination",
				extra={"agent_id": source_id, "candidates": [l.destination_id for l in candidates]},
			)
		kept.append(candidates[0])

	edges: Set[RenderableEdge] = set()
	for link in kept:
		edges.add(RenderableEdge(
			source=link.source_id,
			destination=link.destination_id,
			label=link.label or DEFAULT_LINK_LABEL,
			is_implicit=False,
			link_id=link.id,
		))
		res.parents[link.source_id] = link.destination_id

	for agent_id in agent_set:
		if agent_id in res.parents:
			continue
		agent = agents.get(agent_id)
		edges.add(RenderableEdge(
			source=ROOT_ID,
			destination=agent_id,
			label=_implicit_label(agent),
			is_implicit=True,
			active=_pulse(agent, now, pulse_window),
			high_integrity=bool(agent and agent.integrity_level > 2),
		))
		res.parents[agent_id] = ROOT_ID

	res.edges = frozenset(e for e in edges if e.source != e.destination and e.destination != ROOT_ID)
	if res.dropped:
		logger.warning("dropped malformed or self-referencing links", extra={"count": res.dropped})
	return res


def resolve(agent_ids: Iterable[str], raw_links: Iterable[LinkLike]) -> FrozenSet[RenderableEdge]:
	return resolve_edges(agent_ids, raw_links).edges
