from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from .config import EngineConfig
from .edges import resolve_edges
from .layout import LayoutConfig, LayoutEngine
from .liveness import ALIVE, DEAD, classify, describe_checkin, parse_timestamp, utcnow
from .logutil import get_logger, span
from .models import (
	ROOT_ID, ROOT_LABEL, Agent, CustomNode, Position, RenderableGraph, RenderableNode, Snapshot, id_sort_key,
)
from .positions import PositionStore
from .presence import SeenTracker

logger = get_logger(__name__)

IncludePredicate = Callable[[Union[Agent, CustomNode]], bool]


def visible_only(node: Union[Agent, CustomNode]) -> bool:
	return node.visible


def include_all(node: Union[Agent, CustomNode]) -> bool:
	return True


def displayed_liveness(
	agent: Agent,
	first_seen: Optional[datetime],
	now: datetime,
	cfg: EngineConfig,
) -> str:
	"""
	Classifier output, except that DEAD is held back as ALIVE until
	`cfg.liveness_delay` seconds after the agent was first seen.
	"""
	state = classify(agent.last_heartbeat, now, cfg.dead_after)
	if state == DEAD and first_seen is not None:
		if (now - first_seen).total_seconds() < cfg.liveness_delay:
			return ALIVE
	return state


def _root_node() -> RenderableNode:
	return RenderableNode(id=ROOT_ID, kind="root", label=ROOT_LABEL, position=(0.0, 0.0))


def _fallback_positions(order: List[str], existing: Dict[str, Position], lcfg: LayoutConfig) -> Dict[str, Position]:
	out: Dict[str, Position] = {ROOT_ID: lcfg.root_anchor}
	fresh = [n for n in order if n not in existing]
	for n in order:
		if n in existing:
			out[n] = existing[n]
	for i, n in enumerate(fresh):
		out[n] = (lcfg.secondary_x + i * lcfg.node_width, lcfg.secondary_y)
	return out


def reconcile(
	snapshot: Snapshot,
	positions: PositionStore,
	seen: SeenTracker,
	*,
	now: Optional[datetime] = None,
	config: Optional[EngineConfig] = None,
	include: Optional[IncludePredicate] = None,
	layout_engine: Optional[LayoutEngine] = None,
) -> RenderableGraph:
	"""
	One reconciliation pass: snapshot + prior state -> renderable graph.

	Mutates `seen` (new ids) and `positions` (pruned to the current node set,
	new nodes laid out). Problems with single records or nodes are logged and
	counted; they never abort the pass.
	"""
	cfg = config or EngineConfig()
	now = parse_timestamp(now) or utcnow()
	include = include or visible_only
	layout_engine = layout_engine or LayoutEngine(LayoutConfig(mode=cfg.layout_mode))
	anomalies = 0

	agents: Dict[str, Agent] = {}
	order: List[str] = []
	for agent in snapshot.agents:
		if agent.id == ROOT_ID or agent.id in agents:
			anomalies += 1
			continue
		try:
			keep = include(agent)
		except Exception:
			logger.warning("include predicate failed", exc_info=True, extra={"agent_id": agent.id})
			anomalies += 1
			keep = agent.visible
		if keep:
			agents[agent.id] = agent
			order.append(agent.id)

	custom: Dict[str, CustomNode] = {}
	for node in snapshot.custom_nodes:
		if node.id in agents or node.id in custom:
			anomalies += 1
			continue
		try:
			keep = include(node)
		except Exception:
			logger.warning("include predicate failed", exc_info=True, extra={"node_id": node.id})
			anomalies += 1
			keep = node.visible
		if keep:
			custom[node.id] = node

	resolution = resolve_edges(
		order, snapshot.links,
		agents=agents, now=now, pulse_window=cfg.pulse_window, custom_nodes=custom.values(),
	)
	anomalies += resolution.conflicts

	built: Dict[str, RenderableNode] = {}
	for agent_id in order:
		agent = agents[agent_id]
		is_new = seen.observe(agent_id, now)
		try:
			liveness = displayed_liveness(agent, seen.first_seen_at(agent_id), now, cfg)
			checkin = describe_checkin(agent.last_heartbeat, now)
		except Exception:
			logger.warning("liveness classification failed", exc_info=True, extra={"agent_id": agent_id})
			anomalies += 1
			liveness, checkin = ALIVE, None
		built[agent_id] = RenderableNode(
			id=agent_id,
			kind="agent",
			label=f"Callback {agent.display_id}",
			position=(0.0, 0.0),
			display_id=agent.display_id,
			liveness=liveness,
			is_newly_seen=is_new,
			never_checked_in=agent.last_heartbeat is None,
			checkin=checkin,
			visible=agent.visible,
			locked=agent.locked,
			integrity_level=agent.integrity_level,
			metadata=dict(agent.metadata),
		)
	for node_id, node in custom.items():
		built[node_id] = RenderableNode(
			id=node_id,
			kind="custom",
			label=node.hostname,
			position=(0.0, 0.0),
			display_id=str(node.db_id),
			is_newly_seen=seen.observe(node_id, now),
			visible=node.visible,
			metadata=node.metadata(),
		)
	node_ids = order + sorted(custom, key=id_sort_key)

	positions.prune(node_ids)
	stored = {k: n.position for k, n in custom.items() if n.position is not None and positions.get(k) is None}
	if stored:
		positions.update(stored)
	prior = positions.snapshot()
	try:
		laid = layout_engine.layout(node_ids, resolution.edges, prior)
	except Exception:
		logger.warning("layout failed, stacking new nodes", exc_info=True)
		anomalies += 1
		laid = _fallback_positions(node_ids, prior, layout_engine.config)
	fresh = {k: v for k, v in laid.items() if k != ROOT_ID and k not in prior}
	if fresh:
		positions.update(fresh)

	root = _root_node()
	root.position = laid.get(ROOT_ID, layout_engine.config.root_anchor)
	nodes = [root]
	for node_id in sorted(order, key=id_sort_key) + node_ids[len(order):]:
		node = built[node_id]
		node.position = laid.get(node_id) or positions.get(node_id) or layout_engine.config.root_anchor
		nodes.append(node)

	return RenderableGraph(
		nodes=nodes,
		edges=resolution.edges,
		dropped_records=snapshot.dropped + resolution.dropped,
		anomalies=anomalies,
	)


class ReconciliationEngine:
	"""
	Owns the state that must survive between passes (seen ids, positions) and
	the last good graph. Passes are serialized; callers drive the schedule.
	"""
	def __init__(
		self,
		seen: Optional[SeenTracker] = None,
		positions: Optional[PositionStore] = None,
		config: Optional[EngineConfig] = None,
		layout_config: Optional[LayoutConfig] = None,
		clock: Callable[[], datetime] = utcnow,
	):
		self.seen = seen if seen is not None else SeenTracker()
		self.positions = positions if positions is not None else PositionStore()
		self.config = config or EngineConfig()
		self.layout = LayoutEngine(layout_config or LayoutConfig(mode=self.config.layout_mode))
		self.clock = clock
		self.include_hidden = False
		self._last: Optional[RenderableGraph] = None
		self._lock = threading.RLock()

	@property
	def last_graph(self) -> Optional[RenderableGraph]:
		return self._last

	@property
	def stale(self) -> bool:
		return bool(self._last and self._last.stale)

	def reconcile(
		self,
		snapshot: Snapshot,
		now: Optional[datetime] = None,
		include: Optional[IncludePredicate] = None,
	) -> RenderableGraph:
		if include is None:
			include = include_all if self.include_hidden else visible_only
		with self._lock:
			with span(
				logger, "reconcile",
				agents=len(snapshot.agents), links=len(snapshot.links), custom_nodes=len(snapshot.custom_nodes),
			):
				graph = reconcile(
					snapshot, self.positions, self.seen,
					now=now or self.clock(), config=self.config, include=include, layout_engine=self.layout,
				)
			self._last = graph
			return graph

	def reconcile_payload(self, payload: Dict[str, Any], now: Optional[datetime] = None) -> RenderableGraph:
		return self.reconcile(Snapshot.from_payload(payload), now=now)

	def mark_refresh_failed(self, error: Optional[BaseException] = None) -> Optional[RenderableGraph]:
		"""Keep the last good graph, flagged stale for a could-not-refresh indicator."""
		with self._lock:
			logger.error("snapshot refresh failed", extra={"error": str(error) if error else None})
			if self._last is not None:
				self._last = replace(self._last, stale=True)
			return self._last

	def move(self, node_id: str, x: float, y: float) -> bool:
		with self._lock:
			if node_id != ROOT_ID and self._last is not None and self._last.node(node_id) is None:
				return False
			moved = self.positions.move(node_id, x, y)
			if moved and self._last is not None:
				node = self._last.node(node_id)
				if node is not None:
					node.position = (float(x), float(y))
			return moved
