from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set

from .models import ROOT_ID, Position, RenderableEdge, id_sort_key

LAYOUT_MODES = ("stack", "tree")


@dataclass
class LayoutConfig:
	root_anchor: Position = (400.0, 50.0)
	level1_y: float = 300.0
	node_width: float = 250.0
	# stacking band for anything not hanging directly off the root
	secondary_x: float = 100.0
	secondary_y: float = 500.0
	# tree mode: vertical gap between depths >= 2
	level_gap: float = 200.0
	mode: str = "stack"


class LayoutEngine:
	"""
	Assigns coordinates to nodes that do not have one yet. Nodes already in
	`existing` are never moved.

	Depth-1 nodes (children of the root) sit on a band under the root, sorted
	by id and centered on the root's x. Deeper nodes are either stacked on a
	secondary band in observation order ("stack") or placed under their parent
	("tree"); nodes the tree walk cannot reach fall back to the stack band.
	"""
	def __init__(self, config: Optional[LayoutConfig] = None):
		self.config = config or LayoutConfig()
		if self.config.mode not in LAYOUT_MODES:
			raise ValueError(f"unknown layout mode: {self.config.mode!r}")

	def layout(
		self,
		nodes: Iterable[str],
		edges: Iterable[RenderableEdge],
		existing: Optional[Mapping[str, Position]] = None,
	) -> Dict[str, Position]:
		cfg = self.config
		existing = existing or {}
		order: List[str] = []
		placed: Set[str] = {ROOT_ID}
		for n in nodes:
			if n not in placed:
				placed.add(n)
				order.append(n)
		edges = list(edges)

		computed: Dict[str, Position] = {ROOT_ID: cfg.root_anchor}

		level1: Set[str] = set()
		for e in edges:
			if e.source == ROOT_ID:
				level1.add(e.destination)
			elif e.destination == ROOT_ID:
				level1.add(e.source)
		level1_nodes = sorted((n for n in order if n in level1), key=id_sort_key)

		root_x = cfg.root_anchor[0]
		start_x = root_x - (len(level1_nodes) * cfg.node_width) / 2 + cfg.node_width / 2
		for i, n in enumerate(level1_nodes):
			computed[n] = (start_x + i * cfg.node_width, cfg.level1_y)

		deeper = [n for n in order if n not in level1]
		if cfg.mode == "tree":
			deeper = self._tree(deeper, edges, computed, existing)
		for i, n in enumerate(deeper):
			computed[n] = (cfg.secondary_x + i * cfg.node_width, cfg.secondary_y)

		merged: Dict[str, Position] = {}
		for n in [ROOT_ID] + order:
			if n != ROOT_ID and n in existing:
				merged[n] = existing[n]
			else:
				merged[n] = computed[n]
		return merged

	def _tree(
		self,
		deeper: List[str],
		edges: List[RenderableEdge],
		computed: Dict[str, Position],
		existing: Mapping[str, Position],
	) -> List[str]:
		"""
		Place reachable deep nodes under their parent and return what is left
		for the stack band. Parentless nodes (floating custom nodes) head that
		list and their subtrees hang under them.
		"""
		cfg = self.config
		pending = set(deeper)
		children: Dict[str, List[str]] = {}
		parented: Set[str] = set()
		for e in edges:
			# explicit edges run child -> parent
			if not e.is_implicit:
				parented.add(e.source)
				if e.source in pending:
					children.setdefault(e.destination, []).append(e.source)

		frontier = [n for n in computed if n != ROOT_ID]
		self._descend(frontier, cfg.level1_y, children, pending, computed, existing)

		heads = [n for n in deeper if n in pending and n not in parented]
		for i, n in enumerate(heads):
			computed[n] = (cfg.secondary_x + i * cfg.node_width, cfg.secondary_y)
			pending.discard(n)
		self._descend(heads, cfg.secondary_y, children, pending, computed, existing)

		return heads + [n for n in deeper if n in pending]

	def _descend(
		self,
		frontier: List[str],
		base_y: float,
		children: Mapping[str, List[str]],
		pending: Set[str],
		computed: Dict[str, Position],
		existing: Mapping[str, Position],
	) -> None:
		cfg = self.config
		y = base_y
		while frontier and pending:
			y += cfg.level_gap
			nxt: List[str] = []
			for parent in sorted(frontier, key=id_sort_key):
				kids = sorted((k for k in children.get(parent, []) if k in pending), key=id_sort_key)
				if not kids:
					continue
				px = (existing.get(parent) or computed[parent])[0]
				start_x = px - (len(kids) * cfg.node_width) / 2 + cfg.node_width / 2
				for i, k in enumerate(kids):
					computed[k] = (start_x + i * cfg.node_width, y)
					pending.discard(k)
					nxt.append(k)
			frontier = nxt


def layout(
	nodes: Iterable[str],
	edges: Iterable[RenderableEdge],
	existing: Optional[Mapping[str, Position]] = None,
	config: Optional[LayoutConfig] = None,
) -> Dict[str, Position]:
	return LayoutEngine(config).layout(nodes, edges, existing)
