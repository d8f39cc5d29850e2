from .config import EngineConfig
from .edges import EdgeResolution, resolve, resolve_edges
from .layout import LayoutConfig, LayoutEngine
from .liveness import ALIVE, DEAD, classify, describe_checkin
from .models import (
	ROOT_ID, Agent, CustomNode, Link, MalformedRecord, MutationResult, RenderableEdge, RenderableGraph,
	RenderableNode, Snapshot, TopologyError,
)
from .positions import PositionStore
from .presence import SeenTracker
from .reconcile import ReconciliationEngine, reconcile
from .store import TopologyStore

__all__ = [
	"ALIVE", "DEAD", "ROOT_ID",
	"Agent", "CustomNode", "Link", "Snapshot", "RenderableNode", "RenderableEdge", "RenderableGraph",
	"MutationResult", "TopologyError", "MalformedRecord",
	"EngineConfig", "LayoutConfig", "LayoutEngine", "EdgeResolution",
	"PositionStore", "SeenTracker", "ReconciliationEngine", "TopologyStore",
	"classify", "describe_checkin", "resolve", "resolve_edges", "reconcile",
]
