# topology_server/graph.py
from fastapi import APIRouter, Depends

from topology import ReconciliationEngine, TopologyStore
from topology.reconcile import include_all, visible_only

from .dependencies import get_engine, get_store
from .schemas import SnapshotOut

router = APIRouter()

@router.get("/snapshot", response_model=SnapshotOut)
def get_snapshot(store: TopologyStore = Depends(get_store)):
    return store.snapshot_payload()

@router.get("/graph")
def get_graph(include_hidden: bool = False,
              store: TopologyStore = Depends(get_store),
              engine: ReconciliationEngine = Depends(get_engine)):
    graph = engine.reconcile(store.snapshot(), include=include_all if include_hidden else visible_only)
    return graph.to_dict()
