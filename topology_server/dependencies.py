# topology_server/dependencies.py
from fastapi import HTTPException

from topology import EngineConfig, PositionStore, ReconciliationEngine, TopologyStore
from topology.models import MutationResult

_store = TopologyStore()
_engine = ReconciliationEngine(positions=PositionStore.from_env(), config=EngineConfig.from_env())

def get_store() -> TopologyStore:
    return _store

def get_engine() -> ReconciliationEngine:
    """Server-side graph view backing GET /graph."""
    return _engine

def raise_for_result(result: MutationResult) -> MutationResult:
    if result.ok:
        return result
    err = result.error or "Mutation failed"
    status = 404 if "not found" in err.lower() else 400
    raise HTTPException(status_code=status, detail=err)
