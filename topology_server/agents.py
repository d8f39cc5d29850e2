# topology_server/agents.py
from fastapi import APIRouter, Depends, HTTPException

from topology import TopologyStore
from topology.models import MalformedRecord

from .dependencies import get_store, raise_for_result
from .schemas import (
    AgentOut, AgentRegister, DescriptionUpdate, HeartbeatIn, LockUpdate, MutationOut,
    ParentUpdate, VisibilityUpdate,
)

router = APIRouter()

@router.get("", response_model=list[AgentOut])
def list_agents(store: TopologyStore = Depends(get_store)):
    return [a.to_dict() for a in store.list_agents()]

@router.post("", response_model=AgentOut)
def register_agent(body: AgentRegister, store: TopologyStore = Depends(get_store)):
    try:
        agent = store.register_agent(body.model_dump(exclude_none=True))
    except MalformedRecord as e:
        raise HTTPException(status_code=422, detail=str(e))
    return agent.to_dict()

@router.get("/{agent_id}", response_model=AgentOut)
def get_agent(agent_id: str, store: TopologyStore = Depends(get_store)):
    agent = store.get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent.to_dict()

@router.post("/{agent_id}/heartbeat", response_model=MutationOut)
def heartbeat(agent_id: str, body: HeartbeatIn | None = None, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.heartbeat(agent_id, body.at if body else None)).to_dict()

@router.put("/{agent_id}/visibility", response_model=MutationOut)
def set_visibility(agent_id: str, body: VisibilityUpdate, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.set_visibility(agent_id, body.visible)).to_dict()

@router.put("/{agent_id}/lock", response_model=MutationOut)
def set_locked(agent_id: str, body: LockUpdate, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.set_locked(agent_id, body.locked)).to_dict()

@router.put("/{agent_id}/description", response_model=MutationOut)
def set_description(agent_id: str, body: DescriptionUpdate, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.set_description(agent_id, body.description)).to_dict()

@router.put("/{agent_id}/parent", response_model=MutationOut)
def set_parent(agent_id: str, body: ParentUpdate, store: TopologyStore = Depends(get_store)):
    """
    Re-parent an agent: its active parent link is ended and a new one
    to body.parent_id is created.
    """
    return raise_for_result(store.set_parent(agent_id, body.parent_id, body.label)).to_dict()

@router.delete("/{agent_id}/parent", response_model=MutationOut)
def disconnect_parent(agent_id: str, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.disconnect_parent(agent_id)).to_dict()
