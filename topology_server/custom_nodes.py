# topology_server/custom_nodes.py
from fastapi import APIRouter, Depends, HTTPException

from topology import TopologyStore
from topology.models import MalformedRecord, custom_node_id

from .dependencies import get_store, raise_for_result
from .schemas import CustomNodeCreate, CustomNodeOut, CustomNodeUpdate, CustomParentUpdate, MutationOut

router = APIRouter()

@router.get("", response_model=list[CustomNodeOut])
def list_custom_nodes(store: TopologyStore = Depends(get_store)):
    return [n.to_dict() for n in store.list_custom_nodes()]

@router.post("", response_model=MutationOut)
def create_custom_node(body: CustomNodeCreate, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.create_custom_node(body.model_dump())).to_dict()

@router.get("/{node_id}", response_model=CustomNodeOut)
def get_custom_node(node_id: str, store: TopologyStore = Depends(get_store)):
    node = store.get_custom_node(node_id)
    if not node:
        raise HTTPException(status_code=404, detail="Custom node not found")
    return node.to_dict()

@router.put("/{node_id}", response_model=MutationOut)
def update_custom_node(node_id: str, body: CustomNodeUpdate, store: TopologyStore = Depends(get_store)):
    # only the fields the caller sent are changed
    return raise_for_result(store.update_custom_node(node_id, body.model_dump(exclude_unset=True))).to_dict()

@router.delete("/{node_id}", response_model=MutationOut)
def delete_custom_node(node_id: str, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.delete_custom_node(node_id)).to_dict()

@router.put("/{node_id}/parent", response_model=MutationOut)
def set_custom_parent(node_id: str, body: CustomParentUpdate, store: TopologyStore = Depends(get_store)):
    parent_id = body.parent_id
    if body.parent_type == "custom":
        try:
            parent_id = custom_node_id(parent_id)
        except MalformedRecord as e:
            raise HTTPException(status_code=422, detail=str(e))
    return raise_for_result(store.set_custom_parent(node_id, parent_id, body.label)).to_dict()

@router.delete("/{node_id}/parent", response_model=MutationOut)
def disconnect_custom_parent(node_id: str, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.disconnect_custom_parent(node_id)).to_dict()
