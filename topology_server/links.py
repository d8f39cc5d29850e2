# topology_server/links.py
from fastapi import APIRouter, Depends

from topology import TopologyStore

from .dependencies import get_store, raise_for_result
from .schemas import LinkCreate, LinkOut, MutationOut

router = APIRouter()

@router.get("", response_model=list[LinkOut])
def list_links(store: TopologyStore = Depends(get_store)):
    return [l.to_dict() for l in store.list_links()]

@router.post("", response_model=MutationOut)
def create_link(body: LinkCreate, store: TopologyStore = Depends(get_store)):
    return raise_for_result(store.create_link(body.source_id, body.destination_id, body.label)).to_dict()

@router.delete("/{link_id}", response_model=MutationOut)
def end_link(link_id: str, store: TopologyStore = Depends(get_store)):
    # ending an already-ended link succeeds, so clients may retry freely
    return raise_for_result(store.end_link(link_id)).to_dict()
