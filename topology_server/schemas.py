from pydantic import BaseModel, ConfigDict
from typing import Optional, List

class AgentRegister(BaseModel):
    # host/user/process fields pass straight through to the agent metadata
    model_config = ConfigDict(extra="allow")

    id: str
    display_id: Optional[str] = None
    last_heartbeat: Optional[str] = None
    visible: bool = True
    locked: bool = False
    integrity_level: int = 0
    channels: List[str] = []

class AgentOut(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    display_id: str
    last_heartbeat: Optional[str] = None
    visible: bool = True
    locked: bool = False
    integrity_level: int = 0
    channels: List[str] = []

class LinkOut(BaseModel):
    id: Optional[str] = None
    source_id: str
    destination_id: str
    end_timestamp: Optional[str] = None
    label: Optional[str] = None

class CustomNodeOut(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    node_id: str
    hostname: str
    parent_id: Optional[str] = None
    parent_type: Optional[str] = None
    hidden: bool = False

class SnapshotOut(BaseModel):
    agents: List[AgentOut]
    links: List[LinkOut]
    custom_nodes: List[CustomNodeOut] = []

class LinkCreate(BaseModel):
    source_id: str
    destination_id: str
    label: Optional[str] = None

class HeartbeatIn(BaseModel):
    at: Optional[str] = None

class VisibilityUpdate(BaseModel):
    visible: bool

class LockUpdate(BaseModel):
    locked: bool

class DescriptionUpdate(BaseModel):
    description: str

class ParentUpdate(BaseModel):
    parent_id: str
    label: Optional[str] = None

class Position(BaseModel):
    x: float
    y: float

class CustomNodeCreate(BaseModel):
    hostname: str
    ip_address: str = ""
    operating_system: str = ""
    architecture: str = ""
    username: Optional[str] = None
    description: str = ""
    hidden: bool = False
    position: Optional[Position] = None
    # "callback" (an agent id) or "custom" (a custom node id)
    parent_id: Optional[str] = None
    parent_type: Optional[str] = None
    c2profile: Optional[str] = None

class CustomNodeUpdate(BaseModel):
    hostname: Optional[str] = None
    ip_address: Optional[str] = None
    operating_system: Optional[str] = None
    architecture: Optional[str] = None
    username: Optional[str] = None
    description: Optional[str] = None
    hidden: Optional[bool] = None
    position: Optional[Position] = None

class CustomParentUpdate(BaseModel):
    parent_id: str
    parent_type: Optional[str] = None
    label: Optional[str] = None

class MutationOut(BaseModel):
    status: str
    error: Optional[str] = None
    link_id: Optional[str] = None
    node_id: Optional[str] = None
