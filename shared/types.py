"""Shared types for the API, compiler and simulator services."""

from enum import Enum
from typing import Dict, List, Any, Optional, Literal, Union
from pydantic import BaseModel, Field
from shared.constants import DEFAULT_SOURCE_PORT, DEFAULT_TARGET_PORT


class NodeCategory(str, Enum):
    TRIGGER = "trigger"
    CAPABILITY = "capability"
    LOGIC = "logic"
    CONTRACT = "contract"
    CHAIN_CONFIG = "chain-config"


class NodeState(str, Enum):
    DRAFT = "draft"
    CONFIGURED = "configured"
    READY = "ready"
    ERROR = "error"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class SessionStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Node(BaseModel):
    id: str
    category: NodeCategory
    kind: str
    config: Dict[str, Any] = Field(default_factory=dict)
    state: NodeState = NodeState.DRAFT
    label: Optional[str] = None


class Edge(BaseModel):
    source: str
    target: str
    source_port: str = DEFAULT_SOURCE_PORT
    target_port: str = DEFAULT_TARGET_PORT


class Pipeline(BaseModel):
    id: str
    version: int = 0
    name: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)


class Diagnostic(BaseModel):
    code: str
    severity: Severity
    message: str
    node_id: Optional[str] = None
    nodes: Optional[List[str]] = None
    field: Optional[str] = None
    edge: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class GeneratedWorkflow(BaseModel):
    pipeline_id: str
    pipeline_version: int
    code: str
    warnings: List[Diagnostic] = Field(default_factory=list)
    secret_refs: List[str] = Field(default_factory=list)


class LogEvent(BaseModel):
    type: Literal["log"] = "log"
    seq: int = 0
    line: str


class GapEvent(BaseModel):
    """Marks events dropped for one slow subscriber"""
    type: Literal["gap"] = "gap"
    seq: int = 0
    missed: int


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    seq: int = 0
    success: bool
    exit_code: Optional[int] = None


SessionEvent = Union[LogEvent, GapEvent, CompleteEvent]
