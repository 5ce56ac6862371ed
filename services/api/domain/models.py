"""API request/response models."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from shared.types import Edge, Node, Diagnostic


class StorePipelineRequest(BaseModel):
    """Request body for saving a pipeline definition"""
    name: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)


class ValidateResponse(BaseModel):
    pipeline_id: str
    pipeline_version: int
    valid: bool
    diagnostics: List[Dict[str, Any]]


class CompileResponse(BaseModel):
    pipeline_id: str
    pipeline_version: int
    code: str
    warnings: List[Dict[str, Any]]
    secret_refs: List[str] = Field(default_factory=list)

    @classmethod
    def from_warnings(cls, pipeline_id: str, pipeline_version: int, code: str,
                      warnings: List[Diagnostic], secret_refs: List[str]) -> "CompileResponse":
        return cls(
            pipeline_id=pipeline_id,
            pipeline_version=pipeline_version,
            code=code,
            warnings=[w.to_dict() for w in warnings],
            secret_refs=secret_refs,
        )


class SimulateRequest(BaseModel):
    """Optional secret values made available to the run as environment variables"""
    secrets: Optional[Dict[str, str]] = None


class SimulateResponse(BaseModel):
    session_id: str


class StopResponse(BaseModel):
    acknowledged: bool = True


class SessionResponse(BaseModel):
    session_id: str
    pipeline_id: str
    status: str
    exit_code: Optional[int] = None
    logs: List[str] = Field(default_factory=list)
