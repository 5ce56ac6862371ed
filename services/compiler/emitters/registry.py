"""Emitter registry: maps a node kind to the function that writes its code fragment."""

from dataclasses import dataclass, field
from typing import Dict, Any, Callable, List, Optional
from pydantic import BaseModel
from shared.types import Node


@dataclass
class Fragment:
    """Code produced for one node.

    ``outputs`` maps each output port to the expression downstream fragments
    should read. ``unresolved`` names bindings the emitter replaced with a
    placeholder. ``guard`` is set by branching kinds to the boolean variable
    that gates consumers of their ``out``/``else`` ports.
    """
    lines: List[str]
    outputs: Dict[str, str] = field(default_factory=dict)
    unresolved: List[str] = field(default_factory=list)
    secret_refs: List[str] = field(default_factory=list)
    guard: Optional[str] = None
    trigger: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class EmitContext:
    config: BaseModel
    var: str
    secrets: Callable[[str], Optional[str]]

    def name(self, port: str) -> str:
        return f"{self.var}_{port}"


Emitter = Callable[[Node, Dict[str, str], EmitContext], Fragment]
_emitter_registry: Dict[str, Emitter] = {}


def register_emitter(*kinds: str):
    def decorator(func: Emitter):
        for kind in kinds:
            _emitter_registry[kind] = func
        return func
    return decorator


def get_emitter(kind: str) -> Optional[Emitter]:
    return _emitter_registry.get(kind)


def list_emitter_kinds() -> List[str]:
    return sorted(_emitter_registry.keys())


def py_literal(value: Any) -> str:
    """Renders JSON-like data as Python source with dict keys sorted"""
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ", ".join(f"{py_literal(k)}: {py_literal(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(py_literal(v) for v in value) + "]"
    if isinstance(value, float) and value != value:
        return "float('nan')"
    if isinstance(value, float) and value in (float('inf'), float('-inf')):
        return "float('inf')" if value > 0 else "-float('inf')"
    if value is None or isinstance(value, (bool, int, float, str)):
        return repr(value)
    return repr(str(value))
