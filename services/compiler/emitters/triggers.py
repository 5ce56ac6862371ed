"""Trigger emitters."""

from typing import Dict, List, Optional, Any
from services.compiler.emitters.registry import register_emitter, py_literal, Fragment, EmitContext
from shared.types import Node


def resolve_binding(inputs: Dict[str, str], port: str, configured: Optional[Any], unresolved: List[str]) -> str:
    """Wired input wins over the configured value; otherwise a None placeholder"""
    if port in inputs:
        return inputs[port]
    if configured is not None:
        return py_literal(configured)
    unresolved.append(port)
    return "None"


def placeholder_notes(unresolved: List[str]) -> List[str]:
    return [f"# unresolved binding: {name}" for name in unresolved]


@register_emitter("cron-trigger", "http-trigger")
def schedule_trigger_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    config = ctx.config.model_dump()
    return Fragment(
        lines=[
            f"{ctx.name('out')} = payload",
            f"rt.log({py_literal(f'Trigger {node.id} fired ({node.kind})')})",
        ],
        outputs={"out": ctx.name("out")},
        trigger={"node": node.id, "kind": node.kind, "config": config},
    )


@register_emitter("evm-log-trigger")
def log_trigger_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    config = ctx.config
    unresolved: List[str] = []
    chain = resolve_binding(inputs, "chain", config.chain_selector, unresolved)
    contract = resolve_binding(inputs, "contract", config.contract_address, unresolved)

    lines = placeholder_notes(unresolved)
    lines.append(f"{ctx.name('out')} = dict(payload, chain={chain}, address={contract})")
    lines.append(f"rt.log({py_literal(f'Log trigger {node.id} matched {config.event_signature}')})")
    return Fragment(
        lines=lines,
        outputs={"out": ctx.name("out")},
        unresolved=unresolved,
        trigger={"node": node.id, "kind": node.kind, "config": config.model_dump()},
    )
