"""Logic emitters: transforms, branches, ABI coding and aggregation."""

from typing import Dict
from services.compiler.emitters.registry import register_emitter, py_literal, Fragment, EmitContext
from shared.types import Node


@register_emitter("data-transform")
def data_transform_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    out = ctx.name("out")
    return Fragment(
        lines=[
            f"{out} = rt.evaluate({py_literal(ctx.config.expression)}, {inputs.get('in', 'None')})",
            f"rt.log({py_literal(f'Transform {node.id}: ')} + repr({out}))",
        ],
        outputs={"out": out},
    )


@register_emitter("condition")
def condition_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    """Evaluates the predicate once; consumers of out/else run under its guard"""
    config = ctx.config
    result = ctx.name("result")
    data = inputs.get("in", "None")
    return Fragment(
        lines=[
            f"{result} = bool(rt.evaluate({py_literal(config.expression)}, {data}))",
            f"rt.log({py_literal(f'Condition {node.id}: ')} + "
            f"({py_literal(config.true_label)} if {result} else {py_literal(config.false_label)}))",
        ],
        outputs={"out": data, "else": data, "result": result},
        guard=result,
    )


@register_emitter("abi-encode")
def abi_encode_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    out = ctx.name("out")
    values = inputs.get("in", py_literal(ctx.config.values))
    return Fragment(
        lines=[f"{out} = rt.abi_encode({py_literal(ctx.config.types)}, {values})"],
        outputs={"out": out},
    )


@register_emitter("abi-decode")
def abi_decode_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    out = ctx.name("out")
    return Fragment(
        lines=[f"{out} = rt.abi_decode({py_literal(ctx.config.types)}, {inputs.get('in', py_literal('0x'))})"],
        outputs={"out": out},
    )


@register_emitter("consensus-aggregation")
def consensus_aggregation_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    out = ctx.name("out")
    return Fragment(
        lines=[
            f"{out} = rt.aggregate({py_literal(ctx.config.aggregation_method)}, {inputs.get('in', '[]')})",
            f"rt.log({py_literal(f'Consensus {node.id}: ')} + repr({out}))",
        ],
        outputs={"out": out},
    )
