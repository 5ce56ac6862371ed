"""Capability emitters: network fetches, contract reads/writes, secrets, node mode."""

from typing import Dict, List
from services.compiler.emitters.registry import register_emitter, py_literal, Fragment, EmitContext
from services.compiler.emitters.triggers import resolve_binding, placeholder_notes
from shared.types import Node


@register_emitter("http-fetch")
def http_fetch_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    config = ctx.config
    out = ctx.name("out")
    return Fragment(
        lines=[
            f"{out} = rt.http_fetch(",
            f"    {py_literal(node.id)},",
            f"    url={py_literal(config.url)},",
            f"    method={py_literal(config.method)},",
            f"    headers={py_literal(config.headers)},",
            f"    body={py_literal(config.body)},",
            f"    timeout={config.timeout},",
            f"    mock_response={py_literal(config.mock_response)},",
            f"    auth={inputs.get('auth', 'None')},",
            f"    data={inputs.get('in', 'None')},",
            ")",
        ],
        outputs={"out": out},
    )


@register_emitter("evm-read")
def evm_read_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    config = ctx.config
    unresolved: List[str] = []
    chain = resolve_binding(inputs, "chain", config.chain_selector, unresolved)
    contract = resolve_binding(inputs, "contract", config.contract_address, unresolved)
    out = ctx.name("out")

    lines = placeholder_notes(unresolved) + [
        f"{out} = rt.evm_read(",
        f"    {py_literal(node.id)},",
        f"    chain={chain},",
        f"    contract={contract},",
        f"    function={py_literal(config.function_signature)},",
        f"    args={py_literal(config.args)},",
        f"    data={inputs.get('in', 'None')},",
        ")",
    ]
    return Fragment(lines=lines, outputs={"out": out}, unresolved=unresolved)


@register_emitter("evm-write")
def evm_write_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    config = ctx.config
    unresolved: List[str] = []
    chain = resolve_binding(inputs, "chain", config.chain_selector, unresolved)
    contract = resolve_binding(inputs, "contract", config.contract_address, unresolved)
    out = ctx.name("out")

    lines = placeholder_notes(unresolved) + [
        f"{out} = rt.evm_write(",
        f"    {py_literal(node.id)},",
        f"    chain={chain},",
        f"    contract={contract},",
        f"    gas_limit={config.gas_limit},",
        f"    data={inputs.get('data', 'None')},",
        f"    value={inputs.get('value', 'None')},",
        f"    signer={inputs.get('signer', 'None')},",
        f"    payload={inputs.get('in', 'None')},",
        ")",
    ]
    return Fragment(lines=lines, outputs={"out": out}, unresolved=unresolved)


@register_emitter("secrets-access")
def secrets_access_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    name = ctx.config.secret_name
    out = ctx.name("out")
    ref = ctx.secrets(name)
    if ref is None:
        binding = f"secret:{name}"
        return Fragment(
            lines=placeholder_notes([binding]) + [f"{out} = None"],
            outputs={"out": out},
            unresolved=[binding],
        )
    return Fragment(
        lines=[f"{out} = rt.get_secret({py_literal(ref)})"],
        outputs={"out": out},
        secret_refs=[ref],
    )


@register_emitter("node-mode")
def node_mode_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    out = ctx.name("out")
    return Fragment(
        lines=[
            f"{out} = rt.run_in_node_mode({py_literal(node.id)}, "
            f"{py_literal(ctx.config.aggregation_method)}, {inputs.get('in', 'None')})",
        ],
        outputs={"out": out},
    )
