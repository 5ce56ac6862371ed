"""Provider emitters for contract and chain-config nodes."""

from typing import Dict, List
from services.compiler.emitters.registry import register_emitter, py_literal, Fragment, EmitContext
from services.compiler.emitters.triggers import placeholder_notes
from shared.constants import DEFAULT_RPC_URLS
from shared.types import Node


@register_emitter("price-feed-consumer", "ireceiver-contract")
def contract_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    out = ctx.name("out")
    chain = inputs.get("chain", "None")
    return Fragment(
        lines=[f"{out} = rt.bind_contract({py_literal(node.id)}, {py_literal(ctx.config.contract_address)}, chain={chain})"],
        outputs={"out": out},
    )


@register_emitter("contract-address")
def contract_address_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    out = ctx.name("out")
    return Fragment(
        lines=[f"{out} = rt.bind_contract({py_literal(node.id)}, {py_literal(ctx.config.address)})"],
        outputs={"out": out},
    )


@register_emitter("chain-selector")
def chain_selector_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    config = ctx.config
    rpc_url = config.rpc_override or DEFAULT_RPC_URLS.get(config.chain_selector)
    out = ctx.name("out")
    return Fragment(
        lines=[
            f"{out} = rt.select_chain({py_literal(node.id)}, {py_literal(config.chain_selector)}, "
            f"is_testnet={config.is_testnet}, rpc_url={py_literal(rpc_url)})",
        ],
        outputs={"out": out},
    )


@register_emitter("rpc-endpoint")
def rpc_endpoint_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    config = ctx.config
    out = ctx.name("out")
    return Fragment(
        lines=[
            f"{out} = rt.select_chain({py_literal(node.id)}, {py_literal(config.chain_selector_name)}, "
            f"rpc_url={py_literal(config.http_rpc_url)})",
        ],
        outputs={"out": out},
    )


@register_emitter("wallet-signer")
def wallet_signer_emitter(node: Node, inputs: Dict[str, str], ctx: EmitContext) -> Fragment:
    out = ctx.name("out")
    ref = ctx.secrets(ctx.config.env_var_name)
    if ref is None:
        unresolved: List[str] = [f"signer:{ctx.config.env_var_name}"]
        return Fragment(
            lines=placeholder_notes(unresolved) + [f"{out} = None"],
            outputs={"out": out},
            unresolved=unresolved,
        )
    return Fragment(
        lines=[f"{out} = rt.signer({py_literal(node.id)}, {py_literal(ref)})"],
        outputs={"out": out},
        secret_refs=[ref],
    )
