"""
Unit tests for code generation.
"""

import pytest
from unittest.mock import Mock
from services.compiler.emitters.registry import list_emitter_kinds
from services.compiler.generator import CodeGenerator
from services.compiler.schemas import KIND_CATALOG
from shared.exceptions import CompileError, WorkflowError
from shared.types import Pipeline, Node, Edge

CONTRACT = "0x" + "3" * 40


def make_pipeline(nodes, edges, version=1):
    return Pipeline(
        id="p1",
        version=version,
        nodes=[Node(id=i, category=c, kind=k, config=cfg) for i, c, k, cfg in nodes],
        edges=[Edge(**e) for e in edges],
    )


def write_node(node_id="w", **config):
    config.setdefault("contract_address", CONTRACT)
    config.setdefault("chain_selector", "ethereum-testnet-sepolia")
    return (node_id, "capability", "evm-write", config)


def test_compiles_price_pipeline_in_order(price_pipeline):
    workflow = CodeGenerator().compile(price_pipeline)

    assert workflow.pipeline_id == "price-watch"
    assert workflow.pipeline_version == 3
    assert workflow.warnings == []

    headers = [line.strip() for line in workflow.code.splitlines() if line.strip().startswith("# node ")]
    assert headers == [
        "# node 't' (http-trigger)",
        "# node 'fetch' (http-fetch)",
        "# node 'transform' (data-transform)",
        "# node 'check' (condition)",
        "# node 'write' (evm-write)",
    ]


def test_generated_code_is_valid_python(price_pipeline):
    code = CodeGenerator().compile(price_pipeline).code

    compile(code, "workflow.py", "exec")
    assert code.endswith("\n")
    assert 'if __name__ == "__main__":' in code


def test_same_version_compiles_byte_identical(price_pipeline):
    first = CodeGenerator().compile(price_pipeline).code
    second = CodeGenerator().compile(price_pipeline.model_copy(deep=True)).code

    assert first == second


def test_outputs_referenced_only_after_definition(price_pipeline):
    """Every variable a fragment reads was assigned earlier in the handler"""
    code = CodeGenerator().compile(price_pipeline).code
    handler = code.split("def on_t(rt, payload):")[1].split("TRIGGERS = [")[0]

    for producer in ("t_out", "fetch_out", "transform_out", "check_result"):
        defined = handler.index(f"{producer} = ")
        position = handler.find(producer)
        while position != -1:
            assert position >= defined
            position = handler.find(producer, position + 1)


def test_condition_guards_downstream_fragments(price_pipeline):
    code = CodeGenerator().compile(price_pipeline).code

    assert "    check_result = bool(rt.evaluate('data > 1000', transform_out))" in code
    assert "    if check_result:\n        write_out = rt.evm_write(" in code


def test_else_branch_guard_and_nested_guards():
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("c1", "logic", "condition", {"expression": "data"}),
            ("c2", "logic", "condition", {"expression": "data"}),
            write_node(),
        ],
        [
            {"source": "t", "target": "c1"},
            {"source": "c1", "target": "c2", "source_port": "else"},
            {"source": "c2", "target": "w"},
        ],
    )

    code = CodeGenerator().compile(pipeline).code

    assert "    if not c1_result:\n        c2_result = " in code
    assert "    if not c1_result and c2_result:\n        w_out = rt.evm_write(" in code


def test_contradictory_guards_drop_fragment():
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("c", "logic", "condition", {"expression": "data"}),
            write_node(),
        ],
        [
            {"source": "t", "target": "c"},
            {"source": "c", "target": "w", "source_port": "out"},
            {"source": "c", "target": "w", "source_port": "else", "target_port": "data"},
        ],
    )

    workflow = CodeGenerator().compile(pipeline)

    assert [(w.code, w.node_id) for w in workflow.warnings] == [("unreachable-branch", "w")]
    handler = workflow.code.split("def on_t(rt, payload):")[1].split("TRIGGERS = [")[0]
    assert "rt.evm_write(" not in handler


def test_unresolved_binding_off_critical_path_is_a_warning():
    pipeline = make_pipeline(
        [
            ("t", "trigger", "cron-trigger", {"schedule": "0 * * * *"}),
            ("r", "capability", "evm-read", {"function_signature": "latestAnswer()"}),
        ],
        [{"source": "t", "target": "r"}],
    )

    workflow = CodeGenerator().compile(pipeline)

    assert [(w.code, w.node_id, w.field) for w in workflow.warnings] == [
        ("unresolved-binding", "r", "chain"),
        ("unresolved-binding", "r", "contract"),
    ]
    assert "# unresolved binding: chain" in workflow.code
    compile(workflow.code, "workflow.py", "exec")


def test_unresolved_binding_on_critical_path_fails():
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("w", "capability", "evm-write", {"chain_selector": "ethereum-mainnet"}),
        ],
        [{"source": "t", "target": "w"}],
    )

    with pytest.raises(CompileError, match="contract"):
        CodeGenerator().compile(pipeline)


def test_wired_providers_emitted_before_consumer():
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("w", "capability", "evm-write", {}),
            ("addr", "contract", "contract-address", {"address": CONTRACT}),
            ("net", "chain-config", "chain-selector", {"chain_selector": "base-mainnet", "is_testnet": False}),
        ],
        [
            {"source": "t", "target": "w"},
            {"source": "addr", "target": "w", "target_port": "contract"},
            {"source": "net", "target": "w", "target_port": "chain"},
        ],
    )

    workflow = CodeGenerator().compile(pipeline)
    code = workflow.code

    assert workflow.warnings == []
    assert code.index("addr_out = rt.bind_contract(") < code.index("w_out = rt.evm_write(")
    assert code.index("net_out = rt.select_chain(") < code.index("w_out = rt.evm_write(")
    assert "        chain=net_out," in code
    assert "        contract=addr_out," in code
    assert "'https://base-rpc.publicnode.com'" in code


def test_secret_refs_come_from_resolver():
    resolver = Mock()
    resolver.resolve.return_value = "vault/api-key"
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("key", "capability", "secrets-access", {"secret_name": "API_KEY"}),
            ("f", "capability", "http-fetch", {"url": "https://api.example.com"}),
        ],
        [
            {"source": "t", "target": "f"},
            {"source": "key", "target": "f", "target_port": "auth"},
        ],
    )

    workflow = CodeGenerator(secret_resolver=resolver).compile(pipeline)

    resolver.resolve.assert_called_once_with("API_KEY")
    assert workflow.secret_refs == ["vault/api-key"]
    assert "key_out = rt.get_secret('vault/api-key')" in workflow.code
    assert "        auth=key_out," in workflow.code


def test_missing_secret_is_unresolved_binding():
    resolver = Mock()
    resolver.resolve.return_value = None
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("key", "capability", "secrets-access", {"secret_name": "API_KEY"}),
            ("f", "capability", "http-fetch", {"url": "https://api.example.com"}),
        ],
        [
            {"source": "t", "target": "f"},
            {"source": "key", "target": "f", "target_port": "auth"},
        ],
    )

    workflow = CodeGenerator(secret_resolver=resolver).compile(pipeline)

    assert [(w.code, w.field) for w in workflow.warnings] == [("unresolved-binding", "secret:API_KEY")]
    assert workflow.secret_refs == []


def test_one_handler_per_trigger():
    pipeline = make_pipeline(
        [
            ("b-cron", "trigger", "cron-trigger", {"schedule": "*/5 * * * *"}),
            ("a-http", "trigger", "http-trigger", {"method": "POST"}),
            ("x", "logic", "data-transform", {"expression": "data"}),
        ],
        [{"source": "a-http", "target": "x"}],
    )

    code = CodeGenerator().compile(pipeline).code

    assert code.index("def on_a_http(rt, payload):") < code.index("def on_b_cron(rt, payload):")
    assert '"handler": on_a_http}' in code
    assert '"handler": on_b_cron}' in code


def test_unsupported_kind_fails():
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("q", "logic", "quantum-oracle", {}),
        ],
        [{"source": "t", "target": "q"}],
    )

    with pytest.raises(CompileError, match="unsupported kind"):
        CodeGenerator().compile(pipeline)


def test_pipeline_without_trigger_fails():
    pipeline = make_pipeline([("x", "logic", "data-transform", {"expression": "data"})], [])

    with pytest.raises(CompileError, match="no trigger"):
        CodeGenerator().compile(pipeline)


def test_every_catalog_kind_has_an_emitter():
    assert list_emitter_kinds() == sorted(KIND_CATALOG)


def test_unknown_config_key_does_not_block_compilation(price_pipeline):
    fetch = price_pipeline.nodes[1]
    fetch.config["note"] = "hi"

    workflow = CodeGenerator().compile(price_pipeline)

    assert workflow.warnings == []
    assert "'note'" not in workflow.code
    assert "fetch_out = rt.http_fetch(" in workflow.code


def test_unreachable_secret_service_is_unresolved_binding():
    resolver = Mock()
    resolver.resolve.side_effect = WorkflowError("Secret service unavailable", secret_name="API_KEY")
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("key", "capability", "secrets-access", {"secret_name": "API_KEY"}),
            ("f", "capability", "http-fetch", {"url": "https://api.example.com"}),
        ],
        [
            {"source": "t", "target": "f"},
            {"source": "key", "target": "f", "target_port": "auth"},
        ],
    )

    workflow = CodeGenerator(secret_resolver=resolver).compile(pipeline)

    assert [(w.code, w.field) for w in workflow.warnings] == [("unresolved-binding", "secret:API_KEY")]
    assert workflow.secret_refs == []


def test_input_from_another_trigger_is_unresolved_binding():
    pipeline = make_pipeline(
        [
            ("t1", "trigger", "http-trigger", {"method": "POST"}),
            ("t2", "trigger", "cron-trigger", {"schedule": "0 * * * *"}),
            ("key", "capability", "secrets-access", {"secret_name": "API_KEY"}),
            ("f", "capability", "http-fetch", {"url": "https://api.example.com"}),
        ],
        [
            {"source": "t1", "target": "f"},
            {"source": "t2", "target": "key"},
            {"source": "key", "target": "f", "target_port": "auth"},
        ],
    )

    workflow = CodeGenerator().compile(pipeline)

    assert [(w.code, w.node_id, w.field) for w in workflow.warnings] == [
        ("unresolved-binding", "f", "auth"),
        ("unresolved-binding", "f", "in"),
    ]
    assert "which trigger t1 does not run" in workflow.warnings[0].message
    compile(workflow.code, "workflow.py", "exec")


def test_downstream_of_dropped_node_names_its_cause():
    pipeline = make_pipeline(
        [
            ("t", "trigger", "http-trigger", {"method": "POST"}),
            ("c", "logic", "condition", {"expression": "data"}),
            ("x", "logic", "data-transform", {"expression": "data"}),
            ("y", "logic", "data-transform", {"expression": "data"}),
        ],
        [
            {"source": "t", "target": "c"},
            {"source": "c", "target": "x", "source_port": "out"},
            {"source": "c", "target": "x", "source_port": "else", "target_port": "extra"},
            {"source": "x", "target": "y"},
        ],
    )

    warnings = CodeGenerator().compile(pipeline).warnings

    assert [(w.code, w.node_id) for w in warnings] == [("unreachable-branch", "x"), ("unreachable-branch", "y")]
    assert "both branches" in warnings[0].message
    assert warnings[1].message == "Node y depends on unreachable node x and never runs"
