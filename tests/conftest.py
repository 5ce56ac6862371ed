"""Shared pipeline fixtures."""

import pytest
from shared.types import Pipeline, Node, Edge

CONTRACT = "0x" + "1" * 40


def node(node_id, category, kind, **config):
    return Node(id=node_id, category=category, kind=kind, config=config)


def edge(source, target, source_port="out", target_port="in"):
    return Edge(source=source, target=target, source_port=source_port, target_port=target_port)


@pytest.fixture
def price_pipeline():
    """http-trigger -> http-fetch -> data-transform -> condition -> evm-write, all configured"""
    return Pipeline(
        id="price-watch",
        version=3,
        nodes=[
            node("t", "trigger", "http-trigger", sample_payload={"asset": "ETH"}),
            node("fetch", "capability", "http-fetch", url="https://api.example.com/price",
                 mock_response={"price": 2500}),
            node("transform", "logic", "data-transform", expression="data['price'] * 2"),
            node("check", "logic", "condition", expression="data > 1000"),
            node("write", "capability", "evm-write", contract_address=CONTRACT,
                 chain_selector="ethereum-testnet-sepolia"),
        ],
        edges=[
            edge("t", "fetch"),
            edge("fetch", "transform"),
            edge("transform", "check"),
            edge("check", "write"),
        ],
    )
