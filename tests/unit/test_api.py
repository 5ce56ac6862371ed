"""
Unit tests for the HTTP and WebSocket API with Redis and the runner mocked out.
"""

import pytest
from unittest.mock import Mock, patch
from fastapi.testclient import TestClient
from services.api.main import app
from services.simulator.log_channel import LogChannel
from shared.exceptions import ConflictError, NotFoundError
from shared.types import Pipeline, NodeState, LogEvent, CompleteEvent


@pytest.fixture
def store():
    with patch("services.api.routes.pipeline.redis_store") as pipeline_store, \
            patch("services.api.routes.simulation.redis_store", pipeline_store):
        yield pipeline_store


@pytest.fixture
def runner():
    mock_runner = Mock()
    with patch("services.api.routes.pipeline.runner", mock_runner), \
            patch("services.api.routes.simulation.runner", mock_runner):
        yield mock_runner


@pytest.fixture
def client():
    return TestClient(app)


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_store_pipeline_derives_node_states(client, store):
    store.get_pipeline.return_value = Pipeline(id="p1", version=1, nodes=[
        {"id": "f", "category": "capability", "kind": "http-fetch",
         "config": {"url": "https://example.com"}, "state": "ready"},
    ])
    store.store_pipeline.side_effect = lambda pid, name, nodes, edges: Pipeline(
        id=pid, version=2, name=name, nodes=nodes, edges=edges)

    response = client.put("/pipelines/p1", json={
        "name": "demo",
        "nodes": [
            {"id": "t", "category": "trigger", "kind": "http-trigger", "config": {}},
            {"id": "f", "category": "capability", "kind": "http-fetch", "config": {"method": "GET"}},
            {"id": "x", "category": "logic", "kind": "data-transform", "config": {"expression": "data"}},
        ],
        "edges": [{"source": "t", "target": "f"}, {"source": "f", "target": "x"}],
    })

    assert response.status_code == 200
    body = response.json()
    assert body["version"] == 2
    assert {n["id"]: n["state"] for n in body["nodes"]} == {
        "t": NodeState.DRAFT.value,
        "f": NodeState.ERROR.value,
        "x": NodeState.READY.value,
    }


def test_get_unknown_pipeline(client, store):
    store.get_pipeline.return_value = None

    assert client.get("/pipelines/nope").status_code == 404
    assert client.post("/pipelines/nope/compile").status_code == 404


def test_compile_returns_code_and_warnings(client, store, price_pipeline):
    store.get_pipeline.return_value = price_pipeline

    response = client.post("/pipelines/price-watch/compile")

    assert response.status_code == 200
    body = response.json()
    assert body["pipeline_id"] == "price-watch"
    assert body["pipeline_version"] == 3
    assert body["warnings"] == []
    assert "def on_t(rt, payload):" in body["code"]


def test_compile_reports_all_diagnostics(client, store):
    store.get_pipeline.return_value = Pipeline(id="p1", nodes=[
        {"id": "trigger", "category": "trigger", "kind": "http-trigger", "config": {}},
        {"id": "A", "category": "logic", "kind": "data-transform", "config": {"expression": "data"}},
        {"id": "B", "category": "logic", "kind": "data-transform", "config": {"expression": "data"}},
    ], edges=[
        {"source": "trigger", "target": "A"},
        {"source": "A", "target": "B"},
        {"source": "B", "target": "trigger"},
    ])

    response = client.post("/pipelines/p1/compile")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "ValidationFailed"
    assert detail["diagnostics"][0]["code"] == "cycle-detected"
    assert detail["diagnostics"][0]["nodes"] == ["trigger", "A", "B"]


def test_compile_error_is_unprocessable(client, store):
    store.get_pipeline.return_value = Pipeline(id="p1", nodes=[
        {"id": "t", "category": "trigger", "kind": "http-trigger", "config": {"method": "POST"}},
        {"id": "w", "category": "capability", "kind": "evm-write", "config": {"chain_selector": "ethereum-mainnet"}},
    ], edges=[{"source": "t", "target": "w"}])

    response = client.post("/pipelines/p1/compile")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "CompileError"
    assert detail["context"]["field"] == "contract"


def test_compile_ignores_unknown_config_key(client, store, price_pipeline):
    price_pipeline.nodes[1].config["note"] = "hi"
    store.get_pipeline.return_value = price_pipeline

    response = client.post("/pipelines/price-watch/compile")

    assert response.status_code == 200
    assert "def on_t(rt, payload):" in response.json()["code"]


def test_validate_endpoint(client, store, price_pipeline):
    store.get_pipeline.return_value = price_pipeline

    body = client.get("/pipelines/price-watch/validate").json()

    assert body["valid"] is True
    assert body["diagnostics"] == []


def test_simulate_accepted(client, store, runner, price_pipeline):
    store.get_pipeline.return_value = price_pipeline
    runner.start.return_value = "session-1"

    response = client.post("/pipelines/price-watch/simulate")

    assert response.status_code == 202
    assert response.json() == {"session_id": "session-1"}
    pipeline_id, code, env = runner.start.call_args[0]
    assert pipeline_id == "price-watch"
    assert "def main():" in code
    assert env == {}


def test_simulate_conflict(client, store, runner, price_pipeline):
    store.get_pipeline.return_value = price_pipeline
    runner.start.side_effect = ConflictError("simulation already running", pipeline_id="price-watch")

    response = client.post("/pipelines/price-watch/simulate")

    assert response.status_code == 409
    assert response.json()["detail"] == "simulation already running"


def test_stop_acknowledged(client, runner):
    response = client.post("/simulations/s1/stop")

    assert response.json() == {"acknowledged": True}
    runner.stop.assert_called_once_with("s1")


def test_stop_unknown_session(client, runner):
    runner.stop.side_effect = NotFoundError("Simulation session s9 not found")

    assert client.post("/simulations/s9/stop").status_code == 404


def test_finished_session_read_from_store(client, store, runner):
    runner.get.return_value = None
    store.get_session.return_value = {
        "session_id": "s1", "pipeline_id": "p1", "status": "failed", "exit_code": 1, "logs": ["boom"],
    }

    body = client.get("/simulations/s1").json()

    assert body["status"] == "failed"
    assert body["exit_code"] == 1
    assert body["logs"] == ["boom"]


def test_log_stream_late_subscriber_gets_terminal_event(client, runner):
    channel = LogChannel()
    channel.open("s1")
    channel.publish("s1", LogEvent(line="[USER LOG] hello"))
    channel.publish("s1", CompleteEvent(success=True, exit_code=0))
    runner.channel = channel

    with client.websocket_connect("/simulations/s1/logs") as ws:
        assert ws.receive_json() == {"type": "complete", "seq": 2, "success": True, "exit_code": 0}


def test_log_stream_unknown_session(client, runner):
    runner.channel = LogChannel()

    with client.websocket_connect("/simulations/missing/logs") as ws:
        assert ws.receive_json()["type"] == "error"
