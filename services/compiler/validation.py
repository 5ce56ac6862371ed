"""Structural and semantic pipeline validation."""

import json
from collections import Counter
from typing import Dict, List, Set, Any
from services.compiler.graph import GraphModel
from services.compiler.schemas import get_kind, config_errors, ports_compatible
from shared.constants import MAX_NODES_PER_PIPELINE, MAX_CONFIG_SIZE_BYTES
from shared.exceptions import CycleError
from shared.types import Diagnostic, Pipeline, Severity


def _error(code: str, message: str, **fields: Any) -> Diagnostic:
    return Diagnostic(code=code, severity=Severity.ERROR, message=message, **fields)


def _warning(code: str, message: str, **fields: Any) -> Diagnostic:
    return Diagnostic(code=code, severity=Severity.WARNING, message=message, **fields)


def has_errors(diagnostics: List[Diagnostic]) -> bool:
    return any(d.is_error for d in diagnostics)


class GraphValidator:
    """Collects every defect in a pipeline as diagnostics instead of raising.

    Checks run in priority order. Id uniqueness, referential integrity and
    acyclicity gate the rest, because the semantic checks assume a sound graph.
    """

    def validate(self, pipeline: Pipeline) -> List[Diagnostic]:
        diagnostics = self._check_unique_ids(pipeline)
        if diagnostics:
            return diagnostics

        graph = GraphModel.from_pipeline(pipeline)
        diagnostics = self._check_references(graph)
        if diagnostics:
            return diagnostics

        try:
            graph.topological_order()
        except CycleError as e:
            return [_error("cycle-detected", str(e), nodes=e.cycle)]

        diagnostics.extend(self._check_triggers(graph))
        diagnostics.extend(self._check_nodes(graph))
        diagnostics.extend(self._check_ports(graph))
        return diagnostics

    def _check_unique_ids(self, pipeline: Pipeline) -> List[Diagnostic]:
        diagnostics = []
        if len(pipeline.nodes) > MAX_NODES_PER_PIPELINE:
            diagnostics.append(_error(
                "pipeline-too-large",
                f"Pipeline exceeds maximum node limit: {len(pipeline.nodes)} > {MAX_NODES_PER_PIPELINE}"
            ))

        counts = Counter(node.id for node in pipeline.nodes)
        for node_id in sorted(nid for nid, count in counts.items() if count > 1):
            diagnostics.append(_error("duplicate-node-id", f"Duplicate node ID: {node_id}", node_id=node_id))
        return diagnostics

    def _check_references(self, graph: GraphModel) -> List[Diagnostic]:
        diagnostics = []
        for index, edge in enumerate(graph.edges):
            for endpoint in (edge.source, edge.target):
                if endpoint not in graph.nodes:
                    diagnostics.append(_error(
                        "unknown-node-reference",
                        f"Edge {edge.source} -> {edge.target} references non-existent node '{endpoint}'",
                        node_id=endpoint,
                        edge=index,
                    ))

        seen: Dict[tuple, int] = {}
        for index, edge in enumerate(graph.edges):
            key = (edge.target, edge.target_port)
            if key in seen:
                diagnostics.append(_error(
                    "port-fan-in",
                    f"Port '{edge.target_port}' of node '{edge.target}' already has an incoming edge",
                    node_id=edge.target,
                    edge=index,
                ))
            else:
                seen[key] = index
        return diagnostics

    def _check_triggers(self, graph: GraphModel) -> List[Diagnostic]:
        triggers = sorted(nid for nid, node in graph.nodes.items() if _is_trigger(node.kind))
        if not triggers:
            return [_error("no-trigger", "Pipeline has no trigger node")]

        driven: Set[str] = set()
        for trigger_id in triggers:
            driven |= graph.reachable_from(trigger_id)

        # Providers are not downstream of a trigger but feed nodes that are
        live = set(driven)
        for node_id in driven:
            live |= graph.reaching(node_id)

        diagnostics = []
        for component in graph.components():
            orphaned = sorted(component - live)
            if orphaned:
                diagnostics.append(_warning(
                    "unreachable-subgraph",
                    f"Nodes not connected to any trigger will not run: {', '.join(orphaned)}",
                    node_id=orphaned[0],
                    nodes=orphaned,
                ))

        effects = [nid for nid in driven if _is_effect(graph.nodes[nid].kind)]
        if not effects:
            diagnostics.append(_warning(
                "no-terminal-effect",
                "No on-chain effect node is reachable from a trigger",
            ))
        return diagnostics

    def _check_nodes(self, graph: GraphModel) -> List[Diagnostic]:
        diagnostics = []
        for node_id in sorted(graph.nodes):
            node = graph.nodes[node_id]
            spec = get_kind(node.kind)
            if spec is None:
                diagnostics.append(_error("unknown-kind", f"Node '{node_id}' has unknown kind '{node.kind}'", node_id=node_id))
                continue

            if spec.category != node.category:
                diagnostics.append(_error(
                    "category-mismatch",
                    f"Node '{node_id}' of kind '{node.kind}' must be in category '{spec.category.value}', "
                    f"not '{node.category.value}'",
                    node_id=node_id,
                ))

            config_size = len(json.dumps(node.config, default=str).encode('utf-8'))
            if config_size > MAX_CONFIG_SIZE_BYTES:
                diagnostics.append(_error(
                    "config-too-large",
                    f"Node '{node_id}' config exceeds size limit: {config_size} > {MAX_CONFIG_SIZE_BYTES} bytes",
                    node_id=node_id,
                ))
                continue

            for err in config_errors(node.kind, node.config):
                diagnostics.append(_field_diagnostic(node_id, err))
        return diagnostics

    def _check_ports(self, graph: GraphModel) -> List[Diagnostic]:
        diagnostics = []
        for index, edge in enumerate(graph.edges):
            source_spec = get_kind(graph.nodes[edge.source].kind)
            target_spec = get_kind(graph.nodes[edge.target].kind)
            if source_spec is None or target_spec is None:
                continue

            source_type = source_spec.outputs.get(edge.source_port)
            target_type = target_spec.inputs.get(edge.target_port)
            if source_type is None:
                diagnostics.append(_error(
                    "unknown-port",
                    f"Node '{edge.source}' ({source_spec.kind}) has no output port '{edge.source_port}'",
                    node_id=edge.source,
                    edge=index,
                ))
                continue
            if target_type is None:
                diagnostics.append(_error(
                    "unknown-port",
                    f"Node '{edge.target}' ({target_spec.kind}) has no input port '{edge.target_port}'",
                    node_id=edge.target,
                    edge=index,
                ))
                continue

            if not ports_compatible(source_type, target_type):
                diagnostics.append(_error(
                    "port-type-mismatch",
                    f"{edge.source}.{edge.source_port} produces '{source_type}' but "
                    f"{edge.target}.{edge.target_port} expects '{target_type}'",
                    node_id=edge.target,
                    edge=index,
                ))
        return diagnostics


def _is_trigger(kind: str) -> bool:
    spec = get_kind(kind)
    return spec is not None and spec.is_trigger


def _is_effect(kind: str) -> bool:
    spec = get_kind(kind)
    return spec is not None and spec.is_effect


def _field_diagnostic(node_id: str, err: Dict[str, Any]) -> Diagnostic:
    field = ".".join(str(part) for part in err.get("loc", ())) or None
    if err["type"] == "missing":
        return _error("missing-required-field", f"Node '{node_id}' is missing required field '{field}'",
                      node_id=node_id, field=field)
    if err["type"] == "extra_forbidden":
        return _warning("unknown-field", f"Node '{node_id}' has unknown field '{field}'",
                        node_id=node_id, field=field)
    return _error("invalid-field-type", f"Node '{node_id}' field '{field}': {err['msg']}",
                  node_id=node_id, field=field)
