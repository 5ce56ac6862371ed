"""Deterministic pipeline-to-code generation."""

import logging
from typing import Dict, List, Optional, Set, Tuple
from services.compiler.emitters.registry import get_emitter, py_literal, EmitContext, Fragment
from services.compiler.graph import GraphModel
from services.compiler.schemas import get_kind, parse_config
from services.compiler.templates import RUNTIME_SOURCE, module_template
from shared.constants import CONDITION_TRUE_PORT, CONDITION_FALSE_PORT, TRIGGER_KINDS, ZERO_ADDRESS
from shared.exceptions import CompileError, CycleError, WorkflowError
from shared.types import Diagnostic, GeneratedWorkflow, Pipeline, Severity
from shared.utils import to_identifier

# Import emitter modules to register them
import services.compiler.emitters.triggers  # noqa: F401
import services.compiler.emitters.capabilities  # noqa: F401
import services.compiler.emitters.logic  # noqa: F401
import services.compiler.emitters.bindings  # noqa: F401

Guard = Tuple[str, bool]


class CodeGenerator:
    """Turns a validated pipeline into a self-contained workflow module.

    One handler is generated per trigger, holding the fragments of every node
    the trigger drives plus the provider nodes feeding them, in topological
    order. The same pipeline id and version always yields the same code.
    """

    def __init__(self, secret_resolver=None):
        self.secret_resolver = secret_resolver

    def compile(self, pipeline: Pipeline) -> GeneratedWorkflow:
        graph = GraphModel.from_pipeline(pipeline)
        try:
            order = graph.topological_order()
        except CycleError as e:
            raise CompileError(str(e), pipeline_id=pipeline.id, cycle=e.cycle)

        triggers = sorted(nid for nid, node in graph.nodes.items() if node.kind in TRIGGER_KINDS)
        if not triggers:
            raise CompileError("Pipeline has no trigger node", pipeline_id=pipeline.id)

        names = self._allocate_names(graph)
        driven: Set[str] = set()
        for trigger_id in triggers:
            driven |= graph.reachable_from(trigger_id)

        critical: Set[str] = set()
        for node_id in driven:
            spec = get_kind(graph.nodes[node_id].kind)
            if spec is not None and spec.is_effect:
                critical |= graph.reaching(node_id)

        warnings: List[Diagnostic] = []
        secret_refs: Set[str] = set()
        handlers = []
        for trigger_id in triggers:
            scope = self._scope(graph, trigger_id, driven)
            lines, trigger = self._build_handler(
                pipeline.id, trigger_id, graph, [nid for nid in order if nid in scope], names,
                critical, warnings, secret_refs,
            )
            handlers.append({
                "name": f"on_{names[trigger_id]}",
                "lines": lines,
                "node": py_literal(trigger["node"]),
                "kind": py_literal(trigger["kind"]),
                "config": py_literal(trigger["config"]),
            })

        code = module_template.render(
            pipeline_id=py_literal(pipeline.id),
            pipeline_version=pipeline.version,
            zero_address=py_literal(ZERO_ADDRESS),
            runtime=RUNTIME_SOURCE,
            handlers=handlers,
        )

        logging.info(f"Compiled pipeline {pipeline.id}", extra={
            "pipeline_id": pipeline.id,
            "pipeline_version": pipeline.version,
            "handlers": len(handlers),
            "warnings": len(warnings),
        })
        return GeneratedWorkflow(
            pipeline_id=pipeline.id,
            pipeline_version=pipeline.version,
            code=code,
            warnings=warnings,
            secret_refs=sorted(secret_refs),
        )

    def _allocate_names(self, graph: GraphModel) -> Dict[str, str]:
        names: Dict[str, str] = {}
        taken: Set[str] = set()
        for node_id in sorted(graph.nodes):
            base = to_identifier(node_id)
            name, suffix = base, 2
            while name in taken:
                name = f"{base}_{suffix}"
                suffix += 1
            taken.add(name)
            names[node_id] = name
        return names

    def _scope(self, graph: GraphModel, trigger_id: str, driven: Set[str]) -> Set[str]:
        """Nodes the trigger drives, plus undriven ancestors (providers) feeding them"""
        forward = graph.reachable_from(trigger_id)
        scope = set(forward)
        for node_id in forward:
            scope |= {a for a in graph.reaching(node_id) if a not in driven}
        return scope

    def _resolve_secret(self, name: str) -> Optional[str]:
        if self.secret_resolver is None:
            return name
        try:
            return self.secret_resolver.resolve(name)
        except WorkflowError as e:
            logging.warning(f"Secret {name} treated as unresolved: {e.message}", extra={"secret_name": name})
            return None

    def _build_handler(self, pipeline_id: str, trigger_id: str, graph: GraphModel, nodes: List[str],
                       names: Dict[str, str], critical: Set[str], warnings: List[Diagnostic], secret_refs: Set[str]):
        outputs: Dict[str, Dict[str, str]] = {}
        guard_vars: Dict[str, str] = {}
        guard_rank: Dict[str, int] = {}
        guards: Dict[str, Set[Guard]] = {}
        skipped: Set[str] = set()
        lines: List[str] = []
        trigger = None

        for node_id in nodes:
            node = graph.nodes[node_id]
            incoming = [e for e in graph.incoming(node_id) if e.source in outputs or e.source in skipped]

            node_guards: Set[Guard] = set()
            for edge in incoming:
                node_guards |= guards.get(edge.source, set())
                if edge.source in guard_vars:
                    if edge.source_port == CONDITION_TRUE_PORT:
                        node_guards.add((guard_vars[edge.source], True))
                    elif edge.source_port == CONDITION_FALSE_PORT:
                        node_guards.add((guard_vars[edge.source], False))

            upstream = sorted(e.source for e in incoming if e.source in skipped)
            if upstream:
                message = f"Node {node_id} depends on unreachable node {upstream[0]} and never runs"
            elif any((var, not polarity) in node_guards for var, polarity in node_guards):
                message = f"Node {node_id} needs both branches of the same condition and never runs"
            else:
                message = None
            if message is not None:
                skipped.add(node_id)
                self._warn(warnings, Diagnostic(
                    code="unreachable-branch",
                    severity=Severity.WARNING,
                    message=message,
                    node_id=node_id,
                ))
                continue

            emitter = get_emitter(node.kind)
            if emitter is None:
                raise CompileError(f"unsupported kind '{node.kind}'", pipeline_id=pipeline_id, node_id=node_id)

            inputs = {}
            for edge in incoming:
                produced = outputs[edge.source].get(edge.source_port)
                if produced is not None:
                    inputs[edge.target_port] = produced

            ctx = EmitContext(config=parse_config(node.kind, node.config), var=names[node_id],
                              secrets=self._resolve_secret)
            fragment: Fragment = emitter(node, inputs, ctx)

            for edge in graph.incoming(node_id):
                if edge in incoming or edge.target_port in inputs or edge.target_port in fragment.unresolved:
                    continue
                self._warn(warnings, Diagnostic(
                    code="unresolved-binding",
                    severity=Severity.WARNING,
                    message=f"Node {node_id} input '{edge.target_port}' comes from {edge.source}, "
                            f"which trigger {trigger_id} does not run; a placeholder was generated",
                    node_id=node_id,
                    field=edge.target_port,
                ))

            for binding in fragment.unresolved:
                if node_id in critical:
                    raise CompileError(
                        f"Node {node_id} cannot run: binding '{binding}' is unresolved",
                        pipeline_id=pipeline_id, node_id=node_id, field=binding,
                    )
                self._warn(warnings, Diagnostic(
                    code="unresolved-binding",
                    severity=Severity.WARNING,
                    message=f"Node {node_id} has no value for '{binding}'; a placeholder was generated",
                    node_id=node_id,
                    field=binding,
                ))

            secret_refs.update(fragment.secret_refs)
            outputs[node_id] = fragment.outputs
            guards[node_id] = node_guards
            if fragment.guard is not None:
                guard_vars[node_id] = fragment.guard
                guard_rank[fragment.guard] = len(guard_rank)
            if node_id == trigger_id:
                trigger = fragment.trigger

            lines.append(f"# node {py_literal(node_id)} ({node.kind})")
            if node_guards:
                ordered = sorted(node_guards, key=lambda g: guard_rank[g[0]])
                condition = " and ".join(var if polarity else f"not {var}" for var, polarity in ordered)
                lines.append(f"if {condition}:")
                lines.extend(f"    {line}" for line in fragment.lines)
            else:
                lines.extend(fragment.lines)

        return lines, trigger

    def _warn(self, warnings: List[Diagnostic], diagnostic: Diagnostic) -> None:
        if diagnostic not in warnings:
            warnings.append(diagnostic)
