"""Pipeline API routes: store, validate, compile, simulate."""

import os
import logging
from typing import Dict, Optional
from fastapi import APIRouter, HTTPException, status
from services.api.domain.models import (
    StorePipelineRequest,
    ValidateResponse,
    CompileResponse,
    SimulateRequest,
    SimulateResponse,
)
from services.api.infra.redis_store import RedisStore
from services.compiler.generator import CodeGenerator
from services.compiler.schemas import derive_node_state
from services.compiler.secrets import EnvSecretResolver, HttpSecretResolver
from services.compiler.validation import GraphValidator, has_errors
from services.simulator.runner import SimulationRunner
from shared.exceptions import CompileError, ConflictError, ValidationFailed, WorkflowError
from shared.types import GeneratedWorkflow, Pipeline


router = APIRouter()
redis_store = RedisStore()
validator = GraphValidator()
generator = CodeGenerator(
    secret_resolver=HttpSecretResolver() if os.getenv("SECRETS_SERVICE_URL") else EnvSecretResolver()
)
runner = SimulationRunner(session_store=redis_store)


def load_pipeline(pipeline_id: str) -> Pipeline:
    pipeline = redis_store.get_pipeline(pipeline_id)
    if not pipeline:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail=f"Pipeline {pipeline_id} not found")
    return pipeline


def build_workflow(pipeline: Pipeline) -> GeneratedWorkflow:
    """Validates then compiles; defects surface as ValidationFailed with every diagnostic"""
    diagnostics = validator.validate(pipeline)
    if has_errors(diagnostics):
        raise ValidationFailed(
            f"Pipeline {pipeline.id} has validation errors",
            diagnostics=diagnostics,
            pipeline_id=pipeline.id,
        )
    return generator.compile(pipeline)


def unprocessable(e: WorkflowError) -> HTTPException:
    detail = e.to_dict()
    if isinstance(e, ValidationFailed):
        detail["diagnostics"] = [d.to_dict() for d in e.diagnostics]
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


def simulation_env(workflow: GeneratedWorkflow, provided: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Only secrets the workflow references are passed into the run"""
    env = {ref: os.environ[ref] for ref in workflow.secret_refs if ref in os.environ}
    for ref, value in (provided or {}).items():
        if ref in workflow.secret_refs:
            env[ref] = value
    return env


@router.put("/pipelines/{pipeline_id}", response_model=Pipeline)
async def store_pipeline(pipeline_id: str, request: StorePipelineRequest):
    previous = redis_store.get_pipeline(pipeline_id)
    previous_states = {n.id: n.state for n in previous.nodes} if previous else {}

    nodes = [
        node.model_copy(update={"state": derive_node_state(node.kind, node.config, previous_states.get(node.id))})
        for node in request.nodes
    ]
    pipeline = redis_store.store_pipeline(pipeline_id, request.name, nodes, request.edges)

    logging.info(f"Stored pipeline {pipeline_id}", extra={
        "pipeline_id": pipeline_id,
        "pipeline_version": pipeline.version,
        "nodes": len(nodes),
    })
    return pipeline


@router.get("/pipelines/{pipeline_id}", response_model=Pipeline)
async def get_pipeline(pipeline_id: str):
    return load_pipeline(pipeline_id)


@router.get("/pipelines/{pipeline_id}/validate", response_model=ValidateResponse)
async def validate_pipeline(pipeline_id: str):
    pipeline = load_pipeline(pipeline_id)
    diagnostics = validator.validate(pipeline)
    return ValidateResponse(
        pipeline_id=pipeline.id,
        pipeline_version=pipeline.version,
        valid=not has_errors(diagnostics),
        diagnostics=[d.to_dict() for d in diagnostics],
    )


@router.post("/pipelines/{pipeline_id}/compile", response_model=CompileResponse)
async def compile_pipeline(pipeline_id: str):
    pipeline = load_pipeline(pipeline_id)
    try:
        workflow = build_workflow(pipeline)
    except (ValidationFailed, CompileError) as e:
        logging.warning(f"Compilation failed for {pipeline_id}: {e}", extra={"pipeline_id": pipeline_id})
        raise unprocessable(e)

    return CompileResponse.from_warnings(
        workflow.pipeline_id, workflow.pipeline_version, workflow.code,
        workflow.warnings, workflow.secret_refs,
    )


@router.post("/pipelines/{pipeline_id}/simulate", response_model=SimulateResponse,
             status_code=status.HTTP_202_ACCEPTED)
async def simulate_pipeline(pipeline_id: str, request: Optional[SimulateRequest] = None):
    pipeline = load_pipeline(pipeline_id)
    try:
        workflow = build_workflow(pipeline)
    except (ValidationFailed, CompileError) as e:
        raise unprocessable(e)

    try:
        session_id = runner.start(pipeline_id, workflow.code, simulation_env(workflow, request.secrets if request else None))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    return SimulateResponse(session_id=session_id)
