"""Simulation session routes: status, stop and the live log stream."""

import logging
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from services.api.domain.models import SessionResponse, StopResponse
from services.api.routes.pipeline import redis_store, runner
from shared.exceptions import NotFoundError
from shared.types import CompleteEvent


router = APIRouter()


@router.get("/simulations/{session_id}", response_model=SessionResponse)
async def get_simulation(session_id: str):
    session = runner.get(session_id)
    if session:
        return SessionResponse(**session.to_record())

    record = redis_store.get_session(session_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail=f"Simulation {session_id} not found")
    return SessionResponse(**record)


@router.post("/simulations/{session_id}/stop", response_model=StopResponse)
async def stop_simulation(session_id: str):
    try:
        runner.stop(session_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return StopResponse(acknowledged=True)


@router.websocket("/simulations/{session_id}/logs")
async def stream_logs(websocket: WebSocket, session_id: str):
    await websocket.accept()
    try:
        subscription = runner.channel.subscribe(session_id)
    except NotFoundError as e:
        await websocket.send_json({"type": "error", "message": e.message})
        await websocket.close(code=4404)
        return

    try:
        async for event in subscription:
            await websocket.send_json(event.model_dump(mode="json"))
            if isinstance(event, CompleteEvent):
                break
        await websocket.close()
    except WebSocketDisconnect:
        logging.info(f"Log subscriber left {session_id}", extra={"session_id": session_id})
    finally:
        subscription.close()
