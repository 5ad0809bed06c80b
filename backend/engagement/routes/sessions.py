"""
Session API routes - start, observe and stop the live tracking session.

These handlers are coroutines on purpose: the session engine schedules its
clock, sampling and alert timers on the running event loop, and stopping
must happen on that same loop.
"""

import asyncio
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import Field
from sqlalchemy.orm import Session

from engagement.database import get_db
from engagement.schemas import RequestModel
from engagement.services.classroom import (
    Classroom, NoActiveSession, SessionAlreadyActive, get_classroom
)
from engagement.services.report import build_report
from engagement.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")

# How often the stream re-checks whether the session is still running
STREAM_POLL_SECONDS = 1.0


class SessionStart(RequestModel):
    """Schema for starting a session."""
    teacher_name: str = Field(..., min_length=1, description="Teacher's name")
    teacher_id: str = Field(..., min_length=1, description="Teacher's ID")


@router.post("/api/sessions", status_code=201)
async def start_session(request: SessionStart, db: Session = Depends(get_db),
                        classroom: Classroom = Depends(get_classroom)):
    """Start tracking with the current roster."""
    try:
        snapshot = classroom.start_session(db, request.teacher_name, request.teacher_id)
    except SessionAlreadyActive as e:
        raise HTTPException(status_code=409, detail=str(e))

    log_with_context(logger, "INFO", "Session start requested",
                     context={"session_id": snapshot.session_id, "teacher_id": snapshot.teacher_id})
    return snapshot.model_dump(mode="json", by_alias=True)


@router.get("/api/sessions/current")
async def current_session(classroom: Classroom = Depends(get_classroom)):
    """Latest snapshot of the running session."""
    try:
        engine = classroom.current()
    except NoActiveSession as e:
        raise HTTPException(status_code=404, detail=str(e))
    return engine.snapshot().model_dump(mode="json", by_alias=True)


@router.post("/api/sessions/current/stop")
async def stop_session(db: Session = Depends(get_db),
                       classroom: Classroom = Depends(get_classroom)):
    """Finalize the running session and return its report."""
    try:
        record = classroom.stop_session(db)
    except NoActiveSession as e:
        raise HTTPException(status_code=404, detail=str(e))
    return build_report(record)


@router.websocket("/api/sessions/current/stream")
async def stream_session(websocket: WebSocket, classroom: Classroom = Depends(get_classroom)):
    """Push a JSON snapshot every time the running session changes."""
    await websocket.accept()
    try:
        engine = classroom.current()
    except NoActiveSession:
        await websocket.close(code=1008, reason="No session is running")
        return

    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = engine.subscribe(queue.put_nowait)
    log_with_context(logger, "INFO", "Snapshot stream opened",
                     context={"session_id": engine.session_id})
    try:
        await websocket.send_json(engine.snapshot().model_dump(mode="json", by_alias=True))
        while engine.is_active:
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=STREAM_POLL_SECONDS)
            except asyncio.TimeoutError:
                continue
            await websocket.send_json(snapshot.model_dump(mode="json", by_alias=True))
        await websocket.send_json({"event": "stopped", "sessionId": engine.session_id})
        await websocket.close()
    except WebSocketDisconnect:
        log_with_context(logger, "INFO", "Snapshot stream closed by client",
                         context={"session_id": engine.session_id})
    finally:
        unsubscribe()
