"""FastAPI application for the room queue.

The app exposes the queue engine as a JSON API, a Server-Sent Events stream
for the public board, and three small HTML views (secretary, doctor, board)
that poll the API.  Configuration comes from environment variables, see
``config``.  Redis is optional and only used for the board cache and push
updates.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from sqlmodel import Session

import cache
import config
import database
import pages
from database import get_session, init_db
from errors import NotFoundError, StoreError, ValidationError
from models import utcnow
from schemas import (
    AddPatientRequest,
    PatientRead,
    PublicPatient,
    QueueSummary,
    RoomOverview,
    UpdateStatusRequest,
)
from services import (
    add_patient,
    call_next_patient,
    count_patients,
    get_all_patients,
    get_patients_by_room,
    get_public_display,
    get_queue_summary,
    get_room_overview,
    get_waiting_patients,
    update_patient_status,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting Room Queue")
    logger.info("🗄️ Database: %s", database.engine.url.get_backend_name())
    logger.info("⚡ Redis: %s", "configured" if config.REDIS_URL else "not configured")
    if config.STRICT_TRANSITIONS:
        logger.info("🔒 Strict status transitions enabled")
    init_db()
    yield
    logger.info("🛑 Room Queue shutting down")


app = FastAPI(
    title="Room Queue",
    description="Patient queue for eight consultation rooms",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
    return response


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store error on %s %s: %s (%s)", request.method, request.url.path, exc, exc.__cause__)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/")
def root() -> Dict[str, Any]:
    """Service description with the main entry points."""
    return {
        "service": "Room Queue API",
        "status": "running",
        "version": "1.0.0",
        "rooms": list(config.ROOMS),
        "views": {
            "secretary": "/secretary",
            "doctor": "/doctor",
            "board": "/board",
        },
    }


@app.get("/health")
def health_check(session: Session = Depends(get_session)) -> Dict[str, Any]:
    try:
        patients = count_patients(session)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {e}")
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "database": "connected",
        "patients": patients,
        "redis": "connected" if cache.get_redis() else "unavailable",
    }


# ===== SECRETARY =====

@app.post("/patients", response_model=PatientRead, status_code=201)
def create_patient(request: AddPatientRequest, session: Session = Depends(get_session)):
    return add_patient(
        session,
        full_name=request.full_name,
        id_number=request.id_number,
        consultation_room=request.consultation_room,
        arrival_time=request.arrival_time,
    )


@app.get("/patients", response_model=List[PatientRead])
def list_patients(session: Session = Depends(get_session)):
    return get_all_patients(session)


@app.get("/patients/waiting", response_model=List[PatientRead])
def list_waiting_patients(session: Session = Depends(get_session)):
    return get_waiting_patients(session)


@app.get("/summary", response_model=QueueSummary)
def queue_summary(session: Session = Depends(get_session)):
    return get_queue_summary(session)


# ===== DOCTOR =====

@app.get("/rooms/{room}", response_model=RoomOverview)
def room_overview(room: int, session: Session = Depends(get_session)):
    return get_room_overview(session, room)


@app.get("/rooms/{room}/patients", response_model=List[PatientRead])
def room_patients(room: int, session: Session = Depends(get_session)):
    return get_patients_by_room(session, room)


@app.post("/rooms/{room}/call-next", response_model=Optional[PatientRead])
def call_next_in_room(room: int, session: Session = Depends(get_session)):
    """Call the earliest waiting patient of a room; ``null`` if nobody waits."""
    return call_next_patient(session, room)


@app.patch("/patients/{patient_id}/status", response_model=PatientRead)
def change_status(patient_id: int, request: UpdateStatusRequest, session: Session = Depends(get_session)):
    return update_patient_status(session, patient_id, request.status)


# ===== PUBLIC BOARD =====

@app.get("/display", response_model=List[PublicPatient])
def public_display(session: Session = Depends(get_session)):
    return get_public_display(session)


def _display_snapshot() -> str:
    with Session(database.engine) as session:
        rows = [p.model_dump(mode="json") for p in get_public_display(session)]
    return json.dumps({"type": "display", "data": rows})


async def _snapshot_event() -> str:
    try:
        return f"data: {await asyncio.to_thread(_display_snapshot)}\n\n"
    except StoreError as e:
        return f"data: {json.dumps({'type': 'error', 'message': str(e)})}\n\n"


async def display_event_stream(redis_client=None):
    """Board events: relayed pub/sub messages with Redis, snapshots without.

    Database reads and Redis waits run in worker threads so a connected board
    never holds up the event loop.
    """
    if not redis_client:
        # Fallback: periodic snapshots of the board
        while True:
            yield await _snapshot_event()
            await asyncio.sleep(config.BOARD_POLL_SECONDS)

    pubsub = redis_client.pubsub()
    await asyncio.to_thread(pubsub.subscribe, cache.UPDATES_CHANNEL)
    try:
        yield await _snapshot_event()
        while True:
            message = await asyncio.to_thread(pubsub.get_message, timeout=config.BOARD_POLL_SECONDS)
            if message and message["type"] == "message":
                yield f"data: {message['data']}\n\n"
            else:
                yield f"data: {json.dumps({'type': 'heartbeat'})}\n\n"
    finally:
        pubsub.close()


@app.get("/display/events")
async def display_events():
    """Server-Sent Events feed for the public board.

    With Redis configured, board updates published by the engine are relayed
    as they happen.  Without it, a fresh snapshot is sent every poll interval.
    """
    redis_client = await asyncio.to_thread(cache.get_redis)
    return StreamingResponse(
        display_event_stream(redis_client),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# ===== VIEWS =====

@app.get("/secretary", response_class=HTMLResponse)
def secretary_page() -> str:
    return pages.secretary_page()


@app.get("/doctor", response_class=HTMLResponse)
def doctor_page(room: int = 1) -> str:
    return pages.doctor_page(room)


@app.get("/board", response_class=HTMLResponse)
def board_page() -> str:
    return pages.board_page()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
