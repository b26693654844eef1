"""Queue engine: registration, call-next, status updates and the views.

All operations accept an open SQLModel ``Session``.  Nothing is kept in
process between calls; every decision (who is next, what the board shows) is
recomputed from the patient table.  Errors from the database are re-raised as
``StoreError`` with the original exception chained.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

import cache
import config
from errors import NotFoundError, StoreError, ValidationError
from models import ACTIVE_STATUSES, Patient, PatientStatus, utcnow
from schemas import PatientRead, PublicPatient, QueueSummary, RoomCounts, RoomOverview

logger = logging.getLogger(__name__)

# How many times call-next re-selects after losing a race for a patient.
CALL_NEXT_ATTEMPTS = 3

ALLOWED_TRANSITIONS = {
    PatientStatus.waiting: {PatientStatus.in_consultation, PatientStatus.cancelled},
    PatientStatus.in_consultation: {PatientStatus.completed, PatientStatus.cancelled},
}


@contextmanager
def _store(session: Session, action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Patient store failed while %s: %s", action, exc)
        raise StoreError(f"Patient store failed while {action}") from exc


# ===== VALIDATION =====

def validate_room(room: Any) -> int:
    if isinstance(room, bool) or not isinstance(room, int) or not 1 <= room <= config.ROOM_COUNT:
        raise ValidationError(
            f"consultation_room must be an integer between 1 and {config.ROOM_COUNT}, got {room!r}"
        )
    return room


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or value == "":
        raise ValidationError(f"{field} is required")
    return value


def parse_status(status: Any) -> PatientStatus:
    try:
        return PatientStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in PatientStatus)
        raise ValidationError(f"status must be one of {allowed}, got {status!r}") from None


def _as_stored_time(value: Any) -> datetime:
    if not isinstance(value, datetime):
        raise ValidationError(f"arrival_time must be a datetime, got {value!r}")
    # Naive input is taken to be UTC already.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def check_transition(current: PatientStatus, new: PatientStatus) -> None:
    """Reject moves outside waiting -> in_consultation -> completed/cancelled."""
    if new not in ALLOWED_TRANSITIONS.get(current, ()):
        raise ValidationError(f"Cannot change status from {current.value} to {new.value}")


def _bumped(previous: datetime) -> datetime:
    # updated_at must move forward even if the clock has not ticked.
    now = utcnow()
    if now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


def _board_changed(event: str, patient: Patient) -> None:
    cache.invalidate_public_display()
    cache.publish_board_update(event, patient.id, patient.consultation_room, patient.status.value)


def _ordered(statement):
    return statement.order_by(col(Patient.arrival_time), col(Patient.id))


# ===== COMMANDS =====

def add_patient(
    session: Session,
    full_name: str,
    id_number: str,
    consultation_room: int,
    arrival_time: Optional[datetime] = None,
) -> Patient:
    """Register a patient in the waiting set of a room.

    ``arrival_time`` defaults to the moment of this call.  The new record is
    always ``waiting``.
    """
    full_name = _require_text(full_name, "full_name")
    id_number = _require_text(id_number, "id_number")
    room = validate_room(consultation_room)
    now = utcnow()
    arrival = now if arrival_time is None else _as_stored_time(arrival_time)

    patient = Patient(
        full_name=full_name,
        id_number=id_number,
        consultation_room=room,
        arrival_time=arrival,
        status=PatientStatus.waiting,
        created_at=now,
        updated_at=now,
    )
    with _store(session, "adding a patient"):
        session.add(patient)
        session.commit()
        session.refresh(patient)

    logger.info("Patient %s registered for room %s", patient.id, room)
    _board_changed("added", patient)
    return patient


def _select_next_waiting(session: Session, room: int) -> Optional[Patient]:
    statement = select(Patient).where(
        Patient.consultation_room == room,
        Patient.status == PatientStatus.waiting,
    )
    return session.exec(_ordered(statement).limit(1)).first()


def call_next_patient(session: Session, consultation_room: int) -> Optional[Patient]:
    """Move the earliest waiting patient of a room into consultation.

    Returns ``None`` when the room has nobody waiting.  The claim is a
    conditional update on ``status = 'waiting'``; if another caller got there
    first the selection is repeated.
    """
    room = validate_room(consultation_room)
    with _store(session, f"calling the next patient for room {room}"):
        for _ in range(CALL_NEXT_ATTEMPTS):
            candidate = _select_next_waiting(session, room)
            if candidate is None:
                return None

            patient_id = candidate.id
            claimed = session.exec(
                update(Patient)
                .where(
                    col(Patient.id) == patient_id,
                    col(Patient.status) == PatientStatus.waiting,
                )
                .values(status=PatientStatus.in_consultation, updated_at=_bumped(candidate.updated_at))
            )
            if claimed.rowcount == 1:
                session.commit()
                patient = session.get(Patient, patient_id)
                session.refresh(patient)
                logger.info("Room %s called patient %s", room, patient_id)
                _board_changed("called", patient)
                return patient

            session.rollback()
            logger.info("Patient %s was claimed elsewhere, selecting again for room %s", patient_id, room)

    logger.warning("Room %s gave up calling after %s contested attempts", room, CALL_NEXT_ATTEMPTS)
    return None


def update_patient_status(
    session: Session,
    patient_id: int,
    status: Any,
    strict: Optional[bool] = None,
) -> Patient:
    """Set a patient's status.

    Any status may follow any other unless ``strict`` (default: the
    ``QUEUE_STRICT_TRANSITIONS`` setting) is on.
    """
    new_status = parse_status(status)
    if strict is None:
        strict = config.STRICT_TRANSITIONS

    with _store(session, f"updating patient {patient_id}"):
        patient = session.get(Patient, patient_id)
        if patient is None:
            raise NotFoundError(patient_id)
        if strict:
            check_transition(patient.status, new_status)

        previous = patient.status
        patient.status = new_status
        patient.updated_at = _bumped(patient.updated_at)
        session.add(patient)
        session.commit()
        session.refresh(patient)

    logger.info("Patient %s: %s -> %s", patient_id, previous.value, new_status.value)
    _board_changed("status_changed", patient)
    return patient


# ===== QUERIES =====

def get_all_patients(session: Session) -> List[Patient]:
    with _store(session, "listing patients"):
        return list(session.exec(_ordered(select(Patient))).all())


def get_patients_by_room(session: Session, consultation_room: int) -> List[Patient]:
    room = validate_room(consultation_room)
    with _store(session, f"listing room {room}"):
        statement = select(Patient).where(Patient.consultation_room == room)
        return list(session.exec(_ordered(statement)).all())


def get_waiting_patients(session: Session) -> List[Patient]:
    with _store(session, "listing waiting patients"):
        statement = select(Patient).where(Patient.status == PatientStatus.waiting)
        return list(session.exec(_ordered(statement)).all())


def id_last_three(id_number: str) -> str:
    """Last three characters of an ID number, or all of it when shorter."""
    return id_number[-3:]


def to_public(patient: Patient) -> PublicPatient:
    return PublicPatient(
        id_last_three=id_last_three(patient.id_number),
        full_name=patient.full_name,
        consultation_room=patient.consultation_room,
        status=patient.status,
    )


def get_public_display(session: Session) -> List[PublicPatient]:
    """Redacted list of everyone waiting or in consultation."""
    generation = cache.display_generation()
    if generation is not None:
        cached = cache.get_cached_public_display(generation)
        if cached is not None:
            return [PublicPatient(**row) for row in cached]

    with _store(session, "building the public display"):
        statement = (
            select(Patient)
            .where(col(Patient.status).in_(ACTIVE_STATUSES))
            .order_by(col(Patient.consultation_room), col(Patient.arrival_time), col(Patient.id))
        )
        patients = session.exec(statement).all()

    display = [to_public(p) for p in patients]
    if generation is not None:
        cache.cache_public_display([d.model_dump(mode="json") for d in display], generation)
    return display


def get_room_overview(session: Session, consultation_room: int) -> RoomOverview:
    """What a doctor's console shows for one room.

    ``can_call_next`` is false while someone is in consultation.  This is
    advice for the console; ``call_next_patient`` does not check it.
    """
    patients = get_patients_by_room(session, consultation_room)
    current = next((p for p in patients if p.status == PatientStatus.in_consultation), None)
    waiting = [p for p in patients if p.status == PatientStatus.waiting]
    return RoomOverview(
        consultation_room=consultation_room,
        current=PatientRead.model_validate(current) if current else None,
        waiting=[PatientRead.model_validate(p) for p in waiting],
        can_call_next=current is None,
    )


def get_queue_summary(session: Session) -> QueueSummary:
    """Counts per status and per room, for the secretary view."""
    with _store(session, "summarising the queue"):
        statement = select(
            Patient.consultation_room, Patient.status, func.count()
        ).group_by(col(Patient.consultation_room), col(Patient.status))
        rows = session.exec(statement).all()

    by_status: Dict[str, int] = {s.value: 0 for s in PatientStatus}
    rooms = {room: RoomCounts(consultation_room=room) for room in config.ROOMS}
    for room, status, count in rows:
        status = PatientStatus(status)
        by_status[status.value] += count
        if status == PatientStatus.waiting:
            rooms[room].waiting += count
        elif status == PatientStatus.in_consultation:
            rooms[room].in_consultation += count

    return QueueSummary(
        total=sum(by_status.values()),
        by_status=by_status,
        rooms=list(rooms.values()),
    )


def count_patients(session: Session) -> int:
    with _store(session, "checking the patient store"):
        return session.exec(select(func.count()).select_from(Patient)).one()
