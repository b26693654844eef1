"""Database models for the room queue.

We use SQLModel to define the schema.  The database stores a single table of
patients.  A patient is routed to one of the eight consultation rooms when
registered and moves through the statuses below; rows are never deleted, so
completed and cancelled visits stay around as history.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

from config import ROOM_COUNT


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite keeps no offset, so values are written in UTC and the offset is
    put back when they are read.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError("Datetime values must have timezone information")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class PatientStatus(str, Enum):
    """Possible statuses for a patient."""

    waiting = "waiting"
    in_consultation = "in_consultation"
    completed = "completed"
    cancelled = "cancelled"


# Statuses shown on the public board.
ACTIVE_STATUSES = (PatientStatus.waiting, PatientStatus.in_consultation)


class Patient(SQLModel, table=True):
    __tablename__ = "patients"
    __table_args__ = (
        CheckConstraint(
            f"consultation_room BETWEEN 1 AND {ROOM_COUNT}",
            name="check_consultation_room",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    full_name: str
    id_number: str
    consultation_room: int = Field(index=True)
    arrival_time: datetime = Field(sa_type=UTCDateTime, index=True)
    status: PatientStatus = Field(default=PatientStatus.waiting, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    def __repr__(self) -> str:
        return f"<Patient {self.id}: room {self.consultation_room} {self.status.value}>"
