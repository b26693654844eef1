"""Pydantic schemas for requests and responses.

Request bodies only describe shape; the queue engine in ``services`` owns
the validation rules, so direct callers and HTTP callers get the same errors.
``PublicPatient`` is the only shape that leaves the building: it has no
field that could carry the full ID number.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from models import PatientStatus


class AddPatientRequest(BaseModel):
    # Anything else the client sends (a status, say) is dropped.
    model_config = ConfigDict(extra="ignore")

    full_name: str
    id_number: str
    consultation_room: int
    arrival_time: Optional[datetime] = None


class UpdateStatusRequest(BaseModel):
    status: PatientStatus


class PatientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    id_number: str
    consultation_room: int
    arrival_time: datetime
    status: PatientStatus
    created_at: datetime
    updated_at: datetime


class PublicPatient(BaseModel):
    id_last_three: str
    full_name: str
    consultation_room: int
    status: PatientStatus


class RoomOverview(BaseModel):
    consultation_room: int
    current: Optional[PatientRead] = None
    waiting: List[PatientRead]
    can_call_next: bool


class RoomCounts(BaseModel):
    consultation_room: int
    waiting: int = 0
    in_consultation: int = 0


class QueueSummary(BaseModel):
    total: int
    by_status: Dict[str, int]
    rooms: List[RoomCounts]
