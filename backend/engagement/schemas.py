"""
Domain value objects shared by the session engine, the report aggregator
and the API layer.

All models are frozen pydantic models with tuple sequences, so a finalized
SessionRecord cannot be mutated after the engine hands it out. Field names
are snake_case in Python and camelCase on the wire (studentId,
attentionScore, ...), matching what the browser client consumes.
"""

from datetime import datetime
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

AlertType = Literal["hand", "distraction"]


class DomainModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class RequestModel(BaseModel):
    """Incoming JSON bodies: camelCase keys (snake_case accepted), strings trimmed."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              str_strip_whitespace=True)


class RosterEntry(DomainModel):
    """A student as seen by a running session."""
    id: str
    name: str


class AttentionPoint(DomainModel):
    time: int = Field(..., ge=0, description="Seconds since session start")
    attention: int = Field(..., ge=0, le=100)


class StudentEngagement(DomainModel):
    student_id: str
    name: str
    attention_score: int = Field(..., ge=0, le=100)


class AlertLogEntry(DomainModel):
    time: int = Field(..., ge=0)
    type: AlertType
    message: str


class Alert(DomainModel):
    """Transient alert shown to the teacher for a short window."""
    id: str
    type: AlertType
    message: str
    student_name: Optional[str] = None


class SessionRecord(DomainModel):
    """A tracking session; immutable once the engine has finalized it."""
    id: str
    teacher_name: str
    teacher_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, ge=0)
    total_students: int = Field(..., ge=0)
    attention_data: Tuple[AttentionPoint, ...] = ()
    student_engagement: Tuple[StudentEngagement, ...] = ()
    alerts: Tuple[AlertLogEntry, ...] = ()

    @model_validator(mode="after")
    def check_invariants(self):
        if (self.end_time is None) != (self.duration is None):
            raise ValueError("end_time and duration must be set together")
        times = [point.time for point in self.attention_data]
        if any(later < earlier for earlier, later in zip(times, times[1:])):
            raise ValueError("attention_data must be ordered by time")
        return self

    @property
    def is_finalized(self) -> bool:
        return self.end_time is not None


class SessionSnapshot(DomainModel):
    """Live view of an active session, pushed to subscribers."""
    session_id: str
    teacher_name: str
    teacher_id: str
    elapsed_seconds: int
    overall_attention: int
    engagement_level: str
    detected_students: int
    total_students: int
    active_alerts: Tuple[Alert, ...] = ()
    alerts_triggered: int = 0
    data_points: int = 0
    average_attention: int = 0
