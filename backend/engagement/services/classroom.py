"""
Classroom Service - roster, the active session and the session history.

This is the state the browser client used to hold on its own:
1. The roster of registered students (registration order)
2. At most one active SessionEngine
3. The history of finalized sessions, listed most-recent-first

Roster and history go through SQLAlchemy (in-memory SQLite by default);
the active engine lives on the Classroom object because its timers belong
to the running event loop.
"""

import json
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from engagement import config
from engagement.models.student import Student
from engagement.models.session_report import SessionReport
from engagement.schemas import SessionRecord, SessionSnapshot
from engagement.services.session_engine import SessionEngine, SessionStateError
from engagement.logging_config import get_logger, log_with_context

logger = get_logger("session")
db_logger = get_logger("db")


class StudentRegistrationError(ValueError):
    """Registration payload rejected (duplicate id, blank fields, wrong photo count)."""


class SessionAlreadyActive(SessionStateError):
    pass


class NoActiveSession(SessionStateError):
    pass


# ── roster ───────────────────────────────────────────────────

def register_student(db: Session, student_id: str, name: str,
                     face_data: Sequence[str]) -> Student:
    student_id = (student_id or "").strip()
    name = (name or "").strip()
    if not student_id or not name:
        raise StudentRegistrationError("Student ID and name are required")
    if len(face_data) != config.FACE_SAMPLES_REQUIRED:
        raise StudentRegistrationError(
            f"Exactly {config.FACE_SAMPLES_REQUIRED} face photos are required, got {len(face_data)}")
    if db.get(Student, student_id) is not None:
        raise StudentRegistrationError(f"Student ID {student_id} is already registered")

    position = db.query(func.count(Student.id)).scalar() or 0
    student = Student(
        id=student_id,
        position=position,
        name=name,
        face_data=json.dumps(list(face_data)),
        registered_at=datetime.now(timezone.utc),
    )
    db.add(student)
    db.commit()
    db.refresh(student)

    log_with_context(db_logger, "INFO", f"Student registered: {name}",
                     context={"student_id": student_id},
                     extra_data={"roster_size": position + 1})
    return student


def list_roster(db: Session) -> List[Student]:
    return db.query(Student).order_by(Student.position).all()


def get_student(db: Session, student_id: str) -> Optional[Student]:
    return db.get(Student, student_id)


# ── history ──────────────────────────────────────────────────

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything is stored in UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def save_record(db: Session, record: SessionRecord) -> SessionReport:
    payload = record.model_dump(mode="json", by_alias=True)
    row = SessionReport(
        id=record.id,
        teacher_name=record.teacher_name,
        teacher_id=record.teacher_id,
        start_time=_to_naive_utc(record.start_time),
        end_time=_to_naive_utc(record.end_time),
        duration=record.duration,
        total_students=record.total_students,
        attention_data=json.dumps(payload["attentionData"]),
        student_engagement=json.dumps(payload["studentEngagement"]),
        alerts=json.dumps(payload["alerts"]),
    )
    db.add(row)
    db.commit()

    log_with_context(db_logger, "INFO", "Session report stored",
                     context={"session_id": record.id, "teacher_id": record.teacher_id},
                     extra_data={"duration": record.duration})
    return row


def record_from_row(row: SessionReport) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        teacher_name=row.teacher_name,
        teacher_id=row.teacher_id,
        start_time=_as_utc(row.start_time),
        end_time=_as_utc(row.end_time),
        duration=row.duration,
        total_students=row.total_students,
        attention_data=row.attention_data_list,
        student_engagement=row.student_engagement_list,
        alerts=row.alerts_list,
    )


def list_records(db: Session) -> List[SessionRecord]:
    """Finalized sessions, most recent first."""
    rows = db.query(SessionReport).order_by(
        SessionReport.start_time.desc(), SessionReport.id.desc()
    ).all()
    return [record_from_row(r) for r in rows]


def get_record(db: Session, session_id: str) -> Optional[SessionRecord]:
    row = db.get(SessionReport, session_id)
    return record_from_row(row) if row else None


# ── active session ───────────────────────────────────────────

class Classroom:
    """Owner of the single active session engine."""

    def __init__(self, engine_factory: Callable[[], SessionEngine] = SessionEngine):
        self.engine_factory = engine_factory
        self.engine: Optional[SessionEngine] = None

    def start_session(self, db: Session, teacher_name: str, teacher_id: str,
                      schedule: bool = True) -> SessionSnapshot:
        if self.engine is not None and self.engine.is_active:
            raise SessionAlreadyActive(f"Session {self.engine.session_id} is already running")

        engine = self.engine_factory()
        snapshot = engine.start(list_roster(db), teacher_name, teacher_id, schedule=schedule)
        self.engine = engine
        return snapshot

    def current(self) -> SessionEngine:
        if self.engine is None or not self.engine.is_active:
            raise NoActiveSession("No session is running")
        return self.engine

    def stop_session(self, db: Session) -> SessionRecord:
        started = time.time()
        record = self.current().stop()
        self.engine = None
        save_record(db, record)

        log_with_context(logger, "INFO", "Session finalized",
                         context={"session_id": record.id},
                         extra_data={"duration_ms": round((time.time() - started) * 1000, 2)})
        return record

    def teardown(self):
        if self.engine is not None:
            self.engine.teardown()
            self.engine = None


classroom = Classroom()


def get_classroom() -> Classroom:
    """FastAPI dependency returning the process-wide classroom."""
    return classroom
