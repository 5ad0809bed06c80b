"""
SessionReport model - a finalized tracking session kept in the history.

Rows are written once, when a session is stopped, and never updated.
The per-round series (attention samples, student engagement, alerts) are
stored as JSON text columns in the same shape as the API returns them.
"""

import json
from sqlalchemy import Column, Text, DateTime, Integer, String, Index
from engagement.database import Base


def _parse_list(value):
    if isinstance(value, list):
        return value
    try:
        return json.loads(value) if value else []
    except (json.JSONDecodeError, TypeError):
        return []


class SessionReport(Base):
    """SQLAlchemy model for the session_reports table."""
    __tablename__ = "session_reports"

    id = Column(String(32), primary_key=True,
                doc="Time-based session identifier allocated at start")
    teacher_name = Column(Text, nullable=False)
    teacher_id = Column(Text, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True,
                      doc="Session length in clock ticks (seconds)")
    total_students = Column(Integer, nullable=False, default=0,
                            doc="Roster size when the session started")
    attention_data = Column(Text, nullable=False, default="[]",
                            doc="JSON list of {time, attention}")
    student_engagement = Column(Text, nullable=False, default="[]",
                                doc="JSON list of {studentId, name, attentionScore}")
    alerts = Column(Text, nullable=False, default="[]",
                    doc="JSON list of {time, type, message}")

    __table_args__ = (
        Index("ix_session_reports_start_time", "start_time"),
    )

    @property
    def attention_data_list(self):
        return _parse_list(self.attention_data)

    @property
    def student_engagement_list(self):
        return _parse_list(self.student_engagement)

    @property
    def alerts_list(self):
        return _parse_list(self.alerts)

    def __repr__(self):
        return f"<SessionReport(id={self.id}, teacher='{self.teacher_name}', duration={self.duration})>"
