"""
Student model - represents a student registered for engagement tracking.

Students are identified by an externally assigned ID (e.g. roll number).
The captured face photos are stored as opaque data URLs; nothing reads
them back apart from the registration API.
"""

import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Integer
from engagement.database import Base


class Student(Base):
    """
    SQLAlchemy model for the students table.

    Rows are never updated after registration. `position` preserves the
    registration order, which is also the roster order of a session.
    """
    __tablename__ = "students"

    id = Column(String(64), primary_key=True,
                doc="Externally assigned student identifier")
    position = Column(Integer, nullable=False, autoincrement=False, index=True,
                      doc="Registration order (0-based)")
    name = Column(Text, nullable=False,
                  doc="Student's display name")
    face_data = Column(Text, nullable=False, default="[]",
                       doc="Captured photos as a JSON list of opaque image strings")
    registered_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                           doc="Timestamp when the student was registered")

    @property
    def face_data_list(self):
        """Parse face_data JSON string to list."""
        if isinstance(self.face_data, list):
            return self.face_data
        try:
            return json.loads(self.face_data) if self.face_data else []
        except (json.JSONDecodeError, TypeError):
            return []

    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.name}', photos={len(self.face_data_list)})>"
