from engagement.models.student import Student
from engagement.models.session_report import SessionReport

__all__ = ["Student", "SessionReport"]
