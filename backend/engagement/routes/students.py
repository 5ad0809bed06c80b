"""
Student API routes - registration and roster listing.

Registration takes the student's ID, name and the three photos captured by
the browser (data URLs). Photos are stored as-is and never analysed.
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.orm import Session

from engagement.database import get_db
from engagement.schemas import RequestModel
from engagement.models.student import Student
from engagement.services.classroom import (
    StudentRegistrationError, register_student, list_roster, get_student
)
from engagement.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class StudentRegistration(RequestModel):
    """Schema for registering a student."""
    id: str = Field(..., description="Externally assigned student ID")
    name: str = Field(..., description="Student's display name")
    face_data: List[str] = Field(..., description="Captured photos as data URLs (exactly 3)")


def serialize_student(student: Student, include_faces: bool = False) -> dict:
    result = {
        "id": student.id,
        "name": student.name,
        "photoCount": len(student.face_data_list),
        "registeredAt": student.registered_at.isoformat() if student.registered_at else None,
    }
    if include_faces:
        result["faceData"] = student.face_data_list
    return result


@router.post("/api/students", status_code=201)
def create_student(request: StudentRegistration, db: Session = Depends(get_db)):
    """Register a student with their captured face photos."""
    try:
        student = register_student(db, request.id, request.name, request.face_data)
    except StudentRegistrationError as e:
        log_with_context(logger, "WARNING", f"Registration rejected: {e}",
                         context={"student_id": request.id})
        raise HTTPException(status_code=400, detail=str(e))
    return serialize_student(student)


@router.get("/api/students")
def list_students(db: Session = Depends(get_db)):
    """Roster in registration order."""
    students = list_roster(db)
    return {"data": [serialize_student(s) for s in students], "total": len(students)}


@router.get("/api/students/{student_id}")
def read_student(student_id: str, db: Session = Depends(get_db)):
    student = get_student(db, student_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return serialize_student(student, include_faces=True)
