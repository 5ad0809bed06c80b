from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from engagement.main import app
from engagement.database import SessionLocal, create_tables, drop_tables
from engagement.schemas import SessionRecord
from engagement.services.classroom import classroom


@pytest.fixture(autouse=True)
def fresh_state():
    drop_tables()
    create_tables()
    yield
    classroom.teardown()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    # Context manager keeps one event loop alive for the engine's timers
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def finished_record():
    return SessionRecord(
        id="1705327509000",
        teacher_name="Ms Rao",
        teacher_id="T-17",
        start_time=datetime(2024, 1, 15, 14, 5, 9, tzinfo=timezone.utc),
        end_time=datetime(2024, 1, 15, 15, 5, 14, tzinfo=timezone.utc),
        duration=3605,
        total_students=2,
        attention_data=[
            {"time": 0, "attention": 80},
            {"time": 3, "attention": 60},
        ],
        student_engagement=[
            {"studentId": "a", "name": "Asha", "attentionScore": 90},
            {"studentId": "b", "name": "Bilal", "attentionScore": 40},
        ],
        alerts=[
            {"time": 3, "type": "hand", "message": "Asha raised their hand"},
            {"time": 3, "type": "distraction", "message": "40% of class appears distracted"},
        ],
    )
