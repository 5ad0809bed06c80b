"""
Roster Loader Script - registers a demo roster through the API.

Reads students from a JSON file ([{"id": ..., "name": ...}, ...]) when one
is given, otherwise registers a built-in demo class. Each student gets three
placeholder photos, since registration requires exactly three.

Usage:
    python load_roster.py                                  # Demo roster, default URL
    python load_roster.py http://localhost:8000            # Custom API URL
    python load_roster.py http://localhost:8000 roster.json
"""

import json
import os
import sys

import httpx

DEMO_ROSTER = [
    {"id": "S001", "name": "Aarav Sharma"},
    {"id": "S002", "name": "Diya Patel"},
    {"id": "S003", "name": "Kabir Singh"},
    {"id": "S004", "name": "Meera Iyer"},
    {"id": "S005", "name": "Rohan Gupta"},
]

# 1x1 transparent PNG; stands in for the captured webcam frames
PLACEHOLDER_PHOTO = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def load_students(path):
    if not path:
        return DEMO_ROSTER
    with open(path, "r") as f:
        return json.load(f)


def main():
    api_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("API_URL", "http://localhost:8000")
    roster_file = sys.argv[2] if len(sys.argv) > 2 else None
    students_url = f"{api_url}/api/students"

    students = load_students(roster_file)
    print(f"Registering {len(students)} students at {students_url}")
    print()

    registered = 0
    with httpx.Client(timeout=30.0) as client:
        for student in students:
            payload = {
                "id": student["id"],
                "name": student["name"],
                "face_data": [PLACEHOLDER_PHOTO] * 3,
            }
            resp = client.post(students_url, json=payload)
            if resp.status_code == 201:
                registered += 1
                print(f"  ✅ {student['id']}: {student['name']}")
            else:
                detail = resp.json().get("detail", resp.text)
                print(f"  ❌ {student['id']}: {detail}")

    print()
    print("=" * 60)
    print(f"  Registered: {registered} / {len(students)}")
    print("=" * 60)


if __name__ == "__main__":
    main()
