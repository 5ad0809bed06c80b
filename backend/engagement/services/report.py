"""
Report Aggregator - derived statistics and CSV export for finished sessions.

Every function here is a pure function of a SessionRecord:
1. average_attention: rounded mean of the class attention samples
2. most_engaged / least_engaged: extreme attention scores, first occurrence wins ties
3. to_csv: the four-section export (metadata, students, attention, alerts)

The CSV is comma-joined without quoting. Student names and messages are
written as-is, so a comma inside a name shifts that row's columns.
"""

from datetime import datetime, tzinfo
from typing import Optional

from engagement.schemas import SessionRecord, StudentEngagement
from engagement.services.stats import rounded_mean

NOT_AVAILABLE = "N/A"


def average_attention(record: SessionRecord) -> int:
    return rounded_mean(point.attention for point in record.attention_data)


def most_engaged(record: SessionRecord) -> Optional[StudentEngagement]:
    best = None
    for entry in record.student_engagement:
        if best is None or entry.attention_score > best.attention_score:
            best = entry
    return best


def least_engaged(record: SessionRecord) -> Optional[StudentEngagement]:
    worst = None
    for entry in record.student_engagement:
        if worst is None or entry.attention_score < worst.attention_score:
            worst = entry
    return worst


def format_duration(seconds: int) -> str:
    """3605 -> '1h 0m 5s', 65 -> '1m 5s'."""
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


def format_duration_short(seconds: int) -> str:
    """Duration without seconds, as shown in the report list."""
    hours, remainder = divmod(seconds, 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_time_label(seconds: int) -> str:
    """Chart axis label: 125 -> '2:05'."""
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


def format_locale_timestamp(value: datetime, tz: tzinfo = None) -> str:
    """
    Render a timestamp like a US-locale browser: '1/15/2024, 2:05:09 PM'.

    Aware datetimes are converted to `tz` (the server's local zone when
    omitted); naive datetimes are rendered as they are.
    """
    if value.tzinfo is not None:
        value = value.astimezone(tz)
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value.month}/{value.day}/{value.year}, {hour}:{value.minute:02d}:{value.second:02d} {meridiem}"


def engagement_band(score: int) -> str:
    """Colour band used by the per-student bars."""
    if score >= 80:
        return "high"
    if score >= 60:
        return "medium"
    return "low"


def csv_filename(record: SessionRecord) -> str:
    return f"session-report-{record.id}.csv"


def to_csv(record: SessionRecord, tz: tzinfo = None) -> str:
    end_time = format_locale_timestamp(record.end_time, tz) if record.end_time else NOT_AVAILABLE
    duration = format_duration(record.duration) if record.duration is not None else NOT_AVAILABLE

    rows = [
        ["Session Report"],
        [""],
        ["Session ID", record.id],
        ["Teacher Name", record.teacher_name],
        ["Teacher ID", record.teacher_id],
        ["Start Time", format_locale_timestamp(record.start_time, tz)],
        ["End Time", end_time],
        ["Duration", duration],
        ["Total Students", str(record.total_students)],
        [""],
        ["Student Engagement Data"],
        ["Student ID", "Student Name", "Attention Score (%)"],
    ]
    rows.extend([s.student_id, s.name, str(s.attention_score)] for s in record.student_engagement)
    rows.extend([
        [""],
        ["Attention Over Time"],
        ["Time (seconds)", "Attention (%)"],
    ])
    rows.extend([str(p.time), str(p.attention)] for p in record.attention_data)
    rows.extend([
        [""],
        ["Alerts Log"],
        ["Time (seconds)", "Type", "Message"],
    ])
    rows.extend([str(a.time), a.type, a.message] for a in record.alerts)

    return "\n".join(",".join(row) for row in rows)


def summarize(record: SessionRecord) -> dict:
    """Card shown in the report list."""
    return {
        "id": record.id,
        "teacherName": record.teacher_name,
        "teacherId": record.teacher_id,
        "startTime": record.start_time.isoformat(),
        "duration": format_duration_short(record.duration) if record.duration is not None else NOT_AVAILABLE,
        "totalStudents": record.total_students,
        "averageAttention": average_attention(record),
        "alertsCount": len(record.alerts),
    }


def build_report(record: SessionRecord) -> dict:
    """Full report payload: the record plus its derived statistics."""
    top = most_engaged(record)
    bottom = least_engaged(record)
    return {
        "session": record.model_dump(mode="json", by_alias=True),
        "averageAttention": average_attention(record),
        "duration": format_duration(record.duration) if record.duration is not None else NOT_AVAILABLE,
        "mostEngaged": top.model_dump(by_alias=True) if top else None,
        "leastEngaged": bottom.model_dump(by_alias=True) if bottom else None,
        "students": [
            {**s.model_dump(by_alias=True), "band": engagement_band(s.attention_score)}
            for s in record.student_engagement
        ],
        "chart": [
            {"label": format_time_label(p.time), "time": p.time, "attention": p.attention}
            for p in record.attention_data
        ],
    }
