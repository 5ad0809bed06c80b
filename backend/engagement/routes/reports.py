"""
Report API routes - session history, report detail and CSV download.

History is listed most-recent-first. The detail view returns the stored
record together with the derived statistics the report screen shows.
"""

import time
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from engagement.database import get_db
from engagement.services.classroom import list_records, get_record
from engagement.services.report import build_report, csv_filename, summarize, to_csv
from engagement.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("report")


@router.get("/api/reports")
def list_reports(db: Session = Depends(get_db)):
    records = list_records(db)
    return {"data": [summarize(r) for r in records], "total": len(records)}


@router.get("/api/reports/{session_id}")
def read_report(session_id: str, db: Session = Depends(get_db)):
    record = get_record(db, session_id)
    if not record:
        raise HTTPException(status_code=404, detail="Session report not found")
    return build_report(record)


@router.get("/api/reports/{session_id}/csv")
def download_report_csv(session_id: str, db: Session = Depends(get_db)):
    """Download the report as session-report-<id>.csv."""
    start_time = time.time()
    record = get_record(db, session_id)
    if not record:
        raise HTTPException(status_code=404, detail="Session report not found")

    content = to_csv(record)

    log_with_context(logger, "INFO", "CSV export generated",
                     context={"session_id": session_id},
                     extra_data={"bytes": len(content),
                                 "duration_ms": round((time.time() - start_time) * 1000, 2)})

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{csv_filename(record)}"'},
    )
