"""
Station Pulse - Issue Reports API Router

Filing an issue report. Report review (confirm / reject / resolve) is
handled by the admin panel, not here.
"""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db, get_session_factory
from ..services.reputation import (
    InvalidReportError,
    ReporterNotFoundError,
    StationNotFoundError,
    VerificationService,
)


router = APIRouter(prefix="/reports", tags=["reports"])


class CreateReportRequest(BaseModel):
    """Request model for filing an issue report."""
    station_id: int
    reporter_id: Optional[str] = None
    status: str = Field(..., description="WORKING or NOT_WORKING")
    reason: Optional[str] = Field(None, max_length=50, description="BUSY, OUT_OF_SERVICE, ACCESS_ISSUE, NOT_FOUND")


class ReportResponse(BaseModel):
    """Response model for an issue report."""
    id: int
    station_id: int
    reporter_id: Optional[str]
    status: str
    reason: Optional[str]
    review_status: str
    created_at: str


@router.post("", response_model=ReportResponse, status_code=201)
async def create_report(
    request: CreateReportRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """
    File an issue report.

    A station with 3 or more reports is flagged LOW. When enough reporters
    agree on the same reason, each of them is rewarded in the background.
    """
    service = VerificationService(db, session_factory=session_factory)

    try:
        report = service.submit_report(
            station_id=request.station_id,
            reporter_id=request.reporter_id,
            status=request.status,
            reason=request.reason,
            background_tasks=background_tasks,
        )
    except InvalidReportError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (StationNotFoundError, ReporterNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))

    return ReportResponse(
        id=report.id,
        station_id=report.station_id,
        reporter_id=report.reporter_id,
        status=report.status.value,
        reason=report.reason,
        review_status=report.review_status,
        created_at=report.created_at.isoformat(),
    )
