"""
Station Pulse - Station Verification API Router

Community verification endpoints: cast a vote, read the live tally,
read recent history and the (feature-gated) station confidence score.

The reporter is identified by the request body; authentication is handled
upstream.
"""
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db, get_session_factory
from ..services.reputation import (
    InvalidVoteError,
    ReporterNotFoundError,
    StationNotFoundError,
    VerificationService,
)


router = APIRouter(prefix="/stations", tags=["stations"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class VerificationRequest(BaseModel):
    """Request model for casting a verification vote."""
    reporter_id: str = Field(..., description="ID of the voting reporter")
    vote: str = Field(..., description="WORKING, NOT_WORKING or BUSY")


class VerificationSummaryResponse(BaseModel):
    """Live vote tally for the trailing 30 minutes."""
    working: int
    not_working: int
    busy: int
    total_votes: int
    leading_value: Optional[str]
    is_verified: bool
    is_strong_verified: bool
    last_verified_at: Optional[str]


class VerificationHistoryEntry(BaseModel):
    """One vote in the station's recent history."""
    id: int
    value: str
    cast_at: str
    reporter_id: str
    reporter_name: str
    reputation_level: str


class ConfidenceResponse(BaseModel):
    """Station confidence score."""
    score: int
    label: str
    components: dict


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/{station_id}/verify", status_code=201)
async def submit_verification(
    station_id: int,
    request: VerificationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """
    Cast a verification vote.

    Station status is updated before the response is returned. Reputation
    rewards and penalties are evaluated in the background.
    """
    service = VerificationService(db, session_factory=session_factory)

    try:
        result = service.submit_verification(
            station_id=station_id,
            reporter_id=request.reporter_id,
            vote=request.vote,
            background_tasks=background_tasks,
        )
    except InvalidVoteError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (StationNotFoundError, ReporterNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))

    return result.to_dict()


@router.get("/{station_id}/verification-summary", response_model=VerificationSummaryResponse)
async def get_verification_summary(
    station_id: int,
    db: Session = Depends(get_db),
):
    """
    Live vote tally. Only served for approved, visible stations.
    """
    service = VerificationService(db)
    station = _get_visible_station(service, station_id)

    summary = service.get_verification_summary(station.id)
    return VerificationSummaryResponse(**summary.to_dict())


@router.get("/{station_id}/verification-history", response_model=List[VerificationHistoryEntry])
async def get_verification_history(
    station_id: int,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Votes from the last 24 hours with reporter name and reputation level.
    """
    service = VerificationService(db)
    history = service.get_verification_history(station_id, limit=limit)
    return [VerificationHistoryEntry(**entry) for entry in history]


@router.get("/{station_id}/confidence", response_model=ConfidenceResponse)
async def get_station_confidence(
    station_id: int,
    db: Session = Depends(get_db),
):
    """
    Station confidence score (feature-flagged).

    404 when the feature is off, the station is missing or not visible.
    """
    service = VerificationService(db)
    _get_visible_station(service, station_id)

    estimate = service.estimate_station_confidence(station_id)
    if estimate is None:
        raise HTTPException(status_code=404, detail="Station confidence not available")

    return ConfidenceResponse(
        score=estimate.score,
        label=estimate.label,
        components=estimate.components,
    )


def _get_visible_station(service: VerificationService, station_id: int):
    try:
        station = service.get_station(station_id)
    except StationNotFoundError:
        raise HTTPException(status_code=404, detail="Station not found")

    if not station.is_publicly_visible:
        raise HTTPException(status_code=404, detail="Station not found")
    return station
