"""
Station Pulse - Reporters API Router

Public read of a reporter's reputation tier, used for badge display.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.reputation import VerificationService


router = APIRouter(prefix="/reporters", tags=["reporters"])


class ReputationLevelResponse(BaseModel):
    reporter_id: str
    reputation_level: str


@router.get("/{reporter_id}/reputation-level", response_model=ReputationLevelResponse)
async def get_reputation_level(
    reporter_id: str,
    db: Session = Depends(get_db),
):
    """Reputation tier of a reporter. Unknown reporters are NEW."""
    level = VerificationService(db).get_reporter_reputation_level(reporter_id)
    return ReputationLevelResponse(reporter_id=reporter_id, reputation_level=level.value)
