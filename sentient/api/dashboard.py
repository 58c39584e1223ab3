"""
Dashboard API routes.
- GET /v1/dashboard
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sentient.core.auth import CurrentUser, get_current_user
from sentient.core.database import get_db
from sentient.features.dashboard.service import Dashboard, build_dashboard

router = APIRouter(prefix="/v1/dashboard", tags=["dashboard"])


@router.get("", response_model=Dashboard)
def get_dashboard(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db),
):
    return build_dashboard(session, user)
