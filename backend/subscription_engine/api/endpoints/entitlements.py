from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from subscription_engine.core.database import get_db
from subscription_engine.core.security import CurrentUser, get_current_user
from subscription_engine.services.entitlements import entitlement_status


router = APIRouter()


@router.get("/entitlements/me")
async def my_entitlements(
    current_count: int = 0,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    return entitlement_status(db, user.id, current_count=current_count).as_dict()
