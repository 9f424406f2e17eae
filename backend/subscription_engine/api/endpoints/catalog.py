from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from subscription_engine.api.errors import http_error
from subscription_engine.core.database import get_db
from subscription_engine.schemas.billing import PackageResponse
from subscription_engine.services import catalog
from subscription_engine.services.errors import BillingError


router = APIRouter()


@router.get("/catalog", response_model=List[PackageResponse])
async def list_packages(duration_type: Optional[str] = None, db: Session = Depends(get_db)):
    if duration_type:
        try:
            catalog.duration_days(duration_type)
        except BillingError as exc:
            raise http_error(exc)
    return catalog.list_active(db, duration_type=duration_type)
