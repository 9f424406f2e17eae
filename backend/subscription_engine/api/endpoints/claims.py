from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from subscription_engine.api.errors import http_error
from subscription_engine.core.database import get_db
from subscription_engine.core.security import CurrentUser, get_current_user
from subscription_engine.schemas.billing import ClaimCreate, ClaimResponse
from subscription_engine.services import payment_claims
from subscription_engine.services.errors import BillingError


router = APIRouter()


@router.post("/claims", response_model=ClaimResponse, status_code=201)
async def submit_claim(
    body: ClaimCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return payment_claims.submit_claim(
            db,
            subject_id=user.id,
            amount=body.amount,
            external_reference=body.external_reference,
            phone=body.phone_number,
            purpose=body.purpose,
            tier=body.tier,
            duration_type=body.duration_type,
            currency_context=body.currency_context,
        )
    except BillingError as exc:
        raise http_error(exc)


@router.get("/claims/mine", response_model=List[ClaimResponse])
async def list_my_claims(
    state: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return payment_claims.list_claims(db, subject_id=user.id, state=state, limit=limit, offset=offset)
