from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from subscription_engine.api.errors import http_error
from subscription_engine.core.database import get_db
from subscription_engine.core.security import CurrentUser, get_current_user
from subscription_engine.models.payment_claim import ClaimPurpose
from subscription_engine.schemas.billing import ClaimResponse
from subscription_engine.services import payment_claims
from subscription_engine.services.errors import BillingError
from subscription_engine.services.proration import quote_upgrade


router = APIRouter()


class UpgradeQuoteRequest(BaseModel):
    target_tier: str
    target_duration: str


class UpgradeRequest(UpgradeQuoteRequest):
    amount: float
    external_reference: str
    phone_number: str


@router.post("/upgrades/quote")
async def upgrade_quote(
    body: UpgradeQuoteRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    try:
        quote = quote_upgrade(db, user.id, body.target_tier, body.target_duration)
    except BillingError as exc:
        raise http_error(exc)
    return quote.as_dict()


@router.post("/upgrades", status_code=201)
async def request_upgrade(
    body: UpgradeRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    # The claim is priced against the quote at submission; verification
    # later checks the paid amount against it.
    try:
        quote = quote_upgrade(db, user.id, body.target_tier, body.target_duration)
        claim = payment_claims.submit_claim(
            db,
            subject_id=user.id,
            amount=body.amount,
            external_reference=body.external_reference,
            phone=body.phone_number,
            purpose=ClaimPurpose.UPGRADE.value,
            tier=body.target_tier,
            duration_type=body.target_duration,
            expected_amount=quote.upgrade_cost,
        )
    except BillingError as exc:
        raise http_error(exc)
    return {
        "quote": quote.as_dict(),
        "claim": ClaimResponse.model_validate(claim).model_dump(mode="json"),
    }
