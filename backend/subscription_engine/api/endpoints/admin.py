from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from subscription_engine.api.errors import http_error
from subscription_engine.core.database import get_db, utcnow
from subscription_engine.core.security import CurrentUser, require_admin
from subscription_engine.models.subscription import Subscription
from subscription_engine.schemas.billing import (
    ClaimResponse,
    PackageResponse,
    ReminderLogResponse,
    SubscriptionResponse,
    VerificationResponse,
)
from subscription_engine.services import catalog, ledger, payment_claims, verification
from subscription_engine.services.entitlements import entitlement_status
from subscription_engine.services.errors import BillingError
from subscription_engine.services.messaging import MessageTransport, get_transport
from subscription_engine.services.reminders import list_reminder_logs, run_reminder_sweep


router = APIRouter(dependencies=[Depends(require_admin)])


class RejectRequest(BaseModel):
    note: Optional[str] = None


class PackageCreateRequest(BaseModel):
    tier_name: str
    duration_type: str
    price: float
    features: List[str] = []
    upload_limit: int = 0
    display_order: int = 0
    is_active: bool = True


class PackageUpdateRequest(BaseModel):
    price: Optional[float] = None
    features: Optional[List[str]] = None
    upload_limit: Optional[int] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class SubscriptionUpsertRequest(BaseModel):
    tier: str
    duration_type: str
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    amount_paid: float = 0
    is_active: bool = True


class ActiveFlagRequest(BaseModel):
    active: bool


class ForceExpireRequest(BaseModel):
    subject_ids: List[str]


class PromotionRequest(BaseModel):
    subject_id: str
    amount: float = 0
    phone_number: Optional[str] = None


def reminder_transport() -> MessageTransport:
    return get_transport()


def _verification_payload(result: verification.VerificationResult) -> VerificationResponse:
    return VerificationResponse(
        claim=ClaimResponse.model_validate(result.claim),
        subscription=(SubscriptionResponse.model_validate(result.subscription) if result.subscription else None),
        activated=result.activated,
    )


# Claims


@router.get("/admin/claims", response_model=List[ClaimResponse])
async def admin_list_claims(
    state: Optional[str] = None,
    subject_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return payment_claims.list_claims(
        db,
        subject_id=subject_id,
        state=state,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )


@router.post("/admin/claims/{claim_id}/verify", response_model=VerificationResponse)
async def admin_verify_claim(
    claim_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        result = verification.verify_claim(db, claim_id, admin_id=admin.id)
    except BillingError as exc:
        raise http_error(exc)
    return _verification_payload(result)


@router.post("/admin/claims/{claim_id}/reject", response_model=ClaimResponse)
async def admin_reject_claim(
    claim_id: int,
    body: RejectRequest | None = None,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return verification.reject_claim(db, claim_id, admin_id=admin.id, note=(body.note if body else None))
    except BillingError as exc:
        raise http_error(exc)


@router.delete("/admin/claims/{claim_id}", status_code=204)
async def admin_purge_claim(
    claim_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    try:
        payment_claims.purge_claim(db, claim_id, admin_id=admin.id)
    except BillingError as exc:
        raise http_error(exc)
    return Response(status_code=204)


# Catalog


@router.post("/admin/catalog", response_model=PackageResponse, status_code=201)
async def admin_create_package(body: PackageCreateRequest, db: Session = Depends(get_db)):
    try:
        return catalog.create_package(
            db,
            tier=body.tier_name,
            duration_type=body.duration_type,
            price=body.price,
            features=body.features,
            upload_limit=body.upload_limit,
            display_order=body.display_order,
            is_active=body.is_active,
        )
    except BillingError as exc:
        raise http_error(exc)


@router.patch("/admin/catalog/{package_id}", response_model=PackageResponse)
async def admin_update_package(package_id: int, body: PackageUpdateRequest, db: Session = Depends(get_db)):
    changes = body.model_dump(exclude_unset=True)
    active = changes.pop("is_active", None)
    try:
        pkg = catalog.update_package(db, package_id, changes)
        if active is not None and bool(active) != bool(pkg.is_active):
            pkg = catalog.set_package_active(db, package_id, bool(active))
    except BillingError as exc:
        raise http_error(exc)
    return pkg


# Subscriptions


def _subscription_row(sub: Subscription, now: datetime) -> dict:
    out = SubscriptionResponse.model_validate(sub).model_dump(mode="json")
    if ledger.is_currently_entitled(sub, now=now):
        out["days_remaining"] = ledger.days_remaining(sub, now=now)
    else:
        out["days_expired"] = max(0, int((now - sub.end_at).total_seconds() // 86400))
    return out


@router.get("/admin/subscriptions/active")
async def admin_active_subscriptions(limit: int = 100, offset: int = 0, db: Session = Depends(get_db)) -> list[dict]:
    now = utcnow()
    limit = max(1, min(int(limit or 100), 500))
    offset = max(0, int(offset or 0))
    rows = ledger.list_active_subscriptions(db, now=now, limit=limit, offset=offset)
    return [_subscription_row(s, now) for s in rows]


@router.get("/admin/subscriptions/expired")
async def admin_expired_subscriptions(limit: int = 100, offset: int = 0, db: Session = Depends(get_db)) -> list[dict]:
    now = utcnow()
    limit = max(1, min(int(limit or 100), 500))
    offset = max(0, int(offset or 0))
    rows = ledger.list_expired_subscriptions(db, now=now, limit=limit, offset=offset)
    return [_subscription_row(s, now) for s in rows]


@router.put("/admin/subscriptions/{subject_id}", response_model=SubscriptionResponse)
async def admin_upsert_subscription(subject_id: str, body: SubscriptionUpsertRequest, db: Session = Depends(get_db)):
    try:
        start_at = body.start_at or utcnow()
        end_at = body.end_at or ledger.compute_end_at(start_at, body.duration_type)
        return ledger.upsert(
            db,
            subject_id=subject_id,
            tier=body.tier,
            duration_type=body.duration_type,
            start_at=start_at,
            end_at=end_at,
            amount_paid=body.amount_paid,
            funding_claim_id=None,
            is_active=body.is_active,
        )
    except BillingError as exc:
        raise http_error(exc)


@router.post("/admin/subscriptions/{subject_id}/active", response_model=SubscriptionResponse)
async def admin_set_subscription_active(subject_id: str, body: ActiveFlagRequest, db: Session = Depends(get_db)):
    try:
        return ledger.set_active_flag(db, subject_id, body.active)
    except BillingError as exc:
        raise http_error(exc)


@router.post("/admin/subscriptions/force-expire")
async def admin_force_expire(body: ForceExpireRequest, db: Session = Depends(get_db)) -> dict:
    try:
        touched = ledger.force_expire(db, body.subject_ids)
    except BillingError as exc:
        raise http_error(exc)
    return {"expired": touched}


@router.delete("/admin/subscriptions/{subject_id}", status_code=204)
async def admin_delete_subscription(subject_id: str, db: Session = Depends(get_db)) -> Response:
    try:
        ledger.delete(db, subject_id)
    except BillingError as exc:
        raise http_error(exc)
    return Response(status_code=204)


@router.get("/admin/subjects/{subject_id}/entitlements")
async def admin_subject_entitlements(subject_id: str, current_count: int = 0, db: Session = Depends(get_db)) -> dict:
    return entitlement_status(db, subject_id, current_count=current_count).as_dict()


@router.post("/admin/promotions", response_model=VerificationResponse, status_code=201)
async def admin_activate_promotion(
    body: PromotionRequest,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        result = verification.activate_promotional_offer(
            db,
            subject_id=body.subject_id,
            admin_id=admin.id,
            amount=body.amount,
            phone=body.phone_number,
        )
    except BillingError as exc:
        raise http_error(exc)
    return _verification_payload(result)


# Reminders


@router.post("/admin/reminders/run")
def admin_run_reminders(
    transport: MessageTransport = Depends(reminder_transport),
    db: Session = Depends(get_db),
) -> dict:
    report = run_reminder_sweep(db, transport)
    return {"sent": report.sent, "failed": report.failed, "skipped": report.skipped}


@router.get("/admin/reminders/logs", response_model=List[ReminderLogResponse])
async def admin_reminder_logs(
    subject_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return list_reminder_logs(db, subject_id=subject_id, limit=limit, offset=offset)
