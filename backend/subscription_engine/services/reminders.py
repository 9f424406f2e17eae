from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subscription_engine.core.database import utcnow
from subscription_engine.core.settings import settings
from subscription_engine.models.payment_claim import PaymentClaim
from subscription_engine.models.profile import Profile
from subscription_engine.models.reminder_log import ReminderLog, ReminderStatus, ReminderType
from subscription_engine.models.subscription import Subscription
from subscription_engine.services.errors import TransportError, ValidationError
from subscription_engine.services.messaging import MessageTransport
from subscription_engine.services.payment_claims import normalize_phone


logger = logging.getLogger(__name__)


ONE_DAY = timedelta(days=1)


@dataclass
class SweepReport:
    candidates: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self) -> dict:
        return {
            "candidates": self.candidates,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class _Candidate:
    subscription_id: str
    subject_id: str
    tier: str
    end_at: datetime
    funding_claim_id: int | None
    reminder_type: ReminderType


def classify(end_at: datetime, now: datetime) -> ReminderType | None:
    """Map the time left before ``end_at`` to the reminder due right now, if any."""
    remaining = end_at - now
    if 2 * ONE_DAY <= remaining <= 3 * ONE_DAY:
        return ReminderType.THREE_DAYS
    if timedelta(0) < remaining <= ONE_DAY:
        return ReminderType.ONE_DAY
    if -ONE_DAY < remaining <= timedelta(0):
        return ReminderType.EXPIRY_DAY
    return None


def tier_label(tier: str) -> str:
    return str(tier or "").replace("_", " ").upper()


def format_expiry_date(end_at: datetime) -> str:
    return f"{end_at.strftime('%B')} {end_at.day}, {end_at.year}"


def format_reminder_message(reminder_type: ReminderType, name: str, tier: str, end_at: datetime) -> str:
    brand = settings.brand_name
    label = tier_label(tier)
    date = format_expiry_date(end_at)
    if reminder_type == ReminderType.THREE_DAYS:
        return (
            f"Hi {name}!\n\n"
            f"This is a friendly reminder from {brand}. Your {label} subscription will expire in 3 DAYS on {date}.\n\n"
            "To keep your premium visibility and features, please renew your subscription soon.\n\n"
            "If you've already renewed, please ignore this message.\n\n"
            f"Thank you for being part of {brand}!"
        )
    if reminder_type == ReminderType.ONE_DAY:
        return (
            f"URGENT: Hi {name}!\n\n"
            f"Your {label} subscription expires TOMORROW ({date})!\n\n"
            "Don't lose your profile visibility. Renew today to keep your position on our homepage.\n\n"
            f"Thank you for being part of {brand}!"
        )
    return (
        f"FINAL NOTICE: Hi {name}!\n\n"
        f"Your {label} subscription EXPIRES TODAY ({date})!\n\n"
        "Your profile will be removed from our homepage if it is not renewed.\n\n"
        "Renew NOW to avoid any interruption in your visibility.\n\n"
        f"Thank you for being part of {brand}!"
    )


def find_candidates(db: Session, now: datetime) -> list[_Candidate]:
    rows = (
        db.query(Subscription)
        .filter(
            Subscription.is_active.is_(True),
            Subscription.end_at > now - ONE_DAY,
            Subscription.end_at <= now + 3 * ONE_DAY,
        )
        .order_by(Subscription.end_at.asc())
        .all()
    )
    out: list[_Candidate] = []
    for sub in rows:
        reminder_type = classify(sub.end_at, now)
        if reminder_type is None:
            continue
        out.append(
            _Candidate(
                subscription_id=sub.id,
                subject_id=sub.subject_id,
                tier=sub.tier,
                end_at=sub.end_at,
                funding_claim_id=sub.funding_claim_id,
                reminder_type=reminder_type,
            )
        )
    return out


def _already_logged(db: Session, subscription_id: str, reminder_type: ReminderType) -> bool:
    return (
        db.query(ReminderLog.id)
        .filter(ReminderLog.subscription_id == subscription_id, ReminderLog.reminder_type == reminder_type.value)
        .first()
        is not None
    )


def _resolve_contact(db: Session, candidate: _Candidate) -> tuple[str | None, str]:
    profile = db.query(Profile).filter(Profile.id == candidate.subject_id).first()
    name = str((profile.display_name if profile else "") or "").strip() or "there"

    raw_phones: list[str] = []
    if profile is not None and profile.phone_number:
        raw_phones.append(profile.phone_number)
    if candidate.funding_claim_id is not None:
        claim = db.query(PaymentClaim).filter(PaymentClaim.id == candidate.funding_claim_id).first()
        if claim is not None and claim.phone_number:
            raw_phones.append(claim.phone_number)

    for raw in raw_phones:
        try:
            return normalize_phone(raw), name
        except ValidationError:
            continue
    return None, name


def _deliver(db: Session, transport: MessageTransport, candidate: _Candidate, now: datetime, report: SweepReport) -> None:
    destination, name = _resolve_contact(db, candidate)
    body = format_reminder_message(candidate.reminder_type, name, candidate.tier, candidate.end_at)

    entry = ReminderLog(
        subject_id=candidate.subject_id,
        subscription_id=candidate.subscription_id,
        reminder_type=candidate.reminder_type.value,
        status=ReminderStatus.QUEUED.value,
        destination=destination,
        message_body=body,
        sent_at=now,
    )
    db.add(entry)
    try:
        # The (subscription_id, reminder_type) unique constraint makes this
        # insert the claim on the send; an overlapping sweep loses here.
        db.commit()
    except IntegrityError:
        db.rollback()
        report.skipped += 1
        logger.info(
            "reminders.skip.raced subscription_id=%s reminder_type=%s",
            candidate.subscription_id,
            candidate.reminder_type.value,
        )
        return

    if destination is None:
        entry.status = ReminderStatus.FAILED.value
        entry.error = "no_destination"
        db.commit()
        report.failed += 1
        logger.warning("reminders.send.no_destination subject_id=%s", candidate.subject_id)
        return

    try:
        message_id = transport.send(destination, body)
    except TransportError as exc:
        entry.status = ReminderStatus.FAILED.value
        entry.error = exc.message
        db.commit()
        report.failed += 1
        logger.warning(
            "reminders.send.failed subject_id=%s reminder_type=%s code=%s",
            candidate.subject_id,
            candidate.reminder_type.value,
            exc.code,
        )
        return
    except Exception as exc:
        entry.status = ReminderStatus.FAILED.value
        entry.error = str(exc) or exc.__class__.__name__
        db.commit()
        report.failed += 1
        logger.exception(
            "reminders.send.error subject_id=%s reminder_type=%s",
            candidate.subject_id,
            candidate.reminder_type.value,
        )
        return

    entry.status = ReminderStatus.SENT.value
    entry.external_message_id = message_id
    db.commit()
    report.sent += 1
    logger.info(
        "reminders.send.ok subject_id=%s reminder_type=%s message_id=%s",
        candidate.subject_id,
        candidate.reminder_type.value,
        message_id,
    )


def run_reminder_sweep(db: Session, transport: MessageTransport, now: datetime | None = None) -> SweepReport:
    now = now or utcnow()
    report = SweepReport()
    candidates = find_candidates(db, now)
    report.candidates = len(candidates)
    logger.info("reminders.sweep.start now=%s candidates=%s", now.isoformat(), len(candidates))

    for candidate in candidates:
        if _already_logged(db, candidate.subscription_id, candidate.reminder_type):
            report.skipped += 1
            continue
        try:
            _deliver(db, transport, candidate, now, report)
        except Exception:
            # One bad row must not stop the rest of the batch.
            db.rollback()
            report.failed += 1
            logger.exception(
                "reminders.send.error subject_id=%s subscription_id=%s",
                candidate.subject_id,
                candidate.subscription_id,
            )

    logger.info(
        "reminders.sweep.done sent=%s failed=%s skipped=%s",
        report.sent,
        report.failed,
        report.skipped,
    )
    return report


def list_reminder_logs(
    db: Session,
    subject_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ReminderLog]:
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    q = db.query(ReminderLog)
    if subject_id:
        q = q.filter(ReminderLog.subject_id == subject_id)
    return q.order_by(ReminderLog.sent_at.desc(), ReminderLog.id.desc()).offset(offset).limit(limit).all()
