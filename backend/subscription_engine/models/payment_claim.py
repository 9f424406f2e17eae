import enum

from sqlalchemy import Column, Index, Integer, Numeric, String, Text, text
from sqlalchemy.sql import func

from subscription_engine.core.database import AwareDateTime, Base


class ClaimState(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ClaimPurpose(str, enum.Enum):
    SUBSCRIPTION = "subscription"
    FEATURED_LISTING = "featured-listing"
    UPGRADE = "upgrade"


# Purposes whose verification activates a listing period.
SUBSCRIPTION_PURPOSES = {ClaimPurpose.SUBSCRIPTION.value, ClaimPurpose.UPGRADE.value}


class PaymentClaim(Base):
    __tablename__ = "payment_claims"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(String, index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    expected_amount = Column(Numeric(12, 2), nullable=True)
    currency_context = Column(String, default="local")
    external_reference = Column(String, index=True, nullable=False)
    phone_number = Column(String, nullable=True)
    purpose = Column(String, index=True, nullable=False)
    tier = Column(String, nullable=True)
    duration_type = Column(String, nullable=True)
    state = Column(String, index=True, nullable=False, default=ClaimState.PENDING.value)
    submitted_at = Column(AwareDateTime(), nullable=False, server_default=func.now())
    verified_at = Column(AwareDateTime(), nullable=True)
    verified_by = Column(String, nullable=True)
    review_note = Column(Text, nullable=True)

    __table_args__ = (
        Index(
            "uq_payment_claims_pending_reference",
            "subject_id",
            "purpose",
            "external_reference",
            unique=True,
            sqlite_where=text("state = 'pending'"),
            postgresql_where=text("state = 'pending'"),
        ),
    )

    @property
    def payment_status(self) -> str:
        if self.expected_amount is None:
            return "exact"
        if self.amount < self.expected_amount:
            return "underpaid"
        if self.amount > self.expected_amount:
            return "overpaid"
        return "exact"

    @property
    def credit_balance(self):
        if self.expected_amount is None or self.amount <= self.expected_amount:
            return 0
        return self.amount - self.expected_amount
