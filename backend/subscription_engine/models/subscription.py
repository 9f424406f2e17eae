from uuid import uuid4

from sqlalchemy import Boolean, Column, Integer, Numeric, String
from sqlalchemy.sql import func

from subscription_engine.core.database import AwareDateTime, Base


def new_subscription_id() -> str:
    return uuid4().hex


class Subscription(Base):
    __tablename__ = "subscriptions"

    # Minted on every upsert, so each paid period has its own identity.
    id = Column(String, primary_key=True, default=new_subscription_id)
    subject_id = Column(String, index=True, unique=True, nullable=False)
    tier = Column(String, index=True, nullable=False)
    duration_type = Column(String, nullable=False)
    start_at = Column(AwareDateTime(), nullable=False)
    end_at = Column(AwareDateTime(), index=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    funding_claim_id = Column(Integer, index=True, nullable=True)
    created_at = Column(AwareDateTime(), server_default=func.now())
    updated_at = Column(AwareDateTime(), server_default=func.now(), onupdate=func.now())
