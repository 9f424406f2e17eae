from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from enum import Enum


class ClaimState(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ClaimCreate(BaseModel):
    amount: float
    external_reference: str
    phone_number: str
    purpose: str = "subscription"
    tier: Optional[str] = None
    duration_type: Optional[str] = None
    currency_context: str = "local"


class ClaimResponse(BaseModel):
    id: int
    subject_id: str
    amount: float
    expected_amount: Optional[float] = None
    currency_context: str
    external_reference: str
    phone_number: Optional[str] = None
    purpose: str
    tier: Optional[str] = None
    duration_type: Optional[str] = None
    state: ClaimState
    payment_status: str
    credit_balance: float
    submitted_at: datetime
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    review_note: Optional[str] = None

    class Config:
        from_attributes = True


class PackageResponse(BaseModel):
    id: int
    tier_name: str
    duration_type: str
    price: float
    features: List[str] = []
    upload_limit: int
    is_unlimited: bool
    is_active: bool
    display_order: int

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    id: str
    subject_id: str
    tier: str
    duration_type: str
    start_at: datetime
    end_at: datetime
    is_active: bool
    amount_paid: float
    funding_claim_id: Optional[int] = None

    class Config:
        from_attributes = True


class VerificationResponse(BaseModel):
    claim: ClaimResponse
    subscription: Optional[SubscriptionResponse] = None
    activated: bool


class ReminderLogResponse(BaseModel):
    id: int
    subject_id: str
    subscription_id: str
    reminder_type: str
    status: str
    destination: Optional[str] = None
    external_message_id: Optional[str] = None
    error: Optional[str] = None
    sent_at: datetime

    class Config:
        from_attributes = True
