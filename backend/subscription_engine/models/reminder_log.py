import enum

from sqlalchemy import Column, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from subscription_engine.core.database import AwareDateTime, Base


class ReminderType(str, enum.Enum):
    THREE_DAYS = "3_days"
    ONE_DAY = "1_day"
    EXPIRY_DAY = "expiry_day"


class ReminderStatus(str, enum.Enum):
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    UNDELIVERED = "undelivered"


class ReminderLog(Base):
    __tablename__ = "subscription_reminder_logs"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(String, index=True, nullable=False)
    subscription_id = Column(String, index=True, nullable=False)
    reminder_type = Column(String, nullable=False)
    status = Column(String, index=True, nullable=False, default=ReminderStatus.QUEUED.value)
    destination = Column(String, nullable=True)
    message_body = Column(Text, nullable=True)
    external_message_id = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(AwareDateTime(), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("subscription_id", "reminder_type", name="uq_reminder_logs_subscription_type"),
    )
