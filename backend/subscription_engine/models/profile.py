from sqlalchemy import Column, String
from sqlalchemy.sql import func

from subscription_engine.core.database import AwareDateTime, Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, index=True)
    role = Column(String, index=True, default="user")
    display_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    created_at = Column(AwareDateTime(), server_default=func.now())
