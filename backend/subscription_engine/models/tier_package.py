from sqlalchemy import JSON, Boolean, Column, Index, Integer, Numeric, String, text
from sqlalchemy.sql import func

from subscription_engine.core.database import AwareDateTime, Base


TIER_ORDER: list[str] = ["starter", "basic_pro", "prime_plus", "vip_elite"]

DURATION_DAYS: dict[str, int] = {
    "1_week": 7,
    "2_weeks": 14,
    "1_month": 30,
}

UNLIMITED = -1


class TierPackage(Base):
    __tablename__ = "tier_packages"

    id = Column(Integer, primary_key=True, index=True)
    tier_name = Column(String, index=True, nullable=False)
    duration_type = Column(String, index=True, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    features = Column(JSON, default=list)
    upload_limit = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(AwareDateTime(), server_default=func.now())
    updated_at = Column(AwareDateTime(), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index(
            "uq_tier_packages_active_pair",
            "tier_name",
            "duration_type",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    @property
    def is_unlimited(self) -> bool:
        return int(self.upload_limit) == UNLIMITED
