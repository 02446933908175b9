import sqlalchemy
from sqlalchemy import Boolean, Column, Integer, String

from geodiag.platform.db.base import BaseModel


class Profile(BaseModel):
    """
    Usage state for one identity-provider user.

    `is_premium` is maintained by the billing integration; this service only
    reads it.
    """
    __tablename__ = "profiles"

    # The identity provider's user id, not a generated one
    id = Column(String, primary_key=True, index=True)

    is_premium = Column(Boolean, default=False, nullable=False)
    language = Column(String(8), default="ja", nullable=False)

    # Free tier: credits per rolling period
    free_credits = Column(Integer, default=3, nullable=False)
    credits_reset_at = Column(sqlalchemy.DateTime(timezone=True), nullable=True)

    # Pro tier: monthly cap
    pro_monthly_usage = Column(Integer, default=0, nullable=False)
    pro_usage_reset_at = Column(sqlalchemy.DateTime(timezone=True), nullable=True)
