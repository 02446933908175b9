import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from geodiag.features.diagnosis.models.profile import Profile
from geodiag.platform.db.base import utcnow

logger = logging.getLogger(__name__)


class CreditLedger:
    """
    Per-user diagnosis allowance.

    Free users get a fixed number of credits per rolling period; Pro users
    get a monthly cap. Every write is a single conditional UPDATE so two
    concurrent requests can never spend the same credit.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
        free_credits_per_period: int = 3,
        pro_monthly_limit: int = 100,
        period_days: int = 30,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.free_credits_per_period = free_credits_per_period
        self.pro_monthly_limit = pro_monthly_limit
        self.period = timedelta(days=period_days)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        async with self.session_factory() as session:
            result = await session.execute(select(Profile).where(Profile.id == user_id))
            return result.scalars().first()

    async def ensure_profile(self, user_id: str, language: str = "ja") -> Profile:
        """Create the default profile on first sight of an identity, then apply any due reset."""
        if await self.get_profile(user_id) is None:
            async with self.session_factory() as session:
                session.add(
                    Profile(
                        id=user_id,
                        language=language,
                        free_credits=self.free_credits_per_period,
                        credits_reset_at=self.clock(),
                        pro_monthly_usage=0,
                    )
                )
                try:
                    await session.commit()
                    logger.info(f"Created profile for user {user_id}")
                except IntegrityError:
                    # A concurrent request created it first
                    await session.rollback()

        return await self.refresh(user_id)

    async def refresh(self, user_id: str) -> Optional[Profile]:
        """Apply rolling-period resets that are due and return the current profile."""
        now = self.clock()
        cutoff = now - self.period

        async with self.session_factory() as session:
            free_reset = await session.execute(
                update(Profile)
                .where(
                    Profile.id == user_id,
                    or_(Profile.credits_reset_at.is_(None), Profile.credits_reset_at < cutoff),
                )
                .values(free_credits=self.free_credits_per_period, credits_reset_at=now)
            )
            pro_reset = await session.execute(
                update(Profile)
                .where(
                    Profile.id == user_id,
                    Profile.is_premium.is_(True),
                    or_(Profile.pro_usage_reset_at.is_(None), Profile.pro_usage_reset_at < cutoff),
                )
                .values(pro_monthly_usage=0, pro_usage_reset_at=now)
            )
            await session.commit()

            if free_reset.rowcount:
                logger.info(f"Free credits reset for user {user_id}")
            if pro_reset.rowcount:
                logger.info(f"Pro monthly usage reset for user {user_id}")

            result = await session.execute(
                select(Profile)
                .where(Profile.id == user_id)
                .execution_options(populate_existing=True)
            )
            return result.scalars().first()

    def has_allowance(self, profile: Profile) -> bool:
        if profile.is_premium:
            return profile.pro_monthly_usage < self.pro_monthly_limit
        return profile.free_credits > 0

    async def consume(self, user_id: str) -> bool:
        """Spend one diagnosis. Returns False when nothing was left to spend."""
        profile = await self.get_profile(user_id)
        if profile is None:
            return False

        if profile.is_premium:
            stmt = (
                update(Profile)
                .where(Profile.id == user_id, Profile.pro_monthly_usage < self.pro_monthly_limit)
                .values(pro_monthly_usage=Profile.pro_monthly_usage + 1)
            )
        else:
            stmt = (
                update(Profile)
                .where(Profile.id == user_id, Profile.free_credits > 0)
                .values(free_credits=Profile.free_credits - 1)
            )

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        consumed = result.rowcount == 1
        if not consumed:
            logger.warning(f"No allowance left to consume for user {user_id}")
        return consumed
