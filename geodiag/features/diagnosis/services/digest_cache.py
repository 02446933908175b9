import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from geodiag.features.diagnosis.models.analysis_result import AnalysisResult
from geodiag.platform.db.base import utcnow
from geodiag.platform.exceptions import CachePersistenceFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKey:
    url_fingerprint: str
    content_fingerprint: str
    language: str
    model_tag: Optional[str] = None


@dataclass(frozen=True)
class CachedEntry:
    key: CacheKey
    overall_score: int
    detail_scores: Dict[str, Any] = field(default_factory=dict)
    advice_data: Dict[str, Any] = field(default_factory=dict)
    model_tag: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: AnalysisResult) -> "CachedEntry":
        return cls(
            key=CacheKey(row.url_hash, row.content_hash, row.language, row.model),
            overall_score=row.overall_score,
            detail_scores=dict(row.detail_scores or {}),
            advice_data=dict(row.advice_data or {}),
            model_tag=row.model,
            created_at=row.created_at,
        )


class DigestCache:
    """
    Append-only store of scored diagnoses keyed by URL and content fingerprints.

    The cache never fails a request: lookup errors read as a miss, store
    errors are rolled back and logged.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def lookup(
        self,
        url_fingerprint: str,
        content_fingerprint: str,
        language: str,
        required_model_tag: Optional[str] = None,
    ) -> Optional[CachedEntry]:
        query = select(AnalysisResult).where(
            AnalysisResult.url_hash == url_fingerprint,
            AnalysisResult.content_hash == content_fingerprint,
            AnalysisResult.language == language,
        )
        if required_model_tag is not None:
            query = query.where(AnalysisResult.model == required_model_tag)
        query = query.order_by(
            AnalysisResult.created_at.desc(), AnalysisResult.id.desc()
        ).limit(1)

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                row = result.scalars().first()
        except Exception as e:
            logger.warning(f"Cache lookup failed, treating as miss: {e}")
            return None

        if row is None:
            return None
        return CachedEntry.from_row(row)

    async def store(
        self,
        key: CacheKey,
        overall_score: int,
        detail_scores: Dict[str, Any],
        advice_data: Dict[str, Any],
        model_tag: Optional[str] = None,
    ) -> Optional[CachedEntry]:
        row = AnalysisResult(
            url_hash=key.url_fingerprint,
            content_hash=key.content_fingerprint,
            language=key.language,
            model=model_tag,
            overall_score=overall_score,
            detail_scores=detail_scores,
            advice_data=advice_data,
            created_at=self.clock(),
        )
        try:
            await self._insert(row)
        except CachePersistenceFailure as e:
            logger.warning(f"Cache store failed, result not cached: {e.detail}")
            return None
        return CachedEntry.from_row(row)

    async def _insert(self, row: AnalysisResult) -> None:
        async with self.session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except Exception as e:
                await session.rollback()
                raise CachePersistenceFailure(str(e)) from e
