from sqlalchemy import JSON, Column, Index, Integer, String

from geodiag.platform.db.base import BaseModel


class AnalysisResult(BaseModel):
    """
    One scored diagnosis, keyed by page and content fingerprints.

    Rows are append-only: a new content version, language or model tier
    produces a new row and the newest matching row wins at lookup time.
    """
    __tablename__ = "analysis_results"

    # Cache key (SHA-256 hex digests)
    url_hash = Column(String(64), nullable=False, index=True)
    content_hash = Column(String(64), nullable=False, index=True)
    language = Column(String(8), nullable=False, default="ja")
    model = Column(String(128), nullable=True)

    # Scored payload
    overall_score = Column(Integer, nullable=True)  # 0-100
    detail_scores = Column(JSON, nullable=True)
    advice_data = Column(JSON, nullable=True)

    __table_args__ = (
        Index(
            "idx_analysis_results_key",
            "url_hash",
            "content_hash",
            "language",
            "created_at",
        ),
    )
