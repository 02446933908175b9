from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_GEO_SCORE = 50


class DiagnoseRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    language: Optional[Literal["ja", "en"]] = None


class DetailScores(BaseModel):
    structure: int = Field(default=0, ge=0, le=100)
    context: int = Field(default=0, ge=0, le=100)
    freshness: int = Field(default=0, ge=0, le=100)
    credibility: int = Field(default=0, ge=0, le=100)

    @field_validator("*", mode="before")
    @classmethod
    def _clamp(cls, v):
        # Oracles occasionally answer 105 or "80"; clamp instead of rejecting
        try:
            return max(0, min(100, int(float(v))))
        except (TypeError, ValueError):
            return 0


class Issue(BaseModel):
    title: str
    description: str = ""
    impact: str = ""
    category: str = ""
    suggestion: str = ""


class DiagnosisResult(BaseModel):
    summary: str
    geo_score: int = DEFAULT_GEO_SCORE
    scores: DetailScores = Field(default_factory=DetailScores)
    strengths: List[str]
    issues: List[Issue]
    impression: str

    @field_validator("geo_score", mode="before")
    @classmethod
    def _geo_score_in_range(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not 0 <= v <= 100:
            return DEFAULT_GEO_SCORE
        return int(round(v))

    @property
    def advice_data(self) -> dict:
        """Everything except the numeric scores, as stored in the cache."""
        return self.model_dump(exclude={"geo_score", "scores"})


class DiagnosisResponse(BaseModel):
    url: str
    language: str
    model: Optional[str] = None
    cached: bool
    result: DiagnosisResult


class UsageResponse(BaseModel):
    user_id: str
    is_premium: bool
    free_credits: int
    pro_monthly_usage: int
    pro_monthly_limit: int
