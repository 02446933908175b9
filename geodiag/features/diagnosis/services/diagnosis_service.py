import logging
import time
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from geodiag.features.diagnosis.schemas.diagnosis import DiagnosisResult
from geodiag.features.diagnosis.services.address_guard import AddressGuard
from geodiag.features.diagnosis.services.credits import CreditLedger
from geodiag.features.diagnosis.services.digest_cache import CacheKey, CachedEntry, DigestCache
from geodiag.features.diagnosis.services.fingerprint import fingerprint_content, fingerprint_url
from geodiag.features.diagnosis.services.page_renderer import PageRenderer
from geodiag.features.diagnosis.services.prompt import SYSTEM_PROMPT, build_diagnosis_prompt
from geodiag.features.diagnosis.services.scoring_oracle import ScoringOracle, parse_diagnosis
from geodiag.features.diagnosis.services.structural_extractor import StructuralExtractor
from geodiag.features.diagnosis.utils.security import Identity
from geodiag.platform.config import Settings
from geodiag.platform.exceptions import UsageLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosisOutcome:
    result: DiagnosisResult
    cached: bool
    digest_url: str
    language: str
    model_tag: Optional[str] = None


def result_from_entry(entry: CachedEntry) -> DiagnosisResult:
    return DiagnosisResult.model_validate(
        {
            **entry.advice_data,
            "geo_score": entry.overall_score,
            "scores": entry.detail_scores,
        }
    )


class DiagnosisService:
    """
    Runs one diagnosis request end to end.

    validate -> render -> extract -> fingerprint -> cache lookup, and only on
    a miss: oracle -> parse -> cache store -> credit. A cache hit never calls
    the oracle and never spends a credit.
    """

    def __init__(
        self,
        guard: AddressGuard,
        renderer: PageRenderer,
        extractor: StructuralExtractor,
        cache: DigestCache,
        oracle: ScoringOracle,
        ledger: CreditLedger,
        settings: Settings,
    ):
        self.guard = guard
        self.renderer = renderer
        self.extractor = extractor
        self.cache = cache
        self.oracle = oracle
        self.ledger = ledger
        self.settings = settings

    async def diagnose(
        self, url: str, identity: Identity, language: Optional[str] = None
    ) -> DiagnosisOutcome:
        start_time = time.time()

        url = await self.guard.validate(url)
        page = await self.renderer.render(url)
        digest = self.extractor.extract(page.dom_html, url, screenshot=page.screenshot_b64)

        url_fp = fingerprint_url(url)
        content_fp = fingerprint_content(digest.body_text)

        profile = await self.ledger.ensure_profile(
            identity.user_id, language or self.settings.DEFAULT_LANGUAGE
        )
        language = language or profile.language or self.settings.DEFAULT_LANGUAGE
        premium = bool(profile.is_premium)

        entry = await self.cache.lookup(
            url_fp,
            content_fp,
            language,
            required_model_tag=self.settings.PRO_MODEL if premium else None,
        )
        if entry is not None:
            cached_result = self._cached_result(entry)
            if cached_result is not None:
                logger.info(f"Cache hit for {url} ({language}, model={entry.model_tag})")
                return DiagnosisOutcome(
                    result=cached_result,
                    cached=True,
                    digest_url=url,
                    language=language,
                    model_tag=entry.model_tag,
                )

        if not self.ledger.has_allowance(profile):
            raise UsageLimitExceeded(f"User {identity.user_id} has no allowance left")

        model = self.settings.PRO_MODEL if premium else self.settings.FREE_MODEL
        logger.info(f"Cache miss for {url}, scoring with {model}")
        raw = await self.oracle.complete(
            SYSTEM_PROMPT,
            build_diagnosis_prompt(digest, language),
            image_b64=digest.screenshot or None,
            model=model,
        )
        result = parse_diagnosis(raw)

        await self.cache.store(
            CacheKey(url_fp, content_fp, language, model),
            overall_score=result.geo_score,
            detail_scores=result.scores.model_dump(),
            advice_data=result.advice_data,
            model_tag=model,
        )

        if not await self.ledger.consume(identity.user_id):
            # Lost a race for the last credit; the computed result is still returned
            logger.warning(f"Credit for {url} could not be consumed for user {identity.user_id}")

        logger.info(
            f"Diagnosis complete for {url}: {result.geo_score}/100 in {time.time() - start_time:.2f}s"
        )
        return DiagnosisOutcome(
            result=result,
            cached=False,
            digest_url=url,
            language=language,
            model_tag=model,
        )

    @staticmethod
    def _cached_result(entry: CachedEntry) -> Optional[DiagnosisResult]:
        try:
            return result_from_entry(entry)
        except ValidationError as e:
            logger.warning(f"Unreadable cache entry, treating as miss: {e.error_count()} errors")
            return None
