from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geodiag.api_routers.v1 import api_router
from geodiag.features.diagnosis.services.address_guard import AddressGuard, Resolver
from geodiag.features.diagnosis.services.credits import CreditLedger
from geodiag.features.diagnosis.services.diagnosis_service import DiagnosisService
from geodiag.features.diagnosis.services.digest_cache import DigestCache
from geodiag.features.diagnosis.services.page_renderer import PageRenderer, build_chrome_driver
from geodiag.features.diagnosis.services.scoring_oracle import ScoringOracle
from geodiag.features.diagnosis.services.structural_extractor import StructuralExtractor
from geodiag.features.health.routes.health import router as health_router
from geodiag.middlewares.rate_limit import RateLimitMiddleware
from geodiag.platform.config import Settings, get_settings
from geodiag.platform.db.session import build_engine, build_session_factory, create_all
from geodiag.platform.exceptions import add_exception_handlers
from geodiag.platform.logger import get_logger

logger = get_logger("geodiag")

VERSION = "1.0.0"


def build_renderer(settings: Settings) -> PageRenderer:
    return PageRenderer(
        driver_factory=lambda: build_chrome_driver(
            settings.VIEWPORT_WIDTH, settings.VIEWPORT_HEIGHT, settings.CHROMEDRIVER_PATH
        ),
        timeout=settings.RENDER_TIMEOUT_SECONDS,
        screenshot_quality=settings.SCREENSHOT_QUALITY,
        max_screenshot_width=settings.VIEWPORT_WIDTH,
    )


def build_oracle_client(settings: Settings) -> AsyncOpenAI:
    if not settings.OPENROUTER_API_KEY:
        logger.warning("OPENROUTER_API_KEY is not set; oracle calls will fail")
    return AsyncOpenAI(
        base_url=settings.OPENROUTER_BASE_URL,
        api_key=settings.OPENROUTER_API_KEY or "",
        timeout=settings.ORACLE_TIMEOUT_SECONDS,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    renderer: Optional[PageRenderer] = None,
    oracle_client: Optional[AsyncOpenAI] = None,
    resolver: Optional[Resolver] = None,
) -> FastAPI:
    """
    Build the API. Every collaborator is constructed here, per app, and
    anything passed in is used instead of the production default.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        factory = session_factory
        if factory is None:
            engine = build_engine(settings.DATABASE_URL)
            if settings.DATABASE_URL.startswith("sqlite"):
                await create_all(engine)
            factory = build_session_factory(engine)

        client = oracle_client or build_oracle_client(settings)
        ledger = CreditLedger(
            factory,
            free_credits_per_period=settings.FREE_CREDITS_PER_PERIOD,
            pro_monthly_limit=settings.PRO_MONTHLY_LIMIT,
            period_days=settings.USAGE_PERIOD_DAYS,
        )

        app.state.session_factory = factory
        app.state.credit_ledger = ledger
        app.state.diagnosis_service = DiagnosisService(
            guard=AddressGuard(resolver=resolver),
            renderer=renderer or build_renderer(settings),
            extractor=StructuralExtractor(),
            cache=DigestCache(factory),
            oracle=ScoringOracle(
                client,
                timeout=settings.ORACLE_TIMEOUT_SECONDS,
                max_tokens=settings.ORACLE_MAX_TOKENS,
            ),
            ledger=ledger,
            settings=settings,
        )
        logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")

        try:
            yield
        finally:
            if oracle_client is None:
                await client.close()
            if engine is not None:
                await engine.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Scores how likely AI answer engines are to cite a web page",
        version=VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": settings.APP_NAME,
            "description": "GEO (Generative Engine Optimization) diagnosis for web pages.",
            "version": VERSION,
            "docs_url": "/docs",
            "api_base": "/api/v1",
        }

    app.add_middleware(
        RateLimitMiddleware,
        limits=settings.RATE_LIMITS,
        redis_url=settings.REDIS_URL,
        in_memory=settings.FORCE_IN_MEMORY_RATE_LIMITER,
        whitelist=settings.WHITELIST_IPS,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
