"""
Test configuration and fixtures for the GEO Diagnosis API.

Every test gets its own SQLite file, and the browser, DNS resolver and
scoring oracle are replaced with in-process fakes, so nothing here touches
the network.
"""
import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Generator, List
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

load_dotenv()

# Import-time settings must never point at a real database
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{tempfile.mktemp(suffix='.db')}"
os.environ["FORCE_IN_MEMORY_RATE_LIMITER"] = "true"

from geodiag.features.diagnosis.services.page_renderer import RenderedPage  # noqa: E402
from geodiag.platform.config import Settings  # noqa: E402
from geodiag.platform.db.session import (  # noqa: E402
    build_engine,
    build_session_factory,
    create_all,
)

JWT_SECRET = "test-identity-secret-for-hs256-signing"
JWT_AUDIENCE = "authenticated"

LANDING_HTML = """
<html>
<head>
  <title>Acme Analytics</title>
  <meta name="description" content="Analytics for small teams">
</head>
<body>
  <nav><a href="/home">Home</a></nav>
  <main>
    <h1>Understand your customers</h1>
    <h2>Real-time dashboards</h2>
    <h2>Frequently asked questions</h2>
    <h2>Privacy by default</h2>
    <p>Acme Analytics collects events from your site and turns them into charts.</p>
    <p>Over 3,000 companies rely on Acme to make product decisions every week.</p>
    <table>
      <tr><th>Plan</th><th>Seats</th></tr>
      <tr><td>Starter</td><td>5</td></tr>
      <tr><td>Team</td><td>25</td></tr>
    </table>
    <a href="/pricing">See pricing</a>
    <a href="https://acme.example/docs">Read the docs</a>
    <a href="/signup">Create an account</a>
    <a href="https://twitter.com/acme">Follow us</a>
    <a href="https://github.com/acme">Source code</a>
  </main>
  <footer>About us</footer>
</body>
</html>
"""

DIAGNOSIS = {
    "summary": "Clear product page with some structure.",
    "geo_score": 64,
    "scores": {"structure": 70, "context": 60, "freshness": 55, "credibility": 65},
    "strengths": ["Pricing table", "Concrete customer count"],
    "issues": [
        {
            "title": "No sources",
            "description": "Claims are not backed by links.",
            "impact": "medium",
            "category": "credibility",
            "suggestion": "Link to a case study.",
        }
    ],
    "impression": "Likely quoted for product comparisons.",
}


class FakeRenderer:
    """Stands in for the headless browser; records every URL it is asked to load."""

    def __init__(self, html: str = LANDING_HTML, screenshot: bytes = b"\xff\xd8fake-jpeg"):
        self.html = html
        self.screenshot = screenshot
        self.calls: List[str] = []

    async def render(self, url: str) -> RenderedPage:
        self.calls.append(url)
        return RenderedPage(url=url, final_url=url, dom_html=self.html, screenshot_bytes=self.screenshot)


async def public_resolver(hostname: str) -> List[str]:
    return ["93.184.216.34"]


def make_completion(text: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def make_oracle_client(text: str = json.dumps(DIAGNOSIS)) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_completion(text))
    return client


def make_token(sub: str = "user-1", secret: str = JWT_SECRET, expires_in: int = 3600, **claims) -> str:
    payload = {
        "sub": sub,
        "aud": JWT_AUDIENCE,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        OPENROUTER_API_KEY="test-key",
        IDENTITY_JWT_SECRET=JWT_SECRET,
        IDENTITY_JWT_AUDIENCE=JWT_AUDIENCE,
        FORCE_IN_MEMORY_RATE_LIMITER=True,
        RATE_LIMITS={"/api/v1/diagnose": 5},
        DEFAULT_LANGUAGE="en",
    )


@pytest.fixture
async def session_factory(tmp_path):
    """Async session factory over a fresh SQLite file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'unit.db'}")
    await create_all(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def oracle_client() -> MagicMock:
    return make_oracle_client()


@pytest.fixture
def test_app(settings, fake_renderer, oracle_client):
    """FastAPI app wired with fakes; the database is created by the app's lifespan."""
    from geodiag.main import create_app

    return create_app(
        settings,
        renderer=fake_renderer,
        oracle_client=oracle_client,
        resolver=public_resolver,
    )


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    with TestClient(test_app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def diagnosis_payload() -> dict:
    return json.loads(json.dumps(DIAGNOSIS))


@pytest.fixture
def landing_html() -> str:
    return LANDING_HTML


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def oracle_client_factory():
    return make_oracle_client


@pytest.fixture
def renderer_factory():
    return FakeRenderer


@pytest.fixture
def resolver():
    return public_resolver
