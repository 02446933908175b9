import logging
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from geodiag.features.diagnosis.schemas.diagnosis import DiagnosisResult
from geodiag.features.diagnosis.services.json_repair import parse_oracle_json
from geodiag.platform.exceptions import OracleResponseMalformed, OracleTransportError

logger = logging.getLogger(__name__)

_REQUIRED_TEXT = ("summary", "impression")
_REQUIRED_LISTS = ("strengths", "issues")


class ScoringOracle:
    """Thin wrapper around an OpenAI-compatible chat endpoint (OpenRouter)."""

    def __init__(
        self,
        client: AsyncOpenAI,
        timeout: float = 90.0,
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ):
        self.client = client
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def complete(
        self,
        system: str,
        prompt: str,
        image_b64: Optional[str] = None,
        model: str = "anthropic/claude-haiku-4.5",
    ) -> str:
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        if image_b64:
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"},
                }
            )

        try:
            completion = await self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": content},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except openai.APIError as e:
            logger.error(f"Oracle call to {model} failed: {e}")
            raise OracleTransportError(f"{type(e).__name__}: {e}") from e

        if not completion.choices:
            raise OracleResponseMalformed(f"{model} returned no choices")
        return completion.choices[0].message.content or ""


def parse_diagnosis(text: str) -> DiagnosisResult:
    """Recover the JSON object from oracle text and check it against the result schema."""
    data = parse_oracle_json(text)

    for name in _REQUIRED_TEXT:
        if not data.get(name):
            raise OracleResponseMalformed(f"Diagnosis is missing '{name}'")
    for name in _REQUIRED_LISTS:
        if not isinstance(data.get(name), list):
            raise OracleResponseMalformed(f"Diagnosis field '{name}' is not a list")

    # Unscored responses still carry a usable diagnosis
    if not isinstance(data.get("scores"), dict):
        data.pop("scores", None)

    try:
        return DiagnosisResult.model_validate(data)
    except ValidationError as e:
        raise OracleResponseMalformed(f"Diagnosis does not match schema: {e.error_count()} errors") from e
