"""
AI Service — Google Gemini Integration (google-genai AsyncClient)
Medical Report Insights

Single request/response call per report. Decoding favors determinism and
caps output length so the JSON that comes back stays finite. Safety
filters block harassment, hate, dangerous and sexual content at
medium-and-above; a block is surfaced as a TransportError.
"""

import time
import asyncio
import logging
from typing import Any, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from reportlens.core.config import Settings
from reportlens.core.errors import TransportError
from reportlens.core.logging_config import RequestLogger

logger = logging.getLogger(__name__)
ai_call_logger = RequestLogger(logger)

SAFETY_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
)


def build_generation_config(settings: Settings) -> types.GenerateContentConfig:
    """Fixed decoding parameters and safety filters for report analysis."""
    return types.GenerateContentConfig(
        temperature=settings.ai_temperature,
        top_p=settings.ai_top_p,
        top_k=settings.ai_top_k,
        max_output_tokens=settings.ai_max_tokens,
        safety_settings=[
            types.SafetySetting(
                category=category,
                threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            )
            for category in SAFETY_CATEGORIES
        ],
    )


def _response_text(response: Any) -> str:
    """Collect the candidate text, raising TransportError on blocks and empties."""
    feedback = getattr(response, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None)
    if block_reason:
        raise TransportError(f"AI request was blocked by safety filters ({block_reason})")

    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise TransportError("AI service returned no response")

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    text = "".join(getattr(part, "text", None) or "" for part in parts)

    if not text and getattr(candidate, "finish_reason", None) == types.FinishReason.SAFETY:
        raise TransportError("AI response was blocked by safety filters")
    if not text.strip():
        raise TransportError("AI service returned an empty response")
    return text


def _token_count(response: Any) -> int:
    usage = getattr(response, "usage_metadata", None)
    return int(getattr(usage, "total_token_count", 0) or 0)


# ── AI Service ────────────────────────────────────────────────────
class GeminiAnalysisClient:
    """
    Sends one prompt to Gemini and returns the raw model text.

    Construction fails with AIUnavailableError when no API key is
    configured, so the condition is known before any report is processed.
    """

    def __init__(self, settings: Settings, client: Optional[genai.Client] = None):
        api_key = settings.get_ai_api_key()
        self._client = client or genai.Client(api_key=api_key)
        self._model_name = settings.ai_model
        if self._model_name.startswith("models/"):
            self._model_name = self._model_name[len("models/"):]
        self._config = build_generation_config(settings)
        self._timeout = settings.ai_timeout_seconds
        logger.info("Gemini client initialized — model: %s", self._model_name)

    @property
    def model_name(self) -> str:
        return self._model_name

    async def analyze(self, prompt: str) -> str:
        """
        Run the analysis prompt.

        Raises:
            TransportError: network/API failure, quota, safety block,
                empty response or timeout.
        """
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._model_name,
                    contents=prompt,
                    config=self._config,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            self._log_call(start, 0, "timeout")
            raise TransportError(
                f"AI request timed out after {self._timeout:.0f}s"
            ) from e
        except genai_errors.APIError as e:
            self._log_call(start, 0, f"api_error:{e.code}")
            raise TransportError(f"AI service error ({e.code}): {e.message or e.status}") from e
        except Exception as e:
            self._log_call(start, 0, "error")
            err = str(e) or type(e).__name__
            raise TransportError(f"AI request failed: {err}") from e

        try:
            text = _response_text(response)
        except TransportError:
            self._log_call(start, _token_count(response), "blocked_or_empty")
            raise

        self._log_call(start, _token_count(response), "ok")
        logger.info("Gemini response received (%d chars)", len(text))
        return text

    def _log_call(self, start: float, tokens: int, outcome: str) -> None:
        duration_ms = (time.monotonic() - start) * 1000
        ai_call_logger.log_ai_call(self._model_name, tokens, duration_ms, outcome)

    # ── Public: test connection ───────────────────────────────────
    async def test_connection(self) -> dict:
        try:
            logger.info("Testing Gemini connection with model=%s", self._model_name)
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._model_name,
                    contents="Say hello in one sentence.",
                ),
                timeout=30.0,
            )
            reply = getattr(response, "text", "no text") or "no text"
            logger.info("Gemini test OK: %s", reply[:80])
            return {"status": "ok", "model": self._model_name, "response": reply[:300]}
        except Exception as e:
            err = str(e) or repr(e)
            logger.error("LLM test failed — %s: %s", type(e).__name__, err)
            return {"status": "error", "error": err}

    async def close(self) -> None:
        self._client = None
        logger.info("AI service closed")
