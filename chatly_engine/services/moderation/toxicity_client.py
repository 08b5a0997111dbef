"""
Toxicity classifier collaborators.

`PerspectiveToxicityClient` calls the Perspective comment analyzer; any failure
surfaces as `ToxicityClassifierError` so moderation can fall back to its local
heuristic.
"""

import math
from typing import Protocol

import httpx

from chatly_engine.config import ModerationSettings
from chatly_engine.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ToxicityClassifierError(Exception):
    """Raised when the classifier cannot produce a score."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToxicityClassifier(Protocol):
    async def analyze(self, text: str) -> float:
        ...


class PerspectiveToxicityClient:
    def __init__(self, settings: ModerationSettings, client: httpx.AsyncClient | None = None):
        if not settings.perspective_api_key:
            raise ToxicityClassifierError("perspective_api_key not configured")
        self._url = settings.perspective_api_url
        self._api_key = settings.perspective_api_key
        self._timeout = settings.classifier_timeout_seconds
        self._client = client

    async def analyze(self, text: str) -> float:
        payload = {
            "comment": {"text": text},
            "languages": ["en"],
            "requestedAttributes": {"TOXICITY": {}},
        }

        try:
            if self._client is not None:
                response = await self._client.post(
                    self._url, params={"key": self._api_key}, json=payload, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(
                        self._url, params={"key": self._api_key}, json=payload
                    )
        except httpx.RequestError as e:
            logger.warning(
                "Toxicity classifier request failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ToxicityClassifierError(f"Classifier request failed: {e}") from e

        if response.status_code != 200:
            logger.warning("Toxicity classifier returned error", status_code=response.status_code)
            raise ToxicityClassifierError(
                f"Classifier returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            value = response.json()["attributeScores"]["TOXICITY"]["summaryScore"]["value"]
            score = float(value)
        except (KeyError, TypeError, ValueError) as e:
            raise ToxicityClassifierError(f"Malformed classifier response: {e}") from e
        if not math.isfinite(score):
            raise ToxicityClassifierError(f"Classifier returned non-finite score {value!r}")

        return min(max(score, 0.0), 1.0)
