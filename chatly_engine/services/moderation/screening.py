"""
Message screening.

Order matters:
1. strip markup, script and control characters
2. banned terms reject immediately, before any classifier call
3. toxicity from the classifier, or the local heuristic if it fails
4. reject at or above the toxicity threshold
"""

from __future__ import annotations

import math
import re

from chatly_engine.config import ModerationSettings
from chatly_engine.errors import ModerationRejectedError
from chatly_engine.infrastructure.observability.logging import get_logger
from chatly_engine.models.scoring import ScreeningResult

from .toxicity_client import ToxicityClassifier, ToxicityClassifierError

logger = get_logger(__name__)

SCRIPT_BLOCK = re.compile(r"<script.*?>.*?</script>", re.IGNORECASE | re.DOTALL)
TAG = re.compile(r"<.*?>", re.DOTALL)
MARKUP_CHARS = re.compile(r"[<>{}]")
UNSAFE_SCHEMES = re.compile(r"(javascript|data):", re.IGNORECASE)
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

HEURISTIC_KEYWORDS = (
    "hate",
    "angry",
    "frustrated",
    "disappointed",
    "terrible",
    "awful",
    "horrible",
    "stupid",
    "idiot",
    "loser",
    "failure",
    "useless",
    "worthless",
)
KEYWORD_INCREMENT = 0.1
PUNCTUATION_INCREMENT = 0.15
CAPS_INCREMENT = 0.2
CAPS_MIN_LENGTH = 5

ADULT_KEYWORDS = (
    "sex",
    "porn",
    "nude",
    "naked",
    "boobs",
    "penis",
    "vagina",
    "masturbate",
    "fuck",
    "sexual",
    "erotic",
    "adult",
    "xxx",
    "18+",
    "onlyfans",
)

PHONE = re.compile(r"\b\d{10}\b")
EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
URL = re.compile(r"https?://[^\s]+")
PREVIEW_LENGTH = 100


def strip_unsafe(text: str) -> str:
    cleaned = SCRIPT_BLOCK.sub("", text)
    cleaned = TAG.sub("", cleaned)
    cleaned = MARKUP_CHARS.sub("", cleaned)
    cleaned = UNSAFE_SCHEMES.sub("", cleaned)
    cleaned = CONTROL_CHARS.sub("", cleaned)
    return cleaned.strip()


def find_banned_term(text: str, banned_terms: list[str]) -> str | None:
    lowered = text.lower()
    for term in banned_terms:
        if term in lowered:
            return term
    return None


def heuristic_toxicity(text: str) -> float:
    """Local fallback estimate used when the classifier is unavailable."""
    lowered = text.lower()
    score = sum(KEYWORD_INCREMENT for word in HEURISTIC_KEYWORDS if word in lowered)

    if "!!!" in text or "???" in text:
        score += PUNCTUATION_INCREMENT

    if len(text) > CAPS_MIN_LENGTH and text == text.upper() and text != text.lower():
        score += CAPS_INCREMENT

    return min(score, 1.0)


def is_age_appropriate(text: str) -> bool:
    lowered = text.lower()
    return not any(keyword in lowered for keyword in ADULT_KEYWORDS)


def sanitized_preview(text: str) -> str:
    """Notification/list preview with contact details and links masked."""
    preview = PHONE.sub("**********", text)
    preview = EMAIL.sub("*****@*****.com", preview)
    preview = URL.sub("[LINK]", preview)
    if len(preview) > PREVIEW_LENGTH:
        preview = preview[: PREVIEW_LENGTH - 3] + "..."
    return preview


class ModerationService:
    def __init__(
        self,
        settings: ModerationSettings | None = None,
        classifier: ToxicityClassifier | None = None,
    ):
        self._settings = settings or ModerationSettings()
        self._classifier = classifier

    async def screen(self, text: str) -> ScreeningResult:
        """
        Clean and screen a message.

        Returns:
            ScreeningResult with the cleaned text and its toxicity estimate

        Raises:
            ModerationRejectedError: banned term or toxicity at/above threshold
        """
        cleaned = strip_unsafe(text)

        banned = find_banned_term(cleaned, self._settings.banned_terms)
        if banned is not None:
            logger.info("Message rejected for banned term", reason_code="BANNED_TERM")
            raise ModerationRejectedError(
                "Message contains inappropriate content",
                reason_code="BANNED_TERM",
                banned_term=banned,
            )

        score, source = await self._toxicity(cleaned)
        if score >= self._settings.toxicity_threshold:
            logger.info(
                "Message rejected for toxicity",
                reason_code="TOXIC_CONTENT",
                toxicity_score=round(score, 3),
                source=source,
            )
            raise ModerationRejectedError(
                f"Message appears toxic (score: {score:.2f})",
                reason_code="TOXIC_CONTENT",
                toxicity_score=score,
            )

        flags = [] if is_age_appropriate(cleaned) else ["not_age_appropriate"]
        return ScreeningResult(
            text=cleaned, toxicity_score=score, toxicity_source=source, flags=flags
        )

    async def _toxicity(self, text: str) -> tuple[float, str]:
        if len(text) < self._settings.min_classifier_length:
            return 0.0, "skipped"

        if self._classifier is None:
            return heuristic_toxicity(text), "heuristic"

        try:
            score = await self._classifier.analyze(text)
            if not math.isfinite(score):
                raise ToxicityClassifierError(f"Classifier returned non-finite score {score!r}")
        except Exception as e:
            logger.warning(
                "Toxicity classifier unavailable, using heuristic",
                error=str(e),
                error_type=type(e).__name__,
            )
            return heuristic_toxicity(text), "heuristic"

        return min(max(score, 0.0), 1.0), "classifier"
