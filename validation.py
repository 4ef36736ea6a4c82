"""Sanity checks on enhanced text before it replaces the raw transcript."""

from __future__ import annotations

import logging

from models import ValidationKind, ValidationResult

logger = logging.getLogger(__name__)

MAX_ENHANCED_CHARS = 5000
MIN_WORD_RATIO = 0.3
MAX_WORD_RATIO = 1.5
# At or below this many raw words the ratio check is skipped
SHORT_TEXT_WORDS = 2


def count_words(text: str) -> int:
    return len(text.split())


def validate_enhancement(raw: str, enhanced: str) -> ValidationResult:
    """Accept ``enhanced`` or fall back to ``raw``.

    Guards against empty output, content loss (ratio < 0.3) and
    hallucinated additions (ratio > 1.5); overlong output is truncated.
    """
    fallback = ValidationResult(ValidationKind.FALLBACK, raw)
    if not raw.strip():
        return fallback

    candidate = enhanced.strip()
    if not candidate:
        logger.warning("Enhancement returned empty text, falling back to raw")
        return fallback

    raw_words = count_words(raw)
    enhanced_words = count_words(candidate)
    if raw_words > SHORT_TEXT_WORDS:
        ratio = enhanced_words / raw_words
        if ratio < MIN_WORD_RATIO:
            logger.warning(
                "Enhancement too short (%d vs %d words, ratio %.2f), falling back to raw",
                enhanced_words,
                raw_words,
                ratio,
            )
            return fallback
        if ratio > MAX_WORD_RATIO:
            logger.warning(
                "Enhancement too long (%d vs %d words, ratio %.2f), probable hallucination",
                enhanced_words,
                raw_words,
                ratio,
            )
            return fallback

    if len(candidate) > MAX_ENHANCED_CHARS:
        logger.warning("Enhancement exceeds %d chars (%d), truncating", MAX_ENHANCED_CHARS, len(candidate))
        return ValidationResult(ValidationKind.ACCEPTED, candidate[:MAX_ENHANCED_CHARS])

    return ValidationResult(ValidationKind.ACCEPTED, candidate)
