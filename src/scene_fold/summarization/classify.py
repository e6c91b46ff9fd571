"""Heuristic classification of summarization failures.

All string matching lives here so the patterns can be revised without
touching the retry loop.
"""

from __future__ import annotations

import re
from typing import Literal

from scene_fold.summarization.exceptions import (
    NonRetryableGenerationError,
    SummarizationCancelled,
    TransientGenerationError,
)

FailureKind = Literal["cancelled", "non_retryable", "transient"]

# Refusals and safety-filter responses from the model or provider
REFUSAL_PATTERNS = [
    r"content (?:filter|policy|management)",
    r"safety (?:filter|system|settings)",
    r"\bblocked\b.*\b(?:safety|content|prompt)\b",
    r"prohibited content",
    r"\bI(?:'m| am)? (?:can(?:not|'t)|unable to) (?:help|assist|comply|continue)",
    r"\bI(?:'m| am)? not able to (?:help|assist|comply)",
]

# HTTP/provider failures that a retry will not fix
PROVIDER_PATTERNS = [
    r"\b401\b",
    r"\b403\b",
    r"\b429\b",
    r"unauthori[sz]ed",
    r"forbidden",
    r"invalid (?:api[ _-]?)?key",
    r"api[ _-]?key",
    r"authentication",
    r"rate[ _-]?limit",
    r"too many requests",
    r"quota",
    r"insufficient (?:credits|balance|funds)",
]

REFUSAL_SCAN_CHARS = 200

_REFUSAL_RE = re.compile("|".join(REFUSAL_PATTERNS), re.IGNORECASE)
_PROVIDER_RE = re.compile("|".join(PROVIDER_PATTERNS), re.IGNORECASE)


def looks_like_refusal(text: str) -> bool:
    """True if generated text opens like a safety refusal, not a summary.

    Only the head is scanned; summaries may legitimately quote refusals.
    """
    return bool(_REFUSAL_RE.search((text or "")[:REFUSAL_SCAN_CHARS]))


def classify_failure(failure: BaseException | str) -> FailureKind:
    """Decide whether a failure is a cancellation, permanent or retryable."""
    if isinstance(failure, SummarizationCancelled):
        return "cancelled"
    if isinstance(failure, NonRetryableGenerationError):
        return "non_retryable"
    if isinstance(failure, TransientGenerationError):
        return "transient"

    text = failure if isinstance(failure, str) else str(failure)
    if _PROVIDER_RE.search(text) or _REFUSAL_RE.search(text):
        return "non_retryable"
    return "transient"
