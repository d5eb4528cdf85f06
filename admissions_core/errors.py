"""Failure taxonomy for a scoring run.

Only ``MissingConfiguration`` ever escapes a component, and the pipeline
contains it to the affected domain.  The AI failures are raised by the text
service adapter and caught by each AI-backed component, which substitutes its
fallback value.
"""
from __future__ import annotations


class ScoringError(Exception):
    pass


class ResolutionAmbiguity(ScoringError):
    """A payload field could not be mapped to exactly one label or domain."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason


class NoAnswerMatch(ScoringError):
    """A student's answer text matched no configured option."""


class MissingConfiguration(ScoringError):
    def __init__(self, what: str, domain: str | None = None):
        super().__init__(what if domain is None else f"{what} (domain={domain})")
        self.what = what
        self.domain = domain


class AIServiceUnavailable(ScoringError):
    pass


class TransientServiceError(AIServiceUnavailable):
    """Rate limit, overload or 5xx: worth another attempt."""


class MalformedAIResponse(AIServiceUnavailable):
    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


__all__ = [
    "ScoringError",
    "ResolutionAmbiguity",
    "NoAnswerMatch",
    "MissingConfiguration",
    "AIServiceUnavailable",
    "TransientServiceError",
    "MalformedAIResponse",
]
