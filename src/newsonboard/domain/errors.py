"""Onboarding error taxonomy."""

from __future__ import annotations


class OnboardingError(Exception):
    """Base class for all onboarding failures."""


class RetrievalError(OnboardingError):
    """Candidate source unreachable, failed or timed out. Not retried here."""


class GenerationError(OnboardingError):
    """Too few distinct candidates to build a full batch."""


class NotFoundError(OnboardingError, LookupError):
    """Unknown batch or assignment."""


class AuthorizationError(OnboardingError, PermissionError):
    """Assignment belongs to a different user."""


class ValidationError(OnboardingError, ValueError):
    """Malformed input, e.g. a decision outside accepted/rejected."""


class DecisionConflictError(ValidationError):
    """A different terminal decision was already recorded for the assignment."""
