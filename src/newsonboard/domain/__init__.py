from newsonboard.domain.errors import (
    AuthorizationError,
    DecisionConflictError,
    GenerationError,
    NotFoundError,
    OnboardingError,
    RetrievalError,
    ValidationError,
)
from newsonboard.domain.onboarding import AssignmentStatus, CandidateArticle

__all__ = [
    "AssignmentStatus",
    "AuthorizationError",
    "CandidateArticle",
    "DecisionConflictError",
    "GenerationError",
    "NotFoundError",
    "OnboardingError",
    "RetrievalError",
    "ValidationError",
]
