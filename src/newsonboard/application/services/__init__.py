from newsonboard.application.services.completion_detector import CompletionDetector
from newsonboard.application.services.interest_aggregator import InterestAggregator
from newsonboard.application.services.onboarding_assignment_service import (
    OnboardingAssignmentService,
)
from newsonboard.application.services.onboarding_batch_service import OnboardingBatchService
from newsonboard.application.services.onboarding_response_service import (
    OnboardingResponseService,
)
from newsonboard.application.services.onboarding_service import OnboardingService

__all__ = [
    "CompletionDetector",
    "InterestAggregator",
    "OnboardingAssignmentService",
    "OnboardingBatchService",
    "OnboardingResponseService",
    "OnboardingService",
]
