import pytest

from newsonboard.domain.errors import OnboardingError, ValidationError
from newsonboard.domain.onboarding import (
    AssignmentStatus,
    interest_delta,
    normalize_topic,
    parse_decision,
)


def test_parse_decision_accepts_terminal_values():
    assert parse_decision("accepted") is AssignmentStatus.ACCEPTED
    assert parse_decision(" Rejected ") is AssignmentStatus.REJECTED
    assert parse_decision(AssignmentStatus.ACCEPTED) is AssignmentStatus.ACCEPTED


@pytest.mark.parametrize("value", ["pending", AssignmentStatus.PENDING, "maybe", "", None])
def test_parse_decision_rejects_everything_else(value):
    with pytest.raises(ValidationError):
        parse_decision(value)


def test_validation_error_is_onboarding_error_and_value_error():
    assert issubclass(ValidationError, OnboardingError)
    assert issubclass(ValidationError, ValueError)


def test_interest_delta_and_topic_normalization():
    assert interest_delta(AssignmentStatus.ACCEPTED) == 1
    assert interest_delta(AssignmentStatus.REJECTED) == -1
    assert interest_delta(AssignmentStatus.PENDING) == 0
    assert normalize_topic("  Technology ") == "technology"
    assert normalize_topic("") is None
    assert normalize_topic(None) is None
