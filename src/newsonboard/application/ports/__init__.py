"""Application ports (interfaces) used by the application layer."""

from .candidate_source import CandidateSource, StaticCandidateSource

__all__ = [
    "CandidateSource",
    "StaticCandidateSource",
]
