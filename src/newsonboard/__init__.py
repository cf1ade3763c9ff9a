"""NewsOnboard: onboarding batches, assignments and interest scoring."""

__version__ = "0.1.0"
