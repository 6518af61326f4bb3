"""Base exception for stateline."""


class StatelineError(Exception):
    """Base exception for all stateline errors."""

    pass
