"""Exceptions raised inside the marathon coach engine."""


class MarathonCoachError(Exception):
    """Base error for the marathon coach engine."""
    pass


class InvalidTransitionError(MarathonCoachError):
    """A recommendation was asked to leave a terminal status."""
    pass

