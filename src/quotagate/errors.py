"""Admission-layer errors raised by the rate limiter."""


class QuotaGateError(Exception):
    """Base class for errors synthesized by the limiter itself.

    Errors raised by submitted tasks are never wrapped in this type, so
    callers can tell "the limiter rejected me" apart from "my work failed".
    """


class AlreadyClosedError(QuotaGateError):
    """The limiter has been cleaned up and no longer accepts work."""


class RateLimitTimeoutError(QuotaGateError, TimeoutError):
    """A queued task waited longer than the quota's max_delay."""
