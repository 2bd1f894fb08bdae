"""Errors raised by the persistence helpers and mapped to HTTP responses."""


class LoanbookError(ValueError):
    """Base class for domain errors raised outside the route layer."""


class NotFoundError(LoanbookError):
    """Raised when a referenced record does not exist for the caller."""


class VerificationExpiredError(LoanbookError):
    """Raised when a verification token is past its expiry window."""


class VerificationClosedError(LoanbookError):
    """Raised when a verification token no longer accepts uploads."""
