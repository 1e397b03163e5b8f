"""Errors raised by the signature engine. All are recoverable at the caller boundary."""


class SignatureEngineError(Exception):
    """Base class for engine errors."""
    pass


class ValidationError(SignatureEngineError):
    """Malformed or incomplete signature/point data. Raised before any state change."""
    pass


class NotFoundError(SignatureEngineError):
    """An operation referenced an unknown id."""
    pass


class ConflictError(SignatureEngineError):
    """A mapping invariant would be violated."""
    pass
