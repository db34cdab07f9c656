class NestError(Exception):
    """Base exception for all nesttm errors."""
    pass

class RecoverableError(NestError):
    """An error that can be recovered from without data loss."""
    pass

class FatalError(NestError):
    """An error that requires application termination or major intervention."""
    pass

class NotFoundError(RecoverableError):
    """A task or list id does not resolve."""
    pass

class InvalidArgumentError(RecoverableError, ValueError):
    """Rejected input: blank text, cyclic move, bad offset, malformed drop target."""
    pass

class FileOperationError(RecoverableError):
    """File operation failed but can be retried."""
    pass

class InvariantViolationError(FatalError):
    """The forest no longer satisfies its structural invariants."""
    pass

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in data formats, to just unknown data"""
    pass
