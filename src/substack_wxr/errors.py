"""Exception hierarchy for substack-wxr."""

from __future__ import annotations


class ConversionError(Exception):
    """Base exception for conversion errors."""


class IOStateError(ConversionError):
    """Raised when a writer is used after close or its sink is unavailable."""


class StructuralError(ConversionError):
    """Raised when element nesting is unbalanced."""


class SchemaError(ConversionError):
    """Raised when one item lacks a field required by the WXR schema."""


class BusyError(ConversionError):
    """Raised when a job already has a batch in flight."""


class JobNotFoundError(ConversionError):
    """Raised when a job id is unknown to the job store."""


class InvalidStateError(ConversionError):
    """Raised when an operation is not allowed in the job's current state."""


class PollTimeoutError(ConversionError):
    """Raised when polling exhausts its attempt budget before a terminal status."""
