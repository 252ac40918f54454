"""
Error Types for Core Operation Modeling

Hard failures are raised as exceptions; soft failures (a criticality
search or depletion iteration hitting its cap) are reported through the
``error`` field of a Result using ``ErrorCode``.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Error codes carried by Result.error."""

    NONE = 0
    CONVERGENCE_FAILURE = 1


class CoreOpsError(Exception):
    """Base class for all core operation errors."""


class ConfigurationError(CoreOpsError, ValueError):
    """
    Malformed setup.

    Raised for unknown rod ids, inverted ranges, unsorted PDIL/ASI/burnup
    tables, snapshot id conflicts and depletion without burnup points.
    Always raised before any solve is attempted.
    """


class InvalidStateError(CoreOpsError, RuntimeError):
    """An operation method was called out of sequence."""


class NumericalError(CoreOpsError, ArithmeticError):
    """The flux solver could not produce a result."""
