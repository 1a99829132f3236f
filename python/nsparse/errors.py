"""
Error kinds for the sparse core.

Every failure the core can report is one of four kinds. Each kind has its own
exception class so callers may catch by type as usual, and every exception
also carries its ErrorKind so that callers using the Result based entry
points (try_multiply, try_add) can inspect the kind instead.
"""

import enum
from dataclasses import dataclass
from typing import Any, Callable, Optional

__all__ = [
    "ErrorKind",
    "SparseError",
    "ShapeMismatch",
    "IncompatibleDimensions",
    "EmptyShape",
    "InternalConsistency",
    "Result",
    "capture",
]

class ErrorKind(enum.Enum):
    SHAPE_MISMATCH = "ShapeMismatch"
    EMPTY_SHAPE = "EmptyShape"
    INCOMPATIBLE_DIMENSIONS = "IncompatibleDimensions"
    INTERNAL_CONSISTENCY = "InternalConsistency"


class SparseError(Exception):
    """Base class of all errors raised by nsparse."""

    kind: Optional[ErrorKind] = None


class ShapeMismatch(SparseError, ValueError):
    """Two operands that must share a shape do not."""

    kind = ErrorKind.SHAPE_MISMATCH


class IncompatibleDimensions(SparseError, ValueError):
    """The pair of shapes cannot be contracted."""

    kind = ErrorKind.INCOMPATIBLE_DIMENSIONS


class EmptyShape(IncompatibleDimensions):
    """An operand has rank 0."""

    kind = ErrorKind.EMPTY_SHAPE


class InternalConsistency(SparseError, RuntimeError):
    """
    A SparseTensor invariant does not hold. This always points at a defect
    upstream (never at bad user input).
    """

    kind = ErrorKind.INTERNAL_CONSISTENCY


@dataclass(frozen=True)
class Result:
    """Outcome of a core operation: either a value or a SparseError."""

    value: Any = None
    error: Optional[SparseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return None if self.error is None else self.error.kind

    def unwrap(self):
        """Return the value, or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value


def capture(fn: Callable, *args, **kwargs) -> Result:
    """
    Run fn and wrap its outcome in a Result. Only SparseError is captured,
    anything else propagates unchanged.
    """
    try:
        return Result(value=fn(*args, **kwargs))
    except SparseError as e:
        return Result(error=e)
