"""
Error taxonomy.

OutOfRangeInput, InsufficientHistory and DegenerateCorrelation are expected
runtime conditions the pipeline recovers from. InvariantViolation is a
programming error and always propagates.
"""


class AllostatError(Exception):
    """Base class for all engine errors."""


class OutOfRangeInput(AllostatError, ValueError):
    """A report field is outside the 0-10 scale, or the report breaks date order."""

    def __init__(self, message: str, reason: str = "out_of_range"):
        super().__init__(message)
        self.reason = reason


class InsufficientHistory(AllostatError):
    """Too few days to estimate personalized weights."""

    def __init__(self, available: int, required: int):
        super().__init__(f"Need {required} days of history for weights, have {available}")
        self.available = available
        self.required = required


class DegenerateCorrelation(AllostatError):
    """A series has zero variance, so its correlation is undefined."""


class InvariantViolation(AllostatError, AssertionError):
    """A computed value broke one of the engine's declared bounds."""
