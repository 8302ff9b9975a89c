"""
Exceptions
==========
Error taxonomy shared by every stage of the pipeline.

Structural problems (schema mismatches, too little data, an exhausted
experiment) are raised to the caller. Candidate failures are recovered
inside the search engine and only surface through ExperimentExhaustedError.
"""

from typing import Optional


class InspectionScoreError(Exception):
    """Base class for all pipeline errors."""


class SchemaMismatchError(InspectionScoreError, ValueError):
    """Input or output structure does not match the declared schema."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.column = column


class InsufficientDataError(InspectionScoreError, ValueError):
    """Too little data to split, train or evaluate."""


class ExperimentExhaustedError(InspectionScoreError, RuntimeError):
    """No candidate produced a usable model within the time budget."""

    def __init__(
        self,
        message: str,
        elapsed: float = 0.0,
        time_budget: float = 0.0,
        failures: Optional[dict] = None
    ):
        super().__init__(message)
        self.elapsed = elapsed
        self.time_budget = time_budget
        self.failures = failures or {}


class CandidateFitError(InspectionScoreError):
    """A single candidate failed to fit or score. Recovered by the search."""

    def __init__(self, candidate: str, cause: BaseException):
        super().__init__(f"Candidate '{candidate}' failed: {type(cause).__name__}: {cause}")
        self.candidate = candidate
        self.cause = cause
