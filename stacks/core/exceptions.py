"""
Exceptions
==========
Error kinds raised by the stacking pipeline.

Registration and solving errors abort the current call.
RefitFailure is recovered by the refitter (member dropped).
EmptyEnsemble is fatal at prediction time.
"""

from typing import Optional


class StacksError(Exception):
    """Base class for all stacking errors."""
    pass


class PartitionMismatch(StacksError):
    """Raised when a candidate was not produced on the stack's resample partition."""
    pass


class DuplicateCandidate(StacksError):
    """Raised when a candidate name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Candidate '{name}' is already registered")


class SolverNonConvergence(StacksError):
    """Raised when the blending solver does not converge within its iteration budget."""

    def __init__(self, penalty: float, max_iter: int, detail: str = ""):
        self.penalty = penalty
        self.max_iter = max_iter
        message = (
            f"Blending solver did not converge at penalty={penalty:g} "
            f"within max_iter={max_iter}"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RefitFailure(StacksError):
    """Raised when a candidate's fitting procedure errors on the full training set."""

    def __init__(self, candidate_id: str, reason: Optional[str] = None):
        self.candidate_id = candidate_id
        self.reason = reason
        message = f"Refit failed for candidate '{candidate_id}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class EmptyEnsemble(StacksError):
    """Raised when predicting with an ensemble that has no members."""
    pass


class NotFittedError(StacksError):
    """Raised when a stage is used before the stage it depends on."""
    pass
