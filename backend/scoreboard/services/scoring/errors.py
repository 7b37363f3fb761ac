from typing import Iterable, List


class ScoringError(Exception):
    """Base class for scoring failures. None of them are fatal."""


class InvalidArgument(ScoringError, ValueError):
    """Bad team id, zero or non-integer points, or a malformed round score."""


class InvalidState(ScoringError):
    """Action not allowed in the current round state (e.g. round already won)."""


class StoreUnavailable(ScoringError):
    """The backing log or result store could not be read or written."""


class PartialSubmissionFailure(ScoringError):
    """Some rounds failed to persist while others succeeded.

    ``failed_rounds`` are still tagged local and can be retried;
    ``submitted_rounds`` are already remote and stay that way.
    """

    def __init__(self, failed_rounds: Iterable[int], submitted_rounds: Iterable[int] = ()):
        self.failed_rounds: List[int] = sorted(failed_rounds)
        self.submitted_rounds: List[int] = sorted(submitted_rounds)
        super().__init__(
            f"{len(self.failed_rounds)} round(s) failed to persist: {self.failed_rounds}"
        )
