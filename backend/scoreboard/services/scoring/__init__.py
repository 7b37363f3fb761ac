"""Live match scoring domain.

Point logs, score aggregation, round status detection and the
reconciliation of finalized round scores. Nothing in here knows about
HTTP or Socket.IO; routes and socket handlers import from this package,
keeping transport concerns separated from the scoring rules.
"""

from .errors import (
    ScoringError,
    InvalidArgument,
    InvalidState,
    StoreUnavailable,
    PartialSubmissionFailure,
)
from .events import ScoreEvent, TeamScores, aggregate
from .rules import WinRule, RoundStatus, detect_status
from .streams import EventStream, MemoryEventStream, log_path
from .log_client import EventLogClient, LiveLog
from .reconciler import RoundScore, RoundReconciler, SubmissionReport
from .session import ScoringSession
