"""
Session engine.

Modules:
- context: SessionContext, the explicit state of one open session
- variants: Daily, preview, proctored and practice behaviour
- loader: Entry parameters -> ready context or redirect
- deadline: Effective deadline, countdown and forced finalize
- recorder: Answer recording with offline queueing
- submission: At-most-once finalize with pending fallback
- offline_sync: Replay of queued work and connectivity polling
- runtime: One session wired end to end
"""

from examhall.engine.context import PaletteItem, ProgressSummary, SessionContext
from examhall.engine.deadline import DeadlineClock, compute_effective_deadline
from examhall.engine.loader import LoadOutcome, LoadStatus, SessionLoader
from examhall.engine.offline_sync import ConnectivityMonitor, OfflineSyncManager, SyncReport
from examhall.engine.recorder import AnswerRecorder, RecordResult
from examhall.engine.runtime import ExamRuntime
from examhall.engine.submission import (
    FinalizeOutcome,
    FinalizeStatus,
    Redirect,
    SubmissionCoordinator,
)
from examhall.engine.variants import (
    DailySession,
    EntryParams,
    PracticeSession,
    PreviewSession,
    ProctoredSession,
    SessionVariant,
    resolve_variant,
    variant_for,
)

__all__ = [
    "AnswerRecorder",
    "ConnectivityMonitor",
    "DailySession",
    "DeadlineClock",
    "EntryParams",
    "ExamRuntime",
    "FinalizeOutcome",
    "FinalizeStatus",
    "LoadOutcome",
    "LoadStatus",
    "OfflineSyncManager",
    "PaletteItem",
    "PracticeSession",
    "PreviewSession",
    "ProctoredSession",
    "ProgressSummary",
    "RecordResult",
    "Redirect",
    "SessionContext",
    "SessionLoader",
    "SessionVariant",
    "SubmissionCoordinator",
    "SyncReport",
    "compute_effective_deadline",
    "resolve_variant",
    "variant_for",
]
