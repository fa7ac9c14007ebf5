"""
Core Module - Session data model, allocation and correctness rules.

Components:
- models: Session descriptors, question entries and durable records
- allocation: Assignment rule engine (pool -> delivered subset)
- correctness: Correct-option fallback chain
- errors: Engine error taxonomy
- timefmt: Timestamp parsing and countdown labels

Everything here is pure: no I/O, no timers.
"""

from examhall.core.allocation import allocation_size, resolve_rule, select_questions
from examhall.core.correctness import resolve_correct_option_id, resolve_is_correct
from examhall.core.errors import (
    ExamHallError,
    MalformedStateError,
    RemoteError,
    RemoteRejectedError,
    RemoteUnreachableError,
    SessionNotFoundError,
    UnauthorizedSessionError,
)
from examhall.core.models import (
    AllocationContext,
    AllocationMode,
    AssignmentRule,
    Option,
    QuestionEntry,
    SessionDescriptor,
    SessionKey,
    SessionPolicy,
    SessionStatus,
    SessionSummary,
    VariantKind,
)

__all__ = [
    # Allocation
    "allocation_size",
    "resolve_rule",
    "select_questions",
    # Correctness
    "resolve_correct_option_id",
    "resolve_is_correct",
    # Errors
    "ExamHallError",
    "MalformedStateError",
    "RemoteError",
    "RemoteRejectedError",
    "RemoteUnreachableError",
    "SessionNotFoundError",
    "UnauthorizedSessionError",
    # Models
    "AllocationContext",
    "AllocationMode",
    "AssignmentRule",
    "Option",
    "QuestionEntry",
    "SessionDescriptor",
    "SessionKey",
    "SessionPolicy",
    "SessionStatus",
    "SessionSummary",
    "VariantKind",
]
