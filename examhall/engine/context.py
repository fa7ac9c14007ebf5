"""
Session context.

The explicit, passed-around state of one open session: its descriptor, the
variant that governs it, and the delivered entries. Created by SessionLoader
and handed to the clock, recorder and coordinator; nothing about the current
session lives in module globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from examhall.core.correctness import resolve_is_correct
from examhall.core.models import (
    ProgressRecord,
    QuestionEntry,
    SessionDescriptor,
    SessionKey,
    SessionStatus,
    SessionSummary,
)

if TYPE_CHECKING:
    from examhall.engine.variants import SessionVariant


@dataclass
class PaletteItem:
    number: int
    entry_id: str
    answered: bool


@dataclass
class ProgressSummary:
    """Answered/skipped counts shown before submit and in the palette."""

    answered: int
    total: int
    palette: list[PaletteItem] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.total - self.answered

    @property
    def percent(self) -> float:
        return (self.answered / self.total) * 100 if self.total else 0.0


@dataclass
class SessionContext:
    descriptor: SessionDescriptor
    variant: SessionVariant
    entries: list[QuestionEntry] = field(default_factory=list)
    attempt_id: str | None = None

    @property
    def key(self) -> SessionKey:
        return self.descriptor.key

    @property
    def status(self) -> SessionStatus:
        return self.descriptor.status

    @property
    def is_completed(self) -> bool:
        return self.descriptor.status == SessionStatus.COMPLETED

    @property
    def is_started(self) -> bool:
        return self.descriptor.started_at is not None

    def entry(self, entry_id: str) -> QuestionEntry | None:
        return next((e for e in self.entries if e.id == entry_id), None)

    def answers(self) -> dict[str, str]:
        return {e.id: e.selected_option_id for e in self.entries if e.selected_option_id}

    def progress(self) -> ProgressSummary:
        palette = [
            PaletteItem(number=index + 1, entry_id=e.id, answered=e.is_answered)
            for index, e in enumerate(self.entries)
        ]
        return ProgressSummary(
            answered=sum(1 for item in palette if item.answered),
            total=len(self.entries),
            palette=palette,
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def mark_started(self, now: datetime) -> bool:
        """assigned -> in_progress, stamping started_at if unset."""
        if self.is_completed:
            return False
        changed = False
        if self.descriptor.started_at is None:
            self.descriptor.started_at = now
            changed = True
        if self.descriptor.status == SessionStatus.ASSIGNED:
            self.descriptor.status = SessionStatus.IN_PROGRESS
            changed = True
        return changed

    def mark_completed(self, now: datetime) -> bool:
        """Enter the terminal state. False if it was already there."""
        if self.is_completed:
            return False
        self.descriptor.status = SessionStatus.COMPLETED
        self.descriptor.completed_at = now
        return True

    # =========================================================================
    # Restore & Score
    # =========================================================================

    def restore(self, record: ProgressRecord | None) -> int:
        """
        Re-apply locally persisted answers.

        Local answers win over producer-side selections. Answers naming an
        option the entry no longer has are skipped. Returns the number applied.
        """
        if record is None:
            return 0

        if record.started_at is not None:
            current = self.descriptor.started_at
            if current is None or record.started_at < current:
                self.descriptor.started_at = record.started_at
        if self.descriptor.started_at is not None and self.descriptor.status == SessionStatus.ASSIGNED:
            self.descriptor.status = SessionStatus.IN_PROGRESS
        if record.attempt_id and not self.attempt_id:
            self.attempt_id = record.attempt_id

        applied = 0
        for entry_id, answer in record.answers.items():
            entry = self.entry(entry_id)
            option = entry.find_option(answer.option_id) if entry else None
            if entry is None or option is None:
                logger.debug("Skipping stale stored answer {}={}", entry_id, answer.option_id)
                continue
            entry.selected_option_id = option.id
            entry.is_correct = resolve_is_correct(entry, option)
            entry.answered_at = answer.recorded_at
            applied += 1

        if applied:
            logger.info("Restored {} answers for {}", applied, self.key)
        return applied

    def compute_summary(self) -> SessionSummary:
        correct = sum(1 for e in self.entries if e.is_correct)
        total = len(self.entries)
        answered = sum(1 for e in self.entries if e.is_answered)
        started_at = self.descriptor.started_at
        completed_at = self.descriptor.completed_at

        duration = None
        if started_at is not None and completed_at is not None:
            duration = max(0, int((completed_at - started_at).total_seconds()))

        return SessionSummary(
            correct=correct,
            total=total,
            answered=answered,
            score=correct / total if total else 0.0,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=duration,
        )
