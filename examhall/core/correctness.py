"""
Correctness resolution for a selected option.

Fallback chain, first definite key wins and is cached on the entry:
1. the entry's already-resolved correct option id
2. an option flagged correct
3. an option whose label matches the raw correct-option hint
4. no key: the selected option's own flag, if it carries one
"""

from __future__ import annotations

from examhall.core.models import Option, QuestionEntry


def _normalize_label(value: str) -> str:
    return value.strip().rstrip(".)").strip().lower()


def resolve_correct_option_id(entry: QuestionEntry) -> str | None:
    """Find the correct option id for an entry and cache it."""
    if entry.correct_option_id and entry.find_option(entry.correct_option_id):
        return entry.correct_option_id

    flagged = next((o for o in entry.options if o.is_correct_hint is True), None)
    if flagged is not None:
        entry.correct_option_id = flagged.id
        return flagged.id

    if entry.raw_correct_hint:
        hint = _normalize_label(entry.raw_correct_hint)
        for option in entry.options:
            if option.label and _normalize_label(option.label) == hint:
                entry.correct_option_id = option.id
                return option.id

    return None


def resolve_is_correct(entry: QuestionEntry, selected: Option) -> bool | None:
    """True/False when correctness is knowable, None otherwise."""
    correct_id = resolve_correct_option_id(entry)
    if correct_id is not None:
        return selected.id == correct_id
    if selected.is_correct_hint is not None:
        return bool(selected.is_correct_hint)
    return None
