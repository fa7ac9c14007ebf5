"""
Session Loader.

Turns entry parameters into a ready SessionContext, or into a redirect:

    params -> variant -> locate -> pending? -> descriptor -> completed?
           -> pool -> normalize -> select -> restore local progress

The producer's policy and pool rows are cached locally after every
successful load, so a reload while the producer is unreachable rebuilds the
same session from the cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from loguru import logger

from examhall.core.allocation import DEFAULT_TIER_SET
from examhall.core.errors import RemoteUnreachableError, SessionNotFoundError
from examhall.core.models import SessionKey
from examhall.engine.context import SessionContext
from examhall.engine.variants import EntryParams, SessionVariant, resolve_variant
from examhall.integrations.producer_client import Producer
from examhall.integrations.schemas import PolicyPayload, parse_entries
from examhall.storage.local import LocalRecords


class LoadStatus(str, Enum):
    READY = "ready"
    REDIRECT_RESULT = "redirect_result"
    REDIRECT_DASHBOARD = "redirect_dashboard"
    PENDING_RESULTS = "pending_results"


@dataclass
class LoadOutcome:
    status: LoadStatus
    context: SessionContext | None = None
    session_key: SessionKey | None = None

    @property
    def is_ready(self) -> bool:
        return self.status == LoadStatus.READY


class SessionLoader:
    def __init__(
        self,
        producer: Producer,
        records: LocalRecords,
        default_tiers: Sequence[int] = DEFAULT_TIER_SET,
    ):
        self.producer = producer
        self.records = records
        self.default_tiers = tuple(default_tiers)

    async def load(self, params: EntryParams) -> LoadOutcome:
        """
        Load the session named by `params`.

        Raises:
            SessionNotFoundError: the producer has no such session
            UnauthorizedSessionError: the session belongs to someone else
            RemoteUnreachableError: producer down and nothing cached
        """
        variant = await resolve_variant(params).locate(self.producer, params)
        if variant is None:
            return LoadOutcome(LoadStatus.REDIRECT_DASHBOARD)

        key = variant.session_key
        if self.records.pending_submissions.load(key) is not None:
            logger.info("Session {} has a pending submission", key)
            return LoadOutcome(LoadStatus.PENDING_RESULTS, session_key=key)

        policy, cached_rows = await self._fetch_policy(variant)
        descriptor = PolicyPayload.model_validate(policy).to_descriptor(variant.kind, variant.session_id)
        variant.check_access(descriptor, params)

        if descriptor.is_completed:
            logger.info("Session {} already completed, redirecting to result", key)
            return LoadOutcome(LoadStatus.REDIRECT_RESULT, session_key=key)

        rows = cached_rows
        if rows is None:
            rows = await self._fetch_pool(variant, descriptor.pool_ref or key.session_id, policy)

        entries = variant.select_entries(parse_entries(rows), descriptor, params, self.default_tiers)
        ctx = SessionContext(
            descriptor=descriptor,
            variant=variant,
            entries=entries,
            attempt_id=params.attempt_id,
        )
        ctx.restore(self.records.progress.load(key))

        logger.info(
            "Loaded {} ({} of {} entries, status={})",
            key,
            len(entries),
            len(rows),
            descriptor.status.value,
        )
        return LoadOutcome(LoadStatus.READY, context=ctx, session_key=key)

    async def _fetch_policy(
        self,
        variant: SessionVariant,
    ) -> tuple[dict[str, Any], list[dict[str, Any]] | None]:
        """Policy from the producer, or policy and rows from the cache when offline."""
        key = variant.session_key
        try:
            policy = await variant.fetch_descriptor(self.producer)
        except RemoteUnreachableError:
            cached = self.records.session_cache.load(key)
            if cached is None:
                raise
            logger.warning("Producer unreachable, loading {} from local cache", key)
            return cached

        if policy is None:
            raise SessionNotFoundError(f"No session {key}")
        return policy, None

    async def _fetch_pool(
        self,
        variant: SessionVariant,
        pool_ref: str,
        policy: dict[str, Any],
    ) -> list[dict[str, Any]]:
        key = variant.session_key
        try:
            rows = await self.producer.fetch_question_pool(variant.kind, pool_ref)
        except RemoteUnreachableError:
            cached = self.records.session_cache.load(key)
            if cached is None:
                raise
            logger.warning("Pool for {} unreachable, using cached entries", key)
            return cached[1]

        self.records.session_cache.save(key, policy, rows)
        return rows
