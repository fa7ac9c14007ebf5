"""
Producer API client.

HTTP client for the question-pool producer: session policy lookup, question
pools, answer sync and session finalize. Transport failures, timeouts and 5xx
responses are retried with exponential backoff; once retries run out the call
raises RemoteUnreachableError so the engine can queue the work. 4xx responses
are not retried and raise RemoteRejectedError.

Usage:
    async with ProducerClient.from_settings(get_settings()) as producer:
        policy = await producer.fetch_session_policy(VariantKind.DAILY, "dq-42")
        rows = await producer.fetch_question_pool(policy["pool_ref"])
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Protocol

import httpx
from loguru import logger

from examhall.config import Settings
from examhall.core.errors import RemoteRejectedError, RemoteUnreachableError
from examhall.core.models import VariantKind


class Producer(Protocol):
    """What the engine needs from the producer collaborator."""

    async def fetch_session_policy(
        self,
        variant: VariantKind,
        session_id: str,
    ) -> dict[str, Any] | None: ...

    async def find_daily_session(self, user_id: str, on_date: date) -> dict[str, Any] | None: ...

    async def fetch_question_pool(self, variant: VariantKind, pool_ref: str) -> list[dict[str, Any]]: ...

    async def record_answer(
        self,
        variant: VariantKind,
        session_id: str,
        entry_id: str,
        option_id: str,
    ) -> None: ...

    async def finalize_session(
        self,
        variant: VariantKind,
        session_id: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]: ...

    async def health_check(self) -> bool: ...


class ProducerClient:
    """httpx-based Producer implementation."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 15.0,
        retry_attempts: int = 3,
        backoff_base: float = 1.0,
    ):
        """
        Initialize producer client.

        Args:
            base_url: Base URL for the producer API
            api_key: Optional API key sent as X-API-Key
            timeout_seconds: Request timeout
            retry_attempts: Attempts per call on retryable failures
            backoff_base: First backoff delay; doubles per attempt
        """
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_base = backoff_base

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ProducerClient:
        return cls(
            base_url=settings.producer_base_url,
            api_key=settings.producer_api_key,
            timeout_seconds=settings.request_timeout_seconds,
            retry_attempts=settings.retry_attempts,
        )

    async def __aenter__(self) -> ProducerClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send one request with retry logic.

        Raises:
            RemoteUnreachableError: retries exhausted on timeout/transport/5xx
            RemoteRejectedError: 4xx response (never retried)
        """
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            wait_time = self.backoff_base * (2 ** attempt)  # 1s, 2s, 4s
            try:
                response = await self.client.request(method, path, **kwargs)
                response.raise_for_status()
                return response

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(
                    "Producer timeout on {} {} (attempt {}/{})",
                    method,
                    path,
                    attempt + 1,
                    self.retry_attempts,
                )

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status < 500:
                    logger.debug("Producer rejected {} {}: {}", method, path, status)
                    raise RemoteRejectedError(f"{method} {path} returned {status}", status) from e
                last_error = e
                logger.warning(
                    "Producer server error {} on {} {} (attempt {}/{})",
                    status,
                    method,
                    path,
                    attempt + 1,
                    self.retry_attempts,
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    "Producer request error on {} {} (attempt {}/{}): {}",
                    method,
                    path,
                    attempt + 1,
                    self.retry_attempts,
                    e,
                )

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(wait_time)

        logger.error("Producer unreachable after {} attempts: {}", self.retry_attempts, last_error)
        raise RemoteUnreachableError(str(last_error)) from last_error

    # =========================================================================
    # Sessions
    # =========================================================================

    async def fetch_session_policy(
        self,
        variant: VariantKind,
        session_id: str,
    ) -> dict[str, Any] | None:
        """Descriptor + policy for one session, or None if the producer has none."""
        try:
            response = await self._request("GET", f"/api/v1/sessions/{variant.value}/{session_id}")
        except RemoteRejectedError as e:
            if e.status_code == 404:
                return None
            raise
        return response.json()

    async def find_daily_session(self, user_id: str, on_date: date) -> dict[str, Any] | None:
        """Today's daily session for a learner, if one was assigned."""
        response = await self._request(
            "GET",
            "/api/v1/sessions/daily",
            params={"user_id": user_id, "assigned_date": on_date.isoformat()},
        )
        data = response.json()
        return data.get("session") if isinstance(data, dict) else None

    async def fetch_question_pool(self, variant: VariantKind, pool_ref: str) -> list[dict[str, Any]]:
        """Ordered entries of a pool, options included."""
        response = await self._request("GET", f"/api/v1/pools/{variant.value}/{pool_ref}/entries")
        data = response.json()
        if isinstance(data, dict):
            return data.get("entries", [])
        return data

    # =========================================================================
    # Answers & Finalize
    # =========================================================================

    async def record_answer(
        self,
        variant: VariantKind,
        session_id: str,
        entry_id: str,
        option_id: str,
    ) -> None:
        await self._request(
            "POST",
            f"/api/v1/sessions/{variant.value}/{session_id}/answers",
            json={"entry_id": entry_id, "option_id": option_id},
        )
        logger.debug("Synced answer {}={} for {}:{}", entry_id, option_id, variant.value, session_id)

    async def finalize_session(
        self,
        variant: VariantKind,
        session_id: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"/api/v1/sessions/{variant.value}/{session_id}/finalize",
            json=payload,
        )
        logger.info("Finalized {}:{}", variant.value, session_id)
        return response.json() if response.content else {}

    # =========================================================================
    # Health Check
    # =========================================================================

    async def health_check(self) -> bool:
        """Check if the producer is reachable."""
        try:
            response = await self.client.get("/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
