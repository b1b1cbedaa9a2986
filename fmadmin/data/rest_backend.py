"""
REST profile backend with reliability patterns and dry-run support.

Talks to a PostgREST-style endpoint (``/rest/v1/<table>?id=eq.<id>``) of the
hosted relational backend. Row changes are observed by polling the row and
emitting whole-record events whenever it appears, changes, or disappears.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import structlog

from fmadmin.core.config import BackendConfig, FeedConfig
from fmadmin.core.exceptions import BackendError, ConfigurationError, RecordNotFoundError
from fmadmin.core.models import ChangeEvent, ChangeEventType, RawProfileRecord
from fmadmin.utils.reliability import CircuitBreaker, backoff_retrying, log_before_sleep

logger = structlog.get_logger(__name__)

REST_PREFIX = "/rest/v1"


def _is_retryable(error: BaseException) -> bool:
    """Transport failures and 5xx responses are worth another attempt."""
    if not isinstance(error, BackendError):
        return False
    return error.status_code is None or error.status_code >= 500


class PollingSubscription:
    """
    Change source that re-reads one row on an interval.

    ``start`` takes the baseline snapshot; iterating yields an event for each
    observed difference, in the order observed. Changes made before the
    baseline are not reported here; the listener fetches the row itself after
    subscribing.
    """

    def __init__(self, backend: "RestProfileBackend", entity_id: str, poll_interval: float):
        self.backend = backend
        self.entity_id = entity_id
        self.poll_interval = poll_interval
        self._last: Optional[RawProfileRecord] = None
        self._closed = False

    async def start(self) -> "PollingSubscription":
        self._last = await self.backend.fetch(self.entity_id)
        logger.debug(
            "Polling subscription started",
            entity_id=self.entity_id,
            exists=self._last is not None,
            interval=self.poll_interval,
        )
        return self

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._poll()

    async def _poll(self) -> AsyncIterator[ChangeEvent]:
        while not self._closed:
            await asyncio.sleep(self.poll_interval)
            if self._closed:
                break
            current = await self.backend.fetch(self.entity_id)
            event = self._diff(current)
            self._last = current
            if event is not None:
                yield event

    def _diff(self, current: Optional[RawProfileRecord]) -> Optional[ChangeEvent]:
        if self._last is None and current is None:
            return None
        if self._last is None:
            event_type = ChangeEventType.INSERT
        elif current is None:
            event_type = ChangeEventType.DELETE
        elif current != self._last:
            event_type = ChangeEventType.UPDATE
        else:
            return None
        return ChangeEvent(
            entity_id=self.entity_id, event_type=event_type, new_record=current or {}
        )

    async def close(self) -> None:
        self._closed = True


class RestProfileBackend:
    """
    Profile rows over REST, with retries and a circuit breaker.
    """

    def __init__(
        self,
        config: BackendConfig,
        feed_config: Optional[FeedConfig] = None,
        dry_run: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not config.url:
            raise ConfigurationError("BACKEND_URL is not configured")

        self.config = config
        self.feed_config = feed_config or FeedConfig()
        self.dry_run = dry_run
        self.path = f"{REST_PREFIX}/{config.table}"

        self.client = httpx.AsyncClient(
            base_url=config.url,
            timeout=httpx.Timeout(config.request_timeout),
            headers=self._get_headers(),
            follow_redirects=True,
            transport=transport,
        )
        self.breaker = CircuitBreaker(
            "profiles_backend",
            failure_threshold=5,
            recovery_timeout=60.0,
            expected_exception=BackendError,
        )

        logger.info(
            "Profile backend initialized",
            table=f"{config.db_schema}.{config.table}",
            dry_run=dry_run,
        )

    def _get_headers(self) -> Dict[str, str]:
        return {
            "apikey": self.config.api_key or "",
            "Authorization": f"Bearer {self.config.api_key or ''}",
            "Accept-Profile": self.config.db_schema,
            "Content-Profile": self.config.db_schema,
            "Content-Type": "application/json",
        }

    async def __aenter__(self) -> "RestProfileBackend":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _send(
        self,
        method: str,
        params: Dict[str, Any],
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            logger.debug(
                "Backend request", method=method, path=self.path, has_data=bool(json_data)
            )
            response = await self.client.request(
                method, self.path, params=params, json=json_data, headers=headers
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                "Backend HTTP error",
                status_code=e.response.status_code,
                response_text=e.response.text[:500],
                method=method,
            )
            raise BackendError(
                f"Backend HTTP error: {e.response.status_code} - {e.response.text[:200]}",
                status_code=e.response.status_code,
                details={"method": method, "path": self.path},
            )

        except httpx.TransportError as e:
            logger.error("Backend transport error", method=method, error=str(e))
            raise BackendError(
                f"Backend transport error: {e}", details={"method": method, "path": self.path}
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(
                "Backend returned a non-JSON body",
                status_code=response.status_code,
                content_type=response.headers.get("content-type"),
                response_text=response.text[:200],
                method=method,
            )
            raise BackendError(
                f"Backend returned invalid JSON: {e}",
                status_code=response.status_code,
                details={"method": method, "path": self.path},
            )

    async def _request(
        self,
        method: str,
        params: Dict[str, Any],
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        result = None
        async for attempt in backoff_retrying(
            self.config.max_attempts,
            backoff_max=10.0,
            retry_on=_is_retryable,
            before_sleep=log_before_sleep(f"{method} {self.path}"),
        ):
            with attempt:
                result = await self.breaker.call_async(
                    self._send, method, params, json_data, headers
                )
        return result

    async def fetch(self, entity_id: str) -> Optional[RawProfileRecord]:
        rows = await self._request("GET", {"id": f"eq.{entity_id}", "select": "*"})
        if not rows:
            return None
        return rows[0]

    async def update(self, entity_id: str, partial: Dict[str, Any]) -> None:
        if self.dry_run:
            logger.info(
                "Dry run: skipping profile update", entity_id=entity_id, keys=sorted(partial)
            )
            return

        rows = await self._request(
            "PATCH",
            {"id": f"eq.{entity_id}"},
            json_data=partial,
            headers={"Prefer": "return=representation"},
        )
        if isinstance(rows, list) and not rows:
            raise RecordNotFoundError(entity_id)

        logger.info("Profile updated", entity_id=entity_id, keys=sorted(partial))

    async def subscribe(self, entity_id: str) -> PollingSubscription:
        subscription = PollingSubscription(self, entity_id, self.feed_config.poll_interval)
        return await subscription.start()

    async def health_check(self) -> Dict[str, Any]:
        """Check that the profiles table answers."""
        try:
            await self._request("GET", {"select": "id", "limit": "1"})
            return {"status": "healthy", "circuit_breaker": self.breaker.status}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e), "error_type": type(e).__name__}
