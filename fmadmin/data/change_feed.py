"""
Change feed listener for a single profile row.

Delivers whole-record change events from the backend to a callback, in the
order the backend emits them, until closed. Every successful subscribe is
followed by a snapshot of the current row, so changes made before the
subscription (or during an outage) still reach the callback.

A failed subscription is retried with exponential backoff. The attempt
budget starts over each time the feed becomes active again; with zero
reconnect attempts the listener stays down after the first failure and the
last known record is left as is.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import structlog
from tenacity import AsyncRetrying, RetryCallState

from fmadmin.core.exceptions import SubscriptionError
from fmadmin.core.models import ChangeEvent, ChangeEventType, FeedState
from fmadmin.data.backend import ProfileBackend, Subscription
from fmadmin.utils.reliability import backoff_retrying

logger = structlog.get_logger(__name__)

EventCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[Exception], None]


class ChangeFeedListener:
    """Subscription to one entity's change events."""

    def __init__(
        self,
        backend: ProfileBackend,
        entity_id: str,
        on_event: EventCallback,
        on_error: Optional[ErrorCallback] = None,
        max_reconnect_attempts: int = 5,
        reconnect_backoff_max: float = 30.0,
    ):
        self.backend = backend
        self.entity_id = entity_id
        self.on_event = on_event
        self.on_error = on_error
        self.max_reconnect_attempts = max(0, max_reconnect_attempts)
        self.reconnect_backoff_max = reconnect_backoff_max

        self.state = FeedState.IDLE
        self.events_delivered = 0
        self.last_error: Optional[Exception] = None
        self._activated = False
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_closed(self) -> bool:
        return self.state == FeedState.CLOSED

    def start(self) -> asyncio.Task:
        """Open the subscription in the background. Requires a running loop."""
        if self._task is not None:
            raise SubscriptionError(
                "Change feed already started", details={"entity_id": self.entity_id}
            )
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"change-feed-{self.entity_id}"
        )
        return self._task

    async def close(self) -> None:
        """Stop listening. No event is delivered after this returns."""
        if self.state == FeedState.CLOSED:
            return
        self.state = FeedState.CLOSED

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info(
            "Change feed closed", entity_id=self.entity_id, events=self.events_delivered
        )

    async def _run(self) -> None:
        try:
            while True:
                self._activated = False
                try:
                    async for attempt in self._reconnect_policy():
                        with attempt:
                            await self._consume()
                    return
                except Exception:
                    if self.is_closed or not self._activated or not self.max_reconnect_attempts:
                        raise
                # The feed was live before this drop, so it gets a fresh budget.
                await asyncio.sleep(min(1.0, self.reconnect_backoff_max))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self.is_closed:
                self.state = FeedState.ERROR
                logger.error(
                    "Change feed stopped",
                    entity_id=self.entity_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def _reconnect_policy(self) -> AsyncRetrying:
        return backoff_retrying(
            self.max_reconnect_attempts + 1,
            backoff_max=self.reconnect_backoff_max,
            retry_on=lambda e: isinstance(e, Exception)
            and not self.is_closed
            and not self._activated,
            before_sleep=self._before_reconnect,
            backoff_min=min(1.0, self.reconnect_backoff_max),
        )

    async def _consume(self) -> None:
        self.state = FeedState.SUBSCRIBING
        try:
            self._subscription = await self.backend.subscribe(self.entity_id)
            if self.is_closed:
                await self._subscription.close()
                return

            await self._resync()
            if self.is_closed:
                return
            self.state = FeedState.ACTIVE
            self._activated = True
            logger.info("Change feed active", entity_id=self.entity_id)

            async for event in self._subscription:
                if self.is_closed:
                    return
                self._deliver(event)

            if not self.is_closed:
                raise SubscriptionError(
                    "Change feed ended unexpectedly", details={"entity_id": self.entity_id}
                )

        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.is_closed:
                return
            self.state = FeedState.ERROR
            self.last_error = e
            logger.warning(
                "Change feed error",
                entity_id=self.entity_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            subscription, self._subscription = self._subscription, None
            if subscription is not None:
                await subscription.close()
            if self.on_error is not None:
                self.on_error(e)
            raise

    async def _resync(self) -> None:
        """Deliver the current row, covering changes made while unsubscribed."""
        record = await self.backend.fetch(self.entity_id)
        if self.is_closed:
            return
        if record is None:
            event = ChangeEvent(entity_id=self.entity_id, event_type=ChangeEventType.DELETE)
        else:
            event = ChangeEvent(entity_id=self.entity_id, new_record=record)
        self._deliver(event)

    def _deliver(self, event: ChangeEvent) -> None:
        self.events_delivered += 1
        logger.debug(
            "Change event received",
            entity_id=self.entity_id,
            event_type=event.event_type.value,
        )
        self.on_event(event)

    def _before_reconnect(self, retry_state: RetryCallState) -> None:
        logger.info(
            "Reconnecting change feed",
            entity_id=self.entity_id,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_reconnect_attempts,
            sleep_seconds=round(retry_state.next_action.sleep, 2)
            if retry_state.next_action
            else None,
        )
