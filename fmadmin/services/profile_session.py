"""
Profile session: one live profile record kept in sync with the backend.

Local edits are applied immediately and written in the background; change
feed events always replace the local record wholesale, so the server copy
wins as soon as it arrives.
"""

from __future__ import annotations

import asyncio
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

import structlog

from fmadmin.core.config import Settings
from fmadmin.core.exceptions import DataAccessError, RecordNotFoundError, ValidationError
from fmadmin.core.models import (
    ChangeEvent,
    ChangeEventType,
    FileRecord,
    Notification,
    NotificationLevel,
    ProfileHeader,
    ProfileType,
    RawProfileRecord,
)
from fmadmin.data.backend import ProfileBackend
from fmadmin.data.change_feed import ChangeFeedListener
from fmadmin.profiles.patch import build_core_patch, build_patch, build_status_patch
from fmadmin.profiles.view_model import (
    CanonicalViewModel,
    build_about_view,
    build_header,
    coerce_profile_type,
    image_documents,
)

logger = structlog.get_logger(__name__)

NotifyCallback = Callable[[Notification], None]
ChangeListener = Callable[[Mapping[str, Any]], None]

_MISSING = object()


class ProfileSession:
    """
    Optimistic edit coordinator for a single profile.

    Only this class replaces the in-memory record, and always as a whole new
    mapping; callers get a read-only view of it.
    """

    def __init__(
        self,
        entity_id: str,
        profile_type: Union[ProfileType, str],
        backend: ProfileBackend,
        notify: Optional[NotifyCallback] = None,
        rollback_on_failure: bool = False,
        max_reconnect_attempts: int = 5,
        reconnect_backoff_max: float = 30.0,
    ):
        self.entity_id = entity_id
        self.profile_type = coerce_profile_type(profile_type)
        self.backend = backend
        self.notify = notify
        self.rollback_on_failure = rollback_on_failure

        self._record: RawProfileRecord = {}
        self._version = 0
        self._closed = False
        self._pending: Set[asyncio.Task] = set()
        self._listeners: List[ChangeListener] = []

        self.feed = ChangeFeedListener(
            backend,
            entity_id,
            on_event=self.handle_change_event,
            on_error=self._on_feed_error,
            max_reconnect_attempts=max_reconnect_attempts,
            reconnect_backoff_max=reconnect_backoff_max,
        )

    @classmethod
    def from_settings(
        cls,
        entity_id: str,
        profile_type: Union[ProfileType, str],
        backend: ProfileBackend,
        settings: Settings,
        notify: Optional[NotifyCallback] = None,
    ) -> "ProfileSession":
        return cls(
            entity_id,
            profile_type,
            backend,
            notify=notify,
            rollback_on_failure=settings.sync.rollback_on_write_failure,
            max_reconnect_attempts=settings.feed.max_reconnect_attempts,
            reconnect_backoff_max=settings.feed.reconnect_backoff_max,
        )

    # Lifecycle

    async def open(self) -> "ProfileSession":
        """Load the record and start listening for changes."""
        record = await self.backend.fetch(self.entity_id)
        if record is None:
            raise RecordNotFoundError(self.entity_id)

        self._replace(dict(record), source="fetch")
        self.feed.start()
        logger.info(
            "Profile session opened",
            entity_id=self.entity_id,
            profile_type=self.profile_type.value,
        )
        return self

    async def close(self) -> None:
        """Stop listening; results of in-flight writes are dropped."""
        self._closed = True
        await self.feed.close()
        logger.info(
            "Profile session closed", entity_id=self.entity_id, pending_writes=len(self._pending)
        )

    async def __aenter__(self) -> "ProfileSession":
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def drain(self) -> None:
        """Wait for every write issued so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # State

    @property
    def record(self) -> Mapping[str, Any]:
        return MappingProxyType(self._record)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def add_change_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener`` after every record replacement; returns an unsubscribe."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def about_view(self) -> CanonicalViewModel:
        return build_about_view(self._record, self.profile_type)

    def header(self) -> ProfileHeader:
        return build_header(self._record, self.profile_type)

    def images(self) -> List[FileRecord]:
        return image_documents(self._record)

    # Edits

    def apply_edit(self, field_name: str, value: Any) -> Optional[asyncio.Task]:
        """
        Apply an edit locally now and write it in the background.

        The returned task may be ignored; outcomes, including an invalid
        field name, are reported through ``notify``.
        """
        try:
            patch = build_patch(field_name, value, self._record)
        except ValidationError as e:
            logger.warning("Rejected profile edit", field=field_name, error=e.message)
            self._notify(
                Notification(
                    message=f"Failed to update {field_name}: {e.message}",
                    level=NotificationLevel.ERROR,
                    field=str(field_name),
                )
            )
            return None
        return self._apply(patch, label=field_name)

    def update_core(self, values: Mapping[str, Any]) -> asyncio.Task:
        """Edit the core profile section; unknown keys are dropped."""
        patch = build_core_patch(values)
        if not patch:
            raise ValidationError("No core profile fields to update", details={"keys": list(values)})
        return self._apply(patch, label="core profile", title="Core profile")

    def change_status(self, status: str) -> asyncio.Task:
        """Write a new status; the local record follows via the change feed."""
        patch = build_status_patch(status, self.profile_type)
        return self._schedule_write(patch, label="status", title="Status")

    def _apply(
        self, patch: Dict[str, Any], label: str, title: Optional[str] = None
    ) -> asyncio.Task:
        previous = {key: self._record.get(key, _MISSING) for key in patch}
        self._replace({**self._record, **patch}, source="edit")
        return self._schedule_write(
            patch, label=label, title=title, undo=(previous, self._version)
        )

    def _schedule_write(
        self,
        patch: Dict[str, Any],
        label: str,
        title: Optional[str] = None,
        undo: Optional[tuple] = None,
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._write(patch, label, title or label, undo)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(
        self, patch: Dict[str, Any], label: str, title: str, undo: Optional[tuple]
    ) -> None:
        try:
            await self.backend.update(self.entity_id, patch)
        except DataAccessError as e:
            logger.warning(
                "Profile write failed",
                entity_id=self.entity_id,
                field=label,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._write_failed(label, undo)
            return
        except Exception as e:
            logger.error(
                "Unexpected error writing profile",
                entity_id=self.entity_id,
                field=label,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._write_failed(label, undo)
            return

        if self._closed:
            return
        logger.debug("Profile write confirmed", entity_id=self.entity_id, field=label)
        self._notify(Notification(message=f"{title} updated successfully", field=label))

    def _write_failed(self, label: str, undo: Optional[tuple]) -> None:
        if self._closed:
            return
        if self.rollback_on_failure and undo is not None:
            self._rollback(*undo, label=label)
        self._notify(
            Notification(
                message=f"Failed to update {label}", level=NotificationLevel.ERROR, field=label
            )
        )

    def _rollback(self, previous: Dict[str, Any], version: int, label: str) -> None:
        if self._version != version:
            # Replaced by a change event or a later edit since; keep that.
            logger.info("Skipping rollback of superseded edit", field=label)
            return

        restored = dict(self._record)
        for key, value in previous.items():
            if value is _MISSING:
                restored.pop(key, None)
            else:
                restored[key] = value
        self._replace(restored, source="rollback")

    # Change feed

    def handle_change_event(self, event: ChangeEvent) -> None:
        """Replace the local record with the event's snapshot."""
        if self._closed:
            return
        if event.entity_id != self.entity_id:
            logger.warning(
                "Ignoring change event for another profile",
                expected=self.entity_id,
                received=event.entity_id,
            )
            return
        if event.event_type == ChangeEventType.DELETE:
            logger.warning("Profile deleted remotely", entity_id=self.entity_id)

        self._replace(dict(event.new_record), source=event.event_type.value)

    def _on_feed_error(self, error: Exception) -> None:
        logger.warning(
            "Live updates interrupted; showing last known record",
            entity_id=self.entity_id,
            error=str(error),
        )

    def _replace(self, record: RawProfileRecord, source: str) -> None:
        self._record = record
        self._version += 1
        logger.debug(
            "Profile record replaced",
            entity_id=self.entity_id,
            source=source,
            version=self._version,
        )
        view = self.record
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                logger.error("Change listener failed", error=str(e), error_type=type(e).__name__)

    def _notify(self, notification: Notification) -> None:
        if self.notify is None:
            return
        try:
            self.notify(notification)
        except Exception as e:
            logger.error("Notification callback failed", error=str(e))
