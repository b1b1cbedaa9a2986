"""Interfaces the profile core needs from the persistence backend."""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional, Protocol

from fmadmin.core.models import ChangeEvent, RawProfileRecord


class Subscription(Protocol):
    """An open row-level change subscription."""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def close(self) -> None: ...


class ProfileBackend(Protocol):
    """Read, write and watch single profile rows."""

    async def fetch(self, entity_id: str) -> Optional[RawProfileRecord]:
        """The whole row, or None when it does not exist."""
        ...

    async def update(self, entity_id: str, partial: Dict[str, Any]) -> None:
        """Apply a partial update; raises DataAccessError on failure."""
        ...

    async def subscribe(self, entity_id: str) -> Subscription:
        """Open a change subscription for one row."""
        ...
