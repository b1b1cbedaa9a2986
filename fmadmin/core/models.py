"""
Data models and type definitions for fmadmin.

Raw profile records stay loosely typed (plain dicts straight from the
backend); these models cover everything the core produces or exchanges.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

RawProfileRecord = Dict[str, Any]


class ProfileType(str, Enum):
    """Kinds of person records shown in the console."""

    PARENT = "parent"
    SURROGATE = "surrogate"


class ChangeEventType(str, Enum):
    """Row-level change kinds delivered by the change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class FeedState(str, Enum):
    """Lifecycle of a change feed subscription."""

    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"
    CLOSED = "closed"


class NotificationLevel(str, Enum):
    """Severity of a user-facing notification."""

    SUCCESS = "success"
    ERROR = "error"


# Status pipelines (current statuses first, legacy values kept for old rows)

GC_STATUSES = (
    "New Application",
    "Pre-Screen",
    "Screening in Progress",
    "Accepted to Program",
    "On Hold",
    "Declined / Inactive",
)

IP_STATUSES = (
    "New Inquiry",
    "Consultation Complete",
    "Intake in Progress",
    "Accepted to Program",
    "On Hold",
    "Declined / Inactive",
)

LEGACY_SURROGATE_STATUSES = (
    "Available",
    "Potential",
    "Records Review",
    "Screening",
    "Legal",
    "Cycling",
    "Pregnant",
)

LEGACY_PARENT_STATUSES = ("To be Matched", "Matched", "Rematch")

ALLOWED_STATUSES = {
    ProfileType.PARENT: IP_STATUSES + LEGACY_PARENT_STATUSES,
    ProfileType.SURROGATE: GC_STATUSES + LEGACY_SURROGATE_STATUSES,
}

CORE_PROFILE_FIELDS = (
    "firstName",
    "lastName",
    "role",
    "profileCompleted",
    "form2Completed",
    "profileCompletedAt",
    "form2CompletedAt",
)


class ChangeEvent(BaseModel):
    """Whole-record snapshot pushed by the change feed."""

    entity_id: str
    event_type: ChangeEventType = ChangeEventType.UPDATE
    new_record: RawProfileRecord = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class Notification(BaseModel):
    """Transient message for the user (toast)."""

    message: str
    level: NotificationLevel = NotificationLevel.SUCCESS
    field: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class FileRecord(BaseModel):
    """Entry of a profile's ``documents`` list."""

    url: str
    name: str = ""
    type: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class ProfileHeader(BaseModel):
    """Hero section of a profile page."""

    profile_type: ProfileType
    display_name: str
    initials: str
    email: Optional[str] = None
    location: Optional[str] = None
    timeline: Optional[str] = None
    availability: Optional[str] = None
    experience: Optional[str] = None
    status: Optional[str] = None
    profile_status: str
    form2_status: str
    created: str = "—"
    updated: str = "—"
    image_url: Optional[str] = None

    @field_validator("email", "location", "timeline", "availability", "experience", "status")
    @classmethod
    def blank_to_none(cls, v):
        """Empty strings are never shown."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def meta(self) -> List[Dict[str, str]]:
        """Label/value chips shown under the name, in display order."""
        chips = [
            ("Email", self.email),
            ("Location", self.location),
            ("Intended Timeline", self.timeline),
            ("Availability", self.availability),
        ]
        return [{"label": label, "value": value} for label, value in chips if value]
