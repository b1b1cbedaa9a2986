"""
Partial-update payloads for profile edits.

Edits address either a top-level key (``"about"``) or one key nested one
level below it (``"form2Data.fertility"``). Nested edits are sent as the
whole parent object with the one key replaced, so sibling keys known to the
client survive the write.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple, Union

from fmadmin.core.exceptions import PatchError, ValidationError
from fmadmin.core.models import ALLOWED_STATUSES, CORE_PROFILE_FIELDS, ProfileType


def split_field_name(field_name: str) -> Tuple[str, Optional[str]]:
    """``"top"`` -> ("top", None); ``"top.nested"`` -> ("top", "nested")."""
    if not isinstance(field_name, str) or not field_name:
        raise PatchError("Field name must be a non-empty string", details={"field": field_name})

    parts = field_name.split(".")
    if len(parts) > 2 or not all(parts):
        raise PatchError(
            f"Unsupported field path: {field_name!r} (at most one level of nesting)",
            details={"field": field_name},
        )
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[1]


def build_patch(
    field_name: str, value: Any, current_record: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """
    Minimal update payload for one edited field.

    ``current_record`` is only read; the payload holds a fresh copy of the
    nested object.
    """
    top, nested = split_field_name(field_name)
    if nested is None:
        return {top: value}

    existing = (current_record or {}).get(top)
    merged = dict(existing) if isinstance(existing, Mapping) else {}
    merged[nested] = value
    return {top: merged}


def build_core_patch(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only the core profile fields of an edited core section."""
    return {k: v for k, v in values.items() if k in CORE_PROFILE_FIELDS}


def build_status_patch(status: str, profile_type: Union[ProfileType, str]) -> Dict[str, Any]:
    """``{"status": ...}`` after checking the status exists for the profile type."""
    allowed = ALLOWED_STATUSES[ProfileType(profile_type)]
    if status not in allowed:
        raise ValidationError(
            f"Unknown status {status!r} for {ProfileType(profile_type).value} profiles",
            details={"allowed": list(allowed)},
        )
    return {"status": status}
