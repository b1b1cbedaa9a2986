"""
View model builders for profile pages.

Turns a raw profile record into the flat, string-only structures the
renderers consume. Everything here is pure: the same record always yields
the same view, and malformed input degrades field by field.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from fmadmin.core.exceptions import ValidationError
from fmadmin.core.models import FileRecord, ProfileHeader, ProfileType
from fmadmin.profiles.derived import (
    display_text,
    format_timestamp,
    full_name,
    initials,
    join_parties,
    location,
    split_tags,
)
from fmadmin.profiles.resolver import at, combine, is_absent, resolve
from fmadmin.profiles.schemas import ABOUT_SCHEMAS

logger = structlog.get_logger(__name__)

CanonicalViewModel = Dict[str, str]

_IMAGE_NAME = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)


def coerce_profile_type(profile_type: Union[ProfileType, str]) -> ProfileType:
    try:
        return ProfileType(profile_type)
    except ValueError:
        raise ValidationError(
            f"Unknown profile type: {profile_type!r}",
            details={"allowed": [p.value for p in ProfileType]},
        )


def build_about_view(
    record: Optional[Mapping[str, Any]], profile_type: Union[ProfileType, str]
) -> CanonicalViewModel:
    """
    Resolve every canonical "About" field of a profile.

    The result always carries every schema key; absent fields are ``""``.
    Curated ``about`` keys the schema does not know are passed through.
    """
    ptype = coerce_profile_type(profile_type)
    schema = ABOUT_SCHEMAS[ptype]
    if not isinstance(record, Mapping):
        record = {}

    view: CanonicalViewModel = {}

    about = record.get("about")
    if isinstance(about, Mapping):
        for key, value in about.items():
            if key in schema:
                continue
            text = display_text(value)
            if text:
                view[key] = text

    for field_name, candidates in schema.items():
        view[field_name] = display_text(resolve(record, candidates))

    if ptype is ProfileType.SURROGATE:
        curated = display_text(resolve(record, (at("about.heritage"),)))
        view["heritage"] = curated or display_text(
            join_parties(view["bioMotherHeritage"], view["bioFatherHeritage"])
        )

    return view


def about_tags(view: Mapping[str, str]) -> Dict[str, List[str]]:
    """Hobby chips and heritage badges for an about view."""
    return {
        "hobbies": split_tags(view.get("hobbies")),
        "heritage": split_tags(view.get("heritage")),
    }


def has_about_content(view: Mapping[str, str]) -> bool:
    """False when every field is empty (the page shows its empty state)."""
    return any(not is_absent(v) for v in view.values())


# Header (hero section)


def _pregnancies(total: Any) -> Any:
    text = display_text(total)
    if not text or text == "0":
        return None
    return f"{text} pregnancies"


def _journeys(children: Any) -> Any:
    text = display_text(children)
    if not text:
        return None
    return f"{text} surrogacy journey{'' if text == '1' else 's'}"


_DISPLAY_NAME = {
    ProfileType.PARENT: (
        at("parent1.name"),
        combine(full_name, "formData.firstName", "formData.lastName"),
        combine(full_name, "firstName", "lastName"),
        at("email"),
    ),
    ProfileType.SURROGATE: (
        combine(full_name, "formData.firstName", "formData.lastName"),
        combine(full_name, "firstName", "lastName"),
        at("email"),
    ),
}

_FALLBACK_NAME = {
    ProfileType.PARENT: "Parent Profile",
    ProfileType.SURROGATE: "Surrogate Profile",
}

_LOCATION = (combine(location, "formData.city", "formData.state"),)
_TIMELINE = (at("formData.whenToStart"),)
_AVAILABILITY = (at("form2.availability"), at("form2Data.availability"))
_EXPERIENCE = (
    combine(_pregnancies, "form2.pregnancyHistory.total"),
    combine(_journeys, "form2.surrogacyChildren"),
    combine(_journeys, "form2Data.surrogacyChildren"),
)

_STATUS_LABELS = {
    ProfileType.PARENT: (("Complete", "In Progress"), ("Submitted", "Pending")),
    ProfileType.SURROGATE: (("Ready", "In Progress"), ("Complete", "Pending")),
}


def _text_or_none(record: Mapping[str, Any], candidates) -> Optional[str]:
    return display_text(resolve(record, candidates)) or None


def build_header(
    record: Optional[Mapping[str, Any]], profile_type: Union[ProfileType, str]
) -> ProfileHeader:
    """Hero section values: name, contact chips and completion badges."""
    ptype = coerce_profile_type(profile_type)
    if not isinstance(record, Mapping):
        record = {}

    name = _text_or_none(record, _DISPLAY_NAME[ptype]) or _FALLBACK_NAME[ptype]
    (profile_done, profile_pending), (form2_done, form2_pending) = _STATUS_LABELS[ptype]

    is_parent = ptype is ProfileType.PARENT
    return ProfileHeader(
        profile_type=ptype,
        display_name=name,
        initials=initials(name),
        email=display_text(record.get("email")) or None,
        location=_text_or_none(record, _LOCATION),
        timeline=_text_or_none(record, _TIMELINE) if is_parent else None,
        availability=None if is_parent else _text_or_none(record, _AVAILABILITY),
        experience=None if is_parent else _text_or_none(record, _EXPERIENCE),
        status=display_text(record.get("status")) or None,
        profile_status=profile_done if record.get("profileCompleted") else profile_pending,
        form2_status=form2_done if record.get("form2Completed") else form2_pending,
        created=format_timestamp(record.get("createdAt")),
        updated=format_timestamp(record.get("updatedAt")),
        image_url=display_text(record.get("profileImageUrl")) or None,
    )


def image_documents(record: Optional[Mapping[str, Any]]) -> List[FileRecord]:
    """Uploaded documents that are pictures, for the profile gallery."""
    if not isinstance(record, Mapping):
        return []
    documents = record.get("documents")
    if not isinstance(documents, list):
        return []

    images = []
    for raw in documents:
        try:
            doc = FileRecord.model_validate(raw)
        except PydanticValidationError:
            logger.debug("Skipping malformed document entry", entry=str(raw)[:100])
            continue
        if (doc.type or "").startswith("image/") or _IMAGE_NAME.search(doc.name or ""):
            images.append(doc)
    return images
