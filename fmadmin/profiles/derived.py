"""Derived profile values computed on top of resolved raw fields."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, List, Mapping, Optional

from dateutil import parser as date_parser

from fmadmin.profiles.resolver import ABSENT, is_absent

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_TAG_SPLIT = re.compile(r"[,&\n]")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def display_text(value: Any) -> str:
    """Render a raw record value as display text; ``""`` when absent."""
    if is_absent(value):
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return ", ".join(t for t in (display_text(v) for v in value) if t)
    # Nested objects are not displayable as a single field
    return ""


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a date-like raw value into an aware datetime.

    Accepts ISO and free-form date strings, ``date``/``datetime`` objects,
    epoch milliseconds and ``{"seconds": ...}`` timestamp objects. Naive
    values are taken as UTC. Returns None for anything unparsable.
    """
    dt: Optional[datetime] = None
    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, date):
            dt = datetime(value.year, value.month, value.day)
        elif isinstance(value, bool):
            return None
        elif isinstance(value, (int, float)):
            dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        elif isinstance(value, Mapping) and "seconds" in value:
            dt = datetime.fromtimestamp(float(value["seconds"]), tz=timezone.utc)
        elif isinstance(value, str) and value.strip():
            text = value.strip()
            try:
                dt = date_parser.isoparse(text)
            except ValueError:
                dt = date_parser.parse(text)
    except (ValueError, OverflowError, OSError, TypeError):
        return None

    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def age_from_dob(value: Any, now: Optional[datetime] = None) -> Any:
    """
    Whole years from a date of birth to ``now`` as a string.

    Counts calendar years of the elapsed span laid on the epoch, in UTC.
    Unparsable, missing and future dates give ABSENT.
    """
    dob = parse_datetime(value)
    if dob is None:
        return ABSENT

    now = now or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if dob > now:
        return ABSENT

    try:
        years = (EPOCH + (now - dob)).year - 1970
    except OverflowError:
        return ABSENT
    return str(abs(years))


def join_parties(*values: Any, sep: str = " & ") -> Any:
    """Join the present values with ``sep``; ABSENT when none are present."""
    present = [text for text in (display_text(v) for v in values) if text]
    if not present:
        return ABSENT
    return sep.join(present)


def joiner(sep: str):
    """Transform joining every looked-up value with ``sep``."""

    def _join(*values: Any) -> Any:
        return join_parties(*values, sep=sep)

    _join.__name__ = f"join_{sep!r}"
    return _join


def party_age(age: Any, dob: Any = None, form_dob: Any = None) -> Any:
    """One co-parent's age: explicit age, then own birth date, then Form 2's."""
    explicit = display_text(age)
    if explicit and explicit != "0":
        return explicit
    for candidate in (dob, form_dob):
        computed = age_from_dob(candidate)
        if not is_absent(computed) and computed != "0":
            return computed
    return ABSENT


def couple_age(
    p1_age: Any, p1_dob: Any, p1_form_dob: Any, p2_age: Any, p2_dob: Any, p2_form_dob: Any
) -> Any:
    return join_parties(
        party_age(p1_age, p1_dob, p1_form_dob), party_age(p2_age, p2_dob, p2_form_dob)
    )


def split_tags(value: Any) -> List[str]:
    """Split hobby/heritage text on commas, ampersands and newlines."""
    text = display_text(value)
    if not text:
        return []
    return [piece.strip() for piece in _TAG_SPLIT.split(text) if piece.strip()]


def full_name(first: Any, last: Any) -> Any:
    return join_parties(first, last, sep=" ")


def initials(name: Any, fallback: str = "FM") -> str:
    words = display_text(name).split()
    letters = "".join(word[0].upper() for word in words if word)
    return letters[:2] or fallback


def location(city: Any, state: Any) -> Any:
    """``"City, ST"`` from whichever parts are present."""
    return join_parties(city, state, sep=", ")


def format_timestamp(value: Any) -> str:
    """Human readable timestamp; ``"—"`` when missing, raw text when unparsable."""
    if is_absent(value):
        return "—"
    dt = parse_datetime(value)
    if dt is None:
        return str(value)
    return dt.astimezone(timezone.utc).strftime("%b %d, %Y, %I:%M %p UTC")
