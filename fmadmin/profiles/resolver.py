"""
Field resolution over loosely shaped profile records.

A canonical field can live in several places of a raw record depending on
which intake channel wrote it. Each place is declared once as a
``CandidatePath``; ``resolve`` walks the declarations in priority order and
returns the first value that is actually present.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Tuple, Union

import structlog

logger = structlog.get_logger(__name__)

KeyPath = Tuple[str, ...]
PathSpec = Union[str, Sequence[str]]


class _Absent:
    """Marker for "no usable value"."""

    _instance: Optional["_Absent"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def is_absent(value: Any) -> bool:
    """True for missing values, ``None``, and empty or blank strings."""
    if value is ABSENT or value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _to_key_path(path: PathSpec) -> KeyPath:
    if isinstance(path, str):
        return tuple(path.split("."))
    return tuple(path)


@dataclass(frozen=True)
class CandidatePath:
    """
    One place a canonical field may be read from.

    ``paths`` holds one or more key paths. Without a transform the candidate
    value is the value found at the single path. With a transform, every
    looked-up value (``None`` when missing) is passed positionally and the
    transform's return value is used.
    """

    paths: Tuple[KeyPath, ...]
    transform: Optional[Callable[..., Any]] = None
    label: str = ""

    def read(self, record: Mapping[str, Any]) -> Any:
        values = [read_path(record, path) for path in self.paths]
        if self.transform is None:
            return values[0] if values else ABSENT
        args = [None if v is ABSENT else v for v in values]
        try:
            return self.transform(*args)
        except (TypeError, ValueError, AttributeError) as e:
            logger.debug("Candidate transform failed", candidate=self.describe(), error=str(e))
            return ABSENT

    def describe(self) -> str:
        if self.label:
            return self.label
        return " + ".join(".".join(p) for p in self.paths)


def at(path: PathSpec) -> CandidatePath:
    """Candidate reading a single path, e.g. ``at("about.bio")``."""
    return CandidatePath(paths=(_to_key_path(path),))


def combine(transform: Callable[..., Any], *paths: PathSpec, label: str = "") -> CandidatePath:
    """Candidate built from several paths through ``transform``."""
    return CandidatePath(
        paths=tuple(_to_key_path(p) for p in paths), transform=transform, label=label
    )


def read_path(record: Any, path: Iterable[str]) -> Any:
    """Follow ``path`` through nested mappings; ABSENT on any gap."""
    current = record
    for key in path:
        if not isinstance(current, Mapping):
            return ABSENT
        if key not in current:
            return ABSENT
        current = current[key]
    return current


def resolve(record: Optional[Mapping[str, Any]], candidates: Sequence[CandidatePath]) -> Any:
    """
    Return the first present candidate value, or ``ABSENT``.

    Never raises: a missing container, a non-mapping record or a failing
    transform only disqualifies the candidate concerned.
    """
    if not isinstance(record, Mapping):
        return ABSENT

    for candidate in candidates:
        value = candidate.read(record)
        if not is_absent(value):
            return value
    return ABSENT
