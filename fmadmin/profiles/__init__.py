"""
Profile view resolution for the admin console.

Resolves canonical profile fields from inconsistently shaped raw records,
derives computed values, and builds partial-update payloads for edits.
"""

from .patch import build_core_patch, build_patch, build_status_patch
from .resolver import ABSENT, CandidatePath, at, combine, is_absent, resolve
from .view_model import about_tags, build_about_view, build_header, image_documents

__all__ = [
    "ABSENT",
    "CandidatePath",
    "about_tags",
    "at",
    "build_about_view",
    "build_core_patch",
    "build_header",
    "build_patch",
    "build_status_patch",
    "combine",
    "image_documents",
    "is_absent",
    "resolve",
]
