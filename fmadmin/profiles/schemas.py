"""
Canonical "About" field schemas.

Every canonical field maps to its candidate paths in priority order:
curated ``about.*`` first, then legacy root fields, structured intake forms,
the mobile app's nested ``formData.form2`` variant, and finally the
display-label keys some imports used ("Education Level", ...).
"""

from __future__ import annotations

from typing import Dict, Tuple

from fmadmin.core.models import ProfileType
from fmadmin.profiles.derived import age_from_dob, couple_age, joiner
from fmadmin.profiles.resolver import CandidatePath, at, combine

Schema = Dict[str, Tuple[CandidatePath, ...]]

_and = joiner(" & ")
_comma = joiner(", ")
_paragraphs = joiner("\n\n")


def _both_parents(transform, key: str, container: str = "form2Data") -> CandidatePath:
    return combine(transform, f"{container}.parent1.{key}", f"{container}.parent2.{key}")


PARENT_ABOUT_SCHEMA: Schema = {
    "bio": (
        at("about.bio"),
        at("bio"),
        _both_parents(_paragraphs, "aboutYourself"),
        at("parent1.aboutYourself"),
    ),
    "aboutUs": (
        at("about.aboutUs"),
        at("formData.message"),
        at("formData.whySurrogate"),
        at("form2Data.surrogateRelated.additionalInfoForSurrogate"),
        at("formData.messageToSurrogate"),
        at("form2Data.familyDescription"),
    ),
    "age": (
        at("about.age"),
        at("age"),
        at("formData.age"),
        combine(
            couple_age,
            "parent1.age",
            "parent1.dob",
            "form2Data.parent1.dob",
            "parent2.age",
            "parent2.dob",
            "form2Data.parent2.dob",
            label="parent ages",
        ),
    ),
    "occupation": (
        at("about.occupation"),
        at("occupation"),
        _both_parents(_and, "occupation"),
        combine(_and, "parent1.occupation", "parent2.occupation"),
    ),
    "education": (
        at("about.education"),
        at("education"),
        _both_parents(_and, "education"),
        combine(_and, "parent1.education", "parent2.education"),
    ),
    "religion": (
        at("about.religion"),
        _both_parents(_and, "religion"),
    ),
    "hobbies": (
        at("about.hobbies"),
        _both_parents(_comma, "hobbiesInterests"),
    ),
    "relationshipPreference": (
        at("about.relationshipPreference"),
        at("relationshipPreference"),
        at("form2Data.surrogateRelated.pregnancyRelationship"),
        at("formData.relationshipType"),
    ),
    "familyLifestyle": (
        at("about.familyLifestyle"),
        _both_parents(_paragraphs, "personalityDescription"),
    ),
}


def _surrogate_field(key: str, *labels: str) -> Tuple[CandidatePath, ...]:
    """Curated, root, Form 1, mobile Form 2, then display-label variants."""
    paths = [
        at(f"about.{key}"),
        at(key),
        at(f"formData.{key}"),
        at(f"formData.form2.{key}"),
    ]
    paths.extend(at(("formData", label)) for label in labels)
    return tuple(paths)


SURROGATE_ABOUT_SCHEMA: Schema = {
    "bio": (
        at("about.bio"),
        at("bio"),
        at("formData.messageToParents"),
        at("formData.form2.messageToParents"),
        at(("formData", "Message To Parents")),
        at("formData.surrogacyReasons"),
        at("formData.form2.surrogacyReasons"),
    ),
    "age": _surrogate_field("age")
    + (combine(age_from_dob, "formData.dateOfBirth", label="formData.dateOfBirth → age"),),
    "occupation": _surrogate_field("occupation", "Occupation"),
    "education": (
        at("about.education"),
        at("education"),
        at("formData.educationLevel"),
        at("formData.form2.educationLevel"),
        at(("formData", "Education Level")),
    ),
    "religion": (at("about.religion"),),
    "hobbies": (at("about.hobbies"),),
    "relationshipPreference": (
        at("about.relationshipPreference"),
        at("relationshipPreference"),
        at("formData.relationshipStatus"),
        at("formData.form2.relationshipStatus"),
        at(("formData", "Relationship Status")),
    ),
    "familyLifestyle": (at("about.familyLifestyle"),),
    "amhStatus": (at("about.amhStatus"),),
    "opennessToSecondCycle": (at("about.opennessToSecondCycle"),),
    "height": _surrogate_field("height"),
    "bioMotherHeritage": (
        at("about.bioMotherHeritage"),
        at("bioMotherHeritage"),
        at("formData.ethnicity"),
        at("formData.form2.ethnicity"),
        at(("formData", "Ethnicity")),
    ),
    "bioFatherHeritage": (at("about.bioFatherHeritage"),),
}

ABOUT_SCHEMAS: Dict[ProfileType, Schema] = {
    ProfileType.PARENT: PARENT_ABOUT_SCHEMA,
    ProfileType.SURROGATE: SURROGATE_ABOUT_SCHEMA,
}
