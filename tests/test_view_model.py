"""
Tests for the about view, hero header and gallery builders.
"""

from datetime import datetime, timezone

import pytest

from fmadmin.core.exceptions import ValidationError
from fmadmin.core.models import ProfileType
from fmadmin.profiles import derived
from fmadmin.profiles.schemas import PARENT_ABOUT_SCHEMA, SURROGATE_ABOUT_SCHEMA
from fmadmin.profiles.view_model import (
    about_tags,
    build_about_view,
    build_header,
    has_about_content,
    image_documents,
)


@pytest.fixture(autouse=True)
def fixed_now(monkeypatch):
    monkeypatch.setattr(derived, "utcnow", lambda: datetime(2024, 6, 1, tzinfo=timezone.utc))


class TestEndToEnd:
    """Test the minimal parent record from intake."""

    RECORD = {
        "about": {},
        "formData": {"city": "Austin", "state": "TX", "whenToStart": "ASAP"},
        "parent1": {"name": "Jane Doe"},
    }

    def test_about_view_is_empty(self):
        view = build_about_view(self.RECORD, "parent")
        assert view["bio"] == ""
        assert view["aboutUs"] == ""
        assert not has_about_content(view)

    def test_header_values(self):
        header = build_header(self.RECORD, "parent")
        assert header.display_name == "Jane Doe"
        assert header.location == "Austin, TX"
        assert header.timeline == "ASAP"
        assert header.initials == "JD"
        assert header.meta() == [
            {"label": "Location", "value": "Austin, TX"},
            {"label": "Intended Timeline", "value": "ASAP"},
        ]


class TestParentAboutView:
    """Test parent field precedence."""

    def test_every_schema_key_present(self):
        view = build_about_view({}, ProfileType.PARENT)
        assert set(PARENT_ABOUT_SCHEMA) <= set(view)
        assert all(value == "" for value in view.values())

    def test_form2_values_joined(self, parent_record):
        view = build_about_view(parent_record, "parent")
        assert view["occupation"] == "Engineer & Teacher"
        assert view["education"] == "MSc"
        assert view["hobbies"] == "Hiking & Cooking, Reading"
        assert view["bio"] == "I love the outdoors."
        assert view["age"] == "38 & 40"

    def test_curated_about_wins(self, parent_record):
        parent_record["about"] = {"occupation": "Architects", "age": "39 & 41"}
        view = build_about_view(parent_record, "parent")
        assert view["occupation"] == "Architects"
        assert view["age"] == "39 & 41"

    def test_legacy_root_before_forms(self, parent_record):
        parent_record["occupation"] = "Legacy Job"
        assert build_about_view(parent_record, "parent")["occupation"] == "Legacy Job"

    def test_about_us_fallback_chain(self):
        record = {"form2Data": {"surrogateRelated": {"additionalInfoForSurrogate": "Thanks"}}}
        assert build_about_view(record, "parent")["aboutUs"] == "Thanks"
        record["formData"] = {"message": "Hello"}
        assert build_about_view(record, "parent")["aboutUs"] == "Hello"

    def test_age_from_birth_dates(self):
        record = {"form2Data": {"parent1": {"dob": "1990-01-01"}, "parent2": {"dob": ""}}}
        assert build_about_view(record, "parent")["age"] == "34"

    def test_unknown_curated_keys_pass_through(self, parent_record):
        parent_record["about"] = {"petNames": "Rex", "empty": ""}
        view = build_about_view(parent_record, "parent")
        assert view["petNames"] == "Rex"
        assert "empty" not in view


class TestSurrogateAboutView:
    """Test surrogate field precedence."""

    def test_every_schema_key_present(self):
        view = build_about_view(None, "surrogate")
        assert set(SURROGATE_ABOUT_SCHEMA) <= set(view)
        assert view["heritage"] == ""

    def test_resolves_across_form_variants(self, surrogate_record):
        view = build_about_view(surrogate_record, "surrogate")
        assert view["age"] == "30"
        assert view["education"] == "Bachelor's"
        assert view["height"] == "5'6\""
        assert view["hobbies"] == "Yoga, Baking"
        assert view["bioMotherHeritage"] == "Irish"
        assert view["bioFatherHeritage"] == "Mexican"
        assert view["heritage"] == "Irish & Mexican"
        assert view["favoriteQuote"] == "Be kind"

    def test_about_only_fields_ignore_intake_forms(self, surrogate_record):
        del surrogate_record["about"]["hobbies"]
        surrogate_record["formData"]["religion"] = "Catholic"
        view = build_about_view(surrogate_record, "surrogate")
        assert view["hobbies"] == ""
        assert view["religion"] == ""

    def test_explicit_age_before_birth_date(self, surrogate_record):
        surrogate_record["formData"]["age"] = 31
        assert build_about_view(surrogate_record, "surrogate")["age"] == "31"

    def test_unparsable_birth_date(self, surrogate_record):
        surrogate_record["formData"]["dateOfBirth"] = "unknown"
        view = build_about_view(surrogate_record, "surrogate")
        assert view["age"] == ""
        assert "NaN" not in view.values()

    def test_curated_heritage_wins(self, surrogate_record):
        surrogate_record["about"]["heritage"] = "Irish, Mexican, Italian"
        view = build_about_view(surrogate_record, "surrogate")
        assert about_tags(view)["heritage"] == ["Irish", "Mexican", "Italian"]

    def test_tags(self, surrogate_record):
        tags = about_tags(build_about_view(surrogate_record, "surrogate"))
        assert tags == {"hobbies": ["Yoga", "Baking"], "heritage": ["Irish", "Mexican"]}


class TestProfileType:
    """Test profile type validation."""

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            build_about_view({}, "donor")


class TestHeader:
    """Test the hero section."""

    def test_parent_header(self, parent_record):
        header = build_header(parent_record, "parent")
        assert header.display_name == "Jane Doe"
        assert header.email == "jane@example.com"
        assert header.status == "New Inquiry"
        assert header.profile_status == "Complete"
        assert header.form2_status == "Pending"
        assert header.created == "Mar 05, 2024, 02:30 PM UTC"
        assert header.updated == "—"
        assert header.availability is None

    def test_parent_name_fallbacks(self):
        record = {"formData": {"firstName": "Janet", "lastName": "Doe"}}
        assert build_header(record, "parent").display_name == "Janet Doe"
        assert build_header({"email": "x@y.z"}, "parent").display_name == "x@y.z"
        assert build_header({}, "parent").display_name == "Parent Profile"

    def test_surrogate_header(self, surrogate_record):
        header = build_header(surrogate_record, "surrogate")
        assert header.display_name == "Sam Rivera"
        assert header.initials == "SR"
        assert header.location == "Denver, CO"
        assert header.availability == "Immediately"
        assert header.experience == "2 pregnancies"
        assert header.timeline is None
        assert header.profile_status == "Ready"
        assert header.form2_status == "Complete"

    def test_surrogate_journeys(self):
        header = build_header({"form2Data": {"surrogacyChildren": 1}}, "surrogate")
        assert header.experience == "1 surrogacy journey"
        assert header.display_name == "Surrogate Profile"
        assert header.profile_status == "In Progress"

    def test_zero_pregnancies_falls_through_to_journeys(self):
        record = {"form2": {"pregnancyHistory": {"total": 0}, "surrogacyChildren": 2}}
        assert build_header(record, "surrogate").experience == "2 surrogacy journeys"
        record = {"form2": {"pregnancyHistory": {"total": "0"}}}
        assert build_header(record, "surrogate").experience is None


class TestImageDocuments:
    """Test gallery filtering."""

    def test_keeps_images_only(self, parent_record):
        images = image_documents(parent_record)
        assert [doc.name for doc in images] == ["a.png"]

    def test_image_by_extension_and_malformed_entries(self):
        record = {
            "documents": [
                {"url": "https://files.example/c.JPG", "name": "c.JPG"},
                {"name": "no-url.png"},
                "not a document",
            ]
        }
        assert [doc.url for doc in image_documents(record)] == ["https://files.example/c.JPG"]

    def test_missing_documents(self):
        assert image_documents({"documents": "none"}) == []
        assert image_documents(None) == []
