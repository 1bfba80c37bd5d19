"""
Tests for draft validation and record/case construction.
"""

import pytest

from casekeeper.models import ActorRef, OTHER, clamp_limit, bound_extra
from casekeeper.schema import (
    build_case_profile,
    build_record_from_draft,
    validate_case_draft,
    validate_record_draft,
)


def _ids():
    return "REC-1"


class TestValidateRecordDraft:
    """Test record draft validation."""

    def test_valid_draft(self, valid_record_draft):
        """Valid draft should have no errors."""
        assert validate_record_draft(valid_record_draft) == []

    def test_blank_summary(self, valid_record_draft):
        """Blank summary should error."""
        valid_record_draft["summary"] = "   "
        errors = validate_record_draft(valid_record_draft)
        assert any("summary" in e.lower() for e in errors)

    def test_missing_actor_name(self, valid_record_draft):
        """The other-sentinel without a typed name should error."""
        valid_record_draft["actorNameChoice"] = OTHER
        valid_record_draft["actorNameOther"] = ""
        errors = validate_record_draft(valid_record_draft)
        assert any("actor name" in e.lower() for e in errors)

    def test_other_store_needs_detail(self, valid_record_draft):
        """storeType '기타' requires storeOther."""
        valid_record_draft["storeType"] = "기타"
        assert any("storage" in e.lower() for e in validate_record_draft(valid_record_draft))

    def test_other_place_needs_detail(self, valid_record_draft):
        """place '기타' requires placeOther."""
        valid_record_draft["place"] = "기타"
        assert any("place" in e.lower() for e in validate_record_draft(valid_record_draft))

    def test_invalid_level(self, valid_record_draft):
        """Unknown sensitivity level should error."""
        valid_record_draft["lv"] = "LV9"
        assert any("lv" in e.lower() for e in validate_record_draft(valid_record_draft))

    def test_invalid_timestamp(self, valid_record_draft):
        """Unparseable timestamps should error."""
        valid_record_draft["tsISO"] = "yesterday"
        assert any("tsiso" in e.lower() for e in validate_record_draft(valid_record_draft))

    def test_multiple_errors_collected(self):
        """All problems are reported at once."""
        errors = validate_record_draft({})
        assert len(errors) == 2


class TestBuildRecord:
    """Test record construction from a valid draft."""

    def test_builds_record(self, valid_record_draft):
        """Fields map onto the record."""
        record, errors = build_record_from_draft(valid_record_draft, _ids)

        assert errors == []
        assert record.id == "REC-1"
        assert record.actor == ActorRef("학생", "홍길동")
        assert record.related == (ActorRef("학부모", "김영희"),)
        assert record.lv == "LV3"
        assert record.store_type == "녹취"
        assert record.ts == "2024-03-04T09:00:00Z"

    def test_invalid_returns_errors(self):
        """Invalid drafts give no record."""
        record, errors = build_record_from_draft({"summary": ""}, _ids)
        assert record is None
        assert errors

    def test_related_cleanup(self, valid_record_draft):
        """Related actors drop blanks, duplicates and the main actor."""
        valid_record_draft["related"] = [
            {"type": "학부모", "name": " 김영희 "},
            {"type": "학부모", "name": "김영희"},
            {"type": "학생", "name": "홍길동"},
            {"type": "학생", "name": ""},
        ]
        record, _ = build_record_from_draft(valid_record_draft, _ids)
        assert record.related == (ActorRef("학부모", "김영희"),)

    def test_other_name_resolution(self, valid_record_draft):
        """The other-sentinel resolves to the typed name."""
        valid_record_draft["actorNameChoice"] = OTHER
        valid_record_draft["actorNameOther"] = " 이순신 "
        record, _ = build_record_from_draft(valid_record_draft, _ids)
        assert record.actor.name == "이순신"

    def test_other_detail_only_kept_for_other(self, valid_record_draft):
        """placeOther is dropped unless place is '기타'."""
        valid_record_draft["placeOther"] = "운동장"
        record, _ = build_record_from_draft(valid_record_draft, _ids)
        assert record.place_other == ""

    def test_missing_timestamp_defaults_to_now(self, valid_record_draft):
        """No timestamp means now, in UTC."""
        del valid_record_draft["tsISO"]
        record, _ = build_record_from_draft(valid_record_draft, _ids)
        assert record.ts.endswith("Z")

    def test_extra_bounded(self, valid_record_draft):
        """The extension map is capped and stringified."""
        valid_record_draft["extra"] = {f"k{i}": i for i in range(20)}
        record, _ = build_record_from_draft(valid_record_draft, _ids)
        assert len(record.extra) == 16
        assert record.extra["k0"] == "0"


class TestCaseDraft:
    """Test case draft validation and profile construction."""

    def test_valid(self, valid_case_draft):
        """Valid draft has no errors."""
        assert validate_case_draft(valid_case_draft) == []

    def test_blank_title(self):
        """Title is required."""
        assert validate_case_draft({"title": " "}) == ["Case title must not be empty"]

    def test_bad_fields(self):
        """Malformed optional fields are reported."""
        errors = validate_case_draft(
            {"title": "t", "actors": "x", "timeFromISO": "nope", "sensFilter": "LV7", "status": "done"}
        )
        assert len(errors) == 4

    def test_profile(self, valid_case_draft):
        """Profile drops blank actors and clamps the limit."""
        valid_case_draft["actors"].append({"type": "학생", "name": ""})
        valid_case_draft["maxResults"] = 9999
        valid_case_draft["weights"] = {"actor": 3}
        profile = build_case_profile(valid_case_draft)

        assert [a.name for a in profile.actors] == ["홍길동"]
        assert profile.max_results == 400
        assert profile.weights.actor == 3.0
        assert profile.weights.text == 2.0
        assert profile.query == "언쟁"


class TestBounds:
    """Test the small coercion helpers."""

    @pytest.mark.parametrize("value,expected", [(0, 1), (80, 80), (401, 400), (None, 80), ("12", 12)])
    def test_clamp_limit(self, value, expected):
        """Limits are clamped to [1, 400]."""
        assert clamp_limit(value) == expected

    def test_bound_extra_truncates_values(self):
        """Values are cut to 500 characters."""
        assert len(bound_extra({"k": "x" * 600})["k"]) == 500
        assert bound_extra("nope") == {}
