"""
Tests for the case report payload and content hash.
"""

import pytest

from casekeeper.logger import get_logger
from casekeeper.models import ActorRef, AdvisorItem, Case, CaseProfile, StepItem
from casekeeper.report import build_report_payload, compute_case_hash
from pipelines.snapshot.manager import create_snapshot
from pipelines.relevance.ranking import rank

GENERATED = "2024-03-10T08:00:00Z"


@pytest.fixture
def case(sample_records, student):
    profile = CaseProfile(actors=[student], query="언쟁", time_from="2024-03-01T00:00:00Z")
    c = Case(id="CASE-1", title="홍길동 언쟁 건", profile=profile, created_at=GENERATED)
    c.snapshot = create_snapshot(rank(sample_records, profile))
    c.advisors = [
        AdvisorItem(id="a1", ts=GENERATED, title="증빙 정리", body="\n첫 줄\n둘째 줄", level="warn"),
        AdvisorItem(id="a2", ts=GENERATED, title="제목만", body=""),
    ]
    c.steps = [StepItem(id="s1", ts="2024-03-08T09:00:00Z", name="면담", note="학부모 면담", owner="담임")]
    return c


@pytest.fixture
def records_with_duplicate(sample_records, make_record, student):
    dup = make_record("r1-dup", "복도에서   언쟁이 있었음", actor=student, ts="2024-03-04T17:00:00Z")
    return sample_records + [dup]


class TestReportPayload:
    """Test the payload sections."""

    def test_header(self, case, sample_records):
        """Title, id and formatted generation time."""
        payload = build_report_payload(case, sample_records, generated_at=GENERATED)

        assert payload["title"] == "홍길동 언쟁 건 — 상황 경위 및 기록 정리서"
        assert payload["caseId"] == "CASE-1"
        assert payload["generatedAt"] == "2024.03.10  08:00"
        assert len(payload["hashSha256"]) == 64

    def test_overview(self, case, sample_records):
        """Period, parties, query and inclusion basis."""
        lines = build_report_payload(case, sample_records, generated_at=GENERATED)["overviewLines"]

        assert lines[0] == "기간: 2024.03.01  00:00 ~ -"
        assert lines[1] == "당사자(Actor): 학생 · 홍길동"
        assert lines[2] == "방어 필요 상황 요약: 언쟁"
        assert "스냅샷" in lines[3]

    def test_advisor_lines(self, case, sample_records):
        """Level tag, title and the first non-blank body line."""
        advisors = build_report_payload(case, sample_records, generated_at=GENERATED)["advisors"]
        assert advisors == ["[WARN] 증빙 정리 — 첫 줄", "[INFO] 제목만"]

    def test_facts_grouped_by_day(self, case, sample_records):
        """One fact line per day in ascending order."""
        facts = build_report_payload(case, sample_records, generated_at=GENERATED)["facts"]

        assert [f[:10] for f in facts] == ["2024-03-04", "2024-03-05", "2024-03-06"]
        assert facts[0] == "2024-03-04 — 학생 홍길동(교실): 복도에서 언쟁이 있었음 [r1]"

    def test_rows(self, case, sample_records):
        """Record rows then step rows."""
        rows = build_report_payload(case, sample_records, generated_at=GENERATED)["records"]

        assert [(r["kind"], r["id"]) for r in rows] == [
            ("record", "r1"),
            ("record", "r2"),
            ("record", "r3"),
            ("step", "s1"),
        ]
        assert rows[0]["reason"] == "스냅샷 포함"
        assert rows[0]["when"] == "2024.03.04  09:00"
        assert rows[0]["sensitivityLevel"] == "LV2"
        assert rows[-1]["summary"] == "면담 — 학부모 면담"
        assert rows[-1]["actor"] == "담임"
        assert rows[-1]["place"] == "-"
        assert "reason" not in rows[-1]

    def test_duplicates_collapsed_in_both_views(self, case, records_with_duplicate):
        """Facts and rows agree on the deduplicated record count."""
        case.snapshot.record_ids.append("r1-dup")
        case.snapshot.score_by_record_id["r1-dup"] = 0.0
        payload = build_report_payload(case, records_with_duplicate, generated_at=GENERATED)

        record_rows = [r for r in payload["records"] if r["kind"] == "record"]
        fact_items = sum(len(f.split(" — ", 1)[1].split(" / ")) for f in payload["facts"])
        assert len(record_rows) == 3
        assert fact_items == 3
        assert "r1-dup" not in [r["id"] for r in record_rows]
        assert get_logger().get_metrics()["records_deduplicated"] == 1

    def test_long_summary_truncated_in_facts(self, student, make_record):
        """Fact summaries are cut to 120 characters with an ellipsis."""
        record = make_record("r-long", "가" * 200, actor=student)
        case = Case(id="c", title="t", profile=CaseProfile(actors=[student]))
        case.snapshot = create_snapshot(rank([record], case.profile))

        fact = build_report_payload(case, [record], generated_at=GENERATED)["facts"][0]
        assert ("가" * 119 + "…") in fact
        assert ("가" * 120) not in fact

    def test_auto_match_without_snapshot(self, sample_records, student):
        """Without a snapshot, records come from ranking and rows say so."""
        case = Case(id="c", title="t", profile=CaseProfile(actors=[student]))
        payload = build_report_payload(case, sample_records, generated_at=GENERATED)

        assert "자동 매칭" in payload["overviewLines"][3]
        assert [r["reason"] for r in payload["records"]] == ["자동매칭", "자동매칭", "자동매칭"]

    def test_empty_case(self, empty_case):
        """A case with nothing in it still builds."""
        payload = build_report_payload(empty_case, [], generated_at=GENERATED)
        assert payload["facts"] == []
        assert payload["records"] == []
        assert payload["overviewLines"][0] == "기간: -"
        assert payload["overviewLines"][1] == "당사자(Actor): -"


class TestCaseHash:
    """Test the content hash."""

    def test_stable(self, case, sample_records):
        """Same inputs give the same hash."""
        assert compute_case_hash(case, sample_records, GENERATED) == compute_case_hash(case, sample_records, GENERATED)

    def test_changes_with_content(self, case, sample_records):
        """Hash depends on the generation time and the records."""
        base = compute_case_hash(case, sample_records, GENERATED)
        assert compute_case_hash(case, sample_records, "2024-03-11T00:00:00Z") != base
        assert compute_case_hash(case, sample_records[:2], GENERATED) != base

    def test_ignores_duplicates(self, case, sample_records, records_with_duplicate):
        """Duplicate evidence does not change the hash."""
        assert compute_case_hash(case, sample_records, GENERATED) == compute_case_hash(
            case, records_with_duplicate, GENERATED
        )

    def test_payload_uses_hash(self, case, sample_records):
        """The payload hash is the case hash over the case's records."""
        members = [r for r in sample_records if r.id in case.record_ids]
        payload = build_report_payload(case, sample_records, generated_at=GENERATED)
        assert payload["hashSha256"] == compute_case_hash(case, members, GENERATED)
