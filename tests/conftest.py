"""
Pytest configuration and shared fixtures.
"""

import os

# Keep test runs from writing daily log files into the working directory
os.environ.setdefault("CASEKEEPER_LOG_TO_FILE", "0")

import pytest
from typing import Any, Dict

from casekeeper.commands import AppState
from casekeeper.logger import reset_logger
from casekeeper.models import ActorRef, Case, CaseProfile, Record


@pytest.fixture(autouse=True)
def fresh_logger():
    """Every test starts with a new global logger and zeroed metrics."""
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def make_record():
    """Factory for records with sensible defaults."""

    def _make(
        id: str,
        summary: str = "",
        actor: ActorRef = ActorRef("학생", "홍길동"),
        ts: str = "2024-03-04T09:00:00Z",
        related=(),
        place: str = "교실",
        place_other: str = "",
        lv: str = "LV2",
    ) -> Record:
        return Record(
            id=id,
            ts=ts,
            actor=actor,
            related=tuple(related),
            place=place,
            place_other=place_other,
            summary=summary,
            lv=lv,
        )

    return _make


@pytest.fixture
def student() -> ActorRef:
    return ActorRef("학생", "홍길동")


@pytest.fixture
def parent() -> ActorRef:
    return ActorRef("학부모", "김영희")


@pytest.fixture
def sample_records(make_record, student, parent):
    """A small pool: two about the student, one parent call, one unrelated."""
    return [
        make_record("r1", "복도에서 언쟁이 있었음", actor=student, ts="2024-03-04T09:00:00Z"),
        make_record("r2", "학부모 전화 항의", actor=parent, ts="2024-03-05T14:30:00Z", related=[student]),
        make_record("r3", "수업 중 언쟁 재발", actor=student, ts="2024-03-06T10:00:00Z"),
        make_record(
            "r4",
            "급식실 정리",
            actor=ActorRef("동료교사", "박민수"),
            ts="2024-03-07T12:00:00Z",
            place="기타",
            place_other="급식실",
        ),
    ]


@pytest.fixture
def student_profile(student) -> CaseProfile:
    return CaseProfile(actors=[student], query="")


@pytest.fixture
def valid_record_draft() -> Dict[str, Any]:
    return {
        "tsISO": "2024-03-04T09:00:00Z",
        "storeType": "녹취",
        "lv": "LV3",
        "actorType": "학생",
        "actorNameChoice": "홍길동",
        "related": [{"type": "학부모", "name": "김영희"}],
        "place": "교실",
        "summary": "복도에서 언쟁이 있었음",
    }


@pytest.fixture
def valid_case_draft(student) -> Dict[str, Any]:
    return {
        "title": "홍길동 언쟁 건",
        "actors": [student.to_dict()],
        "query": "언쟁",
    }


@pytest.fixture
def populated_state(sample_records) -> AppState:
    return AppState(records=list(sample_records), cases={})


@pytest.fixture
def counter_ids():
    """Deterministic id factory: prefix-1, prefix-2, ..."""

    def _factory(prefix: str):
        n = [0]

        def _next() -> str:
            n[0] += 1
            return f"{prefix}-{n[0]}"

        return _next

    return _factory


@pytest.fixture
def fixed_clock():
    return lambda: "2024-03-10T08:00:00.000Z"


@pytest.fixture
def empty_case() -> Case:
    return Case(id="case-1", title="빈 사건", profile=CaseProfile())
