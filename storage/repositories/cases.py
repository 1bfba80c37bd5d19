"""
Cases Repository.

Responsibilities:
- CRUD operations for the cases table.
- Row <-> Case conversion, snapshot maps included.

Non-Responsibilities:
- No ranking.
- No snapshot merging.
- No commits; the caller owns the transaction.

Invariant:
Repositories must not encode domain decisions. A case round-trips through
its row unchanged.
"""

from typing import Dict, List, Optional

from casekeeper.database import CaseRow
from casekeeper.models import Case


def to_case(row: CaseRow) -> Case:
    data = dict(row.ranking_overrides or {})
    data.update(
        {
            "id": row.id,
            "title": row.title,
            "status": row.status,
            "sensFilter": row.sens_filter,
            "createdAt": row.created_at,
            "actors": row.actors or [],
            "query": row.query or "",
            "timeFrom": row.time_from or "",
            "timeTo": row.time_to or "",
            "onlyMainActor": bool(row.only_main_actor),
            "maxResults": row.max_results,
            "steps": row.steps or [],
            "advisors": row.advisors or [],
            "recordIds": row.record_ids or [],
            "scoreByRecordId": row.score_by_record_id or {},
            "componentsByRecordId": row.components_by_record_id or {},
        }
    )
    return Case.from_dict(data)


def _apply(row: CaseRow, case: Case) -> None:
    data = case.to_dict()
    row.title = case.title
    row.status = case.status
    row.sens_filter = case.sens_filter
    row.created_at = case.created_at
    row.actors = data["actors"]
    row.query = case.profile.query
    row.time_from = case.profile.time_from
    row.time_to = case.profile.time_to
    row.only_main_actor = case.profile.only_main_actor
    row.max_results = case.profile.max_results
    row.ranking_overrides = {k: data[k] for k in ("weights", "minScore", "minTextSim") if k in data}
    row.steps = data["steps"]
    row.advisors = data["advisors"]
    row.record_ids = data["recordIds"]
    row.score_by_record_id = data["scoreByRecordId"]
    row.components_by_record_id = data["componentsByRecordId"]


def list_cases(session) -> List[Case]:
    rows = session.query(CaseRow).order_by(CaseRow.created_at, CaseRow.id).all()
    return [to_case(r) for r in rows]


def cases_by_id(session) -> Dict[str, Case]:
    return {c.id: c for c in list_cases(session)}


def get_case(session, case_id: str) -> Optional[Case]:
    row = session.get(CaseRow, case_id)
    return to_case(row) if row is not None else None


def save_case(session, case: Case) -> None:
    """Insert or replace a case."""
    row = session.get(CaseRow, case.id)
    if row is None:
        row = CaseRow(id=case.id)
        session.add(row)
    _apply(row, case)
