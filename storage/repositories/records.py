"""
Records Repository.

Responsibilities:
- CRUD operations for the records table.
- Row <-> Record conversion.

Non-Responsibilities:
- No validation.
- No reference checks against cases.
- No commits; the caller owns the transaction.

Invariant:
Repositories must not encode domain decisions.
"""

from typing import List, Optional

from casekeeper.database import RecordRow
from casekeeper.models import ActorRef, Record


def to_record(row: RecordRow) -> Record:
    return Record(
        id=row.id,
        ts=row.ts,
        actor=ActorRef.from_dict(row.actor),
        related=tuple(ActorRef.from_dict(a) for a in (row.related or [])),
        place=row.place,
        place_other=row.place_other or "",
        summary=row.summary,
        lv=row.lv,
        store_type=row.store_type,
        store_other=row.store_other or "",
        extra=dict(row.extra or {}),
    )


def to_row(record: Record) -> RecordRow:
    return RecordRow(
        id=record.id,
        ts=record.ts,
        actor=record.actor.to_dict(),
        related=[a.to_dict() for a in record.related],
        place=record.place,
        place_other=record.place_other,
        summary=record.summary,
        lv=record.lv,
        store_type=record.store_type,
        store_other=record.store_other,
        extra=dict(record.extra),
    )


def list_records(session) -> List[Record]:
    rows = session.query(RecordRow).order_by(RecordRow.ts, RecordRow.id).all()
    return [to_record(r) for r in rows]


def get_record(session, record_id: str) -> Optional[Record]:
    row = session.get(RecordRow, record_id)
    return to_record(row) if row is not None else None


def save_record(session, record: Record) -> None:
    """Insert a record; an existing id is left untouched."""
    if session.get(RecordRow, record.id) is None:
        session.add(to_row(record))


def delete_record(session, record_id: str) -> bool:
    row = session.get(RecordRow, record_id)
    if row is None:
        return False
    session.delete(row)
    return True
