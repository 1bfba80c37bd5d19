"""
Case snapshot management.

Responsibilities:
- Materialize a snapshot from one ranking pass.
- Merge newly added ids and re-ranked scores into an existing snapshot.
- Remove single ids on manual curation.

Non-Responsibilities:
- No ranking.
- No persistence.

Invariant:
A merge never drops an id, never duplicates one, and leaves every id in
record_ids with a score. Inputs are never mutated; every operation
returns a new snapshot.
"""

from typing import Dict, Iterable, List

from casekeeper.errors import ConsistencyViolation
from casekeeper.models import CaseSnapshot, RankedComponents, RankedHit


def create_snapshot(hits: Iterable[RankedHit]) -> CaseSnapshot:
    record_ids: List[str] = []
    scores: Dict[str, float] = {}
    components: Dict[str, RankedComponents] = {}
    for hit in hits:
        if hit.id not in scores:
            record_ids.append(hit.id)
        scores[hit.id] = hit.score
        components[hit.id] = hit.components
    return CaseSnapshot(
        record_ids=record_ids,
        score_by_record_id=scores,
        components_by_record_id=components,
    )


def merge_add(snapshot: CaseSnapshot, new_ids: Iterable[str], reranked_hits: Iterable[RankedHit]) -> CaseSnapshot:
    """
    Append new ids and refresh scores from a re-ranking pass.

    Scores are rebuilt over the merged id list (0 for ids the pass did not
    return). Components keep prior entries and take over re-ranked ids
    that belong to the merged list. This is narrower than a plain shallow
    merge of every re-ranked hit: hits for records outside the case leave
    no component entry, so the snapshot never holds orphans it did not
    already have.
    """
    record_ids = list(snapshot.record_ids)
    seen = set(record_ids)
    for rid in new_ids:
        if rid not in seen:
            record_ids.append(rid)
            seen.add(rid)

    hits = list(reranked_hits)
    scores: Dict[str, float] = {rid: 0.0 for rid in record_ids}
    for hit in hits:
        if hit.id in scores:
            scores[hit.id] = hit.score

    components = dict(snapshot.components_by_record_id)
    for hit in hits:
        if hit.id in seen:
            components[hit.id] = hit.components

    return CaseSnapshot(
        record_ids=record_ids,
        score_by_record_id=scores,
        components_by_record_id=components,
    )


def remove_one(snapshot: CaseSnapshot, record_id: str) -> CaseSnapshot:
    # score/component entries stay behind; readers go through record_ids
    return CaseSnapshot(
        record_ids=[rid for rid in snapshot.record_ids if rid != record_id],
        score_by_record_id=dict(snapshot.score_by_record_id),
        components_by_record_id=dict(snapshot.components_by_record_id),
    )


def compact(snapshot: CaseSnapshot) -> CaseSnapshot:
    """Drop score/component entries for ids no longer in record_ids."""
    keep = set(snapshot.record_ids)
    return CaseSnapshot(
        record_ids=list(snapshot.record_ids),
        score_by_record_id={k: v for k, v in snapshot.score_by_record_id.items() if k in keep},
        components_by_record_id={k: v for k, v in snapshot.components_by_record_id.items() if k in keep},
    )


def orphaned_ids(snapshot: CaseSnapshot) -> List[str]:
    keep = set(snapshot.record_ids)
    stale = set(snapshot.score_by_record_id) | set(snapshot.components_by_record_id)
    return sorted(stale - keep)


def assert_snapshot_consistent(snapshot: CaseSnapshot) -> None:
    if len(set(snapshot.record_ids)) != len(snapshot.record_ids):
        raise ConsistencyViolation("Snapshot lists a record id more than once")
    missing = [rid for rid in snapshot.record_ids if rid not in snapshot.score_by_record_id]
    if missing:
        raise ConsistencyViolation(f"Snapshot ids without a score: {', '.join(missing)}")
