"""
Update-candidate resolution.

Responsibilities:
- Re-rank the full record pool with the case's own profile and limit.
- Return only hits that are not already part of the case snapshot.

Non-Responsibilities:
- No mutation of the snapshot.
- No re-scoring of included records.

Invariant:
No id already in the snapshot ever appears in the output.
"""

from typing import Callable, Iterable, List, Optional

from casekeeper.models import Case, CaseProfile, RankedHit, RankOptions, Record

from .ranking import rank

Ranker = Callable[[List[Record], CaseProfile, Optional[RankOptions]], List[RankedHit]]


def candidates(case: Case, all_records: Iterable[Record], ranker: Optional[Ranker] = None) -> List[RankedHit]:
    ranker = ranker or rank
    hits = ranker(list(all_records), case.profile, RankOptions(limit=case.profile.max_results))
    existing = set(case.record_ids)
    return [h for h in hits if h.id not in existing]
