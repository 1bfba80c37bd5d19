"""
Evidence deduplication for reports.

Responsibilities:
- Fingerprint records by (date, actor, place, summary prefix).
- Collapse duplicates, keeping the earliest record per fingerprint.

Non-Responsibilities:
- No report layout.
- No scoring.

Invariant:
The same routine feeds the day-grouped facts and the evidence list, so
both views always agree on counts. Summaries are compared on their first
160 normalized characters only.
"""

from typing import Iterable, List, Set, Tuple

from casekeeper.models import Record
from casekeeper.normalize import (
    actor_short,
    date_only,
    normalize_for_dedup,
    parse_timestamp,
    place_label,
)

SUMMARY_PREFIX_LEN = 160

Fingerprint = Tuple[str, str, str, str]


def summary_prefix(summary: str) -> str:
    return normalize_for_dedup(summary)[:SUMMARY_PREFIX_LEN]


def fingerprint(record: Record) -> Fingerprint:
    return (
        date_only(record.ts),
        actor_short(record.actor),
        place_label(record.place, record.place_other),
        summary_prefix(record.summary),
    )


def chronological(records: Iterable[Record]) -> List[Record]:
    def key(r: Record):
        parsed = parse_timestamp(r.ts)
        # unparseable timestamps sort after parseable ones, by raw text
        return (parsed is None, parsed.timestamp() if parsed else 0.0, r.ts or "", r.id)

    return sorted(records, key=key)


def dedupe(records: Iterable[Record]) -> List[Record]:
    seen: Set[Fingerprint] = set()
    out: List[Record] = []
    for record in chronological(records):
        fp = fingerprint(record)
        if fp in seen:
            continue
        seen.add(fp)
        out.append(record)
    return out
