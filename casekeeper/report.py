"""
Case report payload.

Turns a case and its records into the flat payload a renderer prints:
overview lines, advisory headlines, day-grouped facts and an evidence
table. The facts and the table come from the same deduplicated record
list. The SHA-256 hash is a display-level tamper hint, not a signature.
"""

import hashlib
import json
from itertools import groupby
from typing import Any, Dict, Iterable, List, Optional

from pipelines.evidence.dedup import dedupe

from .logger import get_logger
from .models import Case, RankOptions, Record, now_iso
from .normalize import actor_label, actor_short, date_only, format_ts, place_label, short_id, truncate
from .providers import safe_rank

TITLE_SUFFIX = "상황 경위 및 기록 정리서"
MAX_ADVISORS = 5
FACTS_PER_DAY = 6
FACT_SUMMARY_LEN = 120


def case_records(case: Case, records: Iterable[Record], ranking=None) -> List[Record]:
    """Snapshot members, or a fresh automatic match when the case has none."""
    pool = list(records)
    if case.record_ids:
        members = set(case.record_ids)
        return [r for r in pool if r.id in members]
    hits = safe_rank(ranking, pool, case.profile, RankOptions(limit=case.profile.max_results))
    return [h.record for h in hits]


def compute_case_hash(case: Case, records: Iterable[Record], generated_at: str) -> str:
    payload = json.dumps(
        {
            "case": case.to_dict(),
            "records": [r.to_dict() for r in dedupe(records)],
            "generatedAt": generated_at,
        },
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _overview_lines(case: Case, has_snapshot: bool) -> List[str]:
    profile = case.profile
    if profile.has_time_bounds:
        start = format_ts(profile.time_from) if profile.time_from.strip() else "-"
        end = format_ts(profile.time_to) if profile.time_to.strip() else "-"
        period = f"{start} ~ {end}"
    else:
        period = "-"
    parties = ", ".join(actor_label(a) for a in profile.actors) or "-"
    basis = (
        "기록 포함 기준: 스냅샷(recordIds)에 명시된 기록"
        if has_snapshot
        else "기록 포함 기준: 자동 매칭(Actor/기간/텍스트) 랭킹 기반"
    )
    return [
        f"기간: {period}",
        f"당사자(Actor): {parties}",
        f"방어 필요 상황 요약: {profile.query.strip() or '-'}",
        basis,
    ]


def _advisor_lines(case: Case) -> List[str]:
    lines = []
    for a in case.advisors[:MAX_ADVISORS]:
        head = f"[{a.level.upper()}] {a.title.strip()}"
        body = [s.strip() for s in a.body.split("\n") if s.strip()]
        lines.append(f"{head} — {body[0]}" if body else head)
    return lines


def _fact_lines(records: List[Record]) -> List[str]:
    facts = []
    by_day = sorted(records, key=lambda r: date_only(r.ts))
    for day, items in groupby(by_day, key=lambda r: date_only(r.ts)):
        top = [
            f"{actor_short(r.actor)}({place_label(r.place, r.place_other)}): "
            f"{truncate(r.summary, FACT_SUMMARY_LEN)} [{short_id(r.id)}]"
            for r in list(items)[:FACTS_PER_DAY]
        ]
        facts.append(f"{day} — {' / '.join(top)}")
    return facts


def _record_rows(case: Case, records: List[Record], has_snapshot: bool) -> List[Dict[str, Any]]:
    scores = case.snapshot.score_by_record_id
    rows = []
    for r in records:
        if has_snapshot:
            reason = "스냅샷 포함"
        elif r.id in scores:
            reason = f"자동매칭 점수 {scores[r.id]:.2f}"
        else:
            reason = "자동매칭"
        rows.append(
            {
                "when": format_ts(r.ts),
                "kind": "record",
                "sensitivityLevel": r.lv,
                "actor": actor_short(r.actor),
                "place": place_label(r.place, r.place_other),
                "summary": r.summary.strip(),
                "id": r.id,
                "reason": reason,
            }
        )

    for s in sorted(case.steps, key=lambda s: s.ts):
        summary = s.text.strip() or " — ".join(x for x in (s.name.strip(), s.note.strip()) if x) or "-"
        rows.append(
            {
                "when": format_ts(s.ts),
                "kind": "step",
                "sensitivityLevel": s.lv,
                "actor": s.owner or "-",
                "place": s.place or "-",
                "summary": summary,
                "id": s.id,
            }
        )
    return rows


def build_report_payload(
    case: Case,
    records: Iterable[Record],
    generated_at: Optional[str] = None,
    ranking=None,
) -> Dict[str, Any]:
    """
    Build the report payload for a case.

    Args:
        case: Case to report on
        records: Full record pool; the case's own records are picked from it
        generated_at: ISO timestamp of the report (default: now)
        ranking: Provider used when the case has no snapshot

    Returns:
        Dict with title, caseId, generatedAt, hashSha256, overviewLines,
        advisors, facts and records
    """
    generated_at = generated_at or now_iso()
    has_snapshot = bool(case.record_ids)

    members = case_records(case, records, ranking)
    unique = dedupe(members)
    collapsed = len(members) - len(unique)
    if collapsed:
        get_logger().record_deduplicated(collapsed)
        get_logger().debug("Collapsed duplicate records", case_id=case.id, count=collapsed)

    return {
        "title": f"{case.title} — {TITLE_SUFFIX}",
        "caseId": case.id,
        "generatedAt": format_ts(generated_at),
        "hashSha256": compute_case_hash(case, members, generated_at),
        "overviewLines": _overview_lines(case, has_snapshot),
        "advisors": _advisor_lines(case),
        "facts": _fact_lines(unique),
        "records": _record_rows(case, unique, has_snapshot),
    }
