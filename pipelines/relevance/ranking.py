"""
Ranking aggregation for case relevance.

Responsibilities:
- Score a pool of records against a case.
- Apply the inclusion predicate and thresholds.
- Sort, assign ranks, truncate and attach human-readable reasons.

Non-Responsibilities:
- No persistence.
- No snapshot bookkeeping.
- No error recovery (callers go through the provider boundary).

Invariant:
Identical inputs always produce the same hits in the same order. Ties on
total score are broken by ascending record id, and ranks are 1..N over
the included records only.
"""

from typing import Iterable, List, Optional, Tuple

from casekeeper.models import (
    CaseProfile,
    DEFAULT_MIN_SCORE,
    DEFAULT_MIN_TEXT_SIM,
    RankedComponents,
    RankedHit,
    RankOptions,
    Record,
    clamp_limit,
)

from .actors import actor_eq, actor_key_set
from .scoring import query_tokens, score_record


def resolve_options(profile: CaseProfile, options: Optional[RankOptions] = None) -> RankOptions:
    """Fill every option from the call, then the case profile, then the defaults."""
    opts = options or RankOptions()
    limit = opts.limit if opts.limit is not None else profile.max_results
    min_score = opts.min_score if opts.min_score is not None else profile.min_score
    min_text_sim = opts.min_text_sim if opts.min_text_sim is not None else profile.min_text_sim
    return RankOptions(
        limit=clamp_limit(limit),
        weights=opts.weights or profile.weights,
        min_score=DEFAULT_MIN_SCORE if min_score is None else min_score,
        min_text_sim=DEFAULT_MIN_TEXT_SIM if min_text_sim is None else min_text_sim,
    )


def scope_records(records: Iterable[Record], profile: CaseProfile) -> List[Record]:
    main = profile.main_actor
    if not profile.only_main_actor or main is None:
        return list(records)
    return [r for r in records if actor_eq(r.actor, main)]


def is_included(components: RankedComponents, profile: CaseProfile) -> bool:
    if profile.has_time_bounds and not components.in_range:
        return False
    if components.q_total > 0:
        text_ok = components.text_sim >= components.min_text_sim
    else:
        text_ok = True
    if not (components.is_main_actor or components.related_hits > 0 or text_ok):
        return False
    return components.total >= components.min_score


def build_reasons(components: RankedComponents) -> List[str]:
    parts: List[Tuple[float, str]] = []
    if components.actor_score > 0:
        label = "main-actor match" if components.is_main_actor else "case-actor match"
        parts.append((components.actor_score, label))
    if components.related_score > 0:
        parts.append((components.related_score, f"related actor ×{components.related_hits}"))
    if components.keyword_score > 0:
        parts.append((components.keyword_score, f"keyword {components.q_hit}/{components.q_total}"))
    parts.sort(key=lambda p: -p[0])
    return [label for _, label in parts]


def rank(
    records: Iterable[Record],
    profile: CaseProfile,
    options: Optional[RankOptions] = None,
) -> List[RankedHit]:
    """
    Rank a record pool for a case.

    Args:
        records: Candidate pool
        profile: Case profile
        options: limit / weights / minScore / minTextSim overrides

    Returns:
        Included hits sorted by score desc then id asc, ranked 1..N,
        truncated to the limit
    """
    opts = resolve_options(profile, options)
    tokens = query_tokens(profile)
    keys = actor_key_set(profile.actors)

    survivors: List[Tuple[Record, RankedComponents]] = []
    for record in scope_records(records, profile):
        components = score_record(
            record,
            profile,
            weights=opts.weights,
            min_score=opts.min_score,
            min_text_sim=opts.min_text_sim,
            tokens=tokens,
            case_keys=keys,
        )
        if is_included(components, profile):
            survivors.append((record, components))

    survivors.sort(key=lambda item: (-item[1].total, item[0].id))

    hits = [
        RankedHit(
            id=record.id,
            score=components.total,
            rank=position,
            reasons=tuple(build_reasons(components)),
            components=components,
            record=record,
        )
        for position, (record, components) in enumerate(survivors, start=1)
    ]
    return hits[: opts.limit]
