"""
Component scoring for case relevance.

Responsibilities:
- Compute the score breakdown for one (record, case) pair.
- Record the weights and thresholds used so the result can be audited later.

Non-Responsibilities:
- No inclusion decisions.
- No sorting or ranking.
- No persistence.

Invariant:
Given identical inputs, this module must always return the same
components. All contributions are >= 0, text_sim is in [0, 1], and
in_range never adds to the total.
"""

from typing import List, Optional, Set

from casekeeper.models import (
    CaseProfile,
    DEFAULT_MIN_SCORE,
    DEFAULT_MIN_TEXT_SIM,
    RankedComponents,
    RankWeights,
    Record,
)
from casekeeper.normalize import normalize_text, parse_timestamp

from .actors import actor_eq, actor_key, actor_key_set
from .tokenizer import tokenize


def effective_weights(weights: Optional[RankWeights]) -> RankWeights:
    w = weights or RankWeights()
    return RankWeights(actor=max(0.0, w.actor), related=max(0.0, w.related), text=max(0.0, w.text))


def query_tokens(profile: CaseProfile) -> List[str]:
    q = (profile.query or "").strip()
    return tokenize(q) if q else []


def within_range(ts: str, time_from: str, time_to: str) -> bool:
    """Inclusive range check. Blank bounds are open; a blank timestamp is always in range."""
    if not (ts or "").strip():
        return True
    lower = (time_from or "").strip()
    upper = (time_to or "").strip()
    moment = parse_timestamp(ts)
    lo = parse_timestamp(lower) if lower else None
    hi = parse_timestamp(upper) if upper else None
    if moment is None or (lower and lo is None) or (upper and hi is None):
        # unparseable values fall back to ISO string ordering
        if lower and ts < lower:
            return False
        if upper and ts > upper:
            return False
        return True
    if lo is not None and moment < lo:
        return False
    if hi is not None and moment > hi:
        return False
    return True


def keyword_hits(tokens: List[str], summary: str) -> int:
    # repeated query tokens are counted each time they appear in the query
    text = normalize_text(summary)
    return sum(1 for t in tokens if t in text)


def score_record(
    record: Record,
    profile: CaseProfile,
    weights: Optional[RankWeights] = None,
    min_score: Optional[float] = None,
    min_text_sim: Optional[float] = None,
    tokens: Optional[List[str]] = None,
    case_keys: Optional[Set[str]] = None,
) -> RankedComponents:
    """
    Score one record against a case profile.

    Args:
        record: Record to score
        profile: Case profile (actors, query, time range)
        weights: Weight overrides (defaults 2.5 / 1.0 / 2.0)
        min_score: Threshold stored with the result (default 0.8)
        min_text_sim: Threshold stored with the result (default 0.34)
        tokens: Pre-tokenized query, to avoid re-tokenizing per record
        case_keys: Pre-built case actor key set

    Returns:
        RankedComponents with the effective weights and thresholds
    """
    w = effective_weights(weights)
    q_tokens = tokens if tokens is not None else query_tokens(profile)
    keys = case_keys if case_keys is not None else actor_key_set(profile.actors)

    q_hit = keyword_hits(q_tokens, record.summary) if q_tokens else 0
    text_sim = q_hit / len(q_tokens) if q_tokens else 0.0
    keyword_score = text_sim * w.text

    is_main = actor_eq(record.actor, profile.main_actor)
    actor_match = actor_key(record.actor) in keys
    actor_score = w.actor if actor_match else 0.0

    related_hits = sum(1 for a in record.related if actor_key(a) in keys)
    related_score = related_hits * w.related

    if profile.has_time_bounds:
        in_range = within_range(record.ts, profile.time_from, profile.time_to)
    else:
        in_range = True

    return RankedComponents(
        keyword_score=keyword_score,
        text_sim=text_sim,
        q_hit=q_hit,
        q_total=len(q_tokens),
        actor_score=actor_score,
        actor_match=actor_match,
        is_main_actor=is_main,
        related_score=related_score,
        related_hits=related_hits,
        in_range=in_range,
        w_actor=w.actor,
        w_related=w.related,
        w_text=w.text,
        min_score=DEFAULT_MIN_SCORE if min_score is None else min_score,
        min_text_sim=DEFAULT_MIN_TEXT_SIM if min_text_sim is None else min_text_sim,
    )
