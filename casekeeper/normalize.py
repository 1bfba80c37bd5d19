import re
from datetime import datetime, timezone
from typing import Optional

from .models import ActorRef, OTHER, OTHER_LABEL

OTHER_ACTOR_LABEL = "기타/외부인"
SHORT_ACTOR_PREFIXES = {"학생", "학부모", "관리자", "동료교사"}

_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")


def normalize_text(s: str) -> str:
    return " ".join((s or "").strip().lower().split())


def normalize_for_dedup(s: str) -> str:
    """Lowercase, collapse whitespace runs and drop zero-width/BOM characters."""
    cleaned = _ZERO_WIDTH.sub("", s or "")
    return " ".join(cleaned.lower().split())


def truncate(s: str, n: int, ellipsis: str = "…") -> str:
    t = s or ""
    if len(t) <= n:
        return t
    return t[: max(0, n - 1)] + ellipsis


def resolve_name(choice: str, other: str) -> str:
    c = (choice or "").strip()
    if not c or c == OTHER:
        return (other or "").strip()
    return c


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def date_only(ts: str) -> str:
    parsed = parse_timestamp(ts)
    if parsed is None:
        return (ts or "")[:10]
    return parsed.date().isoformat()


def format_ts(ts: str) -> str:
    parsed = parse_timestamp(ts)
    if parsed is None:
        return ts or ""
    return parsed.strftime("%Y.%m.%d  %H:%M")


def actor_type_text(actor_type: str) -> str:
    t = (actor_type or "").strip()
    if not t or t in ("외부인", OTHER_LABEL):
        return OTHER_ACTOR_LABEL
    return t


def actor_label(actor: ActorRef) -> str:
    return f"{actor_type_text(actor.type)} · {actor.name or OTHER_LABEL}"


def actor_short(actor: ActorRef) -> str:
    name = actor.name or OTHER_LABEL
    if actor.type in SHORT_ACTOR_PREFIXES:
        return f"{actor.type} {name}"
    return f"{OTHER_ACTOR_LABEL} {name}"


def place_label(place: str, other: str) -> str:
    if place != OTHER_LABEL:
        return place
    other = (other or "").strip()
    return f"{OTHER_LABEL}:{other}" if other else OTHER_LABEL


def store_label(store_type: str, other: str) -> str:
    return place_label(store_type, other)


def short_id(record_id: str) -> str:
    t = record_id or ""
    if len(t) <= 10:
        return t
    return f"{t[:4]}…{t[-4:]}"
