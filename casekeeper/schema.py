from typing import Any, Callable, Dict, List, Optional, Tuple

from pipelines.relevance.actors import actor_eq, add_actor

from .models import (
    ActorRef,
    CASE_STATUSES,
    CaseProfile,
    DEFAULT_ACTOR_TYPE,
    OTHER_LABEL,
    Record,
    RankWeights,
    SENSITIVITY_LEVELS,
    bound_extra,
    now_iso,
)
from .normalize import parse_timestamp, resolve_name

SENS_FILTERS = ["any"] + SENSITIVITY_LEVELS


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _text(data: Dict[str, Any], key: str) -> str:
    v = data.get(key)
    return "" if v is None else str(v).strip()


def _actor_list(items: Any) -> List[ActorRef]:
    out: List[ActorRef] = []
    for item in items if isinstance(items, list) else []:
        out = add_actor(out, ActorRef.from_dict(item))
    return out


def validate_record_draft(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    if not _is_non_empty_str(data.get("summary")):
        errors.append("Summary must not be empty")

    actor_name = resolve_name(_text(data, "actorNameChoice"), _text(data, "actorNameOther"))
    if not actor_name:
        errors.append("Actor name must not be empty")

    if _text(data, "storeType") == OTHER_LABEL and not _text(data, "storeOther"):
        errors.append("Storage detail is required when storage type is '기타'")

    if _text(data, "place") == OTHER_LABEL and not _text(data, "placeOther"):
        errors.append("Place detail is required when place is '기타'")

    lv = data.get("lv")
    if lv is not None and lv not in SENSITIVITY_LEVELS:
        errors.append(f"Field 'lv' must be one of {', '.join(SENSITIVITY_LEVELS)}")

    ts = _text(data, "tsISO")
    if ts and parse_timestamp(ts) is None:
        errors.append("Field 'tsISO' must be an ISO-8601 timestamp")

    related = data.get("related")
    if related is not None and not isinstance(related, list):
        errors.append("Field 'related' must be a list of actors")

    return errors


def build_record_from_draft(
    data: Dict[str, Any],
    make_id: Callable[[], str],
) -> Tuple[Optional[Record], List[str]]:
    """Validate a record draft and build the record. Returns (record, errors)."""
    errors = validate_record_draft(data)
    if errors:
        return None, errors

    main = ActorRef(
        type=_text(data, "actorType") or DEFAULT_ACTOR_TYPE,
        name=resolve_name(_text(data, "actorNameChoice"), _text(data, "actorNameOther")),
    )
    related = [a for a in _actor_list(data.get("related")) if not actor_eq(a, main)]

    store_type = _text(data, "storeType") or "문서"
    place = _text(data, "place") or OTHER_LABEL

    record = Record(
        id=make_id(),
        ts=_text(data, "tsISO") or now_iso(),
        actor=main,
        related=tuple(related),
        place=place,
        place_other=_text(data, "placeOther") if place == OTHER_LABEL else "",
        summary=_text(data, "summary"),
        lv=data.get("lv") or "LV2",
        store_type=store_type,
        store_other=_text(data, "storeOther") if store_type == OTHER_LABEL else "",
        extra=bound_extra(data.get("extra")),
    )
    return record, []


def validate_case_draft(data: Dict[str, Any]) -> List[str]:
    errors: List[str] = []

    if not _is_non_empty_str(data.get("title")):
        errors.append("Case title must not be empty")

    actors = data.get("actors")
    if actors is not None and not isinstance(actors, list):
        errors.append("Field 'actors' must be a list of actors")

    for key in ("timeFromISO", "timeToISO"):
        value = _text(data, key)
        if value and parse_timestamp(value) is None:
            errors.append(f"Field '{key}' must be an ISO-8601 timestamp")

    sens = data.get("sensFilter")
    if sens is not None and sens not in SENS_FILTERS:
        errors.append(f"Field 'sensFilter' must be one of {', '.join(SENS_FILTERS)}")

    status = data.get("status")
    if status is not None and status not in CASE_STATUSES:
        errors.append(f"Field 'status' must be one of {', '.join(CASE_STATUSES)}")

    return errors


def build_case_profile(data: Dict[str, Any]) -> CaseProfile:
    weights = data.get("weights")
    min_score = data.get("minScore")
    min_text_sim = data.get("minTextSim")
    return CaseProfile(
        actors=_actor_list(data.get("actors")),
        query=str(data.get("query") or ""),
        time_from=_text(data, "timeFromISO"),
        time_to=_text(data, "timeToISO"),
        only_main_actor=bool(data.get("onlyMainActor", False)),
        max_results=data.get("maxResults") if data.get("maxResults") is not None else 80,
        weights=RankWeights.from_dict(weights) if isinstance(weights, dict) else None,
        min_score=float(min_score) if isinstance(min_score, (int, float)) else None,
        min_text_sim=float(min_text_sim) if isinstance(min_text_sim, (int, float)) else None,
    )
