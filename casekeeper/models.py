"""
Domain types for records, cases and ranking results.

Every type converts to and from the camelCase wire format shared with the
ranking provider, the persisted case fields and the report renderer.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

SENSITIVITY_LEVELS = ["LV1", "LV2", "LV3", "LV4", "LV5"]
ACTOR_TYPES = ["관리자", "학부모", "학생", "동료교사", "외부인", "기타"]
CASE_STATUSES = ["진행중", "답변 준비", "종결"]
ADVISOR_LEVELS = ["info", "warn", "critical"]
ADVISOR_STATES = ["active", "done", "dismissed"]

OTHER = "__OTHER__"
OTHER_LABEL = "기타"
DEFAULT_ACTOR_TYPE = "외부인"

DEFAULT_LIMIT = 80
MIN_LIMIT = 1
MAX_LIMIT = 400

EXTRA_MAX_KEYS = 16
EXTRA_MAX_VALUE_LEN = 500


def _str(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return _float(value)


def clamp_limit(value: Any) -> int:
    """Clamp a result limit to [1, 400]; anything non-numeric becomes 80."""
    try:
        n = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_LIMIT
    return max(MIN_LIMIT, min(MAX_LIMIT, n))


def bound_extra(extra: Any) -> Dict[str, str]:
    """Coerce an extension map to at most 16 string->string entries."""
    if not isinstance(extra, dict):
        return {}
    out: Dict[str, str] = {}
    for k, v in extra.items():
        if len(out) >= EXTRA_MAX_KEYS:
            break
        if v is None:
            continue
        out[str(k)] = str(v)[:EXTRA_MAX_VALUE_LEN]
    return out


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_id(prefix: str = "id") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}_{int(time.time() * 1000):x}"


@dataclass(frozen=True)
class ActorRef:
    type: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "name": self.name}

    @classmethod
    def from_dict(cls, data: Any) -> "ActorRef":
        data = data if isinstance(data, dict) else {}
        return cls(
            type=_str(data.get("type"), DEFAULT_ACTOR_TYPE) or DEFAULT_ACTOR_TYPE,
            name=_str(data.get("name")).strip(),
        )


@dataclass(frozen=True)
class Record:
    """An atomic incident note. Read-only once created."""

    id: str
    ts: str
    actor: ActorRef
    related: Tuple[ActorRef, ...] = ()
    place: str = OTHER_LABEL
    place_other: str = ""
    summary: str = ""
    lv: str = "LV2"
    store_type: str = "문서"
    store_other: str = ""
    extra: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "ts": self.ts,
            "storeType": self.store_type,
            "storeOther": self.store_other,
            "lv": self.lv,
            "actor": self.actor.to_dict(),
            "related": [a.to_dict() for a in self.related],
            "place": self.place,
            "placeOther": self.place_other,
            "summary": self.summary,
        }
        if self.extra:
            data["extra"] = dict(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        related = [ActorRef.from_dict(a) for a in (data.get("related") or [])]
        return cls(
            id=_str(data.get("id")) or make_id("REC"),
            ts=_str(data.get("ts")),
            actor=ActorRef.from_dict(data.get("actor")),
            related=tuple(a for a in related if a.name),
            place=_str(data.get("place"), OTHER_LABEL),
            place_other=_str(data.get("placeOther")),
            summary=_str(data.get("summary")),
            lv=_str(data.get("lv"), "LV2"),
            store_type=_str(data.get("storeType"), "문서"),
            store_other=_str(data.get("storeOther")),
            extra=bound_extra(data.get("extra")),
        )


@dataclass(frozen=True)
class RankWeights:
    actor: float = 2.5
    related: float = 1.0
    text: float = 2.0

    def to_dict(self) -> Dict[str, float]:
        return {"actor": self.actor, "related": self.related, "text": self.text}

    @classmethod
    def from_dict(cls, data: Any) -> "RankWeights":
        """Partial overrides; missing or null entries keep the defaults."""
        data = data if isinstance(data, dict) else {}
        base = cls()

        def pick(key: str, default: float) -> float:
            value = data.get(key)
            return default if value is None else _float(value, default)

        return cls(
            actor=pick("actor", base.actor),
            related=pick("related", base.related),
            text=pick("text", base.text),
        )


DEFAULT_MIN_SCORE = 0.8
DEFAULT_MIN_TEXT_SIM = 0.34


@dataclass(frozen=True)
class RankOptions:
    limit: Optional[int] = None
    weights: Optional[RankWeights] = None
    min_score: Optional[float] = None
    min_text_sim: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.limit is not None:
            data["limit"] = self.limit
        if self.weights is not None:
            data["weights"] = self.weights.to_dict()
        if self.min_score is not None:
            data["minScore"] = self.min_score
        if self.min_text_sim is not None:
            data["minTextSim"] = self.min_text_sim
        return data


@dataclass
class CaseProfile:
    """What a case is about: who, what and when."""

    actors: List[ActorRef] = field(default_factory=list)
    query: str = ""
    time_from: str = ""
    time_to: str = ""
    only_main_actor: bool = False
    max_results: int = DEFAULT_LIMIT
    weights: Optional[RankWeights] = None
    min_score: Optional[float] = None
    min_text_sim: Optional[float] = None

    def __post_init__(self):
        self.max_results = clamp_limit(self.max_results)

    @property
    def main_actor(self) -> Optional[ActorRef]:
        return self.actors[0] if self.actors else None

    @property
    def has_time_bounds(self) -> bool:
        return bool(self.time_from.strip() or self.time_to.strip())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "actors": [a.to_dict() for a in self.actors],
            "query": self.query,
            "timeFrom": self.time_from,
            "timeTo": self.time_to,
            "onlyMainActor": self.only_main_actor,
            "maxResults": self.max_results,
        }
        if self.weights is not None:
            data["weights"] = self.weights.to_dict()
        if self.min_score is not None:
            data["minScore"] = self.min_score
        if self.min_text_sim is not None:
            data["minTextSim"] = self.min_text_sim
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseProfile":
        actors = [ActorRef.from_dict(a) for a in (data.get("actors") or [])]
        weights = data.get("weights")
        return cls(
            actors=[a for a in actors if a.name],
            query=_str(data.get("query")),
            time_from=_str(data.get("timeFrom")),
            time_to=_str(data.get("timeTo")),
            only_main_actor=bool(data.get("onlyMainActor", False)),
            max_results=data.get("maxResults", DEFAULT_LIMIT),
            weights=RankWeights.from_dict(weights) if isinstance(weights, dict) else None,
            min_score=_opt_float(data.get("minScore")),
            min_text_sim=_opt_float(data.get("minTextSim")),
        )


@dataclass(frozen=True)
class RankedComponents:
    """Score breakdown plus the weights and thresholds that produced it."""

    keyword_score: float = 0.0
    text_sim: float = 0.0
    q_hit: int = 0
    q_total: int = 0
    actor_score: float = 0.0
    actor_match: bool = False
    is_main_actor: bool = False
    related_score: float = 0.0
    related_hits: int = 0
    in_range: bool = True
    w_actor: float = 2.5
    w_related: float = 1.0
    w_text: float = 2.0
    min_score: float = DEFAULT_MIN_SCORE
    min_text_sim: float = DEFAULT_MIN_TEXT_SIM

    @property
    def total(self) -> float:
        return self.keyword_score + self.actor_score + self.related_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keywordScore": self.keyword_score,
            "textSim": self.text_sim,
            "qHit": self.q_hit,
            "qTotal": self.q_total,
            "actorScore": self.actor_score,
            "actorMatch": self.actor_match,
            "isMainActor": self.is_main_actor,
            "relatedScore": self.related_score,
            "relatedHits": self.related_hits,
            "inRange": self.in_range,
            "wActor": self.w_actor,
            "wRelated": self.w_related,
            "wText": self.w_text,
            "minScore": self.min_score,
            "minTextSim": self.min_text_sim,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RankedComponents":
        base = cls()
        return cls(
            keyword_score=_float(data.get("keywordScore")),
            text_sim=_float(data.get("textSim")),
            q_hit=int(_float(data.get("qHit"))),
            q_total=int(_float(data.get("qTotal"))),
            actor_score=_float(data.get("actorScore")),
            actor_match=bool(data.get("actorMatch", False)),
            is_main_actor=bool(data.get("isMainActor", False)),
            related_score=_float(data.get("relatedScore")),
            related_hits=int(_float(data.get("relatedHits"))),
            in_range=bool(data.get("inRange", True)),
            w_actor=_float(data.get("wActor"), base.w_actor),
            w_related=_float(data.get("wRelated"), base.w_related),
            w_text=_float(data.get("wText"), base.w_text),
            min_score=_float(data.get("minScore"), base.min_score),
            min_text_sim=_float(data.get("minTextSim"), base.min_text_sim),
        )


@dataclass(frozen=True)
class RankedHit:
    id: str
    score: float
    rank: int
    reasons: Tuple[str, ...]
    components: RankedComponents
    record: Record

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "rank": self.rank,
            "reasons": list(self.reasons),
            "components": self.components.to_dict(),
            "record": self.record.to_dict(),
        }


@dataclass
class CaseSnapshot:
    """Which records belong to a case, with their last-known scores."""

    record_ids: List[str] = field(default_factory=list)
    score_by_record_id: Dict[str, float] = field(default_factory=dict)
    components_by_record_id: Dict[str, RankedComponents] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recordIds": list(self.record_ids),
            "scoreByRecordId": dict(self.score_by_record_id),
            "componentsByRecordId": {
                rid: comp.to_dict() for rid, comp in self.components_by_record_id.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseSnapshot":
        scores = data.get("scoreByRecordId") or {}
        comps = data.get("componentsByRecordId") or {}
        return cls(
            record_ids=[_str(x) for x in (data.get("recordIds") or [])],
            score_by_record_id={str(k): _float(v) for k, v in scores.items()},
            components_by_record_id={
                str(k): RankedComponents.from_dict(v) for k, v in comps.items() if isinstance(v, dict)
            },
        )


@dataclass
class StepItem:
    """A manual action note recorded against a case."""

    id: str
    ts: str
    name: str = ""
    note: str = ""
    text: str = ""
    place: str = ""
    owner: str = ""
    lv: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "ts": self.ts,
            "name": self.name,
            "note": self.note,
            "text": self.text,
            "place": self.place,
            "owner": self.owner,
            "lv": self.lv,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepItem":
        return cls(
            id=_str(data.get("id")) or make_id("STEP"),
            ts=_str(data.get("ts")) or now_iso(),
            name=_str(data.get("name")).strip(),
            note=_str(data.get("note")).strip(),
            text=_str(data.get("text")),
            place=_str(data.get("place")),
            owner=_str(data.get("owner")),
            lv=_str(data.get("lv")),
        )


@dataclass
class AdvisorItem:
    id: str
    ts: str
    title: str
    body: str
    level: str = "info"
    tags: List[str] = field(default_factory=list)
    state: str = "active"
    rule_id: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "ts": self.ts,
            "title": self.title,
            "body": self.body,
            "level": self.level,
            "tags": list(self.tags),
            "state": self.state,
        }
        if self.rule_id:
            data["ruleId"] = self.rule_id
        if self.extra:
            data["extra"] = dict(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdvisorItem":
        level = data.get("level")
        state = data.get("state")
        rule_id = data.get("ruleId", data.get("rule_id"))
        return cls(
            id=_str(data.get("id")) or make_id("ADV"),
            ts=_str(data.get("ts")) or now_iso(),
            title=_str(data.get("title")).strip(),
            body=_str(data.get("body")).strip(),
            level=level if level in ADVISOR_LEVELS else "info",
            tags=[str(t).strip() for t in (data.get("tags") or []) if str(t).strip()],
            state=state if state in ADVISOR_STATES else "active",
            rule_id=str(rule_id) if rule_id else None,
            extra=bound_extra(data.get("extra")),
        )


@dataclass
class Case:
    """A curated grouping of records with its profile, notes and advisories."""

    id: str
    title: str
    profile: CaseProfile = field(default_factory=CaseProfile)
    status: str = CASE_STATUSES[0]
    sens_filter: str = "any"
    created_at: str = ""
    steps: List[StepItem] = field(default_factory=list)
    advisors: List[AdvisorItem] = field(default_factory=list)
    snapshot: CaseSnapshot = field(default_factory=CaseSnapshot)

    @property
    def record_ids(self) -> List[str]:
        return self.snapshot.record_ids

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "sensFilter": self.sens_filter,
            "status": self.status,
            "createdAt": self.created_at,
            "steps": [s.to_dict() for s in self.steps],
            "advisors": [a.to_dict() for a in self.advisors],
        }
        data.update(self.profile.to_dict())
        data.update(self.snapshot.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Case":
        status = data.get("status")
        return cls(
            id=_str(data.get("id")) or make_id("CASE"),
            title=_str(data.get("title")).strip() or "케이스",
            profile=CaseProfile.from_dict(data),
            status=status if status in CASE_STATUSES else CASE_STATUSES[0],
            sens_filter=_str(data.get("sensFilter"), "any") or "any",
            created_at=_str(data.get("createdAt")),
            steps=[StepItem.from_dict(s) for s in (data.get("steps") or []) if isinstance(s, dict)],
            advisors=[AdvisorItem.from_dict(a) for a in (data.get("advisors") or []) if isinstance(a, dict)],
            snapshot=CaseSnapshot.from_dict(data),
        )
