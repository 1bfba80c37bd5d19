"""
Relevance and advisory providers.

The ranking and advisory computations sit behind one blocking call per
case-scoped operation. Local providers run in process; RemoteProvider
talks JSON over HTTP. Callers go through safe_rank / safe_advise, which
turn any ProviderError into an empty result.
"""

import math
from typing import Any, Dict, Iterable, List, Optional

import requests

from pipelines.relevance import ranking

from . import config
from .errors import ProviderError
from .logger import get_logger
from .models import (
    AdvisorItem,
    Case,
    CaseProfile,
    RankedComponents,
    RankedHit,
    RankOptions,
    Record,
    make_id,
    now_iso,
)
from .retry import CircuitBreaker, TRANSIENT_EXCEPTIONS, exponential_backoff, is_transient_error


class LocalRankingProvider:
    """Runs the ranking pipeline in process."""

    name = "local"

    def rank(self, records: List[Record], profile: CaseProfile, options: Optional[RankOptions] = None) -> List[RankedHit]:
        return ranking.rank(records, profile, options)


class LocalAdvisoryProvider:
    """Fixed prototype guidance: evidence packing, communication, next action."""

    name = "local"

    def advise(self, records: List[Record], case: Case) -> List[AdvisorItem]:
        ts = now_iso()
        title_hint = case.title.strip() or "케이스"
        return [
            AdvisorItem(
                id=make_id("ADV"),
                ts=ts,
                title="증빙 정리",
                body="시간순으로 사실만 정리하고, 원본 증빙(녹취/문서/메신저)을 함께 묶어두세요.",
                level="info",
                tags=["정리"],
                rule_id="proto:pack",
            ),
            AdvisorItem(
                id=make_id("ADV"),
                ts=ts,
                title="커뮤니케이션",
                body="추가 소통은 가능한 한 공식 채널/문서로 남기고, 감정 표현은 줄이세요.",
                level="warn",
                tags=["소통"],
                rule_id="proto:comm",
            ),
            AdvisorItem(
                id=make_id("ADV"),
                ts=ts,
                title=f"다음 액션 ({title_hint})",
                body="필요 시 관리자/담당자에게 '요약 3줄 + 타임라인 + 증빙 목록' 형태로 공유할 준비를 하세요.",
                level="info",
                tags=["액션"],
                rule_id="proto:next",
            ),
        ]


COUNT_FIELDS = ("qHit", "qTotal", "relatedHits")
SCORE_FIELDS = ("keywordScore", "actorScore", "relatedScore", "wActor", "wRelated", "wText", "minScore")
RATIO_FIELDS = ("textSim", "minTextSim")


def _check_number(value: Any, label: str, upper: Optional[float] = None) -> float:
    """A finite JSON number in [0, upper]; anything else is a ProviderError."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProviderError(f"{label} must be a number, got {value!r}")
    try:
        number = float(value)
    except OverflowError as e:
        raise ProviderError(f"{label} is out of range") from e
    if not math.isfinite(number) or number < 0 or (upper is not None and number > upper):
        raise ProviderError(f"{label} is out of range: {value!r}")
    return number


def _check_components(hit_id: str, components: Dict[str, Any]) -> None:
    for key in COUNT_FIELDS + SCORE_FIELDS:
        if components.get(key) is not None:
            _check_number(components[key], f"Hit {hit_id} {key}")
    for key in RATIO_FIELDS:
        if components.get(key) is not None:
            _check_number(components[key], f"Hit {hit_id} {key}", upper=1.0)


def parse_hits(data: Any, records: Iterable[Record]) -> List[RankedHit]:
    """
    Validate a ranking response and attach the local record objects.

    Scores and components must be finite and non-negative, with textSim in
    [0, 1]. Hits naming a record outside the request pool are dropped.

    Raises:
        ProviderError: If the body is not a list of well-formed hits
    """
    if not isinstance(data, list):
        raise ProviderError("Ranking response must be a list of hits")

    pool = {r.id: r for r in records}
    hits: List[RankedHit] = []
    for item in data:
        if not isinstance(item, dict):
            raise ProviderError("Ranking hit must be an object")
        if "id" not in item or "score" not in item or "rank" not in item:
            raise ProviderError("Malformed ranking hit: needs id, score and rank")
        hit_id = str(item["id"])
        score = _check_number(item["score"], f"Hit {hit_id} score")
        rank = _check_number(item["rank"], f"Hit {hit_id} rank")
        if rank < 1 or rank != int(rank):
            raise ProviderError(f"Hit {hit_id} rank must be a positive integer")
        components = item.get("components")
        if not isinstance(components, dict):
            raise ProviderError(f"Ranking hit {hit_id} has no components")
        _check_components(hit_id, components)
        reasons = item.get("reasons") or []
        if not isinstance(reasons, list):
            raise ProviderError(f"Ranking hit {hit_id} has malformed reasons")

        record = pool.get(hit_id)
        if record is None:
            get_logger().debug("Dropping hit for unknown record", id=hit_id)
            continue
        try:
            hit = RankedHit(
                id=hit_id,
                score=score,
                rank=int(rank),
                reasons=tuple(str(r) for r in reasons),
                components=RankedComponents.from_dict(components),
                record=record,
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise ProviderError(f"Malformed ranking hit {hit_id}: {e}") from e
        hits.append(hit)
    hits.sort(key=lambda h: h.rank)
    return hits


def parse_advisories(data: Any) -> List[AdvisorItem]:
    """
    Raises:
        ProviderError: If the body is not a list of advisory objects
    """
    if not isinstance(data, list) or not all(isinstance(x, dict) for x in data):
        raise ProviderError("Advisory response must be a list of objects")
    items: List[AdvisorItem] = []
    for x in data:
        tags = x.get("tags")
        if tags is not None and not isinstance(tags, list):
            raise ProviderError(f"Advisory {x.get('id')!r} has malformed tags")
        try:
            items.append(AdvisorItem.from_dict(x))
        except (TypeError, ValueError, OverflowError) as e:
            raise ProviderError(f"Malformed advisory {x.get('id')!r}: {e}") from e
    return items


class RemoteProvider:
    """
    Ranking and advisory provider reached over HTTP.

    POST {base_url}/rank   {records, caseProfile, options}  -> RankedHit[]
    POST {base_url}/advise {records, caseProfile}           -> AdvisorItem[]
    """

    name = "remote"

    def __init__(
        self,
        base_url: str,
        timeout: float = 20.0,
        retries: int = 2,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        retry_delay: float = 0.5,
    ):
        if not base_url:
            raise ValueError("RemoteProvider needs a base_url")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.breaker = breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)

    def _post(self, path: str, body: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"

        def on_retry(attempt, exc, delay):
            get_logger().warning("Provider call failed, retrying", url=url, attempt=attempt, delay=delay, error=str(exc))

        @exponential_backoff(
            max_retries=self.retries,
            base_delay=self.retry_delay,
            exceptions=TRANSIENT_EXCEPTIONS + (requests.exceptions.HTTPError,),
            on_retry=on_retry,
        )
        def send():
            response = self.session.post(url, json=body, timeout=self.timeout)
            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                # Only retryable statuses go back through the backoff loop
                if is_transient_error(e):
                    raise
            return response

        try:
            response = send()
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "HTTPError"
            raise ProviderError(f"Provider request failed ({status}): {url}") from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Provider request error: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Provider returned a non-JSON body: {url}") from e

    def rank(self, records: List[Record], profile: CaseProfile, options: Optional[RankOptions] = None) -> List[RankedHit]:
        body = {
            "records": [r.to_dict() for r in records],
            "caseProfile": profile.to_dict(),
            "options": options.to_dict() if options else {},
        }
        data = self.breaker.call(self._post, "/rank", body)
        return parse_hits(data, records)

    def advise(self, records: List[Record], case: Case) -> List[AdvisorItem]:
        body = {
            "records": [r.to_dict() for r in records],
            "caseProfile": case.to_dict(),
        }
        data = self.breaker.call(self._post, "/advise", body)
        return parse_advisories(data)


def build_providers():
    """Return (ranking_provider, advisory_provider) for the configured mode."""
    config.validate_config()
    if config.provider_mode() == "remote":
        remote = RemoteProvider(
            config.provider_url(),
            timeout=config.provider_timeout(),
            retries=config.provider_retries(),
        )
        return remote, remote
    return LocalRankingProvider(), LocalAdvisoryProvider()


def try_rank(provider, records: List[Record], profile: CaseProfile, options: Optional[RankOptions] = None) -> Optional[List[RankedHit]]:
    """Rank through the provider; None when the provider failed (already logged)."""
    provider = provider if provider is not None else LocalRankingProvider()
    logger = get_logger()
    logger.record_rank_call()
    try:
        hits = provider.rank(list(records), profile, options)
    except ProviderError as e:
        logger.record_provider_failure(type(e).__name__)
        logger.error(
            "Ranking provider failed",
            provider=getattr(provider, "name", type(provider).__name__),
            error=str(e),
        )
        return None
    logger.debug("Ranked records", pool=len(records), hits=len(hits))
    return hits


def safe_rank(provider, records: List[Record], profile: CaseProfile, options: Optional[RankOptions] = None) -> List[RankedHit]:
    """Rank through the provider; a provider failure yields []."""
    hits = try_rank(provider, records, profile, options)
    return hits if hits is not None else []


def try_advise(provider, records: List[Record], case: Case) -> Optional[List[AdvisorItem]]:
    provider = provider if provider is not None else LocalAdvisoryProvider()
    logger = get_logger()
    try:
        return provider.advise(list(records), case)
    except ProviderError as e:
        logger.record_provider_failure(type(e).__name__)
        logger.error(
            "Advisory provider failed",
            provider=getattr(provider, "name", type(provider).__name__),
            case_id=case.id,
            error=str(e),
        )
        return None


def safe_advise(provider, records: List[Record], case: Case) -> List[AdvisorItem]:
    """Generate advisories through the provider; a provider failure yields []."""
    items = try_advise(provider, records, case)
    return items if items is not None else []
