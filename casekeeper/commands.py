"""
Command handlers over an explicit application state.

Every handler takes the current AppState and returns a CommandResult: the
new state, the side-effect intents the storage layer must apply, a user
message and any error messages. Handlers never write to storage and never
mutate the state they are given.
"""

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional

from pipelines.evidence.dedup import chronological
from pipelines.relevance.candidates import candidates
from pipelines.snapshot.manager import (
    assert_snapshot_consistent,
    compact,
    create_snapshot,
    merge_add,
    orphaned_ids,
    remove_one,
)

from . import models
from .logger import get_logger
from .models import (
    ADVISOR_STATES,
    AdvisorItem,
    Case,
    CASE_STATUSES,
    RankedComponents,
    RankedHit,
    RankOptions,
    Record,
    StepItem,
)
from .normalize import parse_timestamp
from .providers import safe_advise, safe_rank, try_advise, try_rank
from .schema import build_case_profile, build_record_from_draft, validate_case_draft

IdFactory = Callable[[], str]
Clock = Callable[[], str]


@dataclass
class AppState:
    records: List[Record] = field(default_factory=list)
    cases: Dict[str, Case] = field(default_factory=dict)

    def record_by_id(self, record_id: str) -> Optional[Record]:
        for r in self.records:
            if r.id == record_id:
                return r
        return None

    def get_case(self, case_id: str) -> Optional[Case]:
        return self.cases.get(case_id)

    def with_case(self, case: Case) -> "AppState":
        cases = dict(self.cases)
        cases[case.id] = case
        return AppState(records=list(self.records), cases=cases)


# Intent kinds
PERSIST_RECORD = "persist_record"
DELETE_RECORD = "delete_record"
PERSIST_CASE = "persist_case"
NOTIFY = "notify"


@dataclass(frozen=True)
class Intent:
    kind: str
    target: str = ""
    message: str = ""


@dataclass
class CommandResult:
    state: AppState
    intents: List[Intent] = field(default_factory=list)
    message: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _rejected(state: AppState, errors: List[str]) -> CommandResult:
    return CommandResult(
        state=state,
        intents=[Intent(NOTIFY, message="; ".join(errors))],
        message=errors[0] if errors else "",
        errors=list(errors),
    )


def _case_updated(state: AppState, case: Case, message: str) -> CommandResult:
    return CommandResult(
        state=state.with_case(case),
        intents=[Intent(PERSIST_CASE, target=case.id), Intent(NOTIFY, message=message)],
        message=message,
    )


def _unknown_case(state: AppState, case_id: str) -> CommandResult:
    return _rejected(state, [f"Case not found: {case_id}"])


def _default_record_id() -> str:
    return models.make_id("REC")


def _default_case_id() -> str:
    return models.make_id("CASE")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def add_record(
    state: AppState,
    draft: dict,
    make_id: Optional[IdFactory] = None,
    attach_to_case: Optional[str] = None,
    ranking=None,
) -> CommandResult:
    """
    Validate a record draft and append the record.

    When attach_to_case names a case, the new id is merged into that case's
    snapshot in the same command.
    """
    if attach_to_case and attach_to_case not in state.cases:
        return _unknown_case(state, attach_to_case)

    record, errors = build_record_from_draft(draft, make_id or _default_record_id)
    if errors:
        return _rejected(state, errors)

    new_state = AppState(records=list(state.records) + [record], cases=dict(state.cases))
    intents = [Intent(PERSIST_RECORD, target=record.id)]
    message = f"Record saved: {record.id}"

    if attach_to_case:
        attached = add_records_to_case(new_state, attach_to_case, [record.id], ranking)
        if not attached.ok:
            # the record itself is still valid; keep it and report the merge failure
            return CommandResult(
                state=new_state,
                intents=intents + [Intent(NOTIFY, message=attached.message)],
                message=f"{message} (not added to case: {attached.message})",
                errors=[],
            )
        new_state = attached.state
        intents += [i for i in attached.intents if i.kind == PERSIST_CASE]
        message = f"{message}, added to case {attach_to_case}"

    get_logger().info("Record added", id=record.id, case_id=attach_to_case)
    intents.append(Intent(NOTIFY, message=message))
    return CommandResult(state=new_state, intents=intents, message=message)


def delete_record(state: AppState, record_id: str) -> CommandResult:
    """Delete a record unless any case still references it."""
    if state.record_by_id(record_id) is None:
        return _rejected(state, [f"Record not found: {record_id}"])

    holders = cases_containing_record(state.cases.values(), record_id)
    if holders:
        get_logger().warning(
            "Record delete blocked",
            id=record_id,
            cases=[c.id for c in holders],
        )
        return _rejected(
            state,
            [f"Record is referenced by {len(holders)} case(s); remove it from those cases first"],
        )

    new_state = AppState(
        records=[r for r in state.records if r.id != record_id],
        cases=dict(state.cases),
    )
    message = f"Record deleted: {record_id}"
    return CommandResult(
        state=new_state,
        intents=[Intent(DELETE_RECORD, target=record_id), Intent(NOTIFY, message=message)],
        message=message,
    )


# ---------------------------------------------------------------------------
# Cases and snapshots
# ---------------------------------------------------------------------------

def create_case(
    state: AppState,
    draft: dict,
    make_id: Optional[IdFactory] = None,
    now_iso: Optional[Clock] = None,
    ranking=None,
    advisory=None,
) -> CommandResult:
    """Validate a case draft, rank the record pool and snapshot the result."""
    errors = validate_case_draft(draft)
    if errors:
        return _rejected(state, errors)

    profile = build_case_profile(draft)
    hits = safe_rank(ranking, state.records, profile, RankOptions(limit=profile.max_results))

    case = Case(
        id=(make_id or _default_case_id)(),
        title=str(draft.get("title")).strip(),
        profile=profile,
        status=draft.get("status") or CASE_STATUSES[0],
        sens_filter=draft.get("sensFilter") or "any",
        created_at=(now_iso or models.now_iso)(),
        snapshot=create_snapshot(hits),
    )
    assert_snapshot_consistent(case.snapshot)

    case.advisors = safe_advise(advisory, records_for_case(state.records, case), case)

    get_logger().info("Case created", id=case.id, records=len(case.record_ids))
    message = f"Case created with {len(case.record_ids)} record(s): {case.id}"
    return CommandResult(
        state=state.with_case(case),
        intents=[Intent(PERSIST_CASE, target=case.id), Intent(NOTIFY, message=message)],
        message=message,
    )


def case_candidates(state: AppState, case_id: str, ranking=None) -> List[RankedHit]:
    """Records the case's profile would pick up that are not in it yet."""
    case = state.get_case(case_id)
    if case is None:
        return []

    def ranker(records, profile, options):
        return safe_rank(ranking, records, profile, options)

    return candidates(case, state.records, ranker=ranker)


def add_records_to_case(state: AppState, case_id: str, ids: Iterable[str], ranking=None) -> CommandResult:
    """
    Merge ids into a case snapshot with a fresh ranking pass.

    The re-rank and the merge are computed before the case is replaced, so a
    failure at any point leaves the case exactly as it was.
    """
    case = state.get_case(case_id)
    if case is None:
        return _unknown_case(state, case_id)

    known = {r.id for r in state.records}
    requested = [str(x).strip() for x in ids if x is not None and str(x).strip()]
    valid = [rid for rid in requested if rid in known]
    skipped = [rid for rid in requested if rid not in known]
    if skipped:
        get_logger().warning("Skipping unknown record ids", case_id=case_id, ids=skipped)
    if not valid:
        return _rejected(state, ["No known record ids to add"])

    hits = try_rank(ranking, state.records, case.profile, RankOptions(limit=case.profile.max_results))
    if hits is None:
        return _rejected(state, ["Ranking provider unavailable; case left unchanged"])

    snapshot = merge_add(case.snapshot, valid, hits)
    assert_snapshot_consistent(snapshot)

    added = len(snapshot.record_ids) - len(case.record_ids)
    logger = get_logger()
    logger.record_snapshot_merge()
    logger.info("Snapshot merged", case_id=case_id, added=added, total=len(snapshot.record_ids))

    message = f"Added {added} record(s) to case {case_id}"
    if skipped:
        message += f" ({len(skipped)} unknown id(s) skipped)"
    return _case_updated(state, replace(case, snapshot=snapshot), message)


def remove_record_from_case(state: AppState, case_id: str, record_id: str) -> CommandResult:
    case = state.get_case(case_id)
    if case is None:
        return _unknown_case(state, case_id)
    if record_id not in case.record_ids:
        return _rejected(state, [f"Record {record_id} is not part of case {case_id}"])

    snapshot = remove_one(case.snapshot, record_id)
    return _case_updated(state, replace(case, snapshot=snapshot), f"Removed {record_id} from case {case_id}")


def compact_case(state: AppState, case_id: str) -> CommandResult:
    """Drop cached scores and components of ids no longer in the case."""
    case = state.get_case(case_id)
    if case is None:
        return _unknown_case(state, case_id)

    dropped = orphaned_ids(case.snapshot)
    snapshot = compact(case.snapshot)
    return _case_updated(
        state,
        replace(case, snapshot=snapshot),
        f"Dropped {len(dropped)} orphaned entr{'y' if len(dropped) == 1 else 'ies'} from case {case_id}",
    )


# ---------------------------------------------------------------------------
# Steps and advisories
# ---------------------------------------------------------------------------

def add_step(
    state: AppState,
    case_id: str,
    draft: dict,
    make_id: Optional[IdFactory] = None,
    now_iso: Optional[Clock] = None,
) -> CommandResult:
    case = state.get_case(case_id)
    if case is None:
        return _unknown_case(state, case_id)

    name = str(draft.get("name") or "").strip()
    note = str(draft.get("note") or "").strip()
    if not name and not note:
        return _rejected(state, ["Step needs a name or a note"])

    ts = str(draft.get("ts") or "").strip()
    if ts and parse_timestamp(ts) is None:
        return _rejected(state, ["Field 'ts' must be an ISO-8601 timestamp"])

    step = StepItem(
        id=(make_id or (lambda: models.make_id("STEP")))(),
        ts=ts or (now_iso or models.now_iso)(),
        name=name,
        note=note,
        text=str(draft.get("text") or ""),
        place=str(draft.get("place") or ""),
        owner=str(draft.get("owner") or ""),
        lv=str(draft.get("lv") or ""),
    )
    return _case_updated(state, replace(case, steps=list(case.steps) + [step]), f"Step added: {step.id}")


def delete_step(state: AppState, case_id: str, step_id: str) -> CommandResult:
    case = state.get_case(case_id)
    if case is None:
        return _unknown_case(state, case_id)
    steps = [s for s in case.steps if s.id != step_id]
    if len(steps) == len(case.steps):
        return _rejected(state, [f"Step not found: {step_id}"])
    return _case_updated(state, replace(case, steps=steps), f"Step deleted: {step_id}")


def regenerate_advisors(state: AppState, case_id: str, advisory=None) -> CommandResult:
    """Replace the case's advisories; on provider failure the old ones stay."""
    case = state.get_case(case_id)
    if case is None:
        return _unknown_case(state, case_id)

    items = try_advise(advisory, records_for_case(state.records, case), case)
    if items is None:
        return _rejected(state, ["Advisory provider unavailable; advisories left unchanged"])
    return _case_updated(state, replace(case, advisors=list(items)), f"{len(items)} advisory item(s) generated")


def _find_advisor(case: Case, advisor_id: str) -> Optional[AdvisorItem]:
    for a in case.advisors:
        if a.id == advisor_id:
            return a
    return None


def set_advisor_state(state: AppState, case_id: str, advisor_id: str, new_state: str) -> CommandResult:
    case = state.get_case(case_id)
    if case is None:
        return _unknown_case(state, case_id)
    if new_state not in ADVISOR_STATES:
        return _rejected(state, [f"Advisor state must be one of {', '.join(ADVISOR_STATES)}"])
    if _find_advisor(case, advisor_id) is None:
        return _rejected(state, [f"Advisory not found: {advisor_id}"])

    advisors = [replace(a, state=new_state) if a.id == advisor_id else a for a in case.advisors]
    return _case_updated(state, replace(case, advisors=advisors), f"Advisory {advisor_id} marked {new_state}")


def advisor_to_step(
    state: AppState,
    case_id: str,
    advisor_id: str,
    make_id: Optional[IdFactory] = None,
    now_iso: Optional[Clock] = None,
) -> CommandResult:
    """Copy an advisory into a step and mark the advisory done."""
    case = state.get_case(case_id)
    if case is None:
        return _unknown_case(state, case_id)
    advisor = _find_advisor(case, advisor_id)
    if advisor is None:
        return _rejected(state, [f"Advisory not found: {advisor_id}"])

    step = StepItem(
        id=(make_id or (lambda: models.make_id("STEP")))(),
        ts=(now_iso or models.now_iso)(),
        name=advisor.title,
        note=advisor.body,
    )
    advisors = [replace(a, state="done") if a.id == advisor_id else a for a in case.advisors]
    updated = replace(case, steps=list(case.steps) + [step], advisors=advisors)
    return _case_updated(state, updated, f"Advisory {advisor_id} copied to step {step.id}")


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

def records_for_case(records: Iterable[Record], case: Case) -> List[Record]:
    """Snapshot members that still exist, oldest first."""
    members = set(case.record_ids)
    return chronological(r for r in records if r.id in members)


def cases_containing_record(cases: Iterable[Case], record_id: str) -> List[Case]:
    return [c for c in cases if record_id in c.record_ids]


@dataclass(frozen=True)
class TimelineEvent:
    kind: str  # record | step | advisor
    ts: str
    id: str
    record: Optional[Record] = None
    step: Optional[StepItem] = None
    advisor: Optional[AdvisorItem] = None
    score: Optional[float] = None
    components: Optional[RankedComponents] = None


@dataclass
class CaseTimeline:
    events: List[TimelineEvent]
    mapped_count: int
    has_range: bool


def build_case_timeline(case: Case, records: Iterable[Record]) -> CaseTimeline:
    """Records with their cached scores, steps and live advisories, by time."""
    events: List[TimelineEvent] = []
    snapshot = case.snapshot

    mapped = records_for_case(records, case)
    for r in mapped:
        events.append(
            TimelineEvent(
                kind="record",
                ts=r.ts,
                id=r.id,
                record=r,
                score=snapshot.score_by_record_id.get(r.id),
                components=snapshot.components_by_record_id.get(r.id),
            )
        )
    for s in case.steps:
        events.append(TimelineEvent(kind="step", ts=s.ts, id=s.id, step=s))
    for a in case.advisors:
        if a.state != "dismissed":
            events.append(TimelineEvent(kind="advisor", ts=a.ts, id=a.id, advisor=a))

    def key(e: TimelineEvent):
        parsed = parse_timestamp(e.ts)
        return (parsed is None, parsed.timestamp() if parsed else 0.0, e.ts, e.id)

    events.sort(key=key)
    return CaseTimeline(events=events, mapped_count=len(mapped), has_range=case.profile.has_time_bounds)
