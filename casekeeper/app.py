import argparse
import json
from pathlib import Path

from .env import load_env

from . import __version__
from . import commands, config
from .database import init_database, get_session
from .errors import ValidationError
from .logger import get_logger
from .normalize import actor_short, format_ts, place_label, short_id, store_label, truncate
from .providers import build_providers
from .report import build_report_payload
from .schema import validate_case_draft, validate_record_draft
from storage.state import apply_intents, load_state


def load_draft(path: Path) -> dict:
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError([f"{path} is not valid JSON: {e.msg} (line {e.lineno})"]) from e
    if not isinstance(data, dict):
        raise ValidationError([f"{path} must contain a JSON object"])
    return data


def _open(args: argparse.Namespace):
    db_path = Path(args.db) if args.db else config.db_path()
    init_database(db_path)
    return get_session(db_path)


def _finish(session, result: commands.CommandResult) -> None:
    if not result.ok:
        print("Blocked:" if len(result.errors) == 1 else "Invalid:")
        for e in result.errors:
            print(f" - {e}")
        raise SystemExit(2)
    apply_intents(session, result)
    print(result.message)


def _print_hit(hit) -> None:
    r = hit.record
    print(f"#{hit.rank:<3} {hit.score:6.2f}  {r.id}  {format_ts(r.ts)}  {actor_short(r.actor)}")
    print(f"      {truncate(r.summary, 80)}")
    if hit.reasons:
        print(f"      {', '.join(hit.reasons)}")


def cmd_record_add(args: argparse.Namespace) -> None:
    draft = load_draft(Path(args.input))
    ranking, _ = build_providers()
    session = _open(args)
    try:
        state = load_state(session)
        if args.case:
            result = commands.add_record(state, draft, attach_to_case=args.case, ranking=ranking)
        else:
            result = commands.add_record(state, draft)
        _finish(session, result)
    finally:
        session.close()


def cmd_record_delete(args: argparse.Namespace) -> None:
    session = _open(args)
    try:
        result = commands.delete_record(load_state(session), args.id)
        _finish(session, result)
    finally:
        session.close()


def cmd_records(args: argparse.Namespace) -> None:
    session = _open(args)
    try:
        state = load_state(session)
    finally:
        session.close()

    records = state.records
    if args.case:
        case = state.get_case(args.case)
        if case is None:
            raise SystemExit(f"Case not found: {args.case}")
        records = commands.records_for_case(records, case)
    if not records:
        print("No records.")
        return
    print(f"Found {len(records)} records:\n")
    for r in records:
        print(f"ID: {r.id}")
        print(f"  When: {format_ts(r.ts)}")
        print(f"  Actor: {actor_short(r.actor)}")
        print(f"  Place: {place_label(r.place, r.place_other)}")
        print(f"  Level: {r.lv}  Stored as: {store_label(r.store_type, r.store_other)}")
        print(f"  Summary: {truncate(r.summary, 120)}")
        print()


def cmd_validate(args: argparse.Namespace) -> None:
    draft = load_draft(Path(args.input))
    errors = validate_case_draft(draft) if args.kind == "case" else validate_record_draft(draft)
    if errors:
        print("Invalid:")
        for e in errors:
            print(f" - {e}")
        raise SystemExit(2)
    print("Valid")


def cmd_case_create(args: argparse.Namespace) -> None:
    draft = load_draft(Path(args.input))
    ranking, advisory = build_providers()
    session = _open(args)
    try:
        result = commands.create_case(load_state(session), draft, ranking=ranking, advisory=advisory)
        _finish(session, result)
    finally:
        session.close()


def cmd_case_show(args: argparse.Namespace) -> None:
    session = _open(args)
    try:
        state = load_state(session)
    finally:
        session.close()

    case = state.get_case(args.case)
    if case is None:
        raise SystemExit(f"Case not found: {args.case}")

    timeline = commands.build_case_timeline(case, state.records)
    print(f"{case.title}  [{case.status}]  {case.id}")
    print(f"  Records: {timeline.mapped_count}  Steps: {len(case.steps)}  Advisories: {len(case.advisors)}")
    if timeline.has_range:
        print(f"  Period: {format_ts(case.profile.time_from) or '-'} ~ {format_ts(case.profile.time_to) or '-'}")
    print()
    for ev in timeline.events:
        when = format_ts(ev.ts)
        if ev.kind == "record":
            score = f"{ev.score:.2f}" if ev.score is not None else "-"
            print(f"{when}  record  {short_id(ev.id)}  score={score}  {truncate(ev.record.summary, 80)}")
        elif ev.kind == "step":
            print(f"{when}  step    {short_id(ev.id)}  {ev.step.name} {ev.step.note}".rstrip())
        else:
            print(f"{when}  advice  {short_id(ev.id)}  [{ev.advisor.level}] {ev.advisor.title} ({ev.advisor.state})")


def cmd_cases(args: argparse.Namespace) -> None:
    session = _open(args)
    try:
        state = load_state(session)
    finally:
        session.close()

    if not state.cases:
        print("No cases.")
        return
    for case in state.cases.values():
        print(f"{case.id}  {case.title}  [{case.status}]  records={len(case.record_ids)}")


def cmd_candidates(args: argparse.Namespace) -> None:
    ranking, _ = build_providers()
    session = _open(args)
    try:
        state = load_state(session)
    finally:
        session.close()

    if state.get_case(args.case) is None:
        raise SystemExit(f"Case not found: {args.case}")

    hits = commands.case_candidates(state, args.case, ranking)
    if not hits:
        print("No new candidates.")
        return
    print(f"{len(hits)} candidate(s) for {args.case}:\n")
    for hit in hits:
        _print_hit(hit)


def cmd_case_add(args: argparse.Namespace) -> None:
    ids = [x.strip() for x in args.ids.split(",") if x.strip()]
    ranking, _ = build_providers()
    session = _open(args)
    try:
        result = commands.add_records_to_case(load_state(session), args.case, ids, ranking)
        _finish(session, result)
    finally:
        session.close()


def cmd_case_remove(args: argparse.Namespace) -> None:
    session = _open(args)
    try:
        result = commands.remove_record_from_case(load_state(session), args.case, args.id)
        _finish(session, result)
    finally:
        session.close()


def cmd_case_compact(args: argparse.Namespace) -> None:
    session = _open(args)
    try:
        result = commands.compact_case(load_state(session), args.case)
        _finish(session, result)
    finally:
        session.close()


def cmd_step_add(args: argparse.Namespace) -> None:
    draft = load_draft(Path(args.input)) if args.input else {"name": args.name, "note": args.note}
    session = _open(args)
    try:
        if args.delete:
            result = commands.delete_step(load_state(session), args.case, args.delete)
        else:
            result = commands.add_step(load_state(session), args.case, draft)
        _finish(session, result)
    finally:
        session.close()


def cmd_advise(args: argparse.Namespace) -> None:
    _, advisory = build_providers()
    session = _open(args)
    try:
        state = load_state(session)
        if args.to_step:
            result = commands.advisor_to_step(state, args.case, args.to_step)
        elif args.advisor:
            result = commands.set_advisor_state(state, args.case, args.advisor, args.state)
        else:
            result = commands.regenerate_advisors(state, args.case, advisory)
        _finish(session, result)
    finally:
        session.close()


def cmd_report(args: argparse.Namespace) -> None:
    ranking, _ = build_providers()
    session = _open(args)
    try:
        state = load_state(session)
    finally:
        session.close()

    case = state.get_case(args.case)
    if case is None:
        raise SystemExit(f"Case not found: {args.case}")

    payload = build_report_payload(case, state.records, ranking=ranking)
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        print(f"Report written to {out}")
    else:
        print(text)


def main():
    # Load .env if present (CASEKEEPER_DB_PATH, CASEKEEPER_PROVIDER, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="casekeeper", description="CaseKeeper: incident records, cases and reports")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to SQLite database (default: CASEKEEPER_DB_PATH or data/casekeeper.db)")

    subparsers = parser.add_subparsers(dest="command")

    rad = subparsers.add_parser("record-add", help="Add a record from a draft JSON file")
    rad.add_argument("--input", required=True, help="Path to record draft JSON")
    rad.add_argument("--case", help="Also add the new record to this case")
    rad.set_defaults(func=cmd_record_add)

    rdl = subparsers.add_parser("record-delete", help="Delete a record that no case references")
    rdl.add_argument("--id", required=True, help="Record id")
    rdl.set_defaults(func=cmd_record_delete)

    rls = subparsers.add_parser("records", help="List records")
    rls.add_argument("--case", help="Only records in this case")
    rls.set_defaults(func=cmd_records)

    val = subparsers.add_parser("validate", help="Validate a record or case draft JSON")
    val.add_argument("--input", required=True, help="Path to draft JSON")
    val.add_argument("--kind", choices=["record", "case"], default="record", help="Draft kind (default: record)")
    val.set_defaults(func=cmd_validate)

    ccr = subparsers.add_parser("case-create", help="Create a case from a draft JSON file and snapshot matching records")
    ccr.add_argument("--input", required=True, help="Path to case draft JSON")
    ccr.set_defaults(func=cmd_case_create)

    csh = subparsers.add_parser("case-show", help="Show a case timeline")
    csh.add_argument("--case", required=True, help="Case id")
    csh.set_defaults(func=cmd_case_show)

    cls = subparsers.add_parser("cases", help="List cases")
    cls.set_defaults(func=cmd_cases)

    cnd = subparsers.add_parser("candidates", help="Show matching records not yet in a case")
    cnd.add_argument("--case", required=True, help="Case id")
    cnd.set_defaults(func=cmd_candidates)

    cad = subparsers.add_parser("case-add", help="Add records to a case and refresh its scores")
    cad.add_argument("--case", required=True, help="Case id")
    cad.add_argument("--ids", required=True, help="Comma-separated record ids")
    cad.set_defaults(func=cmd_case_add)

    crm = subparsers.add_parser("case-remove", help="Remove one record from a case")
    crm.add_argument("--case", required=True, help="Case id")
    crm.add_argument("--id", required=True, help="Record id")
    crm.set_defaults(func=cmd_case_remove)

    ccp = subparsers.add_parser("case-compact", help="Drop cached scores of records no longer in a case")
    ccp.add_argument("--case", required=True, help="Case id")
    ccp.set_defaults(func=cmd_case_compact)

    stp = subparsers.add_parser("step-add", help="Add (or delete) a manual action note on a case")
    stp.add_argument("--case", required=True, help="Case id")
    stp.add_argument("--input", help="Path to step draft JSON")
    stp.add_argument("--name", default="", help="Step name")
    stp.add_argument("--note", default="", help="Step note")
    stp.add_argument("--delete", metavar="STEP_ID", help="Delete this step instead")
    stp.set_defaults(func=cmd_step_add)

    adv = subparsers.add_parser("advise", help="Regenerate or update a case's advisories")
    adv.add_argument("--case", required=True, help="Case id")
    adv.add_argument("--advisor", help="Advisory id to update")
    adv.add_argument("--state", choices=["active", "done", "dismissed"], default="done", help="New advisory state")
    adv.add_argument("--to-step", metavar="ADVISOR_ID", help="Copy an advisory into a step")
    adv.set_defaults(func=cmd_advise)

    rep = subparsers.add_parser("report", help="Build the case report payload as JSON")
    rep.add_argument("--case", required=True, help="Case id")
    rep.add_argument("--output", help="Write to this file instead of stdout")
    rep.set_defaults(func=cmd_report)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            config.validate_config()
            args.func(args)
            if get_logger().get_metrics()["rank_calls"]:
                get_logger().log_metrics_summary()
        except ValidationError as e:
            print("Invalid:")
            for m in e.messages:
                print(f" - {m}")
            raise SystemExit(2)
        except RuntimeError as e:
            raise SystemExit(str(e))
        return

    parser.print_help()


if __name__ == "__main__":
    main()
