"""
Application state <-> storage.

Responsibilities:
- Load the full AppState from the database.
- Apply the intents of one CommandResult in a single transaction.

Non-Responsibilities:
- No validation or ranking; command handlers already decided.

Invariant:
Either every persist/delete intent of a command is committed, or none is.
"""

from casekeeper.commands import AppState, CommandResult, DELETE_RECORD, PERSIST_CASE, PERSIST_RECORD
from casekeeper.logger import get_logger

from .repositories import cases as cases_repo
from .repositories import records as records_repo


def load_state(session) -> AppState:
    return AppState(
        records=records_repo.list_records(session),
        cases=cases_repo.cases_by_id(session),
    )


def apply_intents(session, result: CommandResult) -> int:
    """
    Persist the effects of a command.

    Args:
        session: SQLAlchemy session
        result: CommandResult whose state holds the records and cases the
            intents refer to

    Returns:
        Number of storage writes applied
    """
    writes = 0
    state = result.state
    try:
        for intent in result.intents:
            if intent.kind == PERSIST_RECORD:
                record = state.record_by_id(intent.target)
                if record is None:
                    raise KeyError(f"Record {intent.target} missing from command state")
                records_repo.save_record(session, record)
                writes += 1
            elif intent.kind == DELETE_RECORD:
                records_repo.delete_record(session, intent.target)
                writes += 1
            elif intent.kind == PERSIST_CASE:
                case = state.get_case(intent.target)
                if case is None:
                    raise KeyError(f"Case {intent.target} missing from command state")
                cases_repo.save_case(session, case)
                writes += 1
        session.commit()
    except Exception as e:
        session.rollback()
        get_logger().error("Failed to persist command", error=str(e), error_type=type(e).__name__)
        raise
    return writes
