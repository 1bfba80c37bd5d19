"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for record and case storage. Nested values
(actors, extras, steps, advisories, snapshot maps) live in JSON columns.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, Column, String, Text, Boolean, Integer, DateTime, JSON
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class RecordRow(Base):
    """Incident record. Immutable after insert."""

    __tablename__ = "records"

    id = Column(String, primary_key=True)
    ts = Column(String, nullable=False)
    actor = Column(JSON, nullable=False)  # {"type", "name"}
    related = Column(JSON, nullable=False, default=list)
    place = Column(String, nullable=False)
    place_other = Column(String, nullable=False, default="")
    summary = Column(Text, nullable=False)
    lv = Column(String, nullable=False, default="LV2")
    store_type = Column(String, nullable=False)
    store_other = Column(String, nullable=False, default="")
    extra = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class CaseRow(Base):
    """Case with its profile, notes, advisories and snapshot."""

    __tablename__ = "cases"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    status = Column(String, nullable=False)
    sens_filter = Column(String, nullable=False, default="any")
    created_at = Column(String, nullable=False)

    actors = Column(JSON, nullable=False, default=list)
    query = Column(Text, nullable=False, default="")
    time_from = Column(String, nullable=False, default="")
    time_to = Column(String, nullable=False, default="")
    only_main_actor = Column(Boolean, nullable=False, default=False)
    max_results = Column(Integer, nullable=False, default=80)
    ranking_overrides = Column(JSON, nullable=False, default=dict)  # weights, minScore, minTextSim

    steps = Column(JSON, nullable=False, default=list)
    advisors = Column(JSON, nullable=False, default=list)

    record_ids = Column(JSON, nullable=False, default=list)
    score_by_record_id = Column(JSON, nullable=False, default=dict)
    components_by_record_id = Column(JSON, nullable=False, default=dict)

    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()
