"""Create or drop the session_metadata schema."""
from __future__ import annotations

import argparse

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .session import Base, get_engine
from . import models  # noqa: F401  # ensure models are imported for metadata


def create_all(engine: Engine | None = None) -> None:
    Base.metadata.create_all(bind=engine or get_engine())


def drop_all(engine: Engine | None = None) -> None:
    Base.metadata.drop_all(bind=engine or get_engine())


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Manage the session metadata schema")
    ap.add_argument("--drop", action="store_true", help="Drop tables before creating them")
    args = ap.parse_args()
    try:
        if args.drop:
            drop_all()
        create_all()
        print("Session tables created successfully.")
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
