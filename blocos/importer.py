"""Command-line entry point: python -m blocos.importer data/blocos_bh.csv --year 2026"""
import argparse
import logging
import sys
from pathlib import Path

from blocos.config import settings
from blocos.database import Base, SessionLocal, engine
from blocos.models.event import BaseEvent                # noqa: F401
from blocos.models.override import UserEventOverride     # noqa: F401
from blocos.services.event_import import import_events, validate_year


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import carnival blocos from a CSV file.")
    parser.add_argument("csv_path", nargs="?", default="data/blocos_bh.csv")
    parser.add_argument("--year", type=int, default=settings.IMPORT_DEFAULT_YEAR)
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL)
    try:
        validate_year(args.year)
    except ValueError as exc:
        parser.error(str(exc))

    csv_text = Path(args.csv_path).read_text(encoding="utf-8-sig")
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        summary = import_events(db, csv_text, args.year, settings.IMPORT_TIMEZONE)
    finally:
        db.close()

    print("Import finished")
    print(f"Inserted: {summary.inserted}")
    print(f"Updated: {summary.updated}")
    print(f"Ignored: {summary.ignored}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
