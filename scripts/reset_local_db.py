"""Utility script to reset the local database.

Usage:
    python scripts/reset_local_db.py [--seed]

Environment:
    Ensure DATABASE_URL and SLACK_SIGNING_SECRET are available in the
    current shell before running this script. ``--seed`` adds a handful of
    global jargon terms so the charge modal has something to offer.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jargon_jar.db import get_engine, session_scope  # noqa: E402
from jargon_jar.models import Base, JargonTerm  # noqa: E402

GLOBAL_TERMS = (
    ("synergy", "Two things working together, allegedly better.", "5.00"),
    ("circle back", "Talk about it later. Maybe.", "2.00"),
    ("low-hanging fruit", "The easy bit.", "1.00"),
    ("move the needle", "Make a noticeable difference.", "3.00"),
    ("bandwidth", "Time, but make it sound technical.", "2.50"),
)


def reset_database(seed: bool = False) -> None:
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    if seed:
        with session_scope() as session:
            for term, description, cost in GLOBAL_TERMS:
                session.add(JargonTerm(term=term, description=description, default_cost=Decimal(cost)))
        print(f"Local database reset with {len(GLOBAL_TERMS)} global terms.")
    else:
        print("Local database reset.")


if __name__ == "__main__":
    reset_database(seed="--seed" in sys.argv[1:])
