from __future__ import annotations

"""Create the seat allocation tables.

Safe to run multiple times: existing tables are left as they are. Without
--yes the script only lists the tables it would create.
"""

import argparse
import sys
from pathlib import Path

# Allow running this script from any working directory.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import inspect

from core.bootstrap import bootstrap_schema
from core.database import ENGINE
from models import Base


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--yes", action="store_true", help="Actually apply changes")
    args = parser.parse_args()

    existing = set(inspect(ENGINE).get_table_names())
    missing = [name for name in Base.metadata.tables if name not in existing]

    if not missing:
        print("OK: schema already up to date")
        return

    print("Tables to create:", ", ".join(missing))
    if not args.yes:
        print("Dry run. Re-run with --yes to apply.")
        return

    bootstrap_schema(ENGINE)
    print("OK: created", len(missing), "table(s)")


if __name__ == "__main__":
    main()
