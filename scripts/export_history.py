#!/usr/bin/env python3
"""Export the snapshot history to an XLSX workbook.

Usage:
  python scripts/export_history.py [<out_path>] [<limit>]

Without `out_path` the file goes to `settings.STORAGE_PATH/exports/division_history.xlsx`.
"""
from pathlib import Path
import sys

from division_tracker.core.config import settings
from division_tracker.core.db import get_connection, init_db
from division_tracker.pipeline.archive import export_history_xlsx
from division_tracker.repo.schema import create_tables
from division_tracker.repo.submissions import list_snapshots


def main(out_path: str | None = None, limit: int = 5000) -> Path:
    init_db()
    conn = get_connection()
    try:
        create_tables(conn)
        snapshots = list_snapshots(conn, limit)
    finally:
        conn.close()

    out = Path(out_path) if out_path else Path(settings.STORAGE_PATH) / "exports" / "division_history.xlsx"
    written = Path(export_history_xlsx(snapshots, out))
    print(f"History saved to: {written} ({len(snapshots)} snapshots)")
    return written


if __name__ == "__main__":
    if len(sys.argv) > 3:
        print("Usage: python scripts/export_history.py [<out_path>] [<limit>]")
        sys.exit(1)
    out = sys.argv[1] if len(sys.argv) > 1 else None
    limit = int(sys.argv[2]) if len(sys.argv) > 2 else 5000
    main(out, limit)
