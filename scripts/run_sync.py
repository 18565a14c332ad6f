"""Run one catalog sync against the spreadsheet from the command line.

Useful for cron hosts that do not run the API process, and for checking the
Apps Script configuration before enabling the scheduled pull.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure project root is importable when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from toolkit.database import SessionLocal  # noqa: E402  (import after path setup)
from toolkit.schemas import SyncDirection  # noqa: E402
from toolkit.services import sync_log  # noqa: E402
from toolkit.services.apps_script import AppsScriptClient  # noqa: E402
from toolkit.services.duplicates import DuplicateResolver  # noqa: E402
from toolkit.services.errors import ToolkitError  # noqa: E402
from toolkit.services.sync_engine import SyncEngine  # noqa: E402


def run(direction: str, triggered_by: str, *, remove_duplicates: bool = False) -> int:
    try:
        client = AppsScriptClient()
    except ValueError as exc:
        print(f"Unable to sync: {exc}")
        print("Ensure APPS_SCRIPT_URL (and APPS_SCRIPT_KEY if required) are set.")
        return 1

    engine = SyncEngine(SessionLocal, client=client)
    try:
        run_record = engine.run_sync(direction, triggered_by=triggered_by)
    except ToolkitError as exc:
        print(f"Sync aborted: {exc.message}")
        return 1

    outcome = sync_log.outcome_for(run_record)
    print(
        f"Sync run {run_record.id} {run_record.status} ({outcome.value if outcome else 'unknown'}): "
        f"{run_record.records_synced} synced, {run_record.records_failed} failed."
    )
    for failure in run_record.failures or []:
        print(f"  - {failure['identity']} ({failure.get('product') or '?'}): {failure['message']}")
    if run_record.error_message and run_record.status == "failed":
        print(f"Error: {run_record.error_message}")

    if remove_duplicates:
        report = DuplicateResolver(SessionLocal).remove_duplicates()
        print(report.message)
        for error in report.errors:
            print(f"  - {error['identity_key']}: {error['message']}")

    return 0 if run_record.status == "completed" else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile the spreadsheet catalog with the database.")
    parser.add_argument(
        "--direction",
        choices=[direction.value for direction in SyncDirection],
        default=SyncDirection.PULL.value,
        help="Which way to sync (defaults to pull).",
    )
    parser.add_argument(
        "--triggered-by",
        default="cli",
        help="Recorded on the sync run for auditing (defaults to 'cli').",
    )
    parser.add_argument(
        "--remove-duplicates",
        action="store_true",
        help="Collapse duplicate catalog entries after the sync finishes.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log progress at DEBUG level.")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    return run(args.direction, args.triggered_by, remove_duplicates=args.remove_duplicates)


if __name__ == "__main__":
    raise SystemExit(main())
