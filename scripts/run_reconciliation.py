#!/usr/bin/env python3
"""
Run one (or all) session reconciliation passes by hand, outside the scheduler.

Usage:
  python scripts/run_reconciliation.py --pass sync
  python scripts/run_reconciliation.py --pass all --inactivity-days 45
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Make the ridepool package importable when run directly
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ridepool.core.logging_setup import setup_logging  # noqa: E402
from ridepool.repositories.ephemeral_store import EphemeralSessionStore  # noqa: E402
from ridepool.repositories.record_store import SessionRecordStore  # noqa: E402
from ridepool.services.reconciler import PASS_NAMES, Reconciler  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Run session reconciliation passes")
    ap.add_argument("--pass", dest="pass_name", required=True, choices=[*PASS_NAMES, "all"])
    ap.add_argument("--inactivity-days", type=int, help="Override INACTIVITY_DAYS")
    ap.add_argument("--retention-days", type=int, help="Override ARCHIVE_RETENTION_DAYS")
    ap.add_argument("--sync-window-days", type=int, help="Override SYNC_WINDOW_DAYS")
    ap.add_argument("--log-level", default=None)
    args = ap.parse_args(argv)

    setup_logging(args.log_level)
    reconciler = Reconciler(
        EphemeralSessionStore(),
        SessionRecordStore(),
        inactivity_days=args.inactivity_days,
        archive_retention_days=args.retention_days,
        sync_window_days=args.sync_window_days,
    )
    names = PASS_NAMES if args.pass_name == "all" else (args.pass_name,)
    exit_code = 0
    for name in names:
        result = reconciler.run(name)
        print(
            f"{name}: processed={result.processed} succeeded={result.succeeded} "
            f"failed={result.failed} changed={result.changed}"
            + (" ABORTED" if result.aborted else "")
        )
        if result.aborted or result.failed:
            exit_code = 1
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
