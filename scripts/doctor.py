#!/usr/bin/env python3
"""Check a pack's lock file for drift.

Usage:
    uv run python scripts/doctor.py [PACK_DIR_OR_LOCK_FILE] [--json] [--verbose]

Loads ``packsmith.lock.json`` and runs the read-only consistency check on it.
Exits 0 when the lock is consistent, 1 when violations were found and 2 when
the file could not be read.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from packsmith.config import configure_logging
from packsmith.errors import LockFileError
from packsmith.memory.lock_store import LockStore
from packsmith.workflows.validator import check_consistency


def main() -> int:
    parser = argparse.ArgumentParser(description="Check a pack lock file for drift")
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Pack directory or lock file (default: current directory)",
    )
    parser.add_argument("--json", action="store_true", help="Print violations as JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    store = LockStore(Path(args.path))
    if not store.exists():
        print(f"ERROR: {store.path} not found", file=sys.stderr)
        return 2
    try:
        snapshot = store.load()
    except LockFileError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    report = check_consistency(snapshot)

    if args.json:
        print(
            json.dumps(
                {
                    "valid": report.is_valid,
                    "violations": [
                        {"kind": type(v).__name__, "component": v.component, "detail": v.describe()}
                        for v in report.violations
                    ],
                },
                indent=2,
            )
        )
    elif report.is_valid:
        target = snapshot.target
        print(
            f"OK: {len(snapshot.assignment)} component(s) consistent with "
            f"{target.loader} {target.game_version}"
        )
    else:
        print(f"Found {len(report.violations)} problem(s) in {store.path}:")
        for violation in report.violations:
            print(f"  [{type(violation).__name__}] {violation.describe()}")

    return 0 if report.is_valid else 1


if __name__ == "__main__":
    sys.exit(main())
