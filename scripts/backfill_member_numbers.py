#!/usr/bin/env python3
"""Allocate member numbers for members enrolled without one (idempotent).

Members are processed oldest enrollment first, one transaction each, so the
assigned sequence follows enrollment order. Dry-run by default.
"""

import argparse
import sys

sys.path.insert(0, ".")

from flask import current_app

from app import create_app


def backfill_member_numbers(*, apply: bool = False) -> dict:
    allocator = current_app.extensions["lifecycle"].allocator
    summary = allocator.backfill(apply=apply)

    print(f"[INFO] mode={summary['mode']} candidates={summary['candidates']}")
    tag = "ASSIGN" if apply else "PLAN"
    for row in summary["plan"]:
        print(f"[{tag}] member_id={row['member_id']} member_number={row['member_number']}")
    print(
        "[SUMMARY] "
        f"mode={summary['mode']} "
        f"candidates={summary['candidates']} "
        f"assigned={summary['assigned']} "
        f"errors={summary['errors']}"
    )
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Backfill missing member numbers (idempotent).")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Preview only; do not write data")
    mode.add_argument("--apply", action="store_true", help="Persist allocated numbers")
    args = parser.parse_args()

    apply = bool(args.apply)
    if not args.dry_run and not args.apply:
        print("[INFO] No mode specified; defaulting to --dry-run")

    app = create_app()
    with app.app_context():
        result = backfill_member_numbers(apply=apply)

    if apply and result["errors"] > 0:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
