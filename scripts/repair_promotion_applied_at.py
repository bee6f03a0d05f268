#!/usr/bin/env python3
"""Clear ``applied_at`` on promotion applications that were never really submitted.

Older builds stamped ``applied_at`` as a side effect of checklist updates.
An application is repaired when ``applied_at`` is set but either

    - its status is still ``draft``, or
    - it is ``pending`` with checklist items missing (reset to ``draft``).

Approved / completed applications are left alone. Dry-run by default.
"""

import argparse
import sys

sys.path.insert(0, ".")

from app import create_app
from app.models import db
from app.models.audit import write_audit
from app.models.enums import ApplicationStatus
from app.models.promotion import PromotionApplication


def _needs_repair(application: PromotionApplication) -> bool:
    if application.applied_at is None:
        return False
    if application.status == ApplicationStatus.DRAFT:
        return True
    return application.status == ApplicationStatus.PENDING and bool(application.missing_checklist_items())


def repair_promotion_applied_at(*, apply: bool = False) -> dict:
    summary = {
        "mode": "apply" if apply else "dry-run",
        "scanned": 0,
        "repaired": 0,
        "would_repair": 0,
        "errors": 0,
    }

    applications = (
        PromotionApplication.query
        .filter(PromotionApplication.applied_at.isnot(None))
        .order_by(PromotionApplication.id.asc())
        .all()
    )
    print(f"[INFO] mode={summary['mode']} applications_with_applied_at={len(applications)}")

    for application in applications:
        summary["scanned"] += 1
        prefix = f"application_id={application.id} member_id={application.member_id}"
        if not _needs_repair(application):
            continue

        missing = application.missing_checklist_items()
        if not apply:
            summary["would_repair"] += 1
            print(f"[PLAN] {prefix} status={application.status.value} missing={','.join(missing) or '-'}")
            continue

        try:
            old_status = application.status.value
            old_applied_at = application.applied_at
            application.applied_at = None
            application.status = ApplicationStatus.DRAFT
            write_audit(
                db.session,
                entity_type="promotion_application",
                entity_id=application.id,
                action="promotion.repair_applied_at",
                actor="repair-script",
                diff={
                    "status": {"old": old_status, "new": "draft"},
                    "applied_at": {"old": old_applied_at, "new": None},
                },
            )
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            summary["errors"] += 1
            print(f"[ERROR] {prefix} error={exc}")
            continue

        summary["repaired"] += 1
        print(f"[REPAIR] {prefix}")

    print(
        "[SUMMARY] "
        f"mode={summary['mode']} "
        f"scanned={summary['scanned']} "
        f"repaired={summary['repaired']} "
        f"would_repair={summary['would_repair']} "
        f"errors={summary['errors']}"
    )
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Clear applied_at left behind by checklist updates.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Preview only; do not write data")
    mode.add_argument("--apply", action="store_true", help="Persist repairs")
    args = parser.parse_args()

    apply = bool(args.apply)
    if not args.dry_run and not args.apply:
        print("[INFO] No mode specified; defaulting to --dry-run")

    app = create_app()
    with app.app_context():
        result = repair_promotion_applied_at(apply=apply)

    if apply and result["errors"] > 0:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
