from __future__ import annotations

import logging

from sportslot.core.config import get_settings
from sportslot.core.logging import configure_logging
from sportslot.db.session import SessionLocal
from sportslot.services.audit_service import write_audit_log
from sportslot.services.expiry_service import sweep_missed_checkins
from sportslot.services.settings_service import PolicyStore

logger = logging.getLogger("sportslot.scripts.run_expiry_sweep")


def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)

    # Fresh process, so a zero TTL reads every policy straight from the table
    store = PolicyStore(ttl_seconds=0)
    db = SessionLocal()
    try:
        report = sweep_missed_checkins(db, store)

        if not report.processed and not report.errors:
            print("no_targets")
            return 0

        for outcome in report.processed:
            write_audit_log(
                db,
                actor_user_id=None,
                action="BOOKING_AUTO_CANCEL",
                target_type="booking",
                target_id=outcome.booking_id,
                summary="Auto-cancelled missed check-in",
                details={"penalties": outcome.penalties.as_dict(), "rights": outcome.rights.as_dict()},
            )

        print(f"expired: {len(report.processed)} errors: {len(report.errors)}")
        return 1 if report.errors else 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
