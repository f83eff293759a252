from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sportslot.services.timeslots import local_now, minutes_of_day


@dataclass(frozen=True)
class CancellationDecision:
    allowed: bool
    late: bool = False
    reason: str = ""


def evaluate_cancellation(
    now: datetime | None,
    booking_date: str | None,
    earliest_start: int | None,
    cancel_free_hours: float,
) -> CancellationDecision:
    """Decide whether a booking may still be cancelled and whether it counts as late.

    Late only applies on the booking day: fewer than `cancel_free_hours` hours before
    the first slot starts. Once the first slot has started the booking can no longer
    be cancelled.
    """
    if not booking_date or earliest_start is None:
        return CancellationDecision(False, reason="Booking time data is invalid; cannot cancel")

    today = local_now(now).date().isoformat()
    if booking_date < today:
        return CancellationDecision(False, reason="The booking date has passed; cannot cancel")

    if booking_date > today:
        return CancellationDecision(True, late=False)

    now_minutes = minutes_of_day(now)
    if now_minutes >= earliest_start:
        return CancellationDecision(False, reason="The booking has already started; please check in instead")

    free_minutes = max(0.0, float(cancel_free_hours or 0)) * 60
    return CancellationDecision(True, late=(earliest_start - now_minutes) < free_minutes)
