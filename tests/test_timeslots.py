from datetime import date, datetime, timezone

import pytest

from helpers import at
from sportslot.services.timeslots import (
    earliest_start_minutes,
    latest_end_minutes,
    local_now,
    minutes_of_day,
    next_reset_at,
    normalize_date,
    operational_date,
    parse_slot,
)


@pytest.mark.parametrize(
    "slot,expected",
    [
        ("09:00-10:00", (540, 600)),
        ("9:30 - 10:15", (570, 615)),
        ("23:00-24:00", (1380, 1440)),
        ("0900-1000", None),
        ("25:00-26:00", None),
        ("09:70-10:00", None),
        ("", None),
    ],
)
def test_parse_slot(slot, expected):
    assert parse_slot(slot) == expected


def test_parse_slot_rejects_non_strings():
    assert parse_slot(None) is None
    assert parse_slot(900) is None


def test_earliest_and_latest_ignore_bad_slots():
    slots = ["13:00-14:00", "bad", "09:00-10:00"]
    assert earliest_start_minutes(slots) == 540
    assert latest_end_minutes(slots) == 840
    assert earliest_start_minutes(["bad"]) is None
    assert latest_end_minutes([]) is None


def test_normalize_date_keeps_plain_dates():
    assert normalize_date("2026-03-10") == "2026-03-10"
    assert normalize_date(" 2026-03-10 ") == "2026-03-10"
    assert normalize_date(date(2026, 3, 10)) == "2026-03-10"


def test_normalize_date_shifts_timestamps_into_reference_zone():
    # 18:00 UTC is 01:00 the next day in Bangkok
    assert normalize_date("2026-03-09T18:00:00Z") == "2026-03-10"
    assert normalize_date("2026-03-09T18:00:00+00:00") == "2026-03-10"
    assert normalize_date(datetime(2026, 3, 9, 16, 0, tzinfo=timezone.utc)) == "2026-03-09"


@pytest.mark.parametrize("value", [None, "", "2026-02-30", "yesterday", 20260310])
def test_normalize_date_invalid(value):
    assert normalize_date(value) is None


def test_local_now_treats_naive_as_local():
    naive = datetime(2026, 3, 10, 9, 16)
    assert local_now(naive) == at(9, 16)
    assert minutes_of_day(naive) == 9 * 60 + 16
    assert minutes_of_day(datetime(2026, 3, 10, 2, 16, tzinfo=timezone.utc)) == 9 * 60 + 16


def test_operational_date_before_and_after_boundary():
    assert operational_date(at(5, 59), 6) == "2026-03-09"
    assert operational_date(at(6, 0), 6) == "2026-03-10"
    assert operational_date(at(0, 1), 0) == "2026-03-10"


def test_next_reset_at():
    assert next_reset_at(at(5), 6) == at(6)
    assert next_reset_at(at(6), 6) == at(6, day="2026-03-11")
    assert next_reset_at(at(13, 30), 0) == at(0, day="2026-03-11")
