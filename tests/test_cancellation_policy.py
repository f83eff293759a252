from helpers import DAY, NEXT_DAY, at
from sportslot.services.cancellation_policy import evaluate_cancellation


def test_future_day_is_never_late():
    decision = evaluate_cancellation(at(23, 30), NEXT_DAY, 0, 1)
    assert decision.allowed
    assert not decision.late


def test_same_day_outside_window_is_not_late():
    decision = evaluate_cancellation(at(7, 59), DAY, 9 * 60, 1)
    assert decision.allowed
    assert not decision.late


def test_same_day_inside_window_is_late():
    decision = evaluate_cancellation(at(8, 30), DAY, 9 * 60, 1)
    assert decision.allowed
    assert decision.late


def test_fractional_free_hours():
    assert not evaluate_cancellation(at(8, 20), DAY, 9 * 60, 0.5).late
    assert evaluate_cancellation(at(8, 31), DAY, 9 * 60, 0.5).late


def test_started_booking_cannot_be_cancelled():
    decision = evaluate_cancellation(at(9), DAY, 9 * 60, 1)
    assert not decision.allowed
    assert "started" in decision.reason


def test_past_day_cannot_be_cancelled():
    decision = evaluate_cancellation(at(8, day=NEXT_DAY), DAY, 9 * 60, 1)
    assert not decision.allowed
    assert "passed" in decision.reason


def test_invalid_time_data():
    assert not evaluate_cancellation(at(8), None, 540, 1).allowed
    assert not evaluate_cancellation(at(8), DAY, None, 1).allowed


def test_zero_free_hours_never_late():
    assert not evaluate_cancellation(at(8, 59), DAY, 9 * 60, 0).late
