from datetime import datetime, timedelta, timezone

import pytest

from library_booking.core.config import BookingPolicySettings, OperatingHours
from library_booking.core.errors import (
    EndBeforeStart,
    OccupancyUnauthorized,
    OutsideOperatingHours,
    RenewalLimitExceeded,
    StartInPast,
    WindowTooLong,
)
from library_booking.core.policy import BookingPolicy
from library_booking.models.enum import BookingKind, ResourceStatus

from conftest import NOW

MONDAY = datetime(2024, 6, 3, tzinfo=timezone.utc)
SATURDAY = datetime(2024, 6, 8, tzinfo=timezone.utc)
SUNDAY = datetime(2024, 6, 9, tzinfo=timezone.utc)


def at(day: datetime, hour: int, minute: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute)


def test_default_window_end_uses_max_window_days(policy):
    assert policy.default_window_end(NOW) == NOW + timedelta(days=15)


def test_validate_window_accepts_exact_limit(policy):
    policy.validate_window(NOW, NOW + timedelta(days=15))


def test_validate_window_rejects_longer_window(policy):
    with pytest.raises(WindowTooLong):
        policy.validate_window(NOW, NOW + timedelta(days=15, seconds=1))


def test_validate_chronology(policy):
    policy.validate_chronology(NOW, NOW)
    with pytest.raises(EndBeforeStart):
        policy.validate_chronology(NOW, NOW - timedelta(minutes=1))


def test_validate_renewal_returns_attempted_count(policy):
    assert policy.validate_renewal(0) == 1
    assert policy.validate_renewal(1) == 2


def test_validate_renewal_rejects_past_maximum(policy):
    with pytest.raises(RenewalLimitExceeded) as exc_info:
        policy.validate_renewal(2)
    assert exc_info.value.kind == "RenewalLimitExceeded"


def test_renewal_end_is_relative_to_current_end(policy):
    scheduled_end = NOW + timedelta(days=3)
    assert policy.renewal_end(scheduled_end) == scheduled_end + timedelta(days=7)


@pytest.mark.parametrize("people", [2, 4, 6])
def test_validate_occupancy_inside_bounds(policy, people):
    policy.validate_occupancy(people, 2, 6)


@pytest.mark.parametrize("people", [1, 7])
def test_validate_occupancy_outside_bounds(policy, people):
    with pytest.raises(OccupancyUnauthorized):
        policy.validate_occupancy(people, 2, 6)


def test_validate_occupancy_falls_back_to_settings(policy):
    policy.validate_occupancy(10)
    with pytest.raises(OccupancyUnauthorized):
        policy.validate_occupancy(11)
    with pytest.raises(OccupancyUnauthorized):
        policy.validate_occupancy(0)


def test_weekday_hours(policy):
    policy.validate_within_operating_hours(at(MONDAY, 8), at(MONDAY, 20))
    with pytest.raises(OutsideOperatingHours):
        policy.validate_within_operating_hours(at(MONDAY, 7, 59), at(MONDAY, 9))
    with pytest.raises(OutsideOperatingHours):
        policy.validate_within_operating_hours(at(MONDAY, 19), at(MONDAY, 20, 1))


def test_saturday_window_before_opening_is_rejected(policy):
    with pytest.raises(OutsideOperatingHours):
        policy.validate_within_operating_hours(at(SATURDAY, 7), at(SATURDAY, 8, 30))


def test_saturday_uses_its_own_range(policy):
    policy.validate_within_operating_hours(at(SATURDAY, 9), at(SATURDAY, 14))
    with pytest.raises(OutsideOperatingHours):
        # Fine on a weekday, past Saturday closing
        policy.validate_within_operating_hours(at(SATURDAY, 13), at(SATURDAY, 15))


def test_sunday_is_always_rejected(policy):
    with pytest.raises(OutsideOperatingHours):
        policy.validate_within_operating_hours(at(SUNDAY, 10), at(SUNDAY, 11))


def test_operating_hours_follow_library_timezone():
    policy = BookingPolicy(BookingPolicySettings(timezone="America/Bogota"))
    # 13:00 UTC is 08:00 in Bogota (UTC-5)
    policy.validate_within_operating_hours(at(MONDAY, 13), at(MONDAY, 15))
    with pytest.raises(OutsideOperatingHours):
        policy.validate_within_operating_hours(at(MONDAY, 12), at(MONDAY, 14))


def test_reservation_length(policy):
    policy.validate_reservation_length(at(MONDAY, 9), at(MONDAY, 13))
    with pytest.raises(WindowTooLong):
        policy.validate_reservation_length(at(MONDAY, 9), at(MONDAY, 13, 1))


def test_not_in_past(policy):
    policy.validate_not_in_past(NOW, NOW)
    with pytest.raises(StartInPast):
        policy.validate_not_in_past(NOW - timedelta(minutes=1), NOW)


def test_resource_status_rules(policy):
    assert policy.occupied_status(BookingKind.LOAN) == ResourceStatus.LENT
    assert policy.occupied_status(BookingKind.RESERVATION) == ResourceStatus.RESERVED
    assert policy.accepts_new_booking(BookingKind.LOAN, ResourceStatus.AVAILABLE)
    assert not policy.accepts_new_booking(BookingKind.LOAN, ResourceStatus.LENT)
    assert policy.accepts_new_booking(BookingKind.RESERVATION, ResourceStatus.RESERVED)
    assert not policy.accepts_new_booking(BookingKind.RESERVATION, ResourceStatus.NOT_AVAILABLE)


def test_operating_hours_parse():
    hours = OperatingHours.parse("09:30-18:00")
    assert (hours.start.hour, hours.start.minute, hours.end.hour) == (9, 30, 18)
    with pytest.raises(ValueError):
        OperatingHours.parse("18:00-09:00")
    with pytest.raises(ValueError):
        OperatingHours.parse("nine to five")


def test_settings_accept_hour_strings():
    settings = BookingPolicySettings(saturday_operating_hours="10:00-12:00")
    assert settings.saturday_operating_hours.start.hour == 10
