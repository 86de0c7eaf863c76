"""Service/time resolution tests.

Tests for:
- parse_start: datetime and ISO-8601 inputs, timezone normalization
- check_request: validation order without touching the database
- load_services / resolve: catalog checks and end-time computation
"""
from datetime import datetime, timedelta, timezone

import pytest

from booking.errors import ErrorCode, ValidationError
from booking.resolver import ServiceTimeResolver, parse_start, window_end


class TestParseStart:
    """Tests for parse_start."""

    def test_naive_datetime_is_kept(self):
        value = datetime(2030, 1, 1, 10, 0)
        assert parse_start(value) == value

    def test_aware_datetime_is_converted_to_utc(self):
        value = datetime(2030, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=-3)))
        assert parse_start(value) == datetime(2030, 1, 1, 13, 0)

    def test_iso_string_with_z(self):
        assert parse_start("2030-01-01T10:00:00Z") == datetime(2030, 1, 1, 10, 0)

    def test_iso_string_with_offset(self):
        assert parse_start("2030-01-01T10:00:00-03:00") == datetime(2030, 1, 1, 13, 0)

    @pytest.mark.parametrize("value", ["", "not a date", "2030-13-45", None, 12345])
    def test_invalid_values(self, value):
        with pytest.raises(ValidationError) as exc:
            parse_start(value)
        assert exc.value.code == ErrorCode.INVALID_START_DATE


class TestCheckRequest:
    """Tests for ServiceTimeResolver.check_request."""

    def test_empty_services_reported_first(self, db, clock):
        resolver = ServiceTimeResolver(db.services, clock=clock)
        with pytest.raises(ValidationError) as exc:
            resolver.check_request([], "garbage")
        assert exc.value.code == ErrorCode.AT_LEAST_ONE_SERVICE_REQUIRED

    def test_invalid_start_before_future_check(self, db, clock):
        resolver = ServiceTimeResolver(db.services, clock=clock)
        with pytest.raises(ValidationError) as exc:
            resolver.check_request([1], "garbage")
        assert exc.value.code == ErrorCode.INVALID_START_DATE

    def test_start_must_be_strictly_in_future(self, db, clock):
        resolver = ServiceTimeResolver(db.services, clock=clock)
        with pytest.raises(ValidationError) as exc:
            resolver.check_request([1], clock())
        assert exc.value.code == ErrorCode.START_MUST_BE_IN_FUTURE

        later = clock() + timedelta(minutes=1)
        assert resolver.check_request([1], later) == later


class TestResolve:
    """Tests for ServiceTimeResolver.resolve."""

    def test_end_is_sum_of_durations(self, db, salon, clock):
        resolver = ServiceTimeResolver(db.services, clock=clock)
        start = datetime(2030, 1, 1, 10, 0)
        with db.get_session() as session:
            window = resolver.resolve(session, salon.tenant.id,
                                      [salon.cut.id, salon.brush.id], start)
        assert window.start == start
        assert window.end == start + timedelta(minutes=75)
        assert window.duration_minutes == 75
        assert [s.id for s in window.services] == [salon.cut.id, salon.brush.id]

    def test_window_end_helper(self, salon):
        start = datetime(2030, 1, 1, 10, 0)
        assert window_end(start, [salon.brush]) == start + timedelta(minutes=30)

    @pytest.mark.parametrize("case", ["missing", "inactive", "foreign", "duplicate"])
    def test_invalid_service_ids(self, db, salon, clock, case):
        resolver = ServiceTimeResolver(db.services, clock=clock)
        if case == "missing":
            ids = [salon.cut.id, 9999]
        elif case == "inactive":
            db.services.deactivate(salon.tenant.id, salon.brush.id)
            ids = [salon.brush.id]
        elif case == "foreign":
            ids = [salon.foreign_service.id]
        else:
            ids = [salon.cut.id, salon.cut.id]

        with db.get_session() as session:
            with pytest.raises(ValidationError) as exc:
                resolver.resolve(session, salon.tenant.id, ids, datetime(2030, 1, 1, 10, 0))
        assert exc.value.code == ErrorCode.INVALID_SERVICE_IDS
