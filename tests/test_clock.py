import datetime
from zoneinfo import ZoneInfo

import pytest

from dailyword import clock as clock_module, config
from dailyword.clock import FixedClock, SystemClock, from_timestamp_ms, next_midnight

LA = ZoneInfo('America/Los_Angeles')


def test_fixed_clock_reads_strings_in_reference_zone():
    c = FixedClock('2026-02-15T18:00:00', LA)
    assert c.now() == datetime.datetime(2026, 2, 15, 18, 0, tzinfo=LA)
    assert c.today() == datetime.date(2026, 2, 15)
    # a bare date means noon
    assert FixedClock('2026-02-15', LA).now().hour == 12


def test_fixed_clock_advances():
    c = FixedClock('2026-02-15T23:30:00', LA)
    c.advance(hours=1)
    assert c.today() == datetime.date(2026, 2, 16)
    c.set('2026-03-01T08:00')
    assert c.now().minute == 0 and c.today().day == 1


def test_fixed_clock_rejects_garbage():
    with pytest.raises(ValueError):
        FixedClock('tomorrow-ish', LA)


def test_aware_moments_are_converted():
    utc_moment = datetime.datetime(2026, 2, 16, 2, 0, tzinfo=datetime.timezone.utc)
    c = FixedClock(utc_moment, LA)
    # 02:00 UTC is still the previous evening in Los Angeles
    assert c.today() == datetime.date(2026, 2, 15)


def test_timestamp_round_trip():
    c = FixedClock('2026-02-15T18:00:00', LA)
    assert from_timestamp_ms(c.timestamp_ms(), LA) == c.now()


def test_next_midnight():
    moment = datetime.datetime(2026, 2, 15, 18, 0, tzinfo=LA)
    assert next_midnight(moment) == datetime.datetime(2026, 2, 16, 0, 0, tzinfo=LA)


def test_system_clock_uses_reference_zone():
    c = SystemClock(LA)
    assert c.now().tzinfo is LA
    assert c.today() == c.now().date()


def test_clock_from_settings(monkeypatch):
    monkeypatch.setattr(config, 'FAKE_NOW', '2026-02-17')
    c = clock_module.clock_from_settings()
    assert isinstance(c, FixedClock)
    assert c.today() == datetime.date(2026, 2, 17)

    monkeypatch.setattr(config, 'FAKE_NOW', None)
    assert isinstance(clock_module.clock_from_settings(), SystemClock)
