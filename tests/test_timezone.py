"""
Timezone Reconciliation Tests
=============================

UTC -> civil time conversion, the 48 h acclimatization rule and the
triple-format display strings.

Run: python -m pytest tests/test_timezone.py -v
"""

import math
from datetime import date, datetime

import pytest
import pytz

from core.timezone import (
    AcclimatizationContext,
    TimezoneCache,
    TimezoneConverter,
    default_converter,
    get_acclimatized_timezone,
    is_on_home_base_reference,
    iso_to_epoch_ms,
    parse_iso_utc,
    utc_day_hour,
    utc_to_timezone,
    utc_to_zulu,
)
from models.data_models import AcclimatizationState


# ── Helpers ──────────────────────────────────────────────────────────────

HOME = 'Asia/Qatar'
LONDON = 'Europe/London'
NEW_YORK = 'America/New_York'


def _ctx(hours, state=None, location=LONDON, home=HOME):
    return AcclimatizationContext(
        hours_away_from_base=hours,
        backend_state=state,
        location_timezone=location,
        home_base_timezone=home,
    )


def _rebuild_candidates(result, iana_tz):
    """Every UTC instant the broken-down fields could denote (two during DST fall-back)"""
    hour, minute = (int(x) for x in result.hh_mm.split(':'))
    naive = datetime(int(result.year), int(result.month), int(result.day), hour, minute)
    zone = pytz.timezone(iana_tz)
    return {zone.localize(naive, is_dst=flag).astimezone(pytz.utc) for flag in (True, False)}


# ============================================================================
# PARSING
# ============================================================================

class TestParsing:

    def test_z_suffix_and_offset_agree(self):
        assert parse_iso_utc('2025-03-15T14:30:00Z') == parse_iso_utc('2025-03-15T17:30:00+03:00')

    def test_naive_string_is_utc(self):
        assert parse_iso_utc('2025-03-15T14:30:00') == datetime(2025, 3, 15, 14, 30, tzinfo=pytz.utc)

    @pytest.mark.parametrize('value', [None, '', 'not a date', '2025-13-45T99:00:00Z'])
    def test_garbage_is_none(self, value):
        assert parse_iso_utc(value) is None
        assert iso_to_epoch_ms(value) is None

    def test_epoch_ms_exact(self):
        assert iso_to_epoch_ms('1970-01-01T00:00:01.500Z') == 1500
        assert iso_to_epoch_ms('2026-02-10T06:00:00Z') == 1770703200000


# ============================================================================
# CONVERSION
# ============================================================================

class TestUtcToTimezone:

    def test_half_hour_offset(self):
        result = utc_to_timezone('2025-03-15T14:30:00Z', 'Asia/Kolkata')
        assert result.is_valid
        assert result.hh_mm == '20:00'
        assert result.hour == 20.0
        assert (result.year, result.month, result.day) == (2025, 3, 15)

    def test_crosses_midnight(self):
        result = utc_to_timezone('2025-03-15T22:15:00Z', HOME)
        assert result.day == 16
        assert result.hh_mm == '01:15'
        assert result.hour == pytest.approx(1.25)

    def test_dst_aware(self):
        winter = utc_to_timezone('2025-01-15T12:00:00Z', LONDON)
        summer = utc_to_timezone('2025-07-15T12:00:00Z', LONDON)
        assert winter.hh_mm == '12:00'
        assert summer.hh_mm == '13:00'

    @pytest.mark.parametrize('iso', [
        '2025-03-15T14:30:00Z',
        '2025-03-09T06:59:00Z',     # just before US spring-forward
        '2025-03-09T07:01:00Z',     # just after
        '2025-11-02T05:30:00Z',     # 01:30 EDT, first pass of the repeated hour
        '2025-11-02T06:30:00Z',     # 01:30 EST, second pass
        '2025-12-31T23:59:00Z',
    ])
    @pytest.mark.parametrize('iana_tz', [NEW_YORK, LONDON, HOME, 'Asia/Kolkata', 'Australia/Sydney', 'UTC'])
    def test_round_trip(self, iso, iana_tz):
        """Fields rebuild the original instant (either offset accepted in a repeated hour)"""
        result = utc_to_timezone(iso, iana_tz)
        assert parse_iso_utc(iso) in _rebuild_candidates(result, iana_tz)

    def test_bad_timestamp_degrades(self):
        result = utc_to_timezone('garbage', HOME)
        assert not result.is_valid
        assert result.hh_mm == ''
        assert math.isnan(result.day)
        assert math.isnan(result.hour)

    def test_unknown_zone_degrades(self):
        result = utc_to_timezone('2025-03-15T14:30:00Z', 'Mars/Olympus_Mons')
        assert not result.is_valid
        assert math.isnan(result.month)

    def test_zulu(self):
        assert utc_to_zulu('2025-03-15T14:30:00Z') == '14:30Z'
        assert utc_to_zulu('2025-03-15T17:30:00+03:00') == '14:30Z'
        assert utc_to_zulu(None) == ''

    def test_day_hour_uses_utc(self):
        assert utc_day_hour('2025-03-15T23:45:00Z') == (15, 23.75)
        day, hour = utc_day_hour('nope')
        assert math.isnan(day) and math.isnan(hour)


class TestTimezoneCache:

    def test_injected_cache_loads_each_zone_once(self):
        calls = []

        def loader(name):
            calls.append(name)
            return pytz.timezone(name)

        cache = TimezoneCache(loader)
        converter = TimezoneConverter(cache)
        converter.utc_to_timezone('2025-03-15T14:30:00Z', HOME)
        converter.utc_to_timezone('2025-03-16T14:30:00Z', HOME)
        converter.utc_to_timezone('2025-03-16T14:30:00Z', LONDON)

        assert calls == [HOME, LONDON]
        assert len(cache) == 2
        assert HOME in cache

    def test_separate_converters_share_nothing_by_default(self):
        a, b = TimezoneConverter(), TimezoneConverter()
        a.utc_to_timezone('2025-03-15T14:30:00Z', HOME)
        assert HOME in a.cache
        assert HOME not in b.cache

    def test_functional_form_shares_module_converter(self):
        utc_to_timezone('2025-03-15T14:30:00Z', 'Asia/Kolkata')
        assert 'Asia/Kolkata' in default_converter.cache

    def test_unknown_zone_not_cached(self):
        cache = TimezoneCache()
        TimezoneConverter(cache).utc_to_timezone('2025-03-15T14:30:00Z', 'Nowhere/Special')
        assert len(cache) == 0


class TestMonthBounds:

    def test_utc_month(self):
        converter = TimezoneConverter()
        assert converter.month_start_ms(date(2026, 2, 14)) == iso_to_epoch_ms('2026-02-01T00:00:00Z')
        assert converter.month_end_ms(date(2026, 2, 14)) == iso_to_epoch_ms('2026-03-01T00:00:00Z')

    def test_december_rolls_year(self):
        assert TimezoneConverter().month_end_ms(date(2025, 12, 1)) == iso_to_epoch_ms('2026-01-01T00:00:00Z')

    def test_home_base_month(self):
        assert TimezoneConverter().month_start_ms(date(2026, 2, 1), HOME) == iso_to_epoch_ms('2026-01-31T21:00:00Z')


# ============================================================================
# ACCLIMATIZATION (EASA ORO.FTL.105)
# ============================================================================

class TestAcclimatization:

    def test_just_under_48h_stays_home(self):
        assert get_acclimatized_timezone(_ctx(47.9)) == HOME

    def test_over_48h_acclimatized_goes_local(self):
        assert get_acclimatized_timezone(_ctx(48.1, 'acclimatized')) == LONDON

    def test_exactly_48h_is_acclimatized(self):
        assert get_acclimatized_timezone(_ctx(48.0, 'acclimatized')) == LONDON
        assert get_acclimatized_timezone(_ctx(48.0)) == LONDON

    @pytest.mark.parametrize('state', [None, 'acclimatized', 'unknown', 'departed'])
    def test_under_48h_ignores_backend_state(self, state):
        assert get_acclimatized_timezone(_ctx(20.0, state)) == HOME

    @pytest.mark.parametrize('state', [None, 'unknown', 'departed'])
    def test_long_stay_without_backend_confirmation_is_local(self, state):
        assert get_acclimatized_timezone(_ctx(72.0, state)) == LONDON

    def test_enum_state_accepted(self):
        assert get_acclimatized_timezone(_ctx(50.0, AcclimatizationState.ACCLIMATIZED)) == LONDON

    def test_home_reference_flag(self):
        assert is_on_home_base_reference(_ctx(10.0))
        assert not is_on_home_base_reference(_ctx(60.0, 'acclimatized'))


# ============================================================================
# TRIPLE-FORMAT STRINGS
# ============================================================================

class TestTripleTime:

    def setup_method(self):
        self.converter = TimezoneConverter()

    def _leg(self, hours_away, state=None):
        # DOH 09:00 local -> LHR 13:00 local (GMT in mid-March)
        return self.converter.build_triple_time(
            '2025-03-15T06:00:00Z', '2025-03-15T13:00:00Z',
            HOME, LONDON, HOME, 'DOH', 'LHR',
            hours_away_from_base=hours_away, backend_state=state,
        )

    def test_zulu_and_home_lines(self):
        triple = self._leg(10.0)
        assert triple.zulu == '06:00Z – 13:00Z'
        assert triple.home == '09:00 – 16:00 Qatar'

    def test_short_trip_local_is_home_reference(self):
        triple = self._leg(10.0)
        assert triple.local_is_home_ref
        assert triple.local == '09:00 – 16:00 (home ref)'

    def test_acclimatized_local_uses_airport_clocks(self):
        triple = self._leg(60.0, 'acclimatized')
        assert not triple.local_is_home_ref
        assert triple.local == '09:00 DOH – 13:00 LHR'

    def test_sleep_window(self):
        triple = self.converter.build_sleep_triple_time(
            '2025-03-15T22:00:00Z', '2025-03-16T06:00:00Z',
            NEW_YORK, HOME, hours_away_from_base=72.0, backend_state='acclimatized',
        )
        assert triple.zulu == '22:00Z – 06:00Z'
        assert triple.local == '18:00 – 02:00 New York'
        assert triple.home == '01:00 – 09:00 Qatar'

    def test_sleep_window_home_reference(self):
        triple = self.converter.build_sleep_triple_time(
            '2025-03-15T22:00:00Z', '2025-03-16T06:00:00Z', NEW_YORK, HOME, hours_away_from_base=12.0,
        )
        assert triple.local == '01:00 – 09:00 (home ref)'

    def test_bad_timestamps_do_not_raise(self):
        triple = self.converter.build_triple_time('x', 'y', HOME, LONDON, HOME, 'DOH', 'LHR')
        assert triple.zulu == ' – '
        assert triple.local == ' –  (home ref)'
