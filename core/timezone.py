"""
Timezone Reconciliation
=======================

UTC-first conversions between ISO instants and IANA civil time, plus the
acclimatization rule that decides which clock the pilot's body is on.

All times arrive from the service as ISO 8601 UTC. Conversions go through the
pytz database (never through manual offset arithmetic) so DST transitions are
handled, and never through the host's locale or default timezone.

Acclimatization follows EASA ORO.FTL.105:
    - Pilot stays on the home-base body clock while away < 48 h
    - From 48 h on, the location timezone is the reference

Nothing here raises on bad input: an unparseable timestamp or an unknown
zone yields NaN/empty fields so one broken duty can't take down a month.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, NamedTuple, Optional, Union

import pytz

from models.data_models import AcclimatizationState

logger = logging.getLogger(__name__)

ACCLIMATIZATION_HOURS = 48.0

_EPOCH = datetime(1970, 1, 1, tzinfo=pytz.utc)


# ============================================================================
# PARSING
# ============================================================================

def parse_iso_utc(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 string into an aware UTC datetime.

    Accepts a trailing 'Z' or an explicit offset. Naive strings are taken as
    UTC. Returns None if the value can't be parsed.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text[-1:] in ('Z', 'z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = pytz.utc.localize(parsed)
    return parsed.astimezone(pytz.utc)


def to_epoch_ms(dt: datetime) -> int:
    """Exact epoch milliseconds for an aware datetime"""
    return (dt - _EPOCH) // timedelta(milliseconds=1)


def iso_to_epoch_ms(value: Optional[str]) -> Optional[int]:
    parsed = parse_iso_utc(value)
    return to_epoch_ms(parsed) if parsed is not None else None


def parse_hhmm(value: Optional[str]) -> Optional[time]:
    """'HH:mm' (or an ISO string with a 'THH:mm' part) -> time"""
    if not value:
        return None
    text = value.split('T', 1)[1] if 'T' in value else value
    parts = text.split(':')
    if len(parts) < 2:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1][:2])
    except ValueError:
        return None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        return None
    return time(hour, minute)


# ============================================================================
# CACHE
# ============================================================================

class TimezoneCache:
    """
    Append-only map of IANA name -> tzinfo.

    Entries are never evicted; the key space (IANA identifiers) is small.
    Safe to share between sessions: a racing double-load stores the same
    immutable tzinfo twice.
    """

    def __init__(self, loader: Callable[[str], pytz.BaseTzInfo] = pytz.timezone):
        self._loader = loader
        self._zones: Dict[str, pytz.BaseTzInfo] = {}

    def get(self, name: str) -> pytz.BaseTzInfo:
        """Raises pytz.UnknownTimeZoneError for unknown names"""
        zone = self._zones.get(name)
        if zone is None:
            zone = self._loader(name)
            self._zones[name] = zone
        return zone

    def __contains__(self, name: str) -> bool:
        return name in self._zones

    def __len__(self) -> int:
        return len(self._zones)


# ============================================================================
# CONVERSION
# ============================================================================

@dataclass(frozen=True)
class TimezoneResult:
    """
    Broken-down civil time in a target timezone.
    On failure `date` is None, numeric fields are NaN and hh_mm is ''.
    """
    date: Optional[datetime]      # aware datetime in the target zone
    day: float                    # day of month 1-31
    hour: float                   # decimal hour, 14.5 = 14:30
    hh_mm: str
    year: float
    month: float                  # 1-12

    @property
    def is_valid(self) -> bool:
        return self.date is not None


INVALID_RESULT = TimezoneResult(
    date=None, day=math.nan, hour=math.nan, hh_mm='', year=math.nan, month=math.nan
)


class DayHour(NamedTuple):
    day: float
    hour: float


def utc_to_zulu(iso_utc: Optional[str]) -> str:
    """'2025-03-15T14:30:00Z' -> '14:30Z'; '' if unparseable"""
    parsed = parse_iso_utc(iso_utc)
    if parsed is None:
        return ''
    return f"{parsed.hour:02d}:{parsed.minute:02d}Z"


def utc_day_hour(iso_utc: Optional[str]) -> DayHour:
    """
    UTC day-of-month and decimal hour for grid positioning.
    Uses UTC components only, so midnight is never ambiguous.
    """
    parsed = parse_iso_utc(iso_utc)
    if parsed is None:
        return DayHour(math.nan, math.nan)
    return DayHour(parsed.day, parsed.hour + parsed.minute / 60)


def _zone_label(iana_tz: str) -> str:
    """'America/New_York' -> 'New York'"""
    return iana_tz.split('/')[-1].replace('_', ' ') or iana_tz


class TimezoneConverter:
    """
    Converts UTC instants into civil time using an injected TimezoneCache.

    Give each analysis session its own converter, or share one; the cache
    only ever grows.
    """

    def __init__(self, cache: Optional[TimezoneCache] = None):
        self.cache = cache if cache is not None else TimezoneCache()

    def _zone(self, iana_tz: str) -> Optional[pytz.BaseTzInfo]:
        try:
            return self.cache.get(iana_tz)
        except (pytz.UnknownTimeZoneError, AttributeError, TypeError):
            logger.warning(f"Unknown timezone {iana_tz!r}")
            return None

    def utc_to_timezone(self, iso_utc: Optional[str], iana_tz: str) -> TimezoneResult:
        """Convert a UTC ISO timestamp to broken-down time in `iana_tz`"""
        parsed = parse_iso_utc(iso_utc)
        zone = self._zone(iana_tz)
        if parsed is None or zone is None:
            return INVALID_RESULT
        local = parsed.astimezone(zone)
        return TimezoneResult(
            date=local,
            day=local.day,
            hour=local.hour + local.minute / 60,
            hh_mm=f"{local.hour:02d}:{local.minute:02d}",
            year=local.year,
            month=local.month,
        )

    def utc_to_home_base(self, iso_utc: Optional[str], home_base_tz: str) -> TimezoneResult:
        return self.utc_to_timezone(iso_utc, home_base_tz)

    def local_to_epoch_ms(self, day: date, clock: Optional[time], iana_tz: str) -> Optional[int]:
        """
        Civil date + clock time in `iana_tz` -> epoch ms.
        Ambiguous wall times (DST fall-back) resolve to the first occurrence.
        """
        zone = self._zone(iana_tz)
        if zone is None or clock is None:
            return None
        naive = datetime.combine(day, clock)
        try:
            local = zone.localize(naive, is_dst=None)
        except pytz.AmbiguousTimeError:
            local = zone.localize(naive, is_dst=True)
        except pytz.NonExistentTimeError:
            local = zone.localize(naive, is_dst=False)
        return to_epoch_ms(local)

    def month_start_ms(self, month: date, iana_tz: str = 'UTC') -> int:
        """Epoch ms of 00:00 on the 1st of `month` in `iana_tz`"""
        start = self.local_to_epoch_ms(month.replace(day=1), time(0, 0), iana_tz)
        if start is None:
            start = self.local_to_epoch_ms(month.replace(day=1), time(0, 0), 'UTC')
        return start

    def month_end_ms(self, month: date, iana_tz: str = 'UTC') -> int:
        """Epoch ms of 00:00 on the 1st of the following month"""
        if month.month == 12:
            following = date(month.year + 1, 1, 1)
        else:
            following = date(month.year, month.month + 1, 1)
        return self.month_start_ms(following, iana_tz)

    # ------------------------------------------------------------------
    # Triple-format display strings
    # ------------------------------------------------------------------

    def build_triple_time(
        self,
        departure_utc: str,
        arrival_utc: str,
        departure_tz: str,
        arrival_tz: str,
        home_base_tz: str,
        departure_code: str,
        arrival_code: str,
        hours_away_from_base: float = 0.0,
        backend_state: Union[AcclimatizationState, str, None] = None,
    ) -> 'TripleTimeFormat':
        """
        Zulu / acclimatization-aware local / home-base strings for a segment.

        Under 48 h away the 'local' line is home-base time marked '(home ref)'.
        """
        zulu = f"{utc_to_zulu(departure_utc)} – {utc_to_zulu(arrival_utc)}"

        dep_home = self.utc_to_home_base(departure_utc, home_base_tz)
        arr_home = self.utc_to_home_base(arrival_utc, home_base_tz)
        home = f"{dep_home.hh_mm} – {arr_home.hh_mm} {_zone_label(home_base_tz)}"

        ctx = AcclimatizationContext(
            hours_away_from_base=hours_away_from_base,
            backend_state=backend_state,
            location_timezone=arrival_tz,
            home_base_timezone=home_base_tz,
        )
        local_is_home_ref = is_on_home_base_reference(ctx)

        if local_is_home_ref:
            local = f"{dep_home.hh_mm} – {arr_home.hh_mm} (home ref)"
        else:
            dep_local = self.utc_to_timezone(departure_utc, departure_tz)
            arr_local = self.utc_to_timezone(arrival_utc, arrival_tz)
            local = f"{dep_local.hh_mm} {departure_code} – {arr_local.hh_mm} {arrival_code}"

        return TripleTimeFormat(zulu=zulu, local=local, home=home, local_is_home_ref=local_is_home_ref)

    def build_sleep_triple_time(
        self,
        sleep_start_utc: str,
        sleep_end_utc: str,
        location_tz: str,
        home_base_tz: str,
        hours_away_from_base: float = 0.0,
        backend_state: Union[AcclimatizationState, str, None] = None,
    ) -> 'TripleTimeFormat':
        """Same three lines for a sleep window at `location_tz`"""
        zulu = f"{utc_to_zulu(sleep_start_utc)} – {utc_to_zulu(sleep_end_utc)}"

        start_home = self.utc_to_home_base(sleep_start_utc, home_base_tz)
        end_home = self.utc_to_home_base(sleep_end_utc, home_base_tz)
        home = f"{start_home.hh_mm} – {end_home.hh_mm} {_zone_label(home_base_tz)}"

        ctx = AcclimatizationContext(
            hours_away_from_base=hours_away_from_base,
            backend_state=backend_state,
            location_timezone=location_tz,
            home_base_timezone=home_base_tz,
        )
        local_is_home_ref = is_on_home_base_reference(ctx)

        if local_is_home_ref:
            local = f"{start_home.hh_mm} – {end_home.hh_mm} (home ref)"
        else:
            start_local = self.utc_to_timezone(sleep_start_utc, location_tz)
            end_local = self.utc_to_timezone(sleep_end_utc, location_tz)
            local = f"{start_local.hh_mm} – {end_local.hh_mm} {_zone_label(location_tz)}"

        return TripleTimeFormat(zulu=zulu, local=local, home=home, local_is_home_ref=local_is_home_ref)


# Used by the functional form when no converter is passed
default_converter = TimezoneConverter()


def utc_to_timezone(iso_utc: Optional[str], iana_tz: str,
                    converter: Optional[TimezoneConverter] = None) -> TimezoneResult:
    """Functional form of TimezoneConverter.utc_to_timezone (module-wide cache by default)"""
    return (converter or default_converter).utc_to_timezone(iso_utc, iana_tz)


# ============================================================================
# ACCLIMATIZATION (EASA ORO.FTL.105)
# ============================================================================

@dataclass(frozen=True)
class AcclimatizationContext:
    hours_away_from_base: float
    location_timezone: str
    home_base_timezone: str
    backend_state: Union[AcclimatizationState, str, None] = None


def get_acclimatized_timezone(ctx: AcclimatizationContext) -> str:
    """
    The pilot's body-clock reference timezone.

    Decision table, first match wins:
        1. service says 'acclimatized' and away >= 48 h -> location
        2. away < 48 h                                  -> home base
        3. otherwise                                     -> location
    """
    state = getattr(ctx.backend_state, 'value', ctx.backend_state)

    if state == AcclimatizationState.ACCLIMATIZED.value and ctx.hours_away_from_base >= ACCLIMATIZATION_HOURS:
        return ctx.location_timezone

    if ctx.hours_away_from_base < ACCLIMATIZATION_HOURS:
        return ctx.home_base_timezone

    return ctx.location_timezone


def is_on_home_base_reference(ctx: AcclimatizationContext) -> bool:
    return get_acclimatized_timezone(ctx) == ctx.home_base_timezone


@dataclass(frozen=True)
class TripleTimeFormat:
    zulu: str                 # "HH:mmZ – HH:mmZ"
    local: str                # acclimatization-aware
    home: str                 # "HH:mm – HH:mm <Base>"
    local_is_home_ref: bool
