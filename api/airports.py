"""
Airport directory: IATA code -> timezone and coordinates.

Offline lookups go through the airportsdata package (~7,800 airports).
Codes it doesn't know are asked of the analysis service in one batch;
codes nobody knows are remembered as misses so they aren't asked again.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Set

import airportsdata
import pytz

from api.client import AIRPORT_BATCH_LIMIT, FatigueApiClient
from api.exceptions import FatigueApiError
from core.transform import transform_airport
from models.data_models import Airport

logger = logging.getLogger(__name__)


def current_utc_offset(timezone: str, at: Optional[datetime] = None) -> Optional[float]:
    """UTC offset in hours (DST aware) or None for an unknown zone"""
    try:
        tz = pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError:
        return None
    moment = at or datetime.now(pytz.utc)
    if moment.tzinfo is None:
        moment = pytz.utc.localize(moment)
    return moment.astimezone(tz).utcoffset().total_seconds() / 3600


class AirportDirectory:
    """
    Usage:
        directory = AirportDirectory(client=FatigueApiClient())
        airports = directory.resolve(['DOH', 'LHR', 'XYZ'])
    """

    def __init__(self, client: Optional[FatigueApiClient] = None,
                 database: Optional[Mapping[str, dict]] = None):
        self.client = client
        self._db = database if database is not None else airportsdata.load('IATA')
        self._custom: Dict[str, Airport] = {}
        self._cache: Dict[str, Airport] = {}
        self._misses: Set[str] = set()

    def add_custom_airport(self, code: str, timezone: str, latitude: float, longitude: float, name: str = ''):
        """Add/override an airport (military or private fields missing upstream)"""
        code = code.upper()
        self._custom[code] = Airport(
            code=code, timezone=timezone, latitude=latitude, longitude=longitude, name=name,
        )
        self._cache.pop(code, None)
        self._misses.discard(code)
        logger.info(f"Added custom airport {code} ({name or timezone})")

    def lookup_local(self, code: str, at: Optional[datetime] = None) -> Optional[Airport]:
        """Custom overrides first, then airportsdata"""
        code = code.upper()
        if code in self._cache:
            return self._cache[code]

        airport = self._custom.get(code)
        if airport is None:
            entry = self._db.get(code)
            if entry:
                airport = Airport(
                    code=entry['iata'],
                    timezone=entry['tz'],
                    utc_offset_hours=current_utc_offset(entry['tz'], at),
                    latitude=entry['lat'],
                    longitude=entry['lon'],
                    name=entry.get('name', ''),
                )
        if airport is not None:
            self._cache[code] = airport
        return airport

    def resolve(self, codes: Iterable[str], at: Optional[datetime] = None) -> Dict[str, Airport]:
        """
        Airports for `codes`. Unknown codes are simply absent from the result.
        A failing service call is logged; local results are still returned.
        """
        wanted = []
        for code in codes:
            code = code.upper()
            if code and code not in wanted:
                wanted.append(code)

        found: Dict[str, Airport] = {}
        remote: List[str] = []
        for code in wanted:
            airport = self.lookup_local(code, at)
            if airport is not None:
                found[code] = airport
            elif code not in self._misses:
                remote.append(code)

        if remote and self.client is not None:
            for start in range(0, len(remote), AIRPORT_BATCH_LIMIT):
                batch = remote[start:start + AIRPORT_BATCH_LIMIT]
                try:
                    records = self.client.get_airports_batch(batch)
                except FatigueApiError as e:
                    logger.warning(f"Airport lookup failed for {', '.join(batch)}: {e}")
                    continue
                for record in records:
                    airport = transform_airport(record)
                    self._cache[airport.code] = airport
                    if airport.code in batch:
                        found[airport.code] = airport
                self._misses.update(c for c in batch if c not in found)
        elif remote:
            self._misses.update(remote)

        missing = [c for c in wanted if c not in found]
        if missing:
            logger.warning(f"Unknown airports: {', '.join(missing)}")
        return found
