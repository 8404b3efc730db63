"""
session.py - One pilot's analysis session
==========================================

Ties settings, the service client and the timeline builder together:

    upload roster -> analyze -> transform -> (drill into duties) -> timeline

A failed analysis produces exactly one error Notification and leaves any
previous results in place. Nothing is retried.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Union

from api.airports import AirportDirectory
from api.client import FatigueApiClient
from api.exceptions import FatigueApiError
from core.parameters import TimelineConfig
from core.settings import CrewOverrides, SettingsStore
from core.timeline_builder import ContinuousTimelineBuilder
from core.timezone import TimezoneConverter
from core.transform import collect_airport_codes, transform_analysis_result, transform_duty_timeline
from models.data_models import Airport, AnalysisResults, DutyDetailTimeline, TimelineData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    level: str      # 'success' or 'error'
    message: str


class AnalysisSession:
    """
    Usage:
        session = AnalysisSession(client, SettingsStore(path))
        note = session.run_analysis('roster.pdf')
        timeline = session.timeline()
    """

    def __init__(self, client: FatigueApiClient, store: SettingsStore,
                 config: Optional[TimelineConfig] = None,
                 converter: Optional[TimezoneConverter] = None,
                 airports: Optional[AirportDirectory] = None):
        self.client = client
        self.store = store
        self.config = config or TimelineConfig.default_config()
        self.converter = converter or TimezoneConverter()
        self.crew_overrides = CrewOverrides(store.settings.crew_set)
        self._airport_directory = airports

        self.results: Optional[AnalysisResults] = None
        self.high_res_timelines: Dict[str, DutyDetailTimeline] = {}
        self.airports: Dict[str, Airport] = {}
        self.notifications: List[Notification] = []

    def _notify(self, level: str, message: str) -> Notification:
        note = Notification(level, message)
        self.notifications.append(note)
        return note

    def update_settings(self, **changes):
        """Persist settings. Never re-runs the analysis."""
        settings = self.store.update(**changes)
        if 'crew_set' in changes:
            self.crew_overrides.change_global(settings.crew_set)
        return settings

    def set_crew_override(self, duty_id: str, crew_set: str) -> None:
        self.crew_overrides.set(duty_id, crew_set)

    def run_analysis(self, roster: Union[str, Path, BinaryIO]) -> Notification:
        settings = self.store.settings
        try:
            payload = self.client.analyze_roster(
                roster,
                pilot_id=settings.pilot_id,
                home_base=settings.home_base,
                config_preset=settings.config_preset,
                crew_set=settings.crew_set,
                duty_crew_overrides=self.crew_overrides.to_form_value(),
            )
        except FatigueApiError as e:
            logger.error(f"Analysis failed: {e}")
            return self._notify('error', f"Analysis failed: {e}")

        self.results = transform_analysis_result(payload, settings.selected_month, self.config)
        self.high_res_timelines = {}
        self.airports = {}
        return self._notify('success', 'Analysis complete!')

    def load_duty_detail(self, duty_id: str) -> Optional[DutyDetailTimeline]:
        """Drill into one duty; None if there's no analysis or the fetch fails"""
        if self.results is None or not self.results.analysis_id:
            return None
        try:
            detail = self.client.get_duty_detail(self.results.analysis_id, duty_id)
        except FatigueApiError as e:
            logger.warning(f"[{duty_id}] Duty timeline unavailable: {e}")
            return None
        timeline = transform_duty_timeline(detail)
        self.high_res_timelines[duty_id] = timeline
        return timeline

    def load_all_duty_details(self) -> int:
        if self.results is None or not self.results.analysis_id:
            return 0
        details = self.client.fetch_all_duty_timelines(
            self.results.analysis_id, [d.duty_id for d in self.results.duties]
        )
        for duty_id, detail in details.items():
            self.high_res_timelines[duty_id] = transform_duty_timeline(detail)
        return len(details)

    def timeline(self, timezone: Optional[str] = None) -> TimelineData:
        """Continuous timeline for the current results (empty before any analysis)"""
        if self.results is None:
            return TimelineData()
        builder = ContinuousTimelineBuilder(self.config, self.converter)
        return builder.build(
            self.results.duties,
            self.results.month,
            rest_days_sleep=self.results.rest_days_sleep,
            high_res_timelines=self.high_res_timelines,
            timezone=timezone or self.results.home_base_timezone or 'UTC',
        )

    def resolve_airports(self) -> Dict[str, Airport]:
        """Timezone and coordinates for every airport flown in the current results"""
        if self.results is None:
            return {}
        if self._airport_directory is None:
            self._airport_directory = AirportDirectory(client=self.client)
        self.airports = self._airport_directory.resolve(collect_airport_codes(self.results))
        logger.info(f"Resolved {len(self.airports)} airports")
        return self.airports
