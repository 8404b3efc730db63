"""
data_models.py - Core Data Structures
======================================

Domain model for analysis results, duties, sleep, and the continuous
performance timeline built from them.

Everything in here is constructed once per analysis response by
core.transform and treated as read-only afterwards.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import List, Optional, Dict, Any, Tuple
from enum import Enum

import pandas as pd


# ============================================================================
# ENUMS
# ============================================================================

class AcclimatizationState(Enum):
    """
    EASA ORO.FTL.105 acclimatization states as reported by the service
    """
    ACCLIMATIZED = "acclimatized"    # 'B' - acclimatized to departure time zone
    UNKNOWN = "unknown"               # 'X' - unknown state of acclimatisation
    DEPARTED = "departed"             # 'D' - acclimatized to destination time zone


class CrewComposition(Enum):
    """Crew complement classification per EASA ORO.FTL.205"""
    STANDARD = "standard"              # 2 pilots (standard FDP)
    AUGMENTED_3 = "augmented_3"        # 3 pilots (extended range, CS FTL.1.205)
    AUGMENTED_4 = "augmented_4"        # 4 pilots (ULR - Crew A + Crew B)


class RestFacilityClass(Enum):
    """In-flight rest facility classification per CS FTL.1.205"""
    CLASS_1 = "class_1"
    CLASS_2 = "class_2"
    CLASS_3 = "class_3"


class ULRCrewSet(Enum):
    """ULR crew set designation (who operates take-off/landing vs. relief)"""
    CREW_A = "crew_a"
    CREW_B = "crew_b"


class TimelinePhase(Enum):
    """What the pilot is doing at a plotted point"""
    DUTY = "duty"
    SLEEP = "sleep"
    AWAKE = "awake"
    REST = "rest"


class RegionType(Enum):
    """Background band drawn behind the performance curve"""
    DUTY = "duty"
    SLEEP = "sleep"


# ============================================================================
# SLEEP STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class QualityFactors:
    """
    Multiplicative sleep-quality factors as computed by the service.
    Displayed only; efficiency is never recomputed from these.
    """
    base_efficiency: float = 1.0       # home 0.90, hotel 0.85, crew_rest 0.70
    wocl_boost: float = 1.0
    late_onset_penalty: float = 1.0
    recovery_boost: float = 1.0
    time_pressure_factor: float = 1.0
    insufficient_penalty: float = 1.0
    pre_duty_awake_hours: Optional[float] = None


@dataclass(frozen=True)
class Reference:
    """Peer-reviewed citation attached to a sleep calculation"""
    key: str
    short: str
    full: str


@dataclass(frozen=True)
class SleepBlock:
    """Individual modelled sleep period"""
    sleep_start_time: str = ""       # HH:mm home base
    sleep_end_time: str = ""
    sleep_start_iso: Optional[str] = None
    sleep_end_iso: Optional[str] = None
    sleep_type: str = "main"         # 'main' or 'nap'
    duration_hours: float = 0.0
    effective_hours: float = 0.0
    quality_factor: float = 1.0

    location_timezone: Optional[str] = None
    environment: Optional[str] = None
    sleep_start_time_location_tz: Optional[str] = None
    sleep_end_time_location_tz: Optional[str] = None

    sleep_start_day: Optional[int] = None
    sleep_start_hour: Optional[float] = None
    sleep_end_day: Optional[int] = None
    sleep_end_hour: Optional[float] = None

    sleep_start_day_home_tz: Optional[int] = None
    sleep_start_hour_home_tz: Optional[float] = None
    sleep_end_day_home_tz: Optional[int] = None
    sleep_end_hour_home_tz: Optional[float] = None
    sleep_start_time_home_tz: Optional[str] = None
    sleep_end_time_home_tz: Optional[str] = None

    quality_factors: Optional[QualityFactors] = None


@dataclass(frozen=True)
class SleepEstimate:
    """Sleep before a duty, as estimated by the service's sleep strategy engine"""
    total_sleep_hours: float = 0.0
    effective_sleep_hours: float = 0.0
    sleep_efficiency: float = 0.0
    wocl_overlap_hours: float = 0.0
    sleep_strategy: str = "unknown"   # anchor, split, nap, recovery, ...
    confidence: float = 0.0
    warnings: Tuple[str, ...] = ()

    sleep_start_time: Optional[str] = None
    sleep_end_time: Optional[str] = None
    sleep_start_iso: Optional[str] = None
    sleep_end_iso: Optional[str] = None

    sleep_start_day: Optional[int] = None
    sleep_start_hour: Optional[float] = None
    sleep_end_day: Optional[int] = None
    sleep_end_hour: Optional[float] = None

    sleep_start_day_home_tz: Optional[int] = None
    sleep_start_hour_home_tz: Optional[float] = None
    sleep_end_day_home_tz: Optional[int] = None
    sleep_end_hour_home_tz: Optional[float] = None
    sleep_start_time_home_tz: Optional[str] = None
    sleep_end_time_home_tz: Optional[str] = None

    location_timezone: Optional[str] = None
    environment: Optional[str] = None

    explanation: Optional[str] = None
    confidence_basis: Optional[str] = None
    quality_factors: Optional[QualityFactors] = None
    references: Tuple[Reference, ...] = ()
    sleep_blocks: Tuple[SleepBlock, ...] = ()

    @property
    def has_window(self) -> bool:
        return bool(self.sleep_start_iso and self.sleep_end_iso)


@dataclass(frozen=True)
class RestDaySleep:
    """Sleep pattern on a day without duties (or post-duty layover sleep)"""
    date: Optional[date]
    sleep_blocks: Tuple[SleepBlock, ...] = ()
    total_sleep_hours: float = 0.0
    effective_sleep_hours: float = 0.0
    sleep_efficiency: float = 0.0
    strategy_type: str = "recovery"
    confidence: float = 0.0
    explanation: Optional[str] = None
    confidence_basis: Optional[str] = None
    quality_factors: Optional[QualityFactors] = None
    references: Tuple[Reference, ...] = ()
    recovery_night_number: Optional[int] = None
    cumulative_recovery_fraction: Optional[float] = None


# ============================================================================
# ROSTER & DUTY STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Airport:
    """Airport with timezone information"""
    code: str                          # IATA (e.g., "LHR")
    timezone: str                      # IANA (e.g., "Europe/London")
    utc_offset_hours: Optional[float] = None
    latitude: float = 0.0
    longitude: float = 0.0
    name: str = ""


@dataclass(frozen=True)
class FlightSegment:
    """Single takeoff-to-landing leg"""
    flight_number: str
    departure: str
    arrival: str
    departure_time_utc: str = ""            # ISO
    arrival_time_utc: str = ""
    departure_time_zulu: str = ""           # "HH:mmZ"
    arrival_time_zulu: str = ""
    departure_time: str = ""                # HH:mm home base
    arrival_time: str = ""
    departure_time_airport_local: str = ""  # HH:mm at the airport
    arrival_time_airport_local: str = ""
    departure_timezone: str = ""
    arrival_timezone: str = ""
    departure_utc_offset: Optional[float] = None
    arrival_utc_offset: Optional[float] = None
    block_hours: float = 0.0
    performance: float = 0.0


@dataclass(frozen=True)
class InFlightRestBlock:
    """Bunk rest taken during an augmented-crew / ULR duty"""
    start_utc: Optional[str] = None
    end_utc: Optional[str] = None
    duration_hours: float = 0.0
    effective_sleep_hours: float = 0.0
    quality_factor: float = 1.0
    environment: str = ""
    crew_member_id: Optional[str] = None
    crew_set: Optional[str] = None
    is_during_wocl: bool = False


@dataclass(frozen=True)
class ULRCompliance:
    """ULR-specific compliance summary from the service"""
    is_ulr: bool = False
    fdp_within_limit: bool = True
    rest_periods_valid: bool = True
    pre_ulr_rest_compliant: bool = True
    post_ulr_rest_compliant: bool = True
    monthly_ulr_count: int = 0
    monthly_compliant: bool = True
    violations: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Duty:
    """Complete duty period with its performance summary"""
    duty_id: str
    date: Optional[date]
    report_time_utc: str                 # ISO
    release_time_utc: str
    duty_hours: float
    flight_segments: Tuple[FlightSegment, ...] = ()

    date_string: str = ""
    day_of_week: str = ""
    report_time_local: Optional[str] = None   # HH:mm home base
    release_time_local: Optional[str] = None
    block_hours: float = 0.0
    sectors: int = 0

    # Performance (0-100)
    min_performance: float = 0.0
    avg_performance: float = 0.0
    landing_performance: float = 0.0

    # Fatigue context
    sleep_debt: float = 0.0
    wocl_exposure: float = 0.0
    prior_sleep: float = 0.0
    pre_duty_awake_hours: float = 0.0

    # Risk, derived from the shared threshold table
    overall_risk: str = "UNKNOWN"
    min_performance_risk: str = "UNKNOWN"
    landing_risk: str = "UNKNOWN"
    backend_risk_level: str = "unknown"   # as sent, kept for reference
    sms_reportable: bool = False
    pinch_events: int = 0

    # EASA FTL limits
    max_fdp_hours: Optional[float] = None
    extended_fdp_hours: Optional[float] = None
    used_discretion: bool = False
    circadian_phase_shift: Optional[float] = None

    sleep_estimate: Optional[SleepEstimate] = None

    # Augmented crew / ULR
    crew_composition: CrewComposition = CrewComposition.STANDARD
    rest_facility_class: Optional[RestFacilityClass] = None
    is_ulr: bool = False
    acclimatization_state: AcclimatizationState = AcclimatizationState.ACCLIMATIZED
    ulr_compliance: Optional[ULRCompliance] = None
    inflight_rest_blocks: Tuple[InFlightRestBlock, ...] = ()
    return_to_deck_performance: Optional[float] = None

    time_validation_warnings: Tuple[str, ...] = ()

    def __post_init__(self):
        assert 0 <= self.min_performance <= 100, f"Min performance out of range: {self.min_performance}"
        assert 0 <= self.avg_performance <= 100, f"Avg performance out of range: {self.avg_performance}"
        assert self.min_performance <= self.avg_performance, \
            f"Min performance {self.min_performance} above average {self.avg_performance}"

    @property
    def label(self) -> str:
        """Flight numbers joined for tooltips, e.g. 'QR100 → QR101'"""
        return ' → '.join(s.flight_number for s in self.flight_segments if s.flight_number)

    @property
    def departure(self) -> Optional[str]:
        return self.flight_segments[0].departure if self.flight_segments else None

    @property
    def arrival(self) -> Optional[str]:
        return self.flight_segments[-1].arrival if self.flight_segments else None


# ============================================================================
# HIGH-RESOLUTION DUTY TIMELINE (GET /api/duty/{analysis_id}/{duty_id})
# ============================================================================

@dataclass(frozen=True)
class DutyTimelineSample:
    """One five-minute sample from the service's per-duty simulation"""
    timestamp: str
    performance: float
    sleep_pressure: float = 0.0
    circadian: float = 0.0
    sleep_inertia: float = 0.0
    hours_on_duty: float = 0.0
    time_on_task_penalty: float = 0.0
    flight_phase: Optional[str] = None
    is_critical: bool = False
    is_in_rest: bool = False
    timestamp_local: Optional[str] = None


@dataclass(frozen=True)
class DutyTimelineSummary:
    min_performance: float = 0.0
    avg_performance: float = 0.0
    landing_performance: Optional[float] = None
    wocl_hours: float = 0.0
    prior_sleep: float = 0.0
    pre_duty_awake_hours: float = 0.0
    sleep_debt: float = 0.0


@dataclass(frozen=True)
class DutyPinchEvent:
    """Low circadian alertness + high sleep pressure during a critical phase"""
    timestamp: str
    performance: float
    phase: Optional[str] = None
    cause: Optional[str] = None


@dataclass(frozen=True)
class DutyDetailTimeline:
    duty_id: str
    timeline: Tuple[DutyTimelineSample, ...] = ()
    summary: DutyTimelineSummary = field(default_factory=DutyTimelineSummary)
    pinch_events: Tuple[DutyPinchEvent, ...] = ()


# ============================================================================
# ANALYSIS RESULT
# ============================================================================

@dataclass(frozen=True)
class BodyClockEntry:
    """Point on the circadian adaptation curve"""
    timestamp_utc: str
    phase_shift_hours: float
    reference_timezone: str


@dataclass(frozen=True)
class AnalysisStatistics:
    total_duties: int = 0
    total_sectors: int = 0
    total_duty_hours: float = 0.0
    total_block_hours: float = 0.0
    high_risk_duties: int = 0
    critical_risk_duties: int = 0
    max_sleep_debt: float = 0.0
    total_pinch_events: int = 0
    avg_sleep_per_night: float = 0.0
    worst_performance: float = 0.0
    worst_duty_id: Optional[str] = None
    total_ulr_duties: int = 0
    total_augmented_duties: int = 0
    ulr_violations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResults:
    """Transformed analysis response, ready for the timeline builder"""
    generated_at: datetime
    month: date
    statistics: AnalysisStatistics
    duties: Tuple[Duty, ...] = ()
    rest_days_sleep: Tuple[RestDaySleep, ...] = ()
    body_clock_timeline: Tuple[BodyClockEntry, ...] = ()
    analysis_id: Optional[str] = None
    pilot_id: Optional[str] = None
    pilot_name: Optional[str] = None
    pilot_base: Optional[str] = None
    pilot_aircraft: Optional[str] = None
    home_base_timezone: Optional[str] = None

    def get_duty(self, duty_id: str) -> Optional[Duty]:
        """Find duty by ID"""
        return next((d for d in self.duties if d.duty_id == duty_id), None)


# ============================================================================
# CONTINUOUS TIMELINE
# ============================================================================

@dataclass
class ContinuousTimelinePoint:
    """Single plotted sample on the month-long performance chart"""
    timestamp_ms: int
    performance: float               # 0-100 (left axis)
    sleep_reservoir: float           # 50-100 (right axis)
    phase: TimelinePhase
    risk_level: str

    # High-resolution only
    circadian: Optional[float] = None
    homeostatic: Optional[float] = None
    sleep_inertia: Optional[float] = None
    flight_phase: Optional[str] = None
    is_high_res: bool = False

    hours_awake: Optional[float] = None
    sleep_debt: Optional[float] = None
    prior_sleep: Optional[float] = None

    # Tooltip context
    duty_id: Optional[str] = None
    duty_label: Optional[str] = None
    flight_number: Optional[str] = None
    departure: Optional[str] = None
    arrival: Optional[str] = None


@dataclass
class TimelineRegion:
    """Duty or sleep interval drawn as a background band"""
    start_ms: int
    end_ms: int
    type: RegionType
    label: Optional[str] = None
    duty_id: Optional[str] = None
    risk_level: Optional[str] = None

    def __post_init__(self):
        assert self.end_ms >= self.start_ms, \
            f"Region ends before it starts: {self.start_ms} -> {self.end_ms}"

    @property
    def duration_hours(self) -> float:
        return (self.end_ms - self.start_ms) / 3_600_000


@dataclass
class TimelineData:
    """Output of the continuous timeline builder"""
    points: List[ContinuousTimelinePoint] = field(default_factory=list)
    duty_regions: List[TimelineRegion] = field(default_factory=list)
    sleep_regions: List[TimelineRegion] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.points or self.duty_regions or self.sleep_regions)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict with enums flattened to their values"""
        def _flatten(obj) -> Dict[str, Any]:
            record = asdict(obj)
            for key, value in record.items():
                if isinstance(value, Enum):
                    record[key] = value.value
            return record

        return {
            'points': [_flatten(p) for p in self.points],
            'duty_regions': [_flatten(r) for r in self.duty_regions],
            'sleep_regions': [_flatten(r) for r in self.sleep_regions],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """
        Points as a DataFrame indexed by UTC timestamp.
        Useful for CSV export or resampling onto a fixed grid.
        """
        records = self.to_dict()['points']
        if not records:
            return pd.DataFrame(columns=['timestamp_ms', 'performance', 'sleep_reservoir', 'phase', 'risk_level'])
        df = pd.DataFrame.from_records(records)
        df.index = pd.to_datetime(df['timestamp_ms'], unit='ms', utc=True)
        df.index.name = 'timestamp_utc'
        return df


# ============================================================================
# PILOT SETTINGS
# ============================================================================

@dataclass
class PilotSettings:
    """UI-local preferences, read when an analysis is requested"""
    pilot_id: str = "P12345"
    home_base: str = "DOH"
    analysis_type: str = "single"        # 'single' or 'range'
    selected_month: date = date(2026, 2, 1)
    theme: str = "dark"
    config_preset: str = "default"
    crew_set: str = "crew_b"
