"""
schemas.py - Wire Models for the Analysis Service
==================================================

Pydantic mirrors of the JSON the analysis service returns:
- POST /api/analyze            -> AnalysisResponse
- GET  /api/duty/{aid}/{did}   -> DutyDetailResponse
- POST /api/airports/batch     -> List[AirportResponse]

Defaults are loose: the service adds fields over time and older
analyses omit newer ones, so only identifiers are required; core.transform
decides what a missing value means.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class AirportResponse(BaseModel):
    """Airport information from the service's airport database"""
    code: str           # IATA code (e.g., "LHR")
    timezone: str       # IANA timezone (e.g., "Europe/London")
    utc_offset_hours: Optional[float] = None  # Current UTC offset (accounts for DST)
    latitude: float = 0.0
    longitude: float = 0.0
    name: Optional[str] = None


class BatchAirportRequest(BaseModel):
    codes: List[str]  # List of IATA codes, max 50 per call


class DutySegmentResponse(BaseModel):
    flight_number: str = ""
    departure: str = ""
    arrival: str = ""
    departure_time: str = ""  # UTC ISO format
    arrival_time: str = ""    # UTC ISO format
    # Home base timezone times (HH:mm)
    departure_time_local: str = ""
    arrival_time_local: str = ""
    departure_time_home_tz: str = ""
    arrival_time_home_tz: str = ""
    # Airport-local times (in the actual departure/arrival airport timezone)
    departure_time_airport_local: str = ""
    arrival_time_airport_local: str = ""
    departure_timezone: str = ""
    arrival_timezone: str = ""
    departure_utc_offset: Optional[float] = None
    arrival_utc_offset: Optional[float] = None
    block_hours: Optional[float] = None  # derived from clock times when missing
    performance: Optional[float] = None  # only when the service computes per-leg scores


class QualityFactorsResponse(BaseModel):
    """Multiplicative factors applied to raw sleep duration (1.0 = neutral)"""
    base_efficiency: float = 1.0
    wocl_boost: float = 1.0
    late_onset_penalty: float = 1.0
    recovery_boost: float = 1.0
    time_pressure_factor: float = 1.0
    insufficient_penalty: float = 1.0
    pre_duty_awake_hours: Optional[float] = None


class ReferenceResponse(BaseModel):
    key: str
    short: str
    full: str = ""


class SleepBlockResponse(BaseModel):
    """Individual sleep period with timing and optional quality breakdown"""
    sleep_start_time: str = ""  # HH:mm in home-base timezone
    sleep_end_time: str = ""
    sleep_start_iso: Optional[str] = None
    sleep_end_iso: Optional[str] = None
    sleep_type: str = "main"    # 'main', 'nap', 'anchor'
    duration_hours: float = 0.0
    effective_hours: float = 0.0
    quality_factor: float = 1.0

    location_timezone: Optional[str] = None
    environment: Optional[str] = None           # 'home', 'hotel', 'crew_rest'
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

    quality_factors: Optional[QualityFactorsResponse] = None


class SleepQualityResponse(BaseModel):
    """Sleep estimate preceding a duty, with methodology"""
    total_sleep_hours: float = 0.0
    effective_sleep_hours: float = 0.0
    sleep_efficiency: float = 0.0
    wocl_overlap_hours: float = 0.0
    sleep_strategy: str = "unknown"
    confidence: float = 0.0
    warnings: List[str] = []
    sleep_blocks: List[SleepBlockResponse] = []
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
    quality_factors: Optional[QualityFactorsResponse] = None
    references: List[ReferenceResponse] = []


class InFlightRestBlockResponse(BaseModel):
    start_utc: Optional[str] = None
    end_utc: Optional[str] = None
    duration_hours: float = 0.0
    effective_sleep_hours: float = 0.0
    quality_factor: float = 1.0
    environment: str = ""
    crew_member_id: Optional[str] = None
    crew_set: Optional[str] = None
    is_during_wocl: bool = False


class ULRComplianceResponse(BaseModel):
    is_ulr: bool = False
    fdp_within_limit: bool = True
    rest_periods_valid: bool = True
    pre_ulr_rest_compliant: bool = True
    post_ulr_rest_compliant: bool = True
    monthly_ulr_count: int = 0
    monthly_compliant: bool = True
    violations: List[str] = []
    warnings: List[str] = []


class DutyResponse(BaseModel):
    duty_id: str
    date: str
    report_time_utc: str = ""
    release_time_utc: str = ""
    report_time_local: Optional[str] = None    # HH:MM in home timezone
    release_time_local: Optional[str] = None
    report_time_home_tz: Optional[str] = None
    release_time_home_tz: Optional[str] = None
    duty_hours: float = 0.0
    sectors: int = 0
    segments: List[DutySegmentResponse] = []

    # Performance metrics
    min_performance: float = 0.0
    avg_performance: float = 0.0
    landing_performance: Optional[float] = None

    # Fatigue metrics
    sleep_debt: float = 0.0
    wocl_hours: float = 0.0
    prior_sleep: float = 0.0
    pre_duty_awake_hours: float = 0.0

    # Risk
    risk_level: str = "unknown"  # 'low', 'moderate', 'high', 'critical', 'extreme'
    is_reportable: bool = False
    pinch_events: int = 0

    # EASA FDP limits
    max_fdp_hours: Optional[float] = None
    extended_fdp_hours: Optional[float] = None
    used_discretion: bool = False
    circadian_phase_shift: Optional[float] = None

    # The service has shipped both keys; sleep_quality wins
    sleep_quality: Optional[SleepQualityResponse] = None
    sleep_estimate: Optional[SleepQualityResponse] = None

    # Augmented crew / ULR
    crew_composition: str = "standard"
    rest_facility_class: Optional[str] = None
    is_ulr: bool = False
    acclimatization_state: str = "acclimatized"
    ulr_compliance: Optional[ULRComplianceResponse] = None
    inflight_rest_blocks: List[InFlightRestBlockResponse] = []
    return_to_deck_performance: Optional[float] = None

    time_validation_warnings: List[str] = []


class RestDaySleepResponse(BaseModel):
    """Sleep pattern for a rest day (no duties)"""
    date: str  # YYYY-MM-DD
    sleep_blocks: List[SleepBlockResponse] = []
    total_sleep_hours: float = 0.0
    effective_sleep_hours: float = 0.0
    sleep_efficiency: float = 0.0
    strategy_type: str = "recovery"
    confidence: float = 0.0

    explanation: Optional[str] = None
    confidence_basis: Optional[str] = None
    quality_factors: Optional[QualityFactorsResponse] = None
    references: List[ReferenceResponse] = []

    recovery_night_number: Optional[int] = None
    cumulative_recovery_fraction: Optional[float] = None


class BodyClockEntryResponse(BaseModel):
    timestamp_utc: str
    phase_shift_hours: float = 0.0
    reference_timezone: str = ""


class AnalysisResponse(BaseModel):
    analysis_id: Optional[str] = None
    roster_id: Optional[str] = None
    pilot_id: Optional[str] = None
    pilot_name: Optional[str] = None
    pilot_base: Optional[str] = None
    pilot_aircraft: Optional[str] = None
    home_base_timezone: Optional[str] = None
    month: Optional[str] = None  # "2026-02"

    # Summary
    total_duties: int = 0
    total_sectors: int = 0
    total_duty_hours: float = 0.0
    total_block_hours: Optional[float] = None

    # Risk summary
    high_risk_duties: int = 0
    critical_risk_duties: int = 0
    total_pinch_events: int = 0

    # Sleep metrics
    avg_sleep_per_night: float = 0.0
    max_sleep_debt: float = 0.0

    # Worst case
    worst_duty_id: Optional[str] = None
    worst_performance: float = 0.0

    duties: List[DutyResponse] = []
    rest_days_sleep: List[RestDaySleepResponse] = []
    body_clock_timeline: List[BodyClockEntryResponse] = []

    total_ulr_duties: int = 0
    total_augmented_duties: int = 0
    ulr_violations: List[str] = []


# ============================================================================
# HIGH-RESOLUTION DUTY DETAIL
# ============================================================================

class TimelinePointResponse(BaseModel):
    """One five-minute sample"""
    timestamp: str
    timestamp_local: Optional[str] = None
    performance: float
    sleep_pressure: float = 0.0
    circadian: float = 0.0
    sleep_inertia: float = 0.0
    hours_on_duty: float = 0.0
    time_on_task_penalty: float = 0.0
    flight_phase: Optional[str] = None
    is_critical: bool = False
    is_in_rest: bool = False


class DutySummaryResponse(BaseModel):
    min_performance: float = 0.0
    avg_performance: float = 0.0
    landing_performance: Optional[float] = None
    wocl_hours: float = 0.0
    prior_sleep: float = 0.0
    pre_duty_awake_hours: float = 0.0
    sleep_debt: float = 0.0


class PinchEventResponse(BaseModel):
    timestamp: str
    performance: float
    phase: Optional[str] = None
    cause: Optional[str] = None


class DutyDetailResponse(BaseModel):
    duty_id: str
    timeline: List[TimelinePointResponse] = []
    summary: DutySummaryResponse = DutySummaryResponse()
    pinch_events: List[PinchEventResponse] = []


# ============================================================================
# TIMELINE SERVICE (api/timeline_server.py)
# ============================================================================

class TimelineRequest(BaseModel):
    analysis: AnalysisResponse
    month: Optional[str] = None       # "2026-02", defaults to the analysis month
    timezone: str = "UTC"              # month boundaries are midnight here
    high_res_timelines: Dict[str, DutyDetailResponse] = {}
    config_overrides: Dict[str, Dict[str, Any]] = {}
    smooth: bool = False


class TripleTimeRequest(BaseModel):
    departure_utc: str
    arrival_utc: str
    departure_timezone: str
    arrival_timezone: str
    home_base_timezone: str
    departure_code: str = ""
    arrival_code: str = ""
    hours_away_from_base: float = 0.0
    acclimatization_state: Optional[str] = None


class TripleTimeResponse(BaseModel):
    zulu: str
    local: str
    home: str
    local_is_home_ref: bool
