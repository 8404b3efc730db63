"""
Field Mapping
=============

Analysis service payload (api.schemas) -> domain model (models.data_models).

Besides renaming, this is where derived values are filled in:
- block hours from local clock times when the service omits them
- per-segment performance for multi-sector duties
- duty risk labels from the shared RiskThresholds table
- sleep-estimate grid positions from ISO strings
"""

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pytz

from api.schemas import (
    AirportResponse,
    AnalysisResponse,
    DutyDetailResponse,
    DutyResponse,
    DutySegmentResponse,
    QualityFactorsResponse,
    RestDaySleepResponse,
    SleepBlockResponse,
    SleepQualityResponse,
)
from core.parameters import RiskThresholds, SegmentInterpolationParameters, TimelineConfig
from core.timezone import parse_hhmm, parse_iso_utc, utc_to_zulu
from models.data_models import (
    AcclimatizationState,
    Airport,
    AnalysisResults,
    AnalysisStatistics,
    BodyClockEntry,
    CrewComposition,
    Duty,
    DutyDetailTimeline,
    DutyPinchEvent,
    DutyTimelineSample,
    DutyTimelineSummary,
    FlightSegment,
    InFlightRestBlock,
    QualityFactors,
    Reference,
    RestDaySleep,
    RestFacilityClass,
    SleepBlock,
    SleepEstimate,
    ULRCompliance,
)

logger = logging.getLogger(__name__)

_ISO_DAY_HOUR = re.compile(r'^(\d{4})-(\d{2})-(\d{2})[T ](\d{2}):(\d{2})')


# ============================================================================
# BLOCK HOURS
# ============================================================================

def _clock_minutes(value: Optional[str]) -> Optional[int]:
    clock = parse_hhmm(value)
    return clock.hour * 60 + clock.minute if clock is not None else None


def compute_segment_block_hours(segment: DutySegmentResponse) -> float:
    """
    Block hours for one leg.

    Uses the service figure when it is a positive number, otherwise the
    difference of the local clock times (falling back to the UTC ISO times),
    wrapping past midnight. 0.0 when neither pair can be read.
    """
    block = segment.block_hours
    if block is not None and math.isfinite(block) and block > 0:
        return block

    dep = _clock_minutes(segment.departure_time_local)
    if dep is None:
        dep = _clock_minutes(segment.departure_time)
    arr = _clock_minutes(segment.arrival_time_local)
    if arr is None:
        arr = _clock_minutes(segment.arrival_time)
    if dep is None or arr is None:
        return 0.0

    diff = arr - dep
    if diff < 0:
        diff += 24 * 60
    return max(0.0, diff / 60)


# ============================================================================
# SEGMENT PERFORMANCE
# ============================================================================

def calculate_segment_performances(
    duty: DutyResponse,
    params: Optional[SegmentInterpolationParameters] = None,
) -> List[float]:
    """
    Per-leg performance for a duty where the service only sent duty-level
    min/avg/landing scores.

    DISPLAY-ONLY APPROXIMATION. The start estimate
        start = min(100, avg + w * (avg - landing))       (w = 0.5)
    has no published basis; it only gives multi-sector duties distinct
    per-leg values until the five-minute timeline is fetched. Legs are
    placed by elapsed time since report (arrival timestamp, or cumulative
    block + turnaround when it can't be parsed) and linearly interpolated
    from `start` to the landing value over the duty length.

    Per-leg figures sent by the service always win over the estimate.
    """
    params = params or SegmentInterpolationParameters()
    segments = duty.segments
    if not segments:
        return []

    avg = duty.avg_performance
    if len(segments) == 1:
        estimates = [avg]
    else:
        estimates = _interpolate_segments(duty, params)

    return [
        seg.performance if seg.performance is not None else est
        for seg, est in zip(segments, estimates)
    ]


def _interpolate_segments(duty: DutyResponse, params: SegmentInterpolationParameters) -> List[float]:
    avg = duty.avg_performance
    report = parse_iso_utc(duty.report_time_utc)
    if report is None:
        logger.debug(f"[{duty.duty_id}] No parseable report time, using average for every segment")
        return [avg] * len(duty.segments)

    elapsed = []
    cumulative = 0.0
    for seg in duty.segments:
        arrival = parse_iso_utc(seg.arrival_time)
        if arrival is not None:
            elapsed.append((arrival - report).total_seconds() / 3600)
        else:
            cumulative += (seg.block_hours or params.nominal_block_hours) + params.turnaround_hours
            elapsed.append(cumulative)

    final_landing = duty.landing_performance if duty.landing_performance is not None else duty.min_performance
    start = min(100.0, avg + params.start_weight * (avg - final_landing))

    hours = np.asarray(elapsed, dtype=float)
    if duty.duty_hours > 0:
        fraction = hours / duty.duty_hours
    else:
        fraction = np.zeros_like(hours)

    performance = start - (start - final_landing) * fraction
    return [float(p) for p in np.clip(performance, 0.0, 100.0)]


# ============================================================================
# SLEEP
# ============================================================================

def _iso_day_hour(iso: Optional[str]):
    """Day/hour as written in the ISO string (no zone conversion)"""
    if not iso:
        return None
    match = _ISO_DAY_HOUR.match(iso)
    if not match:
        return None
    return int(match.group(3)), int(match.group(4)) + int(match.group(5)) / 60


def _quality_factors(qf: Optional[QualityFactorsResponse]) -> Optional[QualityFactors]:
    if qf is None:
        return None
    return QualityFactors(**qf.model_dump())


def _references(refs) -> tuple:
    return tuple(Reference(key=r.key, short=r.short, full=r.full) for r in refs)


def transform_sleep_block(block: SleepBlockResponse) -> SleepBlock:
    fields = block.model_dump(exclude={'quality_factors'})
    return SleepBlock(**fields, quality_factors=_quality_factors(block.quality_factors))


def transform_sleep_estimate(sleep: SleepQualityResponse) -> SleepEstimate:
    """
    Normalize a sleep estimate.

    Start/end ISO fall back to the first sleep block; grid day/hour are
    read from the ISO strings when the service didn't send them.
    Efficiency is passed through untouched.
    """
    first_block = sleep.sleep_blocks[0] if sleep.sleep_blocks else None
    start_iso = sleep.sleep_start_iso or (first_block.sleep_start_iso if first_block else None)
    end_iso = sleep.sleep_end_iso or (first_block.sleep_end_iso if first_block else None)

    start_day, start_hour = sleep.sleep_start_day, sleep.sleep_start_hour
    end_day, end_hour = sleep.sleep_end_day, sleep.sleep_end_hour

    if start_day is None:
        parsed = _iso_day_hour(start_iso)
        if parsed:
            start_day, start_hour = parsed
    if end_day is None:
        parsed = _iso_day_hour(end_iso)
        if parsed:
            end_day, end_hour = parsed

    return SleepEstimate(
        total_sleep_hours=sleep.total_sleep_hours,
        effective_sleep_hours=sleep.effective_sleep_hours,
        sleep_efficiency=sleep.sleep_efficiency,
        wocl_overlap_hours=sleep.wocl_overlap_hours,
        sleep_strategy=sleep.sleep_strategy,
        confidence=sleep.confidence,
        warnings=tuple(sleep.warnings),
        sleep_start_time=sleep.sleep_start_time,
        sleep_end_time=sleep.sleep_end_time,
        sleep_start_iso=start_iso,
        sleep_end_iso=end_iso,
        sleep_start_day=start_day,
        sleep_start_hour=start_hour,
        sleep_end_day=end_day,
        sleep_end_hour=end_hour,
        sleep_start_day_home_tz=sleep.sleep_start_day_home_tz,
        sleep_start_hour_home_tz=sleep.sleep_start_hour_home_tz,
        sleep_end_day_home_tz=sleep.sleep_end_day_home_tz,
        sleep_end_hour_home_tz=sleep.sleep_end_hour_home_tz,
        sleep_start_time_home_tz=sleep.sleep_start_time_home_tz,
        sleep_end_time_home_tz=sleep.sleep_end_time_home_tz,
        location_timezone=sleep.location_timezone,
        environment=sleep.environment,
        explanation=sleep.explanation,
        confidence_basis=sleep.confidence_basis,
        quality_factors=_quality_factors(sleep.quality_factors),
        references=_references(sleep.references),
        sleep_blocks=tuple(transform_sleep_block(b) for b in sleep.sleep_blocks),
    )


def transform_rest_day(rest_day: RestDaySleepResponse) -> RestDaySleep:
    return RestDaySleep(
        date=_parse_date(rest_day.date),
        sleep_blocks=tuple(transform_sleep_block(b) for b in rest_day.sleep_blocks),
        total_sleep_hours=rest_day.total_sleep_hours,
        effective_sleep_hours=rest_day.effective_sleep_hours,
        sleep_efficiency=rest_day.sleep_efficiency,
        strategy_type=rest_day.strategy_type,
        confidence=rest_day.confidence,
        explanation=rest_day.explanation,
        confidence_basis=rest_day.confidence_basis,
        quality_factors=_quality_factors(rest_day.quality_factors),
        references=_references(rest_day.references),
        recovery_night_number=rest_day.recovery_night_number,
        cumulative_recovery_fraction=rest_day.cumulative_recovery_fraction,
    )


# ============================================================================
# DUTY
# ============================================================================

def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.warning(f"Unparseable date {value!r}")
        return None


def _enum_or(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _bounded_performance(duty: DutyResponse):
    """Clamp to [0,100] and enforce min <= avg"""
    avg = float(np.clip(duty.avg_performance, 0.0, 100.0))
    low = float(np.clip(duty.min_performance, 0.0, 100.0))
    if low > avg:
        logger.warning(f"[{duty.duty_id}] Min performance {low:.1f} above average {avg:.1f}, capping at average")
        low = avg
    if duty.landing_performance is None:
        landing = low
    else:
        landing = float(np.clip(duty.landing_performance, 0.0, 100.0))
    return low, avg, landing


def transform_segment(segment: DutySegmentResponse, performance: float) -> FlightSegment:
    return FlightSegment(
        flight_number=segment.flight_number,
        departure=segment.departure,
        arrival=segment.arrival,
        departure_time_utc=segment.departure_time,
        arrival_time_utc=segment.arrival_time,
        departure_time_zulu=utc_to_zulu(segment.departure_time),
        arrival_time_zulu=utc_to_zulu(segment.arrival_time),
        departure_time=segment.departure_time_home_tz or segment.departure_time_local,
        arrival_time=segment.arrival_time_home_tz or segment.arrival_time_local,
        departure_time_airport_local=segment.departure_time_airport_local,
        arrival_time_airport_local=segment.arrival_time_airport_local,
        departure_timezone=segment.departure_timezone,
        arrival_timezone=segment.arrival_timezone,
        departure_utc_offset=segment.departure_utc_offset,
        arrival_utc_offset=segment.arrival_utc_offset,
        block_hours=compute_segment_block_hours(segment),
        performance=performance,
    )


def transform_duty(duty: DutyResponse, config: Optional[TimelineConfig] = None) -> Duty:
    config = config or TimelineConfig.default_config()
    risk: RiskThresholds = config.risk_thresholds

    low, avg, landing = _bounded_performance(duty)
    bounded = duty.model_copy(update={
        'min_performance': low, 'avg_performance': avg, 'landing_performance': landing,
    })
    performances = calculate_segment_performances(bounded, config.segment_interpolation)
    segments = tuple(transform_segment(s, p) for s, p in zip(duty.segments, performances))

    duty_date = _parse_date(duty.date)
    sleep = duty.sleep_quality or duty.sleep_estimate

    rest_facility = None
    if duty.rest_facility_class:
        rest_facility = _enum_or(RestFacilityClass, duty.rest_facility_class, None)

    ulr = None
    if duty.ulr_compliance is not None:
        data = duty.ulr_compliance.model_dump()
        data['violations'] = tuple(data['violations'])
        data['warnings'] = tuple(data['warnings'])
        ulr = ULRCompliance(**data)

    return Duty(
        duty_id=duty.duty_id,
        date=duty_date,
        report_time_utc=duty.report_time_utc,
        release_time_utc=duty.release_time_utc,
        duty_hours=duty.duty_hours,
        flight_segments=segments,
        date_string=duty.date,
        day_of_week=duty_date.strftime('%a') if duty_date else '',
        report_time_local=duty.report_time_home_tz or duty.report_time_local,
        release_time_local=duty.release_time_home_tz or duty.release_time_local,
        block_hours=sum(s.block_hours for s in segments),
        sectors=duty.sectors,
        min_performance=low,
        avg_performance=avg,
        landing_performance=landing,
        sleep_debt=duty.sleep_debt,
        wocl_exposure=duty.wocl_hours,
        prior_sleep=duty.prior_sleep,
        pre_duty_awake_hours=duty.pre_duty_awake_hours,
        overall_risk=risk.classify(landing),
        min_performance_risk=risk.classify(low),
        landing_risk=risk.classify(landing),
        backend_risk_level=duty.risk_level,
        sms_reportable=duty.is_reportable,
        pinch_events=duty.pinch_events,
        max_fdp_hours=duty.max_fdp_hours,
        extended_fdp_hours=duty.extended_fdp_hours,
        used_discretion=duty.used_discretion,
        circadian_phase_shift=duty.circadian_phase_shift,
        sleep_estimate=transform_sleep_estimate(sleep) if sleep else None,
        crew_composition=_enum_or(CrewComposition, duty.crew_composition, CrewComposition.STANDARD),
        rest_facility_class=rest_facility,
        is_ulr=duty.is_ulr,
        acclimatization_state=_enum_or(
            AcclimatizationState, duty.acclimatization_state, AcclimatizationState.ACCLIMATIZED
        ),
        ulr_compliance=ulr,
        inflight_rest_blocks=tuple(
            InFlightRestBlock(**b.model_dump()) for b in duty.inflight_rest_blocks
        ),
        return_to_deck_performance=duty.return_to_deck_performance,
        time_validation_warnings=tuple(duty.time_validation_warnings),
    )


# ============================================================================
# DUTY DETAIL (five-minute timeline)
# ============================================================================

def transform_duty_timeline(detail: Union[DutyDetailResponse, Dict[str, Any]]) -> DutyDetailTimeline:
    """GET /api/duty/{analysis_id}/{duty_id} payload -> DutyDetailTimeline"""
    if not isinstance(detail, DutyDetailResponse):
        detail = DutyDetailResponse.model_validate(detail)

    return DutyDetailTimeline(
        duty_id=detail.duty_id,
        timeline=tuple(DutyTimelineSample(**p.model_dump()) for p in detail.timeline),
        summary=DutyTimelineSummary(**detail.summary.model_dump()),
        pinch_events=tuple(DutyPinchEvent(**e.model_dump()) for e in detail.pinch_events),
    )


# ============================================================================
# AIRPORTS
# ============================================================================

def transform_airport(record: AirportResponse) -> Airport:
    return Airport(
        code=record.code.upper(),
        timezone=record.timezone,
        utc_offset_hours=record.utc_offset_hours,
        latitude=record.latitude,
        longitude=record.longitude,
        name=record.name or '',
    )


# ============================================================================
# ANALYSIS RESULT
# ============================================================================

def _analysis_month(result: AnalysisResponse, fallback_month: date) -> date:
    if result.duties:
        first = _parse_date(result.duties[0].date)
        if first:
            return first.replace(day=1)
    if result.month:
        parsed = _parse_date(f"{result.month[:7]}-01")
        if parsed:
            return parsed
    return fallback_month.replace(day=1)


def _statistics(result: AnalysisResponse, duties: Sequence[Duty]) -> AnalysisStatistics:
    block_total = result.total_block_hours
    if block_total is None or not math.isfinite(block_total) or block_total <= 0:
        block_total = sum(d.block_hours for d in duties)

    return AnalysisStatistics(
        total_duties=result.total_duties,
        total_sectors=result.total_sectors,
        total_duty_hours=result.total_duty_hours,
        total_block_hours=block_total,
        high_risk_duties=result.high_risk_duties,
        critical_risk_duties=result.critical_risk_duties,
        max_sleep_debt=result.max_sleep_debt,
        total_pinch_events=result.total_pinch_events,
        avg_sleep_per_night=result.avg_sleep_per_night,
        worst_performance=result.worst_performance,
        worst_duty_id=result.worst_duty_id or None,
        total_ulr_duties=result.total_ulr_duties,
        total_augmented_duties=result.total_augmented_duties,
        ulr_violations=tuple(result.ulr_violations),
    )


def transform_analysis_result(
    payload: Union[AnalysisResponse, Dict[str, Any]],
    fallback_month: date,
    config: Optional[TimelineConfig] = None,
    generated_at: Optional[datetime] = None,
) -> AnalysisResults:
    """
    POST /api/analyze payload -> AnalysisResults.

    Dicts are validated first (pydantic.ValidationError on a bad shape).
    The analysis month is the first duty's month, then the payload's
    `month`, then `fallback_month`.
    """
    if not isinstance(payload, AnalysisResponse):
        payload = AnalysisResponse.model_validate(payload)
    config = config or TimelineConfig.default_config()

    duties = tuple(transform_duty(d, config) for d in payload.duties)
    logger.info(f"Transformed analysis {payload.analysis_id or '(unsaved)'}: {len(duties)} duties")

    return AnalysisResults(
        generated_at=generated_at or datetime.now(pytz.utc),
        month=_analysis_month(payload, fallback_month),
        statistics=_statistics(payload, duties),
        duties=duties,
        rest_days_sleep=tuple(transform_rest_day(r) for r in payload.rest_days_sleep),
        body_clock_timeline=tuple(
            BodyClockEntry(
                timestamp_utc=e.timestamp_utc,
                phase_shift_hours=e.phase_shift_hours,
                reference_timezone=e.reference_timezone,
            )
            for e in payload.body_clock_timeline
        ),
        analysis_id=payload.analysis_id or None,
        pilot_id=payload.pilot_id or None,
        pilot_name=payload.pilot_name or None,
        pilot_base=payload.pilot_base or None,
        pilot_aircraft=payload.pilot_aircraft or None,
        home_base_timezone=payload.home_base_timezone,
    )


def collect_airport_codes(results: AnalysisResults) -> List[str]:
    """Unique IATA codes in first-seen order, for the airport batch lookup"""
    seen: Dict[str, None] = {}
    for duty in results.duties:
        for seg in duty.flight_segments:
            for code in (seg.departure, seg.arrival):
                if code:
                    seen.setdefault(code.upper(), None)
    return list(seen)
