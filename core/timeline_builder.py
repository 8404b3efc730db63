"""
Continuous Timeline Builder
===========================

Turns a month of duty summaries into one chronologically ordered
performance curve plus duty and sleep background bands.

Per duty (in report-time order):
    1. Five-minute samples from GET /api/duty/... when the pilot has drilled
       into that duty: emitted verbatim.
    2. Otherwise a coarse skeleton:
           pre-report (-30 min)  min(previous point, avg + 3)
           report                 avg
           nadir (60 %)           min
           landing (85 %)         landing, only if it differs from min
           release                avg - 2
    3. Duty band report -> release; sleep band from the sleep estimate.
    4. Recovery arc (wind-down, post-sleep) when the gap to the next duty
       is longer than 2 h.

Rested points bracket the month, rest-day sleep blocks become sleep bands,
and points are sorted as the last step. Every number above lives in
core.parameters.TimelineConfig.

All arithmetic is on epoch milliseconds. Bad timestamps are logged and
skipped; nothing here raises for data problems.
"""

import logging
from datetime import date, time
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from core.parameters import TimelineConfig
from core.timezone import TimezoneConverter, iso_to_epoch_ms, parse_hhmm
from models.data_models import (
    AnalysisResults,
    ContinuousTimelinePoint,
    Duty,
    DutyDetailTimeline,
    RegionType,
    RestDaySleep,
    TimelineData,
    TimelinePhase,
    TimelineRegion,
)

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000
MS_PER_MINUTE = 60_000


class ContinuousTimelineBuilder:
    """
    Stateless between calls: the same inputs always give the same output.

    Usage:
        builder = ContinuousTimelineBuilder(TimelineConfig.default_config())
        data = builder.build(results.duties, results.month,
                             rest_days_sleep=results.rest_days_sleep,
                             high_res_timelines={'D003': detail})
    """

    def __init__(self, config: Optional[TimelineConfig] = None,
                 converter: Optional[TimezoneConverter] = None):
        self.config = config or TimelineConfig.default_config()
        self.converter = converter or TimezoneConverter()

    def classify(self, performance: Optional[float]) -> str:
        return self.config.risk_thresholds.classify(performance)

    # ========================================================================
    # ENTRY POINT
    # ========================================================================

    def build(
        self,
        duties: Sequence[Duty],
        month: date,
        rest_days_sleep: Optional[Iterable[RestDaySleep]] = None,
        high_res_timelines: Optional[Mapping[str, DutyDetailTimeline]] = None,
        timezone: str = 'UTC',
    ) -> TimelineData:
        """
        Build points and regions for `month`.

        `timezone` sets where the month starts and ends (midnight on the 1st).
        Duties need not be sorted. An empty duty list gives an empty result.
        """
        if not duties:
            return TimelineData()

        high_res_timelines = high_res_timelines or {}
        baseline = self.config.baseline

        month_start = self.converter.month_start_ms(month, timezone)
        month_end = self.converter.month_end_ms(month, timezone)

        windows = {id(d): self._duty_window(d, month, timezone) for d in duties}
        ordered = sorted(duties, key=lambda d: (windows[id(d)][0], d.duty_id))

        points: List[ContinuousTimelinePoint] = []
        duty_regions: List[TimelineRegion] = []
        sleep_regions: List[TimelineRegion] = []

        first_report = windows[id(ordered[0])][0]
        if first_report > month_start:
            points.append(self._rested_point(month_start))

        for i, duty in enumerate(ordered):
            report_ms, release_ms = windows[id(duty)]
            label = duty.label or f"Duty {i + 1}"

            detail = high_res_timelines.get(duty.duty_id)
            if detail is not None and detail.timeline:
                points.extend(self._high_res_points(duty, detail, label))
            else:
                points.extend(self._coarse_points(duty, report_ms, release_ms, label, points[-1] if points else None))

            duty_regions.append(TimelineRegion(
                start_ms=report_ms,
                end_ms=release_ms,
                type=RegionType.DUTY,
                label=label,
                duty_id=duty.duty_id,
                risk_level=duty.overall_risk,
            ))

            estimate = duty.sleep_estimate
            if estimate is not None and estimate.has_window:
                region = self._sleep_region(
                    estimate.sleep_start_iso, estimate.sleep_end_iso,
                    estimate.sleep_strategy, duty.duty_id,
                )
                if region is not None:
                    sleep_regions.append(region)

            if i + 1 < len(ordered):
                next_report = windows[id(ordered[i + 1])][0]
                points.extend(self._recovery_points(duty, release_ms, next_report))

        for rest_day in rest_days_sleep or ():
            for block in rest_day.sleep_blocks:
                if not (block.sleep_start_iso and block.sleep_end_iso):
                    continue
                region = self._sleep_region(block.sleep_start_iso, block.sleep_end_iso, block.sleep_type)
                if region is not None:
                    sleep_regions.append(region)

        last_release = windows[id(ordered[-1])][1]
        if month_end > last_release + baseline.month_end_gap_hours * MS_PER_HOUR:
            points.append(self._rested_point(month_end - baseline.month_end_offset_ms))

        # Per-duty emission order is not chronological (overlapping duties,
        # five-minute samples vs. recovery points), so sort once here.
        points.sort(key=lambda p: p.timestamp_ms)

        logger.debug(
            f"Timeline for {month:%Y-%m}: {len(points)} points, "
            f"{len(duty_regions)} duty regions, {len(sleep_regions)} sleep regions"
        )
        return TimelineData(points=points, duty_regions=duty_regions, sleep_regions=sleep_regions)

    # ========================================================================
    # DUTY TIMING
    # ========================================================================

    def _duty_window(self, duty: Duty, month: date, timezone: str) -> Tuple[int, int]:
        """
        Report/release in epoch ms.

        Report comes from the UTC ISO string, else the duty date plus the
        home-base HH:mm (06:00 if that's missing too). Release falls back to
        report + duty hours.
        """
        duty_ms = int(max(0.0, duty.duty_hours) * MS_PER_HOUR)

        report_ms = iso_to_epoch_ms(duty.report_time_utc)
        if report_ms is None:
            clock = parse_hhmm(duty.report_time_local) or time(self.config.baseline.fallback_report_hour, 0)
            report_ms = self.converter.local_to_epoch_ms(duty.date or month, clock, timezone)
            if report_ms is None:
                report_ms = self.converter.local_to_epoch_ms(duty.date or month, clock, 'UTC')
            logger.warning(f"[{duty.duty_id}] No usable report time, placing duty at {clock:%H:%M} on {duty.date or month}")

        release_ms = iso_to_epoch_ms(duty.release_time_utc)
        if release_ms is None or release_ms < report_ms:
            if release_ms is not None:
                logger.warning(f"[{duty.duty_id}] Release before report, using duty hours instead")
            release_ms = report_ms + duty_ms

        return report_ms, release_ms

    # ========================================================================
    # POINT SYNTHESIS
    # ========================================================================

    def _rested_point(self, timestamp_ms: int) -> ContinuousTimelinePoint:
        baseline = self.config.baseline
        return ContinuousTimelinePoint(
            timestamp_ms=timestamp_ms,
            performance=baseline.rested_performance,
            sleep_reservoir=baseline.rested_reservoir,
            phase=TimelinePhase.REST,
            risk_level=self.classify(baseline.rested_performance),
        )

    def _coarse_points(
        self,
        duty: Duty,
        report_ms: int,
        release_ms: int,
        label: str,
        previous: Optional[ContinuousTimelinePoint],
    ) -> List[ContinuousTimelinePoint]:
        coarse = self.config.coarse
        reservoir = self.config.reservoir.from_debt(duty.sleep_debt)
        elapsed = release_ms - report_ms
        avg = duty.avg_performance
        points = []

        def point(timestamp_ms, performance, reservoir_offset, phase=TimelinePhase.DUTY, **extra):
            return ContinuousTimelinePoint(
                timestamp_ms=int(timestamp_ms),
                performance=performance,
                sleep_reservoir=self.config.reservoir.clamp(reservoir + reservoir_offset),
                phase=phase,
                risk_level=self.classify(performance),
                sleep_debt=duty.sleep_debt,
                duty_id=duty.duty_id,
                duty_label=label,
                **extra,
            )

        # Never placed behind what's already on the chart
        pre_report_ms = report_ms - int(coarse.pre_report_offset_minutes * MS_PER_MINUTE)
        if previous is None or pre_report_ms > previous.timestamp_ms:
            cap = avg + coarse.pre_report_headroom
            value = min(previous.performance, cap) if previous is not None else cap
            points.append(point(
                pre_report_ms, value, coarse.pre_report_reservoir_offset,
                phase=TimelinePhase.AWAKE, prior_sleep=duty.prior_sleep,
            ))

        points.append(point(
            report_ms, avg, 0.0,
            prior_sleep=duty.prior_sleep,
            hours_awake=duty.pre_duty_awake_hours,
            departure=duty.departure,
            arrival=duty.arrival,
        ))

        points.append(point(
            report_ms + elapsed * coarse.nadir_fraction,
            duty.min_performance, coarse.nadir_reservoir_offset,
        ))

        if duty.landing_performance and duty.landing_performance != duty.min_performance:
            last_leg = duty.flight_segments[-1].flight_number if duty.flight_segments else None
            points.append(point(
                report_ms + elapsed * coarse.landing_fraction,
                duty.landing_performance, coarse.landing_reservoir_offset,
                flight_number=last_leg,
            ))

        points.append(point(release_ms, avg - coarse.release_drop, coarse.release_reservoir_offset))
        return points

    def _high_res_points(self, duty: Duty, detail: DutyDetailTimeline, label: str) -> List[ContinuousTimelinePoint]:
        summary = detail.summary
        reservoir = self.config.reservoir.from_debt(summary.sleep_debt)
        legs = [
            (iso_to_epoch_ms(s.departure_time_utc), iso_to_epoch_ms(s.arrival_time_utc), s.flight_number)
            for s in duty.flight_segments
        ]

        points = []
        skipped = 0
        for sample in detail.timeline:
            ts = iso_to_epoch_ms(sample.timestamp)
            if ts is None:
                skipped += 1
                continue
            points.append(ContinuousTimelinePoint(
                timestamp_ms=ts,
                performance=sample.performance,
                sleep_reservoir=reservoir,
                phase=TimelinePhase.SLEEP if sample.is_in_rest else TimelinePhase.DUTY,
                risk_level=self.classify(sample.performance),
                circadian=sample.circadian,
                homeostatic=sample.sleep_pressure,
                sleep_inertia=sample.sleep_inertia,
                flight_phase=sample.flight_phase,
                is_high_res=True,
                hours_awake=sample.hours_on_duty + (duty.pre_duty_awake_hours or 0.0),
                sleep_debt=summary.sleep_debt,
                prior_sleep=summary.prior_sleep,
                duty_id=duty.duty_id,
                duty_label=label,
                flight_number=_flight_at(legs, ts),
                departure=duty.departure,
                arrival=duty.arrival,
            ))

        if skipped:
            logger.warning(f"[{duty.duty_id}] Skipped {skipped} samples with unparseable timestamps")
        return points

    def _recovery_points(self, duty: Duty, release_ms: int, next_report_ms: int) -> List[ContinuousTimelinePoint]:
        """Wind-down then post-sleep recovery, only for gaps longer than min_gap_hours"""
        recovery = self.config.recovery
        gap_hours = (next_report_ms - release_ms) / MS_PER_HOUR
        if gap_hours <= recovery.min_gap_hours:
            return []

        reservoir = self.config.reservoir.from_debt(duty.sleep_debt)
        release_value = duty.avg_performance - self.config.coarse.release_drop
        release_reservoir = reservoir + self.config.coarse.release_reservoir_offset

        sleep_start_ms = release_ms + int(recovery.wind_down_offset_hours * MS_PER_HOUR)
        sleep_hours = max(0.0, min(recovery.max_sleep_hours, gap_hours - recovery.sleep_lead_in_hours))
        sleep_end_ms = sleep_start_ms + int(sleep_hours * MS_PER_HOUR)

        efficiency = duty.sleep_estimate.sleep_efficiency if duty.sleep_estimate else None
        rate = recovery.recovery_rate(efficiency)
        recovered = min(recovery.performance_cap, release_value + gap_hours * rate * recovery.rate_scale)
        recovered_reservoir = min(
            recovery.reservoir_cap, release_reservoir + gap_hours * recovery.reservoir_gain_per_hour
        )

        wind_down = duty.avg_performance - recovery.wind_down_drop
        return [
            ContinuousTimelinePoint(
                timestamp_ms=sleep_start_ms,
                performance=wind_down,
                sleep_reservoir=self.config.reservoir.clamp(reservoir + recovery.wind_down_reservoir_offset),
                phase=TimelinePhase.AWAKE,
                risk_level=self.classify(wind_down),
            ),
            ContinuousTimelinePoint(
                timestamp_ms=sleep_end_ms,
                performance=recovered,
                sleep_reservoir=self.config.reservoir.clamp(recovered_reservoir),
                phase=TimelinePhase.REST,
                risk_level=self.classify(recovered),
            ),
        ]

    # ========================================================================
    # REGIONS
    # ========================================================================

    def _sleep_region(self, start_iso: str, end_iso: str, label: Optional[str],
                      duty_id: Optional[str] = None) -> Optional[TimelineRegion]:
        start_ms = iso_to_epoch_ms(start_iso)
        end_ms = iso_to_epoch_ms(end_iso)
        if start_ms is None or end_ms is None:
            logger.debug(f"Unparseable sleep window {start_iso!r} -> {end_iso!r}")
            return None
        if end_ms < start_ms:
            logger.warning(f"Sleep window ends before it starts ({start_iso} -> {end_iso}), skipped")
            return None
        return TimelineRegion(
            start_ms=start_ms,
            end_ms=end_ms,
            type=RegionType.SLEEP,
            label=label,
            duty_id=duty_id,
        )


def _flight_at(legs: Sequence[Tuple[Optional[int], Optional[int], str]], ts: int) -> Optional[str]:
    """Flight number of the leg airborne at `ts`"""
    for dep_ms, arr_ms, flight_number in legs:
        if dep_ms is not None and arr_ms is not None and dep_ms <= ts <= arr_ms:
            return flight_number or None
    return None


def build_continuous_timeline(
    results: AnalysisResults,
    high_res_timelines: Optional[Mapping[str, DutyDetailTimeline]] = None,
    config: Optional[TimelineConfig] = None,
    converter: Optional[TimezoneConverter] = None,
    timezone: str = 'UTC',
) -> TimelineData:
    """Convenience wrapper for a transformed analysis"""
    builder = ContinuousTimelineBuilder(config, converter)
    return builder.build(
        results.duties,
        results.month,
        rest_days_sleep=results.rest_days_sleep,
        high_res_timelines=high_res_timelines,
        timezone=timezone,
    )
