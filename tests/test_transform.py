"""
Field Mapping Tests
===================

Service payload -> domain model: derived block hours, per-segment
performance estimates, risk labels and sleep-estimate fallbacks.

Run: python -m pytest tests/test_transform.py -v
"""

from datetime import date, datetime

import pytest
import pytz
from pydantic import ValidationError

from api.schemas import (
    AirportResponse,
    AnalysisResponse,
    DutyResponse,
    DutySegmentResponse,
    SleepBlockResponse,
    SleepQualityResponse,
)
from core.parameters import TimelineConfig
from core.transform import (
    calculate_segment_performances,
    collect_airport_codes,
    compute_segment_block_hours,
    transform_airport,
    transform_analysis_result,
    transform_duty,
    transform_duty_timeline,
    transform_sleep_estimate,
)
from models.data_models import AcclimatizationState, CrewComposition


# ── Helpers ──────────────────────────────────────────────────────────────

def seg(flight_number='QR1', departure='DOH', arrival='LHR', **kwargs):
    return DutySegmentResponse(flight_number=flight_number, departure=departure, arrival=arrival, **kwargs)


def duty_response(segments=(), **kwargs):
    data = dict(
        duty_id='D001',
        date='2026-02-10',
        report_time_utc='2026-02-10T06:00:00Z',
        release_time_utc='2026-02-10T14:00:00Z',
        duty_hours=8.0,
        avg_performance=70.0,
        min_performance=55.0,
        landing_performance=60.0,
    )
    data.update(kwargs)
    return DutyResponse(segments=list(segments), **data)


def two_legs(**kwargs):
    return [
        seg('QR1', 'DOH', 'BAH', arrival_time='2026-02-10T08:00:00Z', **kwargs),
        seg('QR2', 'BAH', 'DOH', arrival_time='2026-02-10T14:00:00Z', **kwargs),
    ]


GENERATED = datetime(2026, 2, 20, 12, 0, tzinfo=pytz.utc)


# ============================================================================
# BLOCK HOURS
# ============================================================================

class TestBlockHours:

    def test_from_local_clock(self):
        assert compute_segment_block_hours(
            seg(departure_time_local='10:00', arrival_time_local='11:30')
        ) == 1.5

    def test_wraps_midnight(self):
        assert compute_segment_block_hours(
            seg(departure_time_local='23:00', arrival_time_local='01:30')
        ) == 2.5

    def test_service_value_wins(self):
        assert compute_segment_block_hours(
            seg(block_hours=2.0, departure_time_local='10:00', arrival_time_local='11:30')
        ) == 2.0

    @pytest.mark.parametrize('bad', [0.0, -1.0, float('nan')])
    def test_unusable_service_value_recomputed(self, bad):
        assert compute_segment_block_hours(
            seg(block_hours=bad, departure_time_local='10:00', arrival_time_local='11:30')
        ) == 1.5

    def test_iso_fallback(self):
        assert compute_segment_block_hours(
            seg(departure_time='2026-02-10T06:00:00Z', arrival_time='2026-02-10T08:15:00Z')
        ) == 2.25

    def test_nothing_parseable(self):
        assert compute_segment_block_hours(seg(departure_time_local='soon')) == 0.0

    def test_duty_total(self):
        duty = transform_duty(duty_response([
            seg(block_hours=1.0),
            seg(departure_time_local='23:00', arrival_time_local='01:00'),
        ]))
        assert duty.block_hours == 3.0
        assert [s.block_hours for s in duty.flight_segments] == [1.0, 2.0]


# ============================================================================
# SEGMENT PERFORMANCE
# ============================================================================

class TestSegmentPerformance:

    def test_single_segment_is_average(self):
        assert calculate_segment_performances(duty_response([seg()])) == [70.0]

    def test_no_segments(self):
        assert calculate_segment_performances(duty_response()) == []

    def test_interpolated_from_arrival_times(self):
        # start = 70 + 0.5 * (70 - 60) = 75, landing 60 at 8 h
        result = calculate_segment_performances(duty_response(two_legs()))
        assert result == pytest.approx([71.25, 60.0])

    def test_cumulative_block_fallback(self):
        legs = [seg('QR1', block_hours=2.0), seg('QR2', block_hours=3.0)]
        # elapsed 2.5 h and 6.0 h (block + 0.5 h turnaround)
        result = calculate_segment_performances(duty_response(legs))
        assert result == pytest.approx([70.3125, 63.75])

    def test_nominal_block_when_unknown(self):
        legs = [seg('QR1'), seg('QR2')]
        # elapsed 1.5 h and 3.0 h
        result = calculate_segment_performances(duty_response(legs))
        assert result == pytest.approx([75 - 15 * 1.5 / 8, 75 - 15 * 3.0 / 8])

    def test_start_capped_at_100(self):
        result = calculate_segment_performances(
            duty_response(two_legs(), avg_performance=95.0, min_performance=20.0, landing_performance=20.0)
        )
        assert result[1] == pytest.approx(20.0)
        assert result[0] == pytest.approx(100.0 - 80.0 * 0.25)

    def test_missing_landing_uses_min(self):
        result = calculate_segment_performances(duty_response(two_legs(), landing_performance=None))
        assert result[1] == pytest.approx(55.0)

    def test_no_report_time(self):
        result = calculate_segment_performances(duty_response(two_legs(), report_time_utc=''))
        assert result == [70.0, 70.0]

    def test_service_value_wins(self):
        legs = two_legs()
        legs[0] = legs[0].model_copy(update={'performance': 80.0})
        result = calculate_segment_performances(duty_response(legs))
        assert result == pytest.approx([80.0, 60.0])

    def test_clipped_to_range(self):
        legs = [
            seg('QR1', arrival_time='2026-02-10T07:00:00Z'),
            seg('QR2', arrival_time='2026-02-10T11:00:00Z'),
        ]
        duty = duty_response(legs, duty_hours=1.0, avg_performance=10.0, min_performance=0.0,
                             landing_performance=0.0)
        result = calculate_segment_performances(duty)
        assert result[1] == 0.0
        assert all(0.0 <= p <= 100.0 for p in result)

    def test_flows_into_flight_segments(self):
        duty = transform_duty(duty_response(two_legs()))
        assert [s.performance for s in duty.flight_segments] == pytest.approx([71.25, 60.0])


# ============================================================================
# DUTY
# ============================================================================

class TestTransformDuty:

    def test_risk_labels_from_table(self):
        duty = transform_duty(duty_response(landing_performance=66.0, min_performance=50.0, risk_level='low'))
        assert duty.overall_risk == 'MODERATE'
        assert duty.landing_risk == 'MODERATE'
        assert duty.min_performance_risk == 'CRITICAL'
        assert duty.backend_risk_level == 'low'

    def test_min_capped_at_average(self):
        duty = transform_duty(duty_response(min_performance=80.0, landing_performance=75.0))
        assert duty.min_performance == 70.0
        assert duty.avg_performance == 70.0

    def test_out_of_range_clamped(self):
        duty = transform_duty(duty_response(avg_performance=120.0, min_performance=-5.0, landing_performance=130.0))
        assert (duty.min_performance, duty.avg_performance, duty.landing_performance) == (0.0, 100.0, 100.0)

    def test_missing_landing_uses_min(self):
        duty = transform_duty(duty_response(landing_performance=None))
        assert duty.landing_performance == 55.0
        assert duty.overall_risk == 'HIGH'

    def test_dates_and_clock_times(self):
        duty = transform_duty(duty_response(report_time_local='08:00', report_time_home_tz='09:00'))
        assert duty.date == date(2026, 2, 10)
        assert duty.day_of_week == 'Tue'
        assert duty.report_time_local == '09:00'

    def test_bad_date(self):
        duty = transform_duty(duty_response(date='someday'))
        assert duty.date is None
        assert duty.day_of_week == ''

    def test_unknown_enum_values(self):
        duty = transform_duty(duty_response(
            acclimatization_state='confused', crew_composition='augmented_9', rest_facility_class='class_7',
        ))
        assert duty.acclimatization_state == AcclimatizationState.ACCLIMATIZED
        assert duty.crew_composition == CrewComposition.STANDARD
        assert duty.rest_facility_class is None

    def test_acclimatization_defaults_to_acclimatized(self):
        assert transform_duty(duty_response()).acclimatization_state == AcclimatizationState.ACCLIMATIZED
        assert transform_duty(duty_response(acclimatization_state='')).acclimatization_state == \
            AcclimatizationState.ACCLIMATIZED

    def test_zulu_strings(self):
        duty = transform_duty(duty_response([seg(departure_time='2026-02-10T06:15:00Z',
                                                 arrival_time='2026-02-10T07:45:00Z')]))
        assert duty.flight_segments[0].departure_time_zulu == '06:15Z'
        assert duty.flight_segments[0].arrival_time_zulu == '07:45Z'


# ============================================================================
# SLEEP
# ============================================================================

class TestSleep:

    def test_sleep_quality_preferred(self):
        duty = transform_duty(duty_response(
            sleep_quality=SleepQualityResponse(sleep_strategy='anchor'),
            sleep_estimate=SleepQualityResponse(sleep_strategy='nap'),
        ))
        assert duty.sleep_estimate.sleep_strategy == 'anchor'

    def test_sleep_estimate_key_accepted(self):
        duty = transform_duty(duty_response(sleep_estimate=SleepQualityResponse(sleep_strategy='nap')))
        assert duty.sleep_estimate.sleep_strategy == 'nap'

    def test_no_sleep(self):
        assert transform_duty(duty_response()).sleep_estimate is None

    def test_grid_position_from_iso(self):
        estimate = transform_sleep_estimate(SleepQualityResponse(
            sleep_start_iso='2026-02-09T22:30:00Z',
            sleep_end_iso='2026-02-10T05:15:00Z',
        ))
        assert (estimate.sleep_start_day, estimate.sleep_start_hour) == (9, 22.5)
        assert (estimate.sleep_end_day, estimate.sleep_end_hour) == (10, 5.25)

    def test_service_grid_position_kept(self):
        estimate = transform_sleep_estimate(SleepQualityResponse(
            sleep_start_iso='2026-02-09T22:30:00Z', sleep_start_day=9, sleep_start_hour=1.0,
        ))
        assert estimate.sleep_start_hour == 1.0

    def test_window_from_first_block(self):
        estimate = transform_sleep_estimate(SleepQualityResponse(
            sleep_blocks=[
                SleepBlockResponse(sleep_start_iso='2026-02-09T21:00:00Z', sleep_end_iso='2026-02-10T04:00:00Z'),
                SleepBlockResponse(sleep_type='nap', sleep_start_iso='2026-02-10T12:00:00Z',
                                   sleep_end_iso='2026-02-10T13:00:00Z'),
            ],
        ))
        assert estimate.sleep_start_iso == '2026-02-09T21:00:00Z'
        assert estimate.sleep_end_iso == '2026-02-10T04:00:00Z'
        assert estimate.has_window
        assert len(estimate.sleep_blocks) == 2

    def test_efficiency_untouched(self):
        estimate = transform_sleep_estimate(SleepQualityResponse(sleep_efficiency=0.73))
        assert estimate.sleep_efficiency == 0.73
        assert not estimate.has_window


# ============================================================================
# ANALYSIS RESULT
# ============================================================================

class TestTransformAnalysis:

    def _payload(self, **kwargs):
        data = {
            'analysis_id': 'A1',
            'pilot_id': 'P12345',
            'home_base_timezone': 'Asia/Qatar',
            'total_duties': 1,
            'duties': [duty_response([seg(block_hours=1.5), seg(block_hours=2.0)]).model_dump()],
            'rest_days_sleep': [{'date': '2026-02-11', 'sleep_blocks': [{'sleep_type': 'main'}]}],
        }
        data.update(kwargs)
        return data

    def test_dict_payload(self):
        results = transform_analysis_result(self._payload(), date(2025, 1, 1), generated_at=GENERATED)
        assert results.analysis_id == 'A1'
        assert results.month == date(2026, 2, 1)
        assert results.generated_at == GENERATED
        assert len(results.duties) == 1
        assert results.rest_days_sleep[0].date == date(2026, 2, 11)
        assert results.get_duty('D001') is results.duties[0]
        assert results.get_duty('D999') is None

    def test_block_hours_fallback(self):
        results = transform_analysis_result(self._payload(), date(2025, 1, 1))
        assert results.statistics.total_block_hours == 3.5

    def test_block_hours_from_service(self):
        results = transform_analysis_result(self._payload(total_block_hours=80.0), date(2025, 1, 1))
        assert results.statistics.total_block_hours == 80.0

    def test_month_from_payload_without_duties(self):
        results = transform_analysis_result(self._payload(duties=[], month='2026-03'), date(2025, 1, 1))
        assert results.month == date(2026, 3, 1)

    def test_month_fallback(self):
        results = transform_analysis_result(self._payload(duties=[]), date(2025, 7, 19))
        assert results.month == date(2025, 7, 1)

    def test_model_payload(self):
        payload = AnalysisResponse.model_validate(self._payload())
        assert transform_analysis_result(payload, date(2025, 1, 1)).pilot_id == 'P12345'

    def test_bad_payload_raises(self):
        with pytest.raises(ValidationError):
            transform_analysis_result({'duties': [{'date': '2026-02-10'}]}, date(2026, 2, 1))

    def test_config_risk_table_used(self):
        config = TimelineConfig.from_overrides({})
        config.risk_thresholds.thresholds = [('LOW', 50.0)]
        results = transform_analysis_result(self._payload(), date(2026, 2, 1), config)
        assert results.duties[0].overall_risk == 'LOW'

    def test_airport_codes(self):
        payload = self._payload(duties=[duty_response([
            seg('QR1', 'doh', 'LHR'), seg('QR2', 'LHR', 'DOH'), seg('QR3', 'DOH', 'BAH'),
        ]).model_dump()])
        results = transform_analysis_result(payload, date(2026, 2, 1))
        assert collect_airport_codes(results) == ['DOH', 'LHR', 'BAH']


class TestDetailAndAirport:

    def test_duty_timeline_from_dict(self):
        detail = transform_duty_timeline({
            'duty_id': 'D001',
            'timeline': [
                {'timestamp': '2026-02-10T06:00:00Z', 'performance': 80.0, 'flight_phase': 'taxi_out'},
                {'timestamp': '2026-02-10T06:05:00Z', 'performance': 79.0, 'is_in_rest': True},
            ],
            'summary': {'sleep_debt': 4.0},
            'pinch_events': [{'timestamp': '2026-02-10T06:05:00Z', 'performance': 79.0}],
        })
        assert detail.duty_id == 'D001'
        assert len(detail.timeline) == 2
        assert detail.timeline[1].is_in_rest
        assert detail.summary.sleep_debt == 4.0
        assert len(detail.pinch_events) == 1

    def test_duty_timeline_without_summary(self):
        detail = transform_duty_timeline({'duty_id': 'D001'})
        assert detail.timeline == ()
        assert detail.summary.sleep_debt == 0.0

    def test_airport(self):
        airport = transform_airport(AirportResponse(code='lhr', timezone='Europe/London', utc_offset_hours=0.0))
        assert airport.code == 'LHR'
        assert airport.name == ''
