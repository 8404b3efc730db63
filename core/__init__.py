"""
Core Timeline Components
========================

Main exports for timezone reconciliation, payload mapping and the
continuous monthly performance timeline.
"""

from core.parameters import (
    CoarseSynthesisParameters,
    RecoveryParameters,
    BaselineParameters,
    ReservoirParameters,
    RiskThresholds,
    SegmentInterpolationParameters,
    TimelineConfig,
)

from core.timezone import (
    AcclimatizationContext,
    TimezoneCache,
    TimezoneConverter,
    TimezoneResult,
    TripleTimeFormat,
    get_acclimatized_timezone,
    is_on_home_base_reference,
    utc_day_hour,
    utc_to_timezone,
    utc_to_zulu,
)

from core.transform import (
    calculate_segment_performances,
    compute_segment_block_hours,
    transform_analysis_result,
    transform_duty_timeline,
)
from core.timeline_builder import ContinuousTimelineBuilder, build_continuous_timeline
from core.settings import CrewOverrides, ServiceSettings, SettingsStore

__all__ = [
    # Parameters
    'CoarseSynthesisParameters',
    'RecoveryParameters',
    'BaselineParameters',
    'ReservoirParameters',
    'RiskThresholds',
    'SegmentInterpolationParameters',
    'TimelineConfig',
    # Timezone
    'AcclimatizationContext',
    'TimezoneCache',
    'TimezoneConverter',
    'TimezoneResult',
    'TripleTimeFormat',
    'get_acclimatized_timezone',
    'is_on_home_base_reference',
    'utc_day_hour',
    'utc_to_timezone',
    'utc_to_zulu',
    # Transform
    'calculate_segment_performances',
    'compute_segment_block_hours',
    'transform_analysis_result',
    'transform_duty_timeline',
    # Timeline
    'ContinuousTimelineBuilder',
    'build_continuous_timeline',
    # Settings
    'CrewOverrides',
    'ServiceSettings',
    'SettingsStore',
]
