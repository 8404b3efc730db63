"""
Timeline Configuration Tests
============================

Presets, per-request overrides and the crew-set table.

Run: python -m pytest tests/test_parameters.py -v
"""

import pytest

from core.parameters import CREW_SETS, TimelineConfig
from models.data_models import ULRCrewSet


# ============================================================================
# OVERRIDES
# ============================================================================

class TestOverrides:

    def test_defaults_untouched_without_overrides(self):
        config = TimelineConfig.from_overrides({})
        assert config.coarse.release_drop == 2.0
        assert config.baseline.fallback_report_hour == 6

    def test_applied_on_top_of_base(self):
        config = TimelineConfig.from_overrides({'coarse': {'release_drop': 10}}, TimelineConfig.smooth_config())
        assert config.coarse.release_drop == 10.0
        assert config.recovery.base_rate == 2.0   # smooth value kept

    def test_whole_float_becomes_int(self):
        config = TimelineConfig.from_overrides({'baseline': {'fallback_report_hour': 7.0, 'month_end_offset_ms': 500}})
        assert config.baseline.fallback_report_hour == 7
        assert isinstance(config.baseline.fallback_report_hour, int)
        assert isinstance(config.baseline.month_end_offset_ms, int)

    def test_int_becomes_float(self):
        config = TimelineConfig.from_overrides({'coarse': {'nadir_fraction': 1}})
        assert isinstance(config.coarse.nadir_fraction, float)

    @pytest.mark.parametrize('overrides', [
        {'baseline': {'fallback_report_hour': 7.5}},
        {'coarse': {'release_drop': '2'}},
        {'coarse': {'release_drop': True}},
        {'risk_thresholds': {'floor_label': 3}},
        {'coarse': {'no_such_knob': 1}},
        {'nonsense': {}},
    ])
    def test_rejected(self, overrides):
        with pytest.raises(ValueError):
            TimelineConfig.from_overrides(overrides)


class TestCrewSets:

    def test_built_from_enum(self):
        assert CREW_SETS == ('crew_a', 'crew_b')
        assert CREW_SETS == tuple(s.value for s in ULRCrewSet)
