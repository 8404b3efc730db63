"""
Configuration & Parameters for Timeline Reconstruction
======================================================

All configuration dataclasses for the continuous timeline layer:
- CoarseSynthesisParameters: Five-point duty skeleton breakpoints
- RecoveryParameters: Inter-duty recovery arc heuristic
- BaselineParameters: Rested bracketing points at month edges
- ReservoirParameters: Sleep-debt -> sleep-reservoir display proxy
- RiskThresholds: Performance score thresholds
- SegmentInterpolationParameters: Per-leg performance estimate
- TimelineConfig: Master configuration container

Every number here is a display heuristic tuned by eye against backend
five-minute timelines. None of them is a physiological constant; the
fatigue model itself runs on the analysis service.
"""

from dataclasses import Field, dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Tuple

from models.data_models import ULRCrewSet


# Regulatory presets understood by the analysis service (POST /api/analyze)
CONFIG_PRESETS = ('default', 'conservative', 'liberal', 'research')
CREW_SETS = tuple(s.value for s in ULRCrewSet)


@dataclass
class CoarseSynthesisParameters:
    """Breakpoints for the five-point skeleton used when no 5-min data exists"""

    pre_report_offset_minutes: float = 30.0
    pre_report_headroom: float = 3.0      # cap = avg_performance + headroom
    nadir_fraction: float = 0.60          # of elapsed duty time
    landing_fraction: float = 0.85
    release_drop: float = 2.0             # release = avg_performance - drop

    # Sleep-reservoir offsets relative to the duty's reservoir value
    pre_report_reservoir_offset: float = 2.0
    nadir_reservoir_offset: float = -2.0
    landing_reservoir_offset: float = -3.0
    release_reservoir_offset: float = -3.0


@dataclass
class RecoveryParameters:
    """
    Recovery arc synthesized between two duties.

    Recovered performance = release value + gap_hours * rate * rate_scale,
    where rate = base_rate + efficiency_rate * sleep_efficiency (3-8 by default).
    """

    min_gap_hours: float = 2.0
    wind_down_offset_hours: float = 2.0
    wind_down_drop: float = 5.0
    wind_down_reservoir_offset: float = -4.0
    sleep_lead_in_hours: float = 3.0
    max_sleep_hours: float = 8.0

    base_rate: float = 3.0
    efficiency_rate: float = 5.0
    rate_scale: float = 0.1
    default_sleep_efficiency: float = 0.85
    reservoir_gain_per_hour: float = 1.5

    # Never imply a guaranteed full reset
    performance_cap: float = 97.0
    reservoir_cap: float = 98.0

    def recovery_rate(self, sleep_efficiency: Optional[float]) -> float:
        efficiency = sleep_efficiency or self.default_sleep_efficiency
        return self.base_rate + efficiency * self.efficiency_rate


@dataclass
class BaselineParameters:
    """Rested points bracketing the month so charts don't start on a cliff"""

    rested_performance: float = 97.0
    rested_reservoir: float = 98.0
    month_end_gap_hours: float = 12.0
    month_end_offset_ms: int = 1000
    fallback_report_hour: int = 6


@dataclass
class ReservoirParameters:
    """Sleep debt (hours) -> 50-100 reservoir proxy for the secondary axis"""

    max_debt_hours: float = 16.0
    floor: float = 50.0
    ceiling: float = 100.0

    def clamp(self, value: float) -> float:
        return max(self.floor, min(self.ceiling, value))

    def from_debt(self, sleep_debt: float) -> float:
        return self.clamp(self.ceiling - (sleep_debt / self.max_debt_hours) * (self.ceiling - self.floor))


@dataclass
class RiskThresholds:
    """
    Performance score -> risk label.

    One table for every surfaced value: coarse points, 5-min samples,
    recovery points, duty summaries. Entries are (label, lower_bound) checked
    top-down; anything below the last bound gets `floor_label`.
    """

    thresholds: List[Tuple[str, float]] = field(default_factory=lambda: [
        ('LOW', 75.0),
        ('MODERATE', 65.0),
        ('HIGH', 55.0),
    ])
    floor_label: str = 'CRITICAL'

    def classify(self, performance: Optional[float]) -> str:
        if performance is None or performance != performance:
            return 'UNKNOWN'
        for label, lower in self.thresholds:
            if performance >= lower:
                return label
        return self.floor_label


@dataclass
class SegmentInterpolationParameters:
    """
    Per-segment performance estimate for multi-sector duties.

    start = min(100, avg + start_weight * (avg - landing)). The weight has
    no literature behind it; the result is for display only.
    """

    start_weight: float = 0.5
    turnaround_hours: float = 0.5
    nominal_block_hours: float = 1.0


@dataclass
class TimelineConfig:
    """Master configuration container"""
    coarse: CoarseSynthesisParameters
    recovery: RecoveryParameters
    baseline: BaselineParameters
    reservoir: ReservoirParameters
    risk_thresholds: RiskThresholds
    segment_interpolation: SegmentInterpolationParameters

    @classmethod
    def default_config(cls):
        return cls(
            coarse=CoarseSynthesisParameters(),
            recovery=RecoveryParameters(),
            baseline=BaselineParameters(),
            reservoir=ReservoirParameters(),
            risk_thresholds=RiskThresholds(),
            segment_interpolation=SegmentInterpolationParameters(),
        )

    @classmethod
    def smooth_config(cls):
        """
        Gentler curves for presentation slides.
        - Smaller drop at release and during wind-down
        - Slower recovery so long rest blocks don't look like step changes
        """
        return cls(
            coarse=CoarseSynthesisParameters(
                release_drop=1.0,
            ),
            recovery=RecoveryParameters(
                wind_down_drop=3.0,
                base_rate=2.0,
                efficiency_rate=4.0,
            ),
            baseline=BaselineParameters(),
            reservoir=ReservoirParameters(),
            risk_thresholds=RiskThresholds(),
            segment_interpolation=SegmentInterpolationParameters(),
        )

    @classmethod
    def from_overrides(cls, overrides: Dict[str, Dict[str, Any]], base: Optional['TimelineConfig'] = None):
        """
        `base` (default config if omitted) with selected values replaced, e.g.
        {'coarse': {'nadir_fraction': 0.5}, 'recovery': {'performance_cap': 95}}

        Values are coerced to the parameter's declared type; 7.0 is accepted
        for an int parameter, 7.5 is not.
        """
        config = base or cls.default_config()
        known = {f.name for f in fields(cls)}
        for group_name, values in overrides.items():
            if group_name not in known:
                raise ValueError(f"Unknown config group '{group_name}'")
            group = getattr(config, group_name)
            group_fields = {f.name: f for f in fields(group)}
            unknown = set(values) - set(group_fields)
            if unknown:
                raise ValueError(f"Unknown {group_name} parameters: {', '.join(sorted(unknown))}")
            coerced = {
                name: _coerce_parameter(group_name, group_fields[name], getattr(group, name), value)
                for name, value in values.items()
            }
            setattr(config, group_name, replace(group, **coerced))
        return config


def _coerce_parameter(group_name: str, f: Field, current: Any, value: Any) -> Any:
    label = f"{group_name}.{f.name}"
    if f.type in (int, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{label} must be a number, got {value!r}")
        if f.type is int:
            if not float(value).is_integer():
                raise ValueError(f"{label} must be a whole number, got {value!r}")
            return int(value)
        return float(value)
    if not isinstance(value, type(current)):
        raise ValueError(f"{label} must be {type(current).__name__}, got {value!r}")
    return value
