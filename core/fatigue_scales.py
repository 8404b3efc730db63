"""
Fatigue Scales
==============

Derived readouts for a model performance score (20-100):
- Fatigue Hazard Area over a five-minute timeline (Dawson & McCulloch, 2005)
- Karolinska Sleepiness Scale 1-9 (Åkerstedt & Gillberg, 1990)
- Samn-Perelli 1-7 (Samn & Perelli, 1982)
- PVT mean reaction time in ms (Basner & Dinges, 2011)
- Share of the performance deficit owed to S, C, W and time-on-task

The mappings are piecewise-linear calibrations for display. They are not
outputs of the fatigue model.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Tuple

import numpy as np

from models.data_models import DutyTimelineSample

FHA_THRESHOLD = 77.0
TIMELINE_RESOLUTION_MIN = 5.0

PERFORMANCE_FLOOR = 20.0
PERFORMANCE_CEILING = 100.0

# (performance, scale value), performance descending
KSS_BREAKPOINTS: List[Tuple[float, float]] = [
    (95, 1), (88, 2), (83, 3), (80, 4), (77, 5), (70, 6), (55, 7), (35, 8), (20, 9),
]
SAMN_PERELLI_BREAKPOINTS: List[Tuple[float, float]] = [
    (95, 1), (88, 2), (77, 3), (65, 4), (55, 5), (35, 6), (20, 7),
]

PVT_BASELINE_MS = 220.0
PVT_MS_PER_POINT = 3.5


class ScaleLabel(NamedTuple):
    label: str
    severity: str   # 'normal', 'caution' or 'critical'


def _round1(value: float) -> float:
    """Round half up to one decimal"""
    return math.floor(value * 10 + 0.5) / 10


def _clamp_performance(performance: float) -> float:
    return float(np.clip(performance, PERFORMANCE_FLOOR, PERFORMANCE_CEILING))


def _piecewise(performance: float, breakpoints: List[Tuple[float, float]]) -> float:
    # np.interp wants ascending x; values outside the table hold the end value
    xs = [p for p, _ in reversed(breakpoints)]
    ys = [v for _, v in reversed(breakpoints)]
    return _round1(float(np.interp(_clamp_performance(performance), xs, ys)))


# ============================================================================
# FATIGUE HAZARD AREA
# ============================================================================

def calculate_fha(performances: Iterable[float],
                  threshold: float = FHA_THRESHOLD,
                  resolution_min: float = TIMELINE_RESOLUTION_MIN) -> int:
    """
    FHA in %-minutes: sum of max(0, threshold - P) * dt over the samples.
    """
    values = np.fromiter(performances, dtype=float)
    if values.size == 0:
        return 0
    deficit = np.clip(threshold - values, 0.0, None)
    return int(math.floor(float(deficit.sum()) * resolution_min + 0.5))


def fha_severity(fha: float) -> ScaleLabel:
    if fha <= 100:
        return ScaleLabel('Low', 'normal')
    if fha <= 500:
        return ScaleLabel('Moderate', 'caution')
    return ScaleLabel('High', 'critical')


# ============================================================================
# SUBJECTIVE SCALES
# ============================================================================

def performance_to_kss(performance: float) -> float:
    """95+ -> 1 (extremely alert) ... 20 -> 9 (fighting sleep)"""
    return _piecewise(performance, KSS_BREAKPOINTS)


def kss_label(kss: float) -> ScaleLabel:
    if kss <= 3:
        return ScaleLabel('Alert', 'normal')
    if kss <= 5:
        return ScaleLabel('Neither alert nor sleepy', 'normal')
    if kss <= 6:
        return ScaleLabel('Some signs of sleepiness', 'caution')
    if kss <= 7:
        return ScaleLabel('Sleepy, effort to stay awake', 'caution')
    if kss <= 8:
        return ScaleLabel('Sleepy, great effort', 'critical')
    return ScaleLabel('Extremely sleepy', 'critical')


def performance_to_samn_perelli(performance: float) -> float:
    """95+ -> 1 (fully alert) ... 20 -> 7 (completely exhausted)"""
    return _piecewise(performance, SAMN_PERELLI_BREAKPOINTS)


def samn_perelli_label(sp: float) -> ScaleLabel:
    if sp <= 2:
        return ScaleLabel('Fully alert', 'normal')
    if sp <= 3:
        return ScaleLabel('Okay, somewhat fresh', 'normal')
    if sp <= 4:
        return ScaleLabel('A little tired', 'caution')
    if sp <= 5:
        return ScaleLabel('Moderately tired', 'caution')
    if sp <= 6:
        return ScaleLabel('Extremely tired', 'critical')
    return ScaleLabel('Completely exhausted', 'critical')


def performance_to_reaction_time(performance: float) -> int:
    """RT = 220 + (100 - P) * 3.5 ms"""
    p = _clamp_performance(performance)
    return int(math.floor(PVT_BASELINE_MS + (PERFORMANCE_CEILING - p) * PVT_MS_PER_POINT + 0.5))


def reaction_time_label(rt_ms: float) -> ScaleLabel:
    if rt_ms <= 280:
        return ScaleLabel('Normal', 'normal')
    if rt_ms <= 350:
        return ScaleLabel('Mildly impaired', 'caution')
    if rt_ms <= 420:
        return ScaleLabel('Significantly impaired', 'critical')
    return ScaleLabel('Severely impaired', 'critical')


# ============================================================================
# DECOMPOSITION
# ============================================================================

@dataclass(frozen=True)
class PerformanceDecomposition:
    """
    The deficit (100 - P) split in proportion to the raw factor values.
    Contributions are in performance points and sum to the deficit.
    """
    performance: float
    sleep_pressure: float
    circadian: float
    sleep_inertia: float
    time_on_task_penalty: float
    hours_on_duty: float
    s_contribution: float
    c_contribution: float
    w_contribution: float
    tot_contribution: float


def decompose_performance(sample: DutyTimelineSample) -> PerformanceDecomposition:
    factors = np.array([
        sample.sleep_pressure, sample.circadian, sample.sleep_inertia, sample.time_on_task_penalty,
    ], dtype=float)
    deficit = max(0.0, PERFORMANCE_CEILING - sample.performance)
    total = factors.sum()

    if total > 0 and deficit > 0:
        shares = factors / total * deficit
    else:
        shares = np.zeros(4)

    s, c, w, tot = (_round1(float(v)) for v in shares)
    return PerformanceDecomposition(
        performance=sample.performance,
        sleep_pressure=sample.sleep_pressure,
        circadian=sample.circadian,
        sleep_inertia=sample.sleep_inertia,
        time_on_task_penalty=sample.time_on_task_penalty,
        hours_on_duty=sample.hours_on_duty,
        s_contribution=s,
        c_contribution=c,
        w_contribution=w,
        tot_contribution=tot,
    )
