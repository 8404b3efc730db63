#!/usr/bin/env python3
"""
Timeline Analyzer - Command Line Interface
==========================================

Build the continuous monthly timeline from a saved analysis response
(the JSON returned by POST /api/analyze) and print a summary or export CSV.

    python analyze_timeline.py analysis.json
    python analyze_timeline.py analysis.json --details details.json --csv timeline.csv
    python analyze_timeline.py analysis.json --timezone Asia/Qatar --smooth
"""

import argparse
import json
import logging
import sys
from collections import Counter
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from core.fatigue_scales import calculate_fha, fha_severity, performance_to_kss, kss_label
from core.parameters import TimelineConfig
from core.timeline_builder import ContinuousTimelineBuilder
from core.timezone import TimezoneConverter
from core.transform import transform_analysis_result, transform_duty_timeline

logger = logging.getLogger("analyze_timeline")


def _month_arg(value: str) -> date:
    try:
        return date.fromisoformat(f"{value[:7]}-01")
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid month '{value}', expected YYYY-MM")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Continuous fatigue timeline from a saved analysis")
    parser.add_argument("analysis", type=Path, help="analysis JSON (POST /api/analyze response)")
    parser.add_argument("--details", type=Path,
                        help="JSON object of duty_id -> duty detail (GET /api/duty/...) responses")
    parser.add_argument("--month", type=_month_arg, help="YYYY-MM, defaults to the analysis month")
    parser.add_argument("--timezone", help="zone for month boundaries, defaults to the home base zone")
    parser.add_argument("--smooth", action="store_true", help="gentler presentation curves")
    parser.add_argument("--csv", type=Path, help="write points to this CSV file")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def print_summary(results, timeline, high_res):
    print("=" * 70)
    print(f"FATIGUE TIMELINE - {results.month:%B %Y}")
    print("=" * 70)
    print(f"Pilot:           {results.pilot_id or '-'} ({results.pilot_base or '-'})")
    print(f"Duties:          {len(results.duties)} ({len(high_res)} with 5-min data)")
    print(f"Block hours:     {results.statistics.total_block_hours:.1f}")
    print(f"Points:          {len(timeline.points)}")
    print(f"Duty regions:    {len(timeline.duty_regions)}")
    print(f"Sleep regions:   {len(timeline.sleep_regions)}")

    if timeline.points:
        risks = Counter(p.risk_level for p in timeline.points)
        print("Risk levels:     " + ", ".join(f"{k} {v}" for k, v in sorted(risks.items())))
        worst = min(timeline.points, key=lambda p: p.performance)
        kss = performance_to_kss(worst.performance)
        print(f"Lowest point:    {worst.performance:.1f} ({worst.duty_label or worst.phase.value}), "
              f"KSS {kss:.1f} {kss_label(kss).label}")

    for duty_id, detail in high_res.items():
        fha = calculate_fha(s.performance for s in detail.timeline)
        print(f"  [{duty_id}] FHA {fha} %-min ({fha_severity(fha).label})")
    print()


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        payload = json.loads(args.analysis.read_text(encoding="utf-8"))
        details = json.loads(args.details.read_text(encoding="utf-8")) if args.details else {}
    except (OSError, ValueError) as e:
        logger.error(f"Could not read input: {e}")
        return 1

    month = args.month
    config = TimelineConfig.smooth_config() if args.smooth else TimelineConfig.default_config()

    try:
        results = transform_analysis_result(payload, month or date.today().replace(day=1), config)
        high_res = {duty_id: transform_duty_timeline(d) for duty_id, d in details.items()}
    except ValidationError as e:
        logger.error(f"Input does not look like an analysis response: {e}")
        return 1

    builder = ContinuousTimelineBuilder(config, TimezoneConverter())
    timeline = builder.build(
        results.duties,
        month or results.month,
        rest_days_sleep=results.rest_days_sleep,
        high_res_timelines=high_res,
        timezone=args.timezone or results.home_base_timezone or "UTC",
    )

    print_summary(results, timeline, high_res)

    if args.csv:
        timeline.to_dataframe().to_csv(args.csv)
        print(f"Wrote {len(timeline.points)} points to {args.csv}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
