"""
timeline_server.py - Timeline Service
======================================

Builds chart-ready timelines from analysis results the caller already has.

Endpoints:
- POST /api/timeline     - Analysis result (+ optional 5-min timelines) -> points/regions
- POST /api/triple-time  - Zulu / acclimatized local / home-base strings for a leg
- GET  /health           - Health check

Usage:
    uvicorn api.timeline_server:app --reload --host 0.0.0.0 --port 8001
"""

import logging
import os
from datetime import date, datetime

import pytz
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from api.schemas import TimelineRequest, TripleTimeRequest, TripleTimeResponse
from core.parameters import TimelineConfig
from core.timeline_builder import ContinuousTimelineBuilder
from core.timezone import TimezoneCache, TimezoneConverter
from core.transform import transform_analysis_result, transform_duty_timeline

logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP INITIALIZATION
# ============================================================================

app = FastAPI(
    title="Fatigue Timeline API",
    description="Continuous monthly performance timelines from fatigue analysis results",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared across requests; only ever grows
timezone_cache = TimezoneCache()


def _month(value: str) -> date:
    try:
        return date.fromisoformat(f"{value[:7]}-01")
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid month '{value}', expected YYYY-MM")


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(pytz.utc).isoformat()
    }


@app.post("/api/timeline")
async def build_timeline(request: TimelineRequest):
    """
    Continuous timeline for one analysis month.

    Five-minute timelines in `high_res_timelines` (keyed by duty id) replace
    the coarse skeleton for those duties.
    """
    base = TimelineConfig.smooth_config() if request.smooth else None
    try:
        config = TimelineConfig.from_overrides(request.config_overrides, base)
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    fallback = _month(request.month) if request.month else date.today().replace(day=1)
    results = transform_analysis_result(request.analysis, fallback, config)
    month = _month(request.month) if request.month else results.month

    high_res = {
        duty_id: transform_duty_timeline(detail)
        for duty_id, detail in request.high_res_timelines.items()
    }

    builder = ContinuousTimelineBuilder(config, TimezoneConverter(timezone_cache))
    timeline = builder.build(
        results.duties,
        month,
        rest_days_sleep=results.rest_days_sleep,
        high_res_timelines=high_res,
        timezone=request.timezone,
    )
    logger.info(f"Timeline {month:%Y-%m}: {len(timeline.points)} points for {len(results.duties)} duties")

    body = timeline.to_dict()
    body["month"] = month.isoformat()
    body["analysis_id"] = results.analysis_id
    return body


@app.post("/api/triple-time", response_model=TripleTimeResponse)
async def triple_time(request: TripleTimeRequest):
    converter = TimezoneConverter(timezone_cache)
    triple = converter.build_triple_time(
        request.departure_utc,
        request.arrival_utc,
        request.departure_timezone,
        request.arrival_timezone,
        request.home_base_timezone,
        request.departure_code,
        request.arrival_code,
        hours_away_from_base=request.hours_away_from_base,
        backend_state=request.acclimatization_state,
    )
    return TripleTimeResponse(
        zulu=triple.zulu,
        local=triple.local,
        home=triple.home,
        local_is_home_ref=triple.local_is_home_ref,
    )


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8001))
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=port)
