"""
client.py - Analysis Service Client
====================================

Thin requests wrapper around the remote fatigue analysis service.

Endpoints:
- POST /api/analyze              - Upload roster, get analysis
- GET  /api/duty/{aid}/{did}     - Five-minute timeline for one duty
- POST /api/airports/batch       - Airport timezone/coordinates
- GET  /health                   - Liveness

Every call is a single request: no retries, no partial results. Failures
surface as api.exceptions.FatigueApiError subclasses.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, Union

import requests
from pydantic import ValidationError

from api.exceptions import InvalidPayloadError, ServiceUnavailableError, UpstreamError, FatigueApiError
from api.schemas import AirportResponse, AnalysisResponse, BatchAirportRequest, DutyDetailResponse
from core.parameters import CONFIG_PRESETS, CREW_SETS
from core.settings import ServiceSettings

logger = logging.getLogger(__name__)

DUTY_DETAIL_BATCH_SIZE = 5
AIRPORT_BATCH_LIMIT = 50


class FatigueApiClient:
    """
    Usage:
        client = FatigueApiClient(ServiceSettings.from_env())
        result = client.analyze_roster('roster.pdf', pilot_id='P12345', home_base='DOH')
    """

    def __init__(self, settings: Optional[ServiceSettings] = None,
                 session: Optional[requests.Session] = None):
        self.settings = settings or ServiceSettings.from_env()
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.settings.api_url.rstrip('/')}{path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.settings.timeout_seconds)
        try:
            response = self.session.request(method, self._url(path), **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ServiceUnavailableError(str(e)) from e

        if not response.ok:
            detail = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    detail = body.get('detail')
            except ValueError:
                pass
            logger.error(f"{method} {path} -> HTTP {response.status_code}: {detail}")
            raise UpstreamError(response.status_code, detail)
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise InvalidPayloadError(f"Response is not JSON: {e}") from e

    # ------------------------------------------------------------------

    def analyze_roster(
        self,
        roster: Union[str, Path, BinaryIO],
        pilot_id: str,
        home_base: str,
        config_preset: str = 'default',
        crew_set: str = 'crew_b',
        duty_crew_overrides: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> AnalysisResponse:
        """
        Upload a roster (PDF or CSV) for analysis.

        `duty_crew_overrides` is the JSON produced by CrewOverrides.to_form_value().
        """
        if config_preset not in CONFIG_PRESETS:
            raise ValueError(f"Unknown config preset '{config_preset}'")
        if crew_set not in CREW_SETS:
            raise ValueError(f"Unknown crew set '{crew_set}'")

        data = {
            'pilot_id': pilot_id,
            'home_base': home_base,
            'config_preset': config_preset,
            'crew_set': crew_set,
        }
        if duty_crew_overrides:
            data['duty_crew_overrides'] = duty_crew_overrides

        if isinstance(roster, (str, Path)):
            path = Path(roster)
            with path.open('rb') as fh:
                files = {'file': (filename or path.name, fh)}
                response = self._request('POST', '/api/analyze', data=data, files=files)
        else:
            name = filename or Path(getattr(roster, 'name', 'roster.pdf')).name
            response = self._request('POST', '/api/analyze', data=data, files={'file': (name, roster)})

        try:
            result = AnalysisResponse.model_validate(self._json(response))
        except ValidationError as e:
            raise InvalidPayloadError(f"Unexpected analysis payload: {e}") from e
        logger.info(f"Analysis {result.analysis_id}: {len(result.duties)} duties for {result.pilot_id}")
        return result

    def get_duty_detail(self, analysis_id: str, duty_id: str) -> DutyDetailResponse:
        response = self._request('GET', f'/api/duty/{analysis_id}/{duty_id}')
        try:
            return DutyDetailResponse.model_validate(self._json(response))
        except ValidationError as e:
            raise InvalidPayloadError(f"[{duty_id}] Unexpected duty detail payload: {e}") from e

    def get_airports_batch(self, codes: Sequence[str]) -> List[AirportResponse]:
        """At most 50 codes per call, the service rejects more"""
        if not codes:
            return []
        if len(codes) > AIRPORT_BATCH_LIMIT:
            raise ValueError(f"Maximum {AIRPORT_BATCH_LIMIT} airports per batch request")
        request = BatchAirportRequest(codes=list(codes))
        response = self._request('POST', '/api/airports/batch', json=request.model_dump())
        body = self._json(response)
        if not isinstance(body, list):
            raise InvalidPayloadError("Airport batch response is not a list")
        try:
            return [AirportResponse.model_validate(item) for item in body]
        except ValidationError as e:
            raise InvalidPayloadError(f"Unexpected airport payload: {e}") from e

    def health_check(self) -> bool:
        try:
            self._request('GET', '/health', timeout=10)
        except FatigueApiError:
            return False
        return True

    def fetch_all_duty_timelines(self, analysis_id: str,
                                 duty_ids: Sequence[str]) -> Dict[str, DutyDetailResponse]:
        """
        Five-minute timelines for every duty, five requests at a time.

        A failed duty is logged and left out; the caller's builder falls back
        to the coarse skeleton for it.
        """
        timelines: Dict[str, DutyDetailResponse] = {}
        with ThreadPoolExecutor(max_workers=DUTY_DETAIL_BATCH_SIZE) as pool:
            for start in range(0, len(duty_ids), DUTY_DETAIL_BATCH_SIZE):
                batch = duty_ids[start:start + DUTY_DETAIL_BATCH_SIZE]
                futures = [(duty_id, pool.submit(self.get_duty_detail, analysis_id, duty_id)) for duty_id in batch]
                for duty_id, future in futures:
                    try:
                        timelines[duty_id] = future.result()
                    except FatigueApiError as e:
                        logger.warning(f"[{duty_id}] Duty timeline unavailable: {e}")
        logger.info(f"Fetched {len(timelines)}/{len(duty_ids)} duty timelines for {analysis_id}")
        return timelines
