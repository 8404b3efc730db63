"""
Timeline Service Tests
======================

Run: python -m pytest tests/test_timeline_server.py -v
"""

import pytest
from fastapi.testclient import TestClient

from api.timeline_server import app


ANALYSIS = {
    'analysis_id': 'A1',
    'duties': [{
        'duty_id': 'D001', 'date': '2026-02-10',
        'report_time_utc': '2026-02-10T06:00:00Z', 'release_time_utc': '2026-02-10T14:00:00Z',
        'duty_hours': 8.0, 'avg_performance': 70.0, 'min_performance': 55.0, 'landing_performance': 60.0,
    }],
}


@pytest.fixture
def client():
    return TestClient(app)


class TestTimelineEndpoint:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'

    def test_coarse_timeline(self, client):
        response = client.post('/api/timeline', json={'analysis': ANALYSIS})
        assert response.status_code == 200

        body = response.json()
        assert body['month'] == '2026-02-01'
        assert body['analysis_id'] == 'A1'
        assert len(body['points']) == 7
        assert body['points'][0]['phase'] == 'rest'
        assert body['duty_regions'][0]['type'] == 'duty'
        stamps = [p['timestamp_ms'] for p in body['points']]
        assert stamps == sorted(stamps)

    def test_high_res_timelines(self, client):
        response = client.post('/api/timeline', json={
            'analysis': ANALYSIS,
            'high_res_timelines': {'D001': {'duty_id': 'D001', 'timeline': [
                {'timestamp': '2026-02-10T06:00:00Z', 'performance': 80.0},
            ]}},
        })
        points = [p for p in response.json()['points'] if p['duty_id'] == 'D001']
        assert len(points) == 1
        assert points[0]['is_high_res']

    def test_config_override(self, client):
        response = client.post('/api/timeline', json={
            'analysis': ANALYSIS, 'config_overrides': {'coarse': {'release_drop': 10}},
        })
        release = [p for p in response.json()['points'] if p['timestamp_ms'] == 1770732000000]
        assert release[0]['performance'] == 60.0

    def test_smooth(self, client):
        response = client.post('/api/timeline', json={'analysis': ANALYSIS, 'smooth': True})
        release = [p for p in response.json()['points'] if p['timestamp_ms'] == 1770732000000]
        assert release[0]['performance'] == 69.0

    def test_smooth_with_override(self, client):
        response = client.post('/api/timeline', json={
            'analysis': ANALYSIS, 'smooth': True, 'config_overrides': {'coarse': {'release_drop': 10}},
        })
        release = [p for p in response.json()['points'] if p['timestamp_ms'] == 1770732000000]
        assert release[0]['performance'] == 60.0

    def test_integer_override(self, client):
        duty = {k: v for k, v in ANALYSIS['duties'][0].items() if k not in ('report_time_utc', 'release_time_utc')}
        response = client.post('/api/timeline', json={
            'analysis': {'analysis_id': 'A1', 'duties': [duty]},
            'config_overrides': {'baseline': {'fallback_report_hour': 7}},
        })
        assert response.status_code == 200
        report = [p for p in response.json()['points'] if p['timestamp_ms'] == 1770706800000]   # 07:00Z
        assert report[0]['performance'] == 70.0

    @pytest.mark.parametrize('overrides', [
        {'coarse': {'no_such_knob': 1}},
        {'nonsense': {}},
        {'baseline': {'fallback_report_hour': 7.5}},
        {'coarse': {'release_drop': 'lots'}},
    ])
    def test_bad_override(self, client, overrides):
        response = client.post('/api/timeline', json={'analysis': ANALYSIS, 'config_overrides': overrides})
        assert response.status_code == 400

    def test_bad_month(self, client):
        response = client.post('/api/timeline', json={'analysis': ANALYSIS, 'month': 'Feb'})
        assert response.status_code == 400

    def test_empty_analysis(self, client):
        response = client.post('/api/timeline', json={'analysis': {}, 'month': '2026-02'})
        assert response.json()['points'] == []


class TestTripleTimeEndpoint:

    def test_triple_time(self, client):
        response = client.post('/api/triple-time', json={
            'departure_utc': '2025-03-15T06:00:00Z',
            'arrival_utc': '2025-03-15T13:00:00Z',
            'departure_timezone': 'Asia/Qatar',
            'arrival_timezone': 'Europe/London',
            'home_base_timezone': 'Asia/Qatar',
            'departure_code': 'DOH',
            'arrival_code': 'LHR',
            'hours_away_from_base': 60,
            'acclimatization_state': 'acclimatized',
        })
        assert response.status_code == 200
        assert response.json() == {
            'zulu': '06:00Z – 13:00Z',
            'local': '09:00 DOH – 13:00 LHR',
            'home': '09:00 – 16:00 Qatar',
            'local_is_home_ref': False,
        }
