"""
Settings Tests
==============

Service settings from the environment, the JSON-backed pilot settings
store and per-duty crew-set overrides.

Run: python -m pytest tests/test_settings.py -v
"""

import json
from datetime import date
from pathlib import Path

import pytest

from core.settings import DEFAULT_API_URL, CrewOverrides, ServiceSettings, SettingsStore


# ============================================================================
# SERVICE SETTINGS
# ============================================================================

class TestServiceSettings:

    def test_defaults(self):
        settings = ServiceSettings.from_env({})
        assert settings.api_url == DEFAULT_API_URL
        assert settings.timeout_seconds == 120.0

    def test_env_overrides(self):
        settings = ServiceSettings.from_env({
            'FATIGUE_API_URL': 'http://localhost:8000/',
            'FATIGUE_API_TIMEOUT': '15',
            'FATIGUE_SETTINGS_PATH': '/tmp/pilot.json',
        })
        assert settings.api_url == 'http://localhost:8000'
        assert settings.timeout_seconds == 15.0
        assert settings.settings_path == Path('/tmp/pilot.json')


# ============================================================================
# SETTINGS STORE
# ============================================================================

class TestSettingsStore:

    def test_missing_file_gives_defaults(self, tmp_path):
        store = SettingsStore(tmp_path / 'settings.json')
        assert store.settings.pilot_id == 'P12345'
        assert store.settings.home_base == 'DOH'
        assert store.settings.crew_set == 'crew_b'

    def test_update_persists(self, tmp_path):
        path = tmp_path / 'nested' / 'settings.json'
        store = SettingsStore(path)
        store.update(pilot_id='P99', home_base=' lhr ', selected_month='2026-03', config_preset='conservative')

        reloaded = SettingsStore(path).settings
        assert reloaded.pilot_id == 'P99'
        assert reloaded.home_base == 'LHR'
        assert reloaded.selected_month == date(2026, 3, 1)
        assert reloaded.config_preset == 'conservative'
        assert json.loads(path.read_text())['selected_month'] == '2026-03-01'

    @pytest.mark.parametrize('changes', [
        {'config_preset': 'reckless'},
        {'crew_set': 'crew_c'},
        {'theme': 'neon'},
        {'analysis_type': 'yearly'},
        {'pilot_id': ''},
        {'selected_month': 'March'},
        {'favourite_colour': 'blue'},
    ])
    def test_update_rejects_bad_values(self, tmp_path, changes):
        store = SettingsStore(tmp_path / 'settings.json')
        with pytest.raises(ValueError):
            store.update(**changes)
        assert not (tmp_path / 'settings.json').exists()

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / 'settings.json'
        path.write_text('{not json')
        assert SettingsStore(path).settings.home_base == 'DOH'

    def test_bad_fields_ignored_individually(self, tmp_path):
        path = tmp_path / 'settings.json'
        path.write_text(json.dumps({
            'pilot_id': 'P7', 'crew_set': 'crew_z', 'selected_month': '2025-11-14', 'extra': 1,
        }))
        settings = SettingsStore(path).settings
        assert settings.pilot_id == 'P7'
        assert settings.crew_set == 'crew_b'
        assert settings.selected_month == date(2025, 11, 1)

    def test_non_object_file(self, tmp_path):
        path = tmp_path / 'settings.json'
        path.write_text('[1, 2, 3]')
        assert SettingsStore(path).settings.pilot_id == 'P12345'


# ============================================================================
# CREW OVERRIDES
# ============================================================================

class TestCrewOverrides:

    def test_override_differs_from_global(self):
        overrides = CrewOverrides('crew_b')
        overrides.set('D003', 'crew_a')
        assert overrides.get('D003') == 'crew_a'
        assert overrides.get('D004') == 'crew_b'
        assert 'D003' in overrides
        assert json.loads(overrides.to_form_value()) == {'D003': 'crew_a'}

    def test_setting_global_value_removes_entry(self):
        overrides = CrewOverrides('crew_b')
        overrides.set('D003', 'crew_a')
        overrides.set('D003', 'crew_b')
        assert len(overrides) == 0
        assert overrides.to_form_value() is None

    def test_change_global_drops_matching_entries(self):
        overrides = CrewOverrides('crew_b')
        overrides.set('D003', 'crew_a')
        overrides.change_global('crew_a')
        assert list(overrides) == []
        assert overrides.get('D003') == 'crew_a'

    def test_clear(self):
        overrides = CrewOverrides()
        overrides.set('D001', 'crew_a')
        overrides.set('D002', 'crew_a')
        overrides.clear()
        assert len(overrides) == 0

    def test_invalid_crew_set(self):
        with pytest.raises(ValueError):
            CrewOverrides().set('D001', 'crew_x')
        with pytest.raises(ValueError):
            CrewOverrides('crew_x')
