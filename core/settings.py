"""
Settings
========

- ServiceSettings: where the analysis service lives (env driven)
- SettingsStore: pilot preferences persisted as JSON between sessions
- CrewOverrides: per-duty ULR crew-set choices, kept beside the duties

Changing a setting never triggers an analysis; the next upload reads
whatever is current.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional

from core.parameters import CONFIG_PRESETS, CREW_SETS
from models.data_models import PilotSettings

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://web-production-7a4fb.up.railway.app"
DEFAULT_SETTINGS_PATH = Path.home() / ".fatigue-timeline" / "settings.json"

ANALYSIS_TYPES = ('single', 'range')
THEMES = ('dark', 'light')


@dataclass
class ServiceSettings:
    """Connection settings for the remote analysis service"""
    api_url: str = DEFAULT_API_URL
    timeout_seconds: float = 120.0    # roster analysis can take a while
    settings_path: Path = field(default_factory=lambda: DEFAULT_SETTINGS_PATH)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None):
        """
        FATIGUE_API_URL, FATIGUE_API_TIMEOUT and FATIGUE_SETTINGS_PATH
        override the defaults.
        """
        env = os.environ if environ is None else environ
        settings = cls()
        if env.get("FATIGUE_API_URL"):
            settings.api_url = env["FATIGUE_API_URL"].rstrip('/')
        if env.get("FATIGUE_API_TIMEOUT"):
            settings.timeout_seconds = float(env["FATIGUE_API_TIMEOUT"])
        if env.get("FATIGUE_SETTINGS_PATH"):
            settings.settings_path = Path(env["FATIGUE_SETTINGS_PATH"])
        return settings


# ============================================================================
# PILOT SETTINGS
# ============================================================================

def validate_setting(name: str, value) -> None:
    """Raise ValueError for values the analysis service would reject"""
    if name == 'config_preset' and value not in CONFIG_PRESETS:
        raise ValueError(f"Unknown config preset '{value}' (expected one of {', '.join(CONFIG_PRESETS)})")
    if name == 'crew_set' and value not in CREW_SETS:
        raise ValueError(f"Unknown crew set '{value}' (expected one of {', '.join(CREW_SETS)})")
    if name == 'analysis_type' and value not in ANALYSIS_TYPES:
        raise ValueError(f"Unknown analysis type '{value}'")
    if name == 'theme' and value not in THEMES:
        raise ValueError(f"Unknown theme '{value}'")
    if name == 'selected_month' and not isinstance(value, date):
        raise ValueError(f"selected_month must be a date, got {value!r}")
    if name in ('pilot_id', 'home_base') and not value:
        raise ValueError(f"{name} must not be empty")


def _parse_month(value: str) -> date:
    """'2026-02' or '2026-02-14' -> date(2026, 2, 1)"""
    try:
        return date.fromisoformat(f"{value[:7]}-01")
    except (TypeError, ValueError):
        raise ValueError(f"Malformed month {value!r}, expected YYYY-MM")


class SettingsStore:
    """
    JSON-file backed PilotSettings.

    An unreadable or partially invalid file is never fatal: bad fields
    fall back to their defaults with a warning.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
        self.settings = self.load()

    def load(self) -> PilotSettings:
        defaults = PilotSettings()
        if not self.path.exists():
            return defaults

        try:
            raw = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read settings from {self.path}: {e}")
            return defaults
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring settings file {self.path}: not a JSON object")
            return defaults

        values = {}
        for f in fields(PilotSettings):
            if f.name not in raw:
                continue
            value = raw[f.name]
            try:
                if f.name == 'selected_month':
                    value = _parse_month(value)
                validate_setting(f.name, value)
            except ValueError as e:
                logger.warning(f"Ignoring stored {f.name}: {e}")
                continue
            values[f.name] = value
        return replace(defaults, **values)

    def save(self) -> None:
        data = asdict(self.settings)
        data['selected_month'] = self.settings.selected_month.isoformat()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding='utf-8')
        except OSError as e:
            logger.warning(f"Could not save settings to {self.path}: {e}")

    def update(self, **changes) -> PilotSettings:
        """Validate, apply and persist. Raises ValueError on a bad value."""
        known = {f.name for f in fields(PilotSettings)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        if isinstance(changes.get('selected_month'), str):
            changes['selected_month'] = _parse_month(changes['selected_month'])
        if 'home_base' in changes and isinstance(changes['home_base'], str):
            changes['home_base'] = changes['home_base'].strip().upper()
        for name, value in changes.items():
            validate_setting(name, value)

        self.settings = replace(self.settings, **changes)
        self.save()
        return self.settings


# ============================================================================
# CREW OVERRIDES
# ============================================================================

class CrewOverrides:
    """
    duty_id -> crew set, for ULR duties where this pilot flies as the other
    crew. Entries equal to the global crew set are dropped so the map only
    ever holds real exceptions.
    """

    def __init__(self, global_crew_set: str = 'crew_b'):
        validate_setting('crew_set', global_crew_set)
        self.global_crew_set = global_crew_set
        self._overrides: Dict[str, str] = {}

    def set(self, duty_id: str, crew_set: str) -> None:
        validate_setting('crew_set', crew_set)
        if crew_set == self.global_crew_set:
            self._overrides.pop(duty_id, None)
        else:
            self._overrides[duty_id] = crew_set

    def clear(self) -> None:
        self._overrides.clear()

    def get(self, duty_id: str) -> str:
        """Effective crew set for a duty"""
        return self._overrides.get(duty_id, self.global_crew_set)

    def change_global(self, crew_set: str) -> None:
        validate_setting('crew_set', crew_set)
        self.global_crew_set = crew_set
        self._overrides = {k: v for k, v in self._overrides.items() if v != crew_set}

    def to_form_value(self) -> Optional[str]:
        """JSON for the duty_crew_overrides form field, None when empty"""
        if not self._overrides:
            return None
        return json.dumps(self._overrides)

    def __contains__(self, duty_id: str) -> bool:
        return duty_id in self._overrides

    def __iter__(self) -> Iterator[str]:
        return iter(self._overrides)

    def __len__(self) -> int:
        return len(self._overrides)
