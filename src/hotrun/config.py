import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import hotrun.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    Merges default settings with JSON and command-line overrides.

    This class provides a unified, attribute-based access point for all
    configuration. It follows a clear precedence:
    1. Base values from `settings.py` (environment and `.env` already applied).
    2. Overrides from `hotrun.json` for settings in `MODIFIABLE_SETTINGS`.
    3. Overrides given on the command line.
    """

    def __init__(self, overrides_path: Optional[Path] = None, cli_overrides: Optional[Dict[str, Any]] = None) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param overrides_path: Path to a JSON overrides file. Defaults to `hotrun.json` in the cwd.
        :param cli_overrides: Settings given explicitly on the command line.
        """
        self._load_defaults()
        self.OVERRIDES_JSON_PATH = Path(overrides_path) if overrides_path else default_settings.OVERRIDES_JSON_PATH
        self._load_overrides()

        for key, value in (cli_overrides or {}).items():
            self.set(key, value)

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                value = getattr(default_settings, key)
                # Containers are copied so instances never share mutable defaults.
                if isinstance(value, (list, dict, set)):
                    value = type(value)(value)
                setattr(self, key, value)

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the overrides JSON file.

        It will only apply overrides for keys that are explicitly listed in
        the `MODIFIABLE_SETTINGS` set in `settings.py`.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        log.info(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            self.set(key, value)
            log.debug(f"Overridden setting: {key} = {value}")

    def set(self, key: str, value: Any) -> None:
        """
        Sets a single setting, coercing path strings back to Path objects.

        :param key: The uppercase setting name.
        :param value: The new value.
        :raises AttributeError: If the setting does not exist.
        """
        if not hasattr(self, key):
            raise AttributeError(f"Unknown setting '{key}'")
        if isinstance(getattr(self, key), Path) and isinstance(value, str):
            value = Path(value)
        setattr(self, key, value)

    def get(self, key: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return getattr(self, key, default)

    def as_dict(self) -> Dict[str, Any]:
        """Returns every uppercase setting as a dictionary."""
        return {key: value for key, value in vars(self).items() if key.isupper()}
