import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import runstack.settings as default_settings

log = logging.getLogger(__name__)


def _coerce(default: Any, value: Any) -> Any:
    """
    Converts an override to the type of the default it replaces.

    :raises TypeError: If the value cannot stand in for the default.
    """
    if isinstance(default, Path):
        if not isinstance(value, str):
            raise TypeError("expected a path string")
        return Path(value)
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise TypeError("expected true or false")
        return value
    if isinstance(default, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError("expected a number")
        if isinstance(default, int) and not isinstance(value, int):
            raise TypeError("expected a whole number")
        if value < 0:
            raise TypeError("expected a non-negative number")
        return value
    return value


class MergedSettings:
    """
    Supervisor configuration with runtime overrides applied.

    Values come from `runstack.settings` (which has already read `.env`), then
    from the overrides JSON file for the keys listed in `MODIFIABLE_SETTINGS`.
    Every setting is read as an attribute, e.g. `config.TREE_WALK_MAX_DEPTH`.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        """
        :param overrides_path: Overrides file to read (defaults to OVERRIDES_JSON_PATH).
        """
        self.OVERRIDES_JSON_PATH: Path = overrides_path or default_settings.OVERRIDES_JSON_PATH
        for key in dir(default_settings):
            if key.isupper() and key != "OVERRIDES_JSON_PATH":
                setattr(self, key, getattr(default_settings, key))
        self._apply_overrides(self._read_overrides())

    def _read_overrides(self) -> Dict[str, Any]:
        if not self.OVERRIDES_JSON_PATH.exists():
            return {}
        try:
            data = json.loads(self.OVERRIDES_JSON_PATH.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.error(f"Failed to load overrides from '{self.OVERRIDES_JSON_PATH}': {e}")
            return {}
        if not isinstance(data, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must hold a JSON object. Ignoring it.")
            return {}
        return data

    def _apply_overrides(self, overrides: Dict[str, Any]) -> None:
        if overrides:
            log.info(f"Applying {len(overrides)} setting overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            self.apply_override(key, value)

    def apply_override(self, key: str, value: Any) -> bool:
        """
        Replaces a modifiable setting in memory after checking the value's type.

        :return: True if the override was applied, False if it was logged and ignored.
        """
        if not hasattr(self, key):
            log.warning(f"Unknown setting '{key}' in overrides. Ignoring.")
            return False
        if key not in self.MODIFIABLE_SETTINGS:
            log.warning(f"Setting '{key}' is non-modifiable at runtime. Ignoring override.")
            return False
        try:
            setattr(self, key, _coerce(getattr(self, key), value))
        except TypeError as e:
            log.warning(f"Bad override for '{key}' ({value!r}): {e}. Keeping {getattr(self, key)!r}.")
            return False
        log.debug(f"Override applied: {key} = {value!r}")
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """Returns a setting by name, or `default` if there is none."""
        return getattr(self, key, default)

    def save_overrides(self, overrides: Dict[str, Any]) -> None:
        """
        Writes overrides to the overrides file, keeping only modifiable keys.

        Nothing is written if no modifiable key remains.
        """
        to_save = {key: value for key, value in overrides.items() if key in self.MODIFIABLE_SETTINGS}
        dropped = sorted(set(overrides) - set(to_save))
        if dropped:
            log.warning(f"Not saving non-modifiable settings: {', '.join(dropped)}")
        if not to_save:
            return

        try:
            self.OVERRIDES_JSON_PATH.write_text(json.dumps(to_save, indent=4), encoding="utf-8")
        except OSError as e:
            log.error(f"Failed to write overrides to '{self.OVERRIDES_JSON_PATH}': {e}")
            return
        log.info(f"Saved {len(to_save)} setting overrides to {self.OVERRIDES_JSON_PATH}")


# Shared instance used by the supervisor modules, console and logging setup
effective_settings = MergedSettings()
