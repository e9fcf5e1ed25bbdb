"""
countdown_to/config.py

Global settings and logging setup.

Settings hold the defaults every countdown block falls back to when it does
not set a key itself. On disk they are a flat JSON or YAML object with
camelCase keys:

    {
        "defaultBarType": "Circle",
        "defaultInfoFormat": "{percent}% - {remaining} left",
        "defaultUpdateIntervalSeconds": 5
    }

Missing keys keep their built-in default, unknown keys are ignored.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, TextIO, Union

import yaml

from .errors import SettingsError
from .temporal import Rounding


LOG_FORMAT = "[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s"

logger = logging.getLogger(__name__)


# =============================================================================
# Settings
# =============================================================================

@dataclass(frozen=True)
class Settings:
    """
    Global defaults for countdown blocks.

    Attributes:
        default_bar_type: Bar shape (Line, Circle, SemiCircle, Square).
        default_bar_color: Bar fill color.
        default_trail_color: Color of the unfilled track.
        default_progress_type: "forward" or "countdown".
        default_on_complete_text: Shown once the end is reached.
        default_info_format: Info template while active.
        default_info_format_upcoming: Info template before the start.
        update_in_real_time: Re-render blocks on a timer.
        update_interval_seconds: Seconds between re-renders.
        min_update_interval_seconds: Lower bound for any interval.
        duration_rounding: "floor" or "ceil" for duration text.
    """

    default_bar_type: str = "Line"
    default_bar_color: str = "#4CAF50"
    default_trail_color: str = "#e0e0e0"
    default_progress_type: str = "forward"
    default_on_complete_text: str = "{title} is done!"
    default_info_format: str = "{percent}% - {remaining} left"
    default_info_format_upcoming: str = "{remaining} until start"
    update_in_real_time: bool = True
    update_interval_seconds: float = 1
    min_update_interval_seconds: float = 1
    duration_rounding: str = Rounding.FLOOR.value

    def __post_init__(self):
        """Validate value types after construction."""
        for f in fields(self):
            value = getattr(self, f.name)
            expected = FIELD_TYPES[f.name]
            # bool is an int subclass; keep the two apart
            wrong_bool = isinstance(value, bool) and expected is not bool
            if wrong_bool or not isinstance(value, expected):
                raise SettingsError(
                    f"Setting {f.name} must be {TYPE_NAMES[expected]}, "
                    f"got {type(value).__name__}"
                )

        if self.update_interval_seconds < 1 or self.min_update_interval_seconds < 1:
            raise SettingsError("Update intervals must be at least 1 second")

        try:
            Rounding(self.duration_rounding)
        except ValueError:
            raise SettingsError(
                f"Unknown duration rounding: {self.duration_rounding}"
            ) from None

    @property
    def rounding(self) -> Rounding:
        return Rounding(self.duration_rounding)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        """
        Build settings from a persisted mapping.

        Accepts the camelCase disk keys as well as field names.

        Args:
            data: Mapping loaded from disk or received from the host.

        Returns:
            Settings instance.

        Raises:
            SettingsError: If a value has the wrong type.
        """
        return cls().merged(data or {})

    def merged(self, changes: Dict[str, Any]) -> "Settings":
        """Return a copy with ``changes`` applied; unknown keys are ignored."""
        if not isinstance(changes, dict):
            raise SettingsError("Settings must be a mapping")

        updates = {}
        for key, value in changes.items():
            name = DISK_KEYS.get(key, key)
            if name in FIELD_TYPES:
                updates[name] = value
            else:
                logger.debug(f"Ignoring unknown setting: {key}")

        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase disk keys."""
        names = {name: key for key, name in DISK_KEYS.items()}
        return {names[name]: value for name, value in asdict(self).items()}


# disk key -> field name
DISK_KEYS = {
    "defaultBarType": "default_bar_type",
    "defaultBarColor": "default_bar_color",
    "defaultTrailColor": "default_trail_color",
    "defaultProgressType": "default_progress_type",
    "defaultOnCompleteText": "default_on_complete_text",
    "defaultInfoFormat": "default_info_format",
    "defaultInfoFormatUpcoming": "default_info_format_upcoming",
    "defaultUpdateInRealTime": "update_in_real_time",
    "defaultUpdateIntervalSeconds": "update_interval_seconds",
    "minUpdateIntervalSeconds": "min_update_interval_seconds",
    "durationRounding": "duration_rounding",
}

FIELD_TYPES = {
    "default_bar_type": str,
    "default_bar_color": str,
    "default_trail_color": str,
    "default_progress_type": str,
    "default_on_complete_text": str,
    "default_info_format": str,
    "default_info_format_upcoming": str,
    "update_in_real_time": bool,
    "update_interval_seconds": (int, float),
    "min_update_interval_seconds": (int, float),
    "duration_rounding": str,
}

TYPE_NAMES = {
    str: "a string",
    bool: "true or false",
    (int, float): "a number",
}


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yaml", ".yml")


def load_settings(path: Union[str, Path]) -> Settings:
    """
    Load settings from a JSON or YAML file.

    A missing file yields the defaults.

    Args:
        path: Settings file; ".yaml"/".yml" are read as YAML, anything
            else as JSON.

    Returns:
        Settings instance.

    Raises:
        SettingsError: If the file cannot be parsed or holds bad values.
    """
    path = Path(path)
    if not path.exists():
        logger.info(f"No settings file at {path}, using defaults")
        return Settings()

    try:
        with open(path, "r", encoding="utf-8") as fp:
            if _is_yaml(path):
                data = yaml.safe_load(fp)
            else:
                data = json.load(fp)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise SettingsError(f"Could not read settings from {path}: {e}") from e

    return Settings.from_dict(data)


def save_settings(settings: Settings, path: Union[str, Path]) -> None:
    """
    Write settings to a JSON or YAML file.

    Args:
        settings: Settings to persist.
        path: Destination; format chosen by extension as in load_settings.
    """
    path = Path(path)
    data = settings.to_dict()

    with open(path, "w", encoding="utf-8") as fp:
        if _is_yaml(path):
            yaml.safe_dump(data, fp, sort_keys=False)
        else:
            json.dump(data, fp, indent=2)

    logger.debug(f"Settings saved to {path}")


# =============================================================================
# Logging
# =============================================================================

PACKAGE_LOGGER = "countdown_to"


def configure_logger(logger: Union[str, logging.Logger],
                     target: Union[str, Path, TextIO, None] = None,
                     log_format: str = LOG_FORMAT,
                     log_level: int = logging.INFO) -> logging.Logger:
    """Attach one handler to ``logger`` and set its level

    Args:
        logger: Logger or logger name
        target: Log file path (appended to), open stream, or None for stderr
        log_format: Format string for records
        log_level: Minimum level the logger passes on

    Returns:
        The configured logger
    """
    if isinstance(target, (str, Path)):
        handler = logging.FileHandler(target, mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler(target)
    handler.setFormatter(logging.Formatter(log_format))

    if isinstance(logger, str):
        logger = logging.getLogger(logger)
    logger.addHandler(handler)
    logger.setLevel(log_level)
    return logger


def setup_logging(level: str = "info",
                  log_file: Union[str, Path, None] = None) -> logging.Logger:
    """
    Route all countdown_to logging to stderr or a file.

    Handlers installed by an earlier call are closed and replaced, so the
    command line can be run repeatedly in one process.

    Args:
        level: Level name such as "debug" or "warning".
        log_file: Append records to this file instead of stderr.

    Returns:
        The package logger.

    Raises:
        SettingsError: If ``level`` is not a logging level name.
    """
    log_level = getattr(logging, level.upper(), None)
    if not isinstance(log_level, int):
        raise SettingsError(f"Unknown log level: {level}")

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    return configure_logger(package_logger, log_file, log_level=log_level)
