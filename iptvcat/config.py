"""
Pass-level configuration: YAML settings file layered under CLI options.

Deutsch:
    Konfiguration eines Durchlaufs: YAML-Datei, überlagert von CLI-Optionen.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Union

import yaml

from .models import VerifyOptions

_OPTION_FIELDS = {item.name for item in fields(VerifyOptions)}
_SET_FIELDS = {"countries", "exclude"}
_INT_FIELDS = {"timeout_ms", "delay_ms", "workers"}
_BOOL_FIELDS = {"offline", "debug"}


class ConfigError(Exception):
    """Raised when a settings file is invalid. / Wird geworfen, wenn eine Konfigurationsdatei ungültig ist."""


def load_settings(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    with path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigError(f"failed to parse settings {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"settings {path} must contain a mapping")
    unknown = sorted(str(key) for key in data if key not in _OPTION_FIELDS)
    if unknown:
        raise ConfigError(f"settings {path} contain unknown keys: {', '.join(unknown)}")
    return dict(data)


def build_options(settings: Optional[Mapping[str, Any]] = None, **overrides: Any) -> VerifyOptions:
    """
    Merge settings and overrides into :class:`VerifyOptions`.

    Overrides set to ``None`` are treated as "not given".

    Deutsch:
        Führt Einstellungen und Überschreibungen zu ``VerifyOptions`` zusammen.
    """

    merged: Dict[str, Any] = dict(settings or {})
    merged.update({key: value for key, value in overrides.items() if value is not None})
    unknown = sorted(key for key in merged if key not in _OPTION_FIELDS)
    if unknown:
        raise ConfigError(f"unknown options: {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in merged.items():
        if key in _SET_FIELDS:
            values[key] = normalise_codes(value)
        elif key in _INT_FIELDS:
            values[key] = _coerce_int(key, value)
        elif key in _BOOL_FIELDS:
            values[key] = bool(value)
        elif key == "channels_dir":
            values[key] = Path(value)
        else:
            values[key] = str(value)
    options = VerifyOptions(**values)
    if options.workers < 1:
        raise ConfigError("workers must be at least 1")
    if options.timeout_ms <= 0:
        raise ConfigError("timeout must be positive")
    if options.delay_ms < 0:
        raise ConfigError("delay must not be negative")
    return options


def normalise_codes(value: Optional[Union[Iterable[str], str]]) -> Optional[Set[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    result = {item.strip().lower() for item in items if item and item.strip()}
    return result or None


def _coerce_int(key: str, value: Any) -> int:
    try:
        return int(str(value))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"option {key} expects an integer, got {value!r}") from exc
