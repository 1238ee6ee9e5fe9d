from __future__ import annotations

import logging
from datetime import date, datetime, time
from pathlib import Path
from typing import Mapping, TypeAlias
import tomllib

from pydantic import ValidationError

from lunals.schema import AnalysisSettings

DEFAULT_CONFIG_NAME = "lunals.toml"
SETTINGS_SECTION = "lunals"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

logger = logging.getLogger(__name__)


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        logger.warning("cannot read config file %s", path)
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        logger.warning("ignoring malformed config file %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def analysis_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("analysis", {})
    return section if isinstance(section, dict) else {}


def merge_payload(payload: Mapping[str, object], defaults: Mapping[str, object]) -> dict:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def client_settings(raw: object) -> dict:
    """Extract the lunals part of a ``didChangeConfiguration`` settings value.

    Clients either send the whole settings tree (with a ``lunals`` section)
    or just the section itself.
    """
    if not isinstance(raw, dict):
        return {}
    section = raw.get(SETTINGS_SECTION)
    if isinstance(section, dict):
        return dict(section)
    return dict(raw)


def analysis_settings(settings: Mapping[str, object]) -> AnalysisSettings:
    """Validate the free-form settings mapping.

    Keys that fail validation are dropped, so they fall back to defaults.
    """
    candidate = dict(settings)
    while True:
        try:
            return AnalysisSettings.model_validate(candidate)
        except ValidationError as exc:
            bad_keys = {error["loc"][0] for error in exc.errors() if error["loc"]}
            bad_keys &= set(candidate)
            if not bad_keys:
                return AnalysisSettings()
            for key in sorted(bad_keys, key=str):
                logger.warning(
                    "ignoring invalid setting %s=%r", key, candidate.pop(key)
                )
