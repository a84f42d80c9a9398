"""Configuration loading: TOML files, environment variables and defaults."""

import dataclasses
import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

from lanternleaf.models import (
    FontFamily,
    FontWeight,
    HighlightColor,
    ReaderSettings,
    ThemeMode,
)

logger = logging.getLogger(__name__)

CONFIG_ENV = "LANTERNLEAF_CONFIG_PATH"
NORMALIZER_CONFIG_ENV = "LANTERNLEAF_NORMALIZER_CONFIG_PATH"
ABBREVIATIONS_CONFIG_ENV = "LANTERNLEAF_ABBREVIATIONS_CONFIG_PATH"

DEFAULT_CONFIG_PATH = Path("conf/lanternleaf.toml")
DEFAULT_NORMALIZER_PATH = Path("conf/normalizer.toml")
DEFAULT_ABBREVIATIONS_PATH = Path("conf/abbreviations.toml")


def resolve_path(env_var: str, default: Path) -> Path:
    """Return the path named by ``env_var`` if it exists, else ``default``."""
    value = os.environ.get(env_var)
    if value:
        candidate = Path(value)
        if candidate.exists():
            return candidate
        logger.warning("%s punta a un file inesistente: %s", env_var, candidate)
    return default


def read_toml(path: Path) -> Optional[dict[str, Any]]:
    """Parse a TOML file, returning None (and logging) when it can't be used."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        logger.debug("File di configurazione assente: %s", path)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Configurazione non valida in %s: %s", path, e)
    return None


def known_fields(cls, data: Mapping[str, Any], section: str) -> dict[str, Any]:
    """Keep only the keys of ``data`` that are fields of dataclass ``cls``."""
    names = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        logger.debug("Chiavi sconosciute ignorate in [%s]: %s", section, ", ".join(unknown))
    return {key: value for key, value in data.items() if key in names}


def reader_settings_from_mapping(data: Mapping[str, Any]) -> ReaderSettings:
    """Build ReaderSettings from a ``[reader]`` table.

    Raises:
        ValueError: If an enum or color value is malformed.
    """
    values = known_fields(ReaderSettings, data, "reader")
    if "theme" in values:
        values["theme"] = ThemeMode(values["theme"])
    if "font_family" in values:
        values["font_family"] = FontFamily(values["font_family"])
    if "font_weight" in values:
        values["font_weight"] = FontWeight(values["font_weight"])
    for key in ("day_highlight", "night_highlight"):
        if key in values:
            color = values[key]
            if not isinstance(color, Mapping):
                raise ValueError(f"{key} deve essere una tabella r/g/b/a")
            values[key] = HighlightColor(
                **{ch: float(color[ch]) for ch in ("r", "g", "b", "a")}
            )
    return ReaderSettings(**values)


def load_reader_settings(path: Optional[Path] = None) -> ReaderSettings:
    """Load reader settings, falling back to defaults on any problem."""
    config_path = Path(path) if path else resolve_path(CONFIG_ENV, DEFAULT_CONFIG_PATH)
    data = read_toml(config_path)
    if data is None:
        return ReaderSettings()

    table = data.get("reader", {})
    try:
        settings = reader_settings_from_mapping(table)
    except (ValueError, TypeError, KeyError) as e:
        logger.warning("Impostazioni non valide in %s, uso i default: %s", config_path, e)
        return ReaderSettings()

    logger.info("Impostazioni caricate da %s", config_path)
    return settings
