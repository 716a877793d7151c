"""Render settings, optionally loaded from a JSON file.

Every key is optional. A value may be given bare or wrapped as
``{"value": ...}``:

    {
        "sample_rate": 44100,
        "seed": {"value": 7},
        "a4_freq": 432.0,
        "sample_dir": "samples",
        "subtype": "PCM_24"
    }

Relative ``sample_dir`` entries are resolved against the settings file's
directory. Unknown keys are ignored.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from ral.errors import SettingsError


@dataclass(frozen=True)
class RenderSettings:
    sample_rate: int = 48000
    seed: int = 0
    a4_freq: float = 440.0
    sample_dir: Path | None = None
    subtype: str = "FLOAT"      # soundfile subtype used when writing

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise SettingsError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.seed < 0:
            raise SettingsError(f"seed must be >= 0, got {self.seed}")
        if self.a4_freq <= 0:
            raise SettingsError(f"a4_freq must be positive, got {self.a4_freq}")

    def with_overrides(self, **changes: Any) -> RenderSettings:
        """Copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _get_value(data: dict, key: str, default: Any = None) -> Any:
    if key not in data:
        return default
    entry = data[key]
    if isinstance(entry, dict) and "value" in entry:
        return entry["value"]
    return entry


def parse_settings(data: dict, base_dir: Path | None = None) -> RenderSettings:
    """Build RenderSettings from an already-decoded JSON object."""
    if not isinstance(data, dict):
        raise SettingsError("Settings must be a JSON object")

    defaults = RenderSettings()
    try:
        sample_dir = _get_value(data, "sample_dir")
        if sample_dir is not None:
            sample_dir = Path(sample_dir)
            if base_dir is not None and not sample_dir.is_absolute():
                sample_dir = base_dir / sample_dir

        return RenderSettings(
            sample_rate=int(_get_value(data, "sample_rate", defaults.sample_rate)),
            seed=int(_get_value(data, "seed", defaults.seed)),
            a4_freq=float(_get_value(data, "a4_freq", defaults.a4_freq)),
            sample_dir=sample_dir,
            subtype=str(_get_value(data, "subtype", defaults.subtype)),
        )
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"Invalid settings value: {exc}") from exc


def parse_settings_file(path: str | Path) -> RenderSettings:
    """Parse a JSON settings file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise SettingsError(f"Cannot read settings file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SettingsError(f"Settings file {path} is not valid JSON: {exc}") from exc
    return parse_settings(data, base_dir=path.parent)
