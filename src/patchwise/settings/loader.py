from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .models import Settings
from .variables import interpolate

CONFIG_RELPATH = Path(".patchwise") / "config.yaml"
VARS_KEY = "vars"


def find_config(start: Union[str, Path]) -> Optional[Path]:
    """
    Walk upwards from 'start' to the filesystem root looking for .patchwise/config.yaml.
    """
    current = Path(start).resolve()
    if current.is_file():
        current = current.parent
    for candidate in (current, *current.parents):
        path = candidate / CONFIG_RELPATH
        if path.is_file():
            return path
    return None


def parse_settings(data: Optional[Dict[str, Any]]) -> Settings:
    if not data:
        return Settings()
    if not isinstance(data, dict):
        raise ValueError("Settings document must be a mapping")
    raw = dict(data)
    vars_map = raw.pop(VARS_KEY, None) or {}
    if not isinstance(vars_map, dict):
        raise ValueError(f"'{VARS_KEY}' must be a mapping")
    return Settings.model_validate(interpolate(raw, vars_map))


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from a YAML file. A missing path or file yields defaults.
    """
    if path is None:
        return Settings()
    p = Path(path)
    if not p.is_file():
        return Settings()
    with p.open("rt", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    return parse_settings(data)
