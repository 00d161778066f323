"""Client-side cache for placed pins and form preferences.

Only non-authoritative UI state lives here; favorites and zones always come
from the remote store. A corrupted file invalidates the whole cache.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import json
import logging
import os

from platformdirs import user_cache_dir

from .entities import PinInfo
from .palettes import PaletteSelection
from .units import Unit

__all__ = ["FormPreferences", "LocalCache", "cache_dir", "CACHE_DIR_ENV"]

logger = logging.getLogger(__name__)

CACHE_DIR_ENV = "CATCHMAP_CACHE_DIR"

PINS_KEY = "placedPins"
FORM_KEY = "formData"


def cache_dir(override: str | os.PathLike[str] | None = None) -> Path:
    if override:
        return Path(override)
    env = os.getenv(CACHE_DIR_ENV)
    if env:
        return Path(env)
    return Path(user_cache_dir("catchmap"))


@dataclass(slots=True)
class FormPreferences:
    unit: str = Unit.KM.value
    selected_year: Optional[int] = None
    address: str = ""
    view_mode: str = "all"
    palette_type: str = "schools"
    palette_name: str = "vibrant"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FormPreferences":
        if not isinstance(raw, dict):
            raise ValueError("form preferences must be an object")
        known = {f.name for f in fields(cls)}
        prefs = cls(**{k: v for k, v in raw.items() if k in known})
        prefs.unit = Unit.coerce(prefs.unit).value
        if prefs.selected_year is not None:
            prefs.selected_year = int(prefs.selected_year)
        selection = PaletteSelection(type=prefs.palette_type, name=prefs.palette_name)
        prefs.palette_type = selection.type.value
        prefs.palette_name = selection.name.value
        return prefs


class LocalCache:
    def __init__(self, directory: str | os.PathLike[str] | None = None):
        self.directory = cache_dir(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _write(self, key: str, payload: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self._path(key)
        tmp_path = target.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        tmp_path.replace(target)

    def load(self) -> Tuple[List[PinInfo], FormPreferences]:
        """Return cached pins and preferences, or defaults if anything is unreadable."""
        try:
            raw_pins = self._read(PINS_KEY) or []
            raw_form = self._read(FORM_KEY)
            pins = [PinInfo.from_dict(p) for p in raw_pins]
            form = FormPreferences.from_dict(raw_form) if raw_form is not None else FormPreferences()
        except (OSError, ValueError, KeyError, TypeError, IndexError) as exc:
            logger.warning("local_cache.corrupted dir=%s error=%r; resetting", self.directory, exc)
            self.clear()
            return [], FormPreferences()
        logger.debug("local_cache.loaded pins=%d", len(pins))
        return pins, form

    def save_pins(self, pins: List[PinInfo]) -> None:
        self._write(PINS_KEY, [p.to_dict() for p in pins])

    def save_form(self, prefs: FormPreferences) -> None:
        self._write(FORM_KEY, asdict(prefs))

    def clear(self) -> None:
        for key in (PINS_KEY, FORM_KEY):
            path = self._path(key)
            try:
                path.unlink()
            except FileNotFoundError:
                continue
