#!/usr/bin/env python3
"""
catchmap_config.py

Engine configuration loader + validator for catchmap.

Features:
- YAML/TOML config files with an ``engine`` section (top-level keys also accepted)
- CATCHMAP_* environment variables override file values
- Fail-fast validation with ValueError
- CLI:
    - init <out.yaml>
    - show [<config.(yaml|toml)>]
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple
from pathlib import Path
import os
import sys
import json

from .geometry import probably_latlon
from .palettes import PaletteSelection, validate_color
from .units import Unit, coerce_radius

ENV_PREFIX = "CATCHMAP_"

# ------------------------------
# Loading utilities (YAML/TOML)
# ------------------------------


def _load_yaml(text: str) -> dict:
    try:
        import yaml  # PyYAML
    except Exception as e:
        raise RuntimeError(
            "PyYAML is required to read .yaml/.yml configs. pip install pyyaml"
        ) from e
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML root must be a mapping (dict).")
    return data


def _load_toml(text: str) -> dict:
    # Prefer stdlib tomllib on 3.11+, fallback to tomli
    try:
        import tomllib

        data = tomllib.loads(text)
    except ImportError:
        try:
            import tomli

            data = tomli.loads(text)
        except ImportError as e:
            raise RuntimeError(
                "tomllib (3.11+) or tomli is required to read .toml configs."
            ) from e
    if not isinstance(data, dict):
        raise ValueError("TOML root must be a mapping (dict).")
    return data


def _detect_and_load(path: Path) -> dict:
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix in (".yaml", ".yml"):
        return _load_yaml(text)
    if suffix == ".toml":
        return _load_toml(text)
    # Last resort: try YAML first, then TOML
    try:
        return _load_yaml(text)
    except Exception:
        return _load_toml(text)


def _expand_path(value: str) -> str:
    """Expand ~ and $ENV in a path-like string."""
    return os.path.expandvars(os.path.expanduser(value))


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def _parse_center(value: Any) -> Tuple[float, float]:
    if isinstance(value, str):
        value = [part.strip() for part in value.split(",")]
    if isinstance(value, Mapping):
        value = [value.get("lat"), value.get("lon", value.get("lng"))]
    try:
        lat, lon = (float(v) for v in value)
    except (TypeError, ValueError):
        raise ValueError("default_center must be [lat, lon]") from None
    if not probably_latlon(lat, lon):
        raise ValueError("default_center is outside valid lat/lon ranges")
    return (lat, lon)


# ---------- Config root ----------


@dataclass
class EngineConfig:
    max_favorites: int = 6
    default_center: Tuple[float, float] = (51.5074, -0.1278)
    default_zoom: int = 10
    default_unit: str = Unit.KM.value
    default_radius: float = 1.5
    palette_type: str = "schools"
    palette_name: str = "vibrant"
    average_color: str = "#6B7280"
    show_average_zones: bool = False
    network_timeout: float = 10.0
    geocoder_user_agent: str = "catchmap"
    geocoder_country_codes: str = "gb"
    cache_dir: Optional[str] = None

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "EngineConfig":
        if not isinstance(d, dict):
            raise ValueError("Config must be a mapping at the top level.")
        section = d.get("engine", d)
        if not isinstance(section, dict):
            raise ValueError("[engine] must be a mapping.")

        known = {f.name for f in fields(EngineConfig)}
        unknown = sorted(k for k in section if k not in known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

        cfg = EngineConfig(**section)
        cfg.validate()  # fail fast
        return cfg

    def validate(self) -> None:
        try:
            self.max_favorites = int(self.max_favorites)
            self.default_zoom = int(self.default_zoom)
            self.network_timeout = float(self.network_timeout)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid numeric config value: {e}") from None
        if self.max_favorites < 1:
            raise ValueError("max_favorites must be >= 1")
        if self.network_timeout <= 0:
            raise ValueError("network_timeout must be > 0")
        self.default_center = _parse_center(self.default_center)
        self.default_unit = Unit.coerce(self.default_unit).value
        self.default_radius = coerce_radius(self.default_radius)
        selection = PaletteSelection(type=self.palette_type, name=self.palette_name)
        self.palette_type = selection.type.value
        self.palette_name = selection.name.value
        validate_color(self.average_color)
        self.show_average_zones = _parse_bool(self.show_average_zones, "show_average_zones")
        if self.cache_dir:
            self.cache_dir = _expand_path(str(self.cache_dir))

    @property
    def palette(self) -> PaletteSelection:
        return PaletteSelection(type=self.palette_type, name=self.palette_name)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Return a copy with ``CATCHMAP_<FIELD>`` environment overrides applied."""
        env = os.environ if environ is None else environ
        values = asdict(self)
        for name in values:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        cfg = EngineConfig(**values)
        cfg.validate()
        return cfg

    def to_json(self) -> str:
        payload = asdict(self)
        payload["default_center"] = list(self.default_center)
        return json.dumps(payload, indent=2)


def load_config(
    path: str | Path | None = None, *, environ: Optional[Mapping[str, str]] = None
) -> EngineConfig:
    """Load ``path`` (or defaults when None) and apply environment overrides."""
    if path is None:
        cfg = EngineConfig()
        cfg.validate()
    else:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(p)
        cfg = EngineConfig.from_dict(_detect_and_load(p))
    return cfg.with_env(environ)


# ------------------------------
# CLI helpers
# ------------------------------

_TEMPLATE_YAML = """\
# catchmap engine configuration (YAML)
# Every key may be overridden with a CATCHMAP_<KEY> environment variable,
# e.g. CATCHMAP_NETWORK_TIMEOUT=5

engine:
  max_favorites: 6
  default_center: [51.5074, -0.1278]
  default_zoom: 10
  default_unit: km        # km | miles | meters
  default_radius: 1.5
  palette_type: schools   # schools | years
  palette_name: vibrant   # schools: vibrant, professional, pastels, earth
                          # years: gradient, cool, warm, monochrome
  average_color: "#6B7280"
  show_average_zones: false
  network_timeout: 10
  geocoder_user_agent: catchmap
  geocoder_country_codes: gb
  # cache_dir: ~/.cache/catchmap
"""


def _cmd_init(out_path: str) -> None:
    p = Path(out_path)
    if p.exists():
        print(f"Refusing to overwrite existing file: {p}", file=sys.stderr)
        sys.exit(2)
    p.write_text(_TEMPLATE_YAML, encoding="utf-8")
    print(f"Wrote starter config: {p}")


def _cmd_show(cfg_path: Optional[str]) -> None:
    try:
        cfg = load_config(cfg_path)
    except (FileNotFoundError, ValueError) as e:
        print(f"Invalid config: {e}", file=sys.stderr)
        sys.exit(1)
    print(cfg.to_json())


def main(argv: list[str]) -> None:
    if len(argv) >= 2 and argv[1] == "init":
        if len(argv) != 3:
            print("Usage: catchmap_config.py init <output.yaml>", file=sys.stderr)
            sys.exit(2)
        _cmd_init(argv[2])
        return

    if len(argv) >= 2 and argv[1] == "show":
        _cmd_show(argv[2] if len(argv) >= 3 else None)
        return

    print("Usage:", file=sys.stderr)
    print("  catchmap_config.py init <output.yaml>", file=sys.stderr)
    print("  catchmap_config.py show [<config.(yaml|toml)>]", file=sys.stderr)
    sys.exit(2)


def cli() -> None:
    main(sys.argv)


if __name__ == "__main__":
    main(sys.argv)
