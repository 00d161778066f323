# catchmap/__init__.py
from importlib.metadata import PackageNotFoundError, version
import sys
import warnings

_MINIMUM_PYTHON = (3, 11)
_REQUIRED_DEPENDENCIES = {
    "numpy": "1.26",
    "pandas": "2.1",
    "shapely": "2.0",
    "sqlalchemy": "2.0",
    "platformdirs": "3.0",
    "pyyaml": "6.0",
}

_OPTIONAL_DEPENDENCIES = {
    "geopy": "2.4",
}

if sys.version_info < _MINIMUM_PYTHON:
    raise RuntimeError(f"Python >= {'.'.join(map(str, _MINIMUM_PYTHON))} is required.")


def _gte(installed: str, required: str) -> bool:
    from packaging import version as pv

    return pv.parse(installed) >= pv.parse(required)


_required_issues: list[str] = []
for pkg, minv in _REQUIRED_DEPENDENCIES.items():
    try:
        v = version(pkg)
    except PackageNotFoundError:
        _required_issues.append(f"{pkg}>={minv} (not installed)")
        continue
    if not _gte(v, minv):
        _required_issues.append(f"{pkg}>={minv} (found {v})")

if _required_issues:
    raise ImportError(
        "catchmap requires the following dependencies: "
        + ", ".join(_required_issues)
    ) from None


_optional_issues: list[str] = []
for pkg, minv in _OPTIONAL_DEPENDENCIES.items():
    try:
        v = version(pkg)
    except PackageNotFoundError:
        _optional_issues.append(f"{pkg}>={minv} (not installed)")
        continue
    if not _gte(v, minv):
        _optional_issues.append(f"{pkg}>={minv} (found {v})")

if _optional_issues:
    warnings.warn(
        "Optional geocoding dependencies are missing or out of date: "
        + ", ".join(_optional_issues)
        + ". Address search will be unavailable.",
        RuntimeWarning,
        stacklevel=2,
    )


try:
    __version__ = version("catchmap")
except PackageNotFoundError:
    __version__ = "0.0.0"

from .catchmap_config import EngineConfig, load_config
from .engine import CatchmentEngine
from .entities import CatchmentZone, PinInfo, PinType, RadiusCircle, School
from .errors import (
    CapacityError,
    CatchmentError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .units import Unit

__all__ = [
    "CatchmentEngine",
    "EngineConfig",
    "load_config",
    "School",
    "CatchmentZone",
    "RadiusCircle",
    "PinInfo",
    "PinType",
    "Unit",
    "CatchmentError",
    "ValidationError",
    "CapacityError",
    "NotFoundError",
    "PersistenceError",
    "__version__",
]
