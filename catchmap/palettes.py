"""Catchment colors: fixed palette tables and the per-(school, year) resolver."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging
import re

from .entities import School
from .errors import ValidationError

__all__ = [
    "PaletteType",
    "PaletteName",
    "PALETTES",
    "PALETTE_SIZE",
    "FALLBACK_COLOR",
    "BASE_YEAR",
    "PaletteSelection",
    "ColorAssigner",
    "validate_color",
]

logger = logging.getLogger(__name__)

PALETTE_SIZE = 8
FALLBACK_COLOR = "#3B82F6"
BASE_YEAR = 2020

_HEX_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


class PaletteType(str, Enum):
    SCHOOLS = "schools"
    YEARS = "years"


class PaletteName(str, Enum):
    VIBRANT = "vibrant"
    PROFESSIONAL = "professional"
    PASTELS = "pastels"
    EARTH = "earth"
    GRADIENT = "gradient"
    COOL = "cool"
    WARM = "warm"
    MONOCHROME = "monochrome"


def validate_color(value: str) -> str:
    if not isinstance(value, str) or not _HEX_RE.match(value):
        raise ValidationError(f"Invalid color {value!r}; expected #RRGGBB")
    return value


def _build_palettes(
    raw: Mapping[PaletteType, Mapping[PaletteName, Sequence[str]]],
) -> Dict[Tuple[PaletteType, PaletteName], Tuple[str, ...]]:
    table: Dict[Tuple[PaletteType, PaletteName], Tuple[str, ...]] = {}
    for ptype, entries in raw.items():
        for name, colors in entries.items():
            if len(colors) != PALETTE_SIZE:
                raise ValueError(
                    f"palette {ptype.value}/{name.value} has {len(colors)} colors, "
                    f"expected {PALETTE_SIZE}"
                )
            table[(ptype, name)] = tuple(validate_color(c) for c in colors)
    return table


PALETTES = _build_palettes(
    {
        PaletteType.SCHOOLS: {
            PaletteName.VIBRANT: ["#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFEAA7", "#DDA0DD", "#98D8C8", "#F06292"],
            PaletteName.PROFESSIONAL: ["#2C3E50", "#34495E", "#7F8C8D", "#95A5A6", "#BDC3C7", "#ECF0F1", "#3498DB", "#E74C3C"],
            PaletteName.PASTELS: ["#FFB3BA", "#BFFCC6", "#B3E5FC", "#E1BEE7", "#FFF9C4", "#FFCC99", "#D4E6F1", "#F8BBD9"],
            PaletteName.EARTH: ["#8B4513", "#A0522D", "#CD853F", "#DEB887", "#F4A460", "#D2691E", "#BC8F8F", "#F5DEB3"],
        },
        PaletteType.YEARS: {
            PaletteName.GRADIENT: ["#FF416C", "#FF4B2B", "#FF6B35", "#F7931E", "#FFD23F", "#06FFA5", "#36D1DC", "#5B86E5"],
            PaletteName.COOL: ["#667eea", "#764ba2", "#f093fb", "#f5576c", "#4facfe", "#00f2fe", "#43e97b", "#38f9d7"],
            PaletteName.WARM: ["#fa709a", "#fee140", "#f093fb", "#f5576c", "#ffecd2", "#fcb69f", "#ff9a9e", "#fecfef"],
            PaletteName.MONOCHROME: ["#2D3748", "#4A5568", "#718096", "#A0AEC0", "#CBD5E0", "#E2E8F0", "#F7FAFC", "#FFFFFF"],
        },
    }
)


def _year_index(year: int, length: int) -> int:
    return abs(int(year) - BASE_YEAR) % length


@dataclass(frozen=True, slots=True)
class PaletteSelection:
    type: PaletteType = PaletteType.SCHOOLS
    name: PaletteName = PaletteName.VIBRANT

    def __post_init__(self):
        try:
            ptype = PaletteType(self.type)
            pname = PaletteName(self.name)
        except ValueError as exc:
            raise ValidationError(str(exc)) from None
        if (ptype, pname) not in PALETTES:
            raise ValidationError(
                f"Palette {pname.value!r} is not a {ptype.value} palette"
            )
        object.__setattr__(self, "type", ptype)
        object.__setattr__(self, "name", pname)

    @property
    def colors(self) -> Tuple[str, ...]:
        return PALETTES[(self.type, self.name)]

    @classmethod
    def available(cls, ptype: PaletteType | str) -> List[PaletteName]:
        ptype = PaletteType(ptype)
        return [name for (t, name) in PALETTES if t is ptype]


class ColorAssigner:
    """Resolve a color for (school, year): override, school scheme, then palette."""

    def __init__(self, selection: PaletteSelection | None = None):
        self._default = selection or PaletteSelection()
        self.selection = self._default
        self._overrides: Dict[Tuple[str, int], str] = {}
        self._school_schemes: Dict[str, Tuple[str, ...]] = {}

    def color_for(self, school_id: str, year: int, school_index: Optional[int]) -> str:
        custom = self._overrides.get((school_id, int(year)))
        if custom:
            return custom

        scheme = self._school_schemes.get(school_id)
        if scheme:
            return scheme[_year_index(year, len(scheme))]

        palette = self.selection.colors
        if self.selection.type is PaletteType.SCHOOLS:
            if school_index is None or school_index < 0:
                return FALLBACK_COLOR
            return palette[school_index % len(palette)]
        return palette[_year_index(year, len(palette))]

    def set_override(self, school_id: str, year: int, color: str) -> None:
        self._overrides[(school_id, int(year))] = validate_color(color)

    def clear_override(self, school_id: str, year: int) -> None:
        self._overrides.pop((school_id, int(year)), None)

    def set_school_scheme(self, school_id: str, colors: Iterable[str]) -> None:
        scheme = tuple(validate_color(c) for c in colors)
        if not scheme:
            raise ValidationError("A school color scheme needs at least one color")
        self._school_schemes[school_id] = scheme

    def forget_school(self, school_id: str) -> None:
        self._school_schemes.pop(school_id, None)
        for key in [k for k in self._overrides if k[0] == school_id]:
            del self._overrides[key]

    def apply_palette(self, ptype: PaletteType | str, name: PaletteName | str) -> PaletteSelection:
        self.selection = PaletteSelection(type=ptype, name=name)
        logger.info(
            "palettes.applied type=%s name=%s",
            self.selection.type.value,
            self.selection.name.value,
        )
        return self.selection

    def reset(self) -> None:
        self.selection = self._default
        self._overrides.clear()
        self._school_schemes.clear()

    def recolor(self, school: School, index: Optional[int]) -> School:
        """Return ``school`` with every zone color recomputed from current rules.

        ``index`` is the school's position among the favorites and drives the
        schools palette; ``None`` falls back to the default color.
        """
        zones = tuple(
            replace(z, color=self.color_for(school.id, z.year, index))
            for z in school.zones
        )
        return replace(school, zones=zones)
