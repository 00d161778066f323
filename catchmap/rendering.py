"""Map surface protocol and an in-memory recording implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from .entities import PinInfo, RadiusCircle
from .geometry import LatLon

__all__ = ["MapSurface", "RecordingMapSurface", "Handle", "Command"]


class MapSurface(Protocol):
    def draw_circle(self, circle: RadiusCircle) -> None: ...

    def draw_marker(self, pin: PinInfo) -> None: ...

    def restyle(self, entity_id: str, **style: Any) -> None: ...

    def remove(self, entity_id: str) -> None: ...

    def show_popup(self, point: LatLon, lines: Sequence[str]) -> None: ...

    def center_on(self, point: LatLon, zoom: Optional[int] = None) -> None: ...


@dataclass(slots=True)
class Handle:
    kind: str
    entity_id: str
    center: LatLon
    style: Dict[str, Any] = field(default_factory=dict)


Command = Tuple[str, str]


class RecordingMapSurface:
    """Keeps one handle per drawn entity id and a log of (command, id) pairs."""

    def __init__(self):
        self.handles: Dict[str, Handle] = {}
        self.commands: List[Command] = []
        self.popups: List[Tuple[LatLon, List[str]]] = []
        self.center: Optional[LatLon] = None
        self.zoom: Optional[int] = None

    def draw_circle(self, circle: RadiusCircle) -> None:
        self.handles[circle.id] = Handle(
            kind="circle",
            entity_id=circle.id,
            center=circle.center,
            style={
                "radius_m": circle.radius_meters,
                "color": circle.color,
                "visible": circle.is_visible,
                "label": circle.label(),
                "dashed": circle.is_average,
            },
        )
        self.commands.append(("draw_circle", circle.id))

    def draw_marker(self, pin: PinInfo) -> None:
        self.handles[pin.id] = Handle(
            kind="marker",
            entity_id=pin.id,
            center=pin.coordinates,
            style={"title": pin.title, "type": pin.type.value, "draggable": pin.is_draggable},
        )
        self.commands.append(("draw_marker", pin.id))

    def restyle(self, entity_id: str, **style: Any) -> None:
        handle = self.handles[entity_id]
        center = style.pop("center", None)
        if center is not None:
            handle.center = center
        handle.style.update(style)
        self.commands.append(("restyle", entity_id))

    def remove(self, entity_id: str) -> None:
        self.handles.pop(entity_id, None)
        self.commands.append(("remove", entity_id))

    def show_popup(self, point: LatLon, lines: Sequence[str]) -> None:
        self.popups.append((point, list(lines)))
        self.commands.append(("show_popup", ""))

    def center_on(self, point: LatLon, zoom: Optional[int] = None) -> None:
        self.center = point
        if zoom is not None:
            self.zoom = zoom
        self.commands.append(("center_on", ""))

    # convenience for assertions
    def circle_ids(self) -> List[str]:
        return sorted(k for k, h in self.handles.items() if h.kind == "circle")

    def marker_ids(self) -> List[str]:
        return sorted(k for k, h in self.handles.items() if h.kind == "marker")

    def visible_circle_ids(self) -> List[str]:
        return sorted(
            k for k, h in self.handles.items() if h.kind == "circle" and h.style.get("visible")
        )

    def clear_log(self) -> None:
        self.commands.clear()
