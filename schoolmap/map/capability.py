"""Contract between the marker layer and whatever draws the map.

The registry and the session controller only talk to these protocols, so a
real map engine, the pydeck backend in ``deck.py`` or a test stub can sit
behind them.
"""
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Tuple

from ..config import MapConfig

Coordinate = Tuple[float, float]
Pixel = Tuple[int, int]
Handler = Callable[[Any], None]


@dataclass(frozen=True)
class MarkerLabel:
    text: str
    direction: str = "top"
    offset: Pixel = (0, 0)
    border_color: str = "#808080"


@dataclass(frozen=True)
class MarkerSpec:
    position: Coordinate
    icon: str
    icon_size: int
    offset: Pixel
    label: MarkerLabel
    z_index: int
    title: str = ""
    popup_html: str = ""


@dataclass(frozen=True)
class ViewportEvent:
    name: str
    lnglat: Optional[Coordinate] = None


@dataclass(frozen=True)
class PlaceResult:
    found: bool
    coordinate: Optional[Coordinate] = None


class Bootstrap(Protocol):
    def release(self) -> None: ...


class LoadingIndicator(Protocol):
    def remove(self) -> None: ...


class Viewport(Protocol):
    def on(self, event: str, handler: Handler) -> None: ...
    def off(self, event: str) -> None: ...
    def show_loading(self, message: str) -> LoadingIndicator: ...
    def clear_map(self) -> None: ...
    def destroy(self) -> None: ...


class MarkerHandle(Protocol):
    def set_map(self, viewport: Optional[Viewport]) -> None: ...
    def on(self, event: str, handler: Handler) -> None: ...
    def off(self, event: str) -> None: ...
    def get_position(self) -> Coordinate: ...


class PopupHandle(Protocol):
    is_open: bool
    close_when_click_map: bool

    def open(self, viewport: Viewport, position: Coordinate) -> None: ...
    def close(self) -> None: ...


class MapCapability(Protocol):
    def load(self) -> Bootstrap: ...
    def create_viewport(self, container: Any, config: MapConfig) -> Viewport: ...
    def create_marker(self, spec: MarkerSpec) -> MarkerHandle: ...
    def create_popup(
        self, content: str, offset: Pixel, close_when_click_map: bool = True
    ) -> PopupHandle: ...


class PlaceSearch(Protocol):
    async def search(
        self, query: str, *, city: str, city_limit: bool = True, page_size: int = 1
    ) -> PlaceResult: ...
