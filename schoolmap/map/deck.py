"""In-process map capability rendered with pydeck.

Markers, popups and viewport events live in Python; ``DeckViewport.render``
turns the attached markers into a ``pydeck.Deck`` (badge icons plus name
labels). Selection and map clicks are fed back through ``pick`` and
``click`` so the session controller sees the same events a browser map
would deliver.
"""
import logging
from html import escape
from typing import Any, Dict, List, Optional

import pydeck as pdk
from PIL import ImageColor

from ..config import BADGE_SIZE, MapConfig
from ..utils.geo import is_valid_lnglat
from .capability import Coordinate, Handler, MarkerSpec, Pixel, ViewportEvent

LOGGER = logging.getLogger(__name__)

MARKER_LAYER_ID = "school-markers"
LABEL_LAYER_ID = "school-labels"


class DeckBootstrap:
    def __init__(self):
        self.released = False

    def release(self) -> None:
        self.released = True


class DeckLoadingIndicator:
    def __init__(self, viewport: "DeckViewport", message: str):
        self._viewport = viewport
        self.message = message

    def remove(self) -> None:
        if self._viewport.loading is self:
            self._viewport.loading = None


class DeckMarker:
    def __init__(self, spec: MarkerSpec):
        lng, lat = spec.position
        if not is_valid_lnglat(float(lng), float(lat)):
            raise ValueError(f"invalid marker position {spec.position!r}")
        self.spec = spec
        self.viewport: Optional["DeckViewport"] = None
        self._handlers: Dict[str, List[Handler]] = {}

    def set_map(self, viewport: Optional["DeckViewport"]) -> None:
        if self.viewport is viewport:
            return
        if self.viewport is not None:
            self.viewport._detach(self)
        self.viewport = viewport
        if viewport is not None:
            viewport._attach(self)

    def on(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str) -> None:
        self._handlers.pop(event, None)

    def get_position(self) -> Coordinate:
        return self.spec.position

    def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(event, [])):
            handler(payload)


class DeckPopup:
    def __init__(self, content: str, offset: Pixel, close_when_click_map: bool = True):
        self.content = content
        self.offset = offset
        self.close_when_click_map = close_when_click_map
        self.is_open = False
        self.anchor: Optional[Coordinate] = None
        self._viewport: Optional["DeckViewport"] = None

    def open(self, viewport: "DeckViewport", position: Coordinate) -> None:
        # the viewport shows one popup, like an info window
        current = viewport.open_popup
        if current is not None and current is not self:
            current.close()
        self.is_open = True
        self.anchor = position
        self._viewport = viewport
        viewport.open_popup = self

    def close(self) -> None:
        if self._viewport is not None and self._viewport.open_popup is self:
            self._viewport.open_popup = None
        self.is_open = False
        self._viewport = None


class DeckViewport:
    def __init__(self, container: Any, config: MapConfig):
        self.container = container
        self.config = config
        self.markers: List[DeckMarker] = []
        self.open_popup: Optional[DeckPopup] = None
        self.loading: Optional[DeckLoadingIndicator] = None
        self.destroyed = False
        self.ready = False
        self._handlers: Dict[str, List[Handler]] = {}

    def on(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str) -> None:
        self._handlers.pop(event, None)

    def emit(self, event: ViewportEvent) -> None:
        for handler in list(self._handlers.get(event.name, [])):
            handler(event)

    def show_loading(self, message: str) -> DeckLoadingIndicator:
        self.loading = DeckLoadingIndicator(self, message)
        return self.loading

    def _attach(self, marker: DeckMarker) -> None:
        if self.destroyed:
            raise RuntimeError("viewport destroyed")
        self.markers.append(marker)

    def _detach(self, marker: DeckMarker) -> None:
        if marker in self.markers:
            self.markers.remove(marker)

    def clear_map(self) -> None:
        for marker in list(self.markers):
            marker.set_map(None)
        if self.open_popup is not None:
            self.open_popup.close()

    def destroy(self) -> None:
        self.clear_map()
        self._handlers.clear()
        self.destroyed = True

    def ordered_markers(self) -> List[DeckMarker]:
        return sorted(self.markers, key=lambda m: m.spec.z_index)

    def pick(self, index: int) -> None:
        """Deliver a click on the ``index``-th marker in drawing order."""
        self.ordered_markers()[index].emit("click")

    def click(self, lng: float, lat: float) -> None:
        """Deliver a click on empty map, closing a popup that asks for it."""
        popup = self.open_popup
        if popup is not None and popup.close_when_click_map:
            popup.close()
        self.emit(ViewportEvent("click", (lng, lat)))

    def rows(self) -> List[dict]:
        rows = []
        for idx, marker in enumerate(self.ordered_markers()):
            spec = marker.spec
            label_dx, label_dy = spec.label.offset
            r, g, b = ImageColor.getrgb(spec.label.border_color)[:3]
            rows.append(
                {
                    "index": idx,
                    "name": spec.label.text,
                    "popup": spec.popup_html or escape(spec.title),
                    "position": [spec.position[0], spec.position[1]],
                    "icon_data": {
                        "url": spec.icon,
                        "width": spec.icon_size,
                        "height": spec.icon_size,
                        "anchorY": spec.icon_size // 2,
                    },
                    "border": [r, g, b],
                    # label sits above the icon, which is centred on the position
                    "label_offset": [label_dx, label_dy - spec.icon_size // 2],
                    "z_index": spec.z_index,
                }
            )
        return rows

    def render(self, height: int = 640) -> pdk.Deck:
        if self.destroyed:
            raise RuntimeError("viewport destroyed")
        if not self.ready:
            self.ready = True
            self.emit(ViewportEvent("complete"))
        rows = self.rows()
        LOGGER.debug("Rendering %d markers for %s.", len(rows), self.container)
        icon_size = rows[0]["icon_data"]["width"] if rows else BADGE_SIZE
        layers = [
            pdk.Layer(
                "IconLayer",
                id=MARKER_LAYER_ID,
                data=rows,
                get_icon="icon_data",
                get_position="position",
                get_size=icon_size,
                size_units="pixels",
                pickable=True,
            ),
            pdk.Layer(
                "TextLayer",
                id=LABEL_LAYER_ID,
                data=rows,
                get_position="position",
                get_text="name",
                get_size=12,
                get_color=[51, 51, 51],
                get_pixel_offset="label_offset",
                background=True,
                get_background_color=[255, 255, 255],
                get_border_color="border",
                get_border_width=1,
                character_set="auto",
                font_weight="bold",
            ),
        ]
        lng, lat = self.config.center
        min_zoom, max_zoom = self.config.zooms
        view_state = pdk.ViewState(
            longitude=lng,
            latitude=lat,
            zoom=self.config.zoom,
            min_zoom=min_zoom,
            max_zoom=max_zoom,
        )
        return pdk.Deck(
            layers=layers,
            initial_view_state=view_state,
            map_style="light",
            tooltip={"html": "{popup}"},
            height=height,
        )


class DeckMapCapability:
    """Creates deck viewports; only the most recent viewport and bootstrap are kept."""

    def __init__(self):
        self.viewport: Optional[DeckViewport] = None
        self.bootstrap: Optional[DeckBootstrap] = None

    def load(self) -> DeckBootstrap:
        self.bootstrap = DeckBootstrap()
        return self.bootstrap

    def create_viewport(self, container: Any, config: MapConfig) -> DeckViewport:
        self.viewport = DeckViewport(container, config)
        return self.viewport

    def create_marker(self, spec: MarkerSpec) -> DeckMarker:
        return DeckMarker(spec)

    def create_popup(
        self, content: str, offset: Pixel, close_when_click_map: bool = True
    ) -> DeckPopup:
        return DeckPopup(content, offset, close_when_click_map)
