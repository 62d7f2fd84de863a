import logging
from dataclasses import dataclass
from functools import partial
from typing import List, Optional, Sequence, Tuple

from ..config import (
    BADGE_SIZE,
    BASE_Z_INDEX,
    DEFAULT_CENTER,
    LABEL_OFFSET,
    MARKER_OFFSET,
    POPUP_OFFSET,
)
from ..data.records import SchoolRecord
from ..errors import MarkerCreationError
from ..geo.location import resolve_location
from ..render.badge import render_badge, tier_color
from ..render.popup import format_detail
from .capability import (
    Coordinate,
    MapCapability,
    MarkerHandle,
    MarkerLabel,
    MarkerSpec,
    PopupHandle,
    Viewport,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedMarker:
    source_record: SchoolRecord
    coordinate: Coordinate
    badge_image: str
    popup_content: str


@dataclass(frozen=True, eq=False)
class MarkerPair:
    resolved: ResolvedMarker
    marker: MarkerHandle
    popup: PopupHandle
    z_index: int


def build_resolved_marker(
    record: SchoolRecord, default_center: Coordinate = DEFAULT_CENTER
) -> ResolvedMarker:
    return ResolvedMarker(
        source_record=record,
        coordinate=resolve_location(record, default_center),
        badge_image=render_badge(record.tier, record.acceptance_rate_2025 or "0%"),
        popup_content=format_detail(record),
    )


class MarkerRegistry:
    """Owns the marker/popup pairs currently on a viewport.

    Pairs are kept in record order; that order is also the stacking order.
    At most one tracked popup is open at a time.
    """

    def __init__(self, capability: MapCapability, default_center: Coordinate = DEFAULT_CENTER):
        self._capability = capability
        self._default_center = default_center
        self._pairs: List[MarkerPair] = []
        self._viewport: Optional[Viewport] = None
        self._rebuilding = False
        self._pending: Optional[Tuple[Sequence[SchoolRecord], Viewport]] = None

    def __len__(self) -> int:
        return len(self._pairs)

    @property
    def pairs(self) -> Tuple[MarkerPair, ...]:
        return tuple(self._pairs)

    @property
    def open_pair(self) -> Optional[MarkerPair]:
        return next((p for p in self._pairs if p.popup.is_open), None)

    def rebuild(self, records: Sequence[SchoolRecord], viewport: Viewport) -> int:
        if self._rebuilding:
            # applied once the pass in flight finishes
            LOGGER.info("Rebuild already running; deferring %d records.", len(records))
            self._pending = (list(records), viewport)
            return len(self._pairs)
        self._rebuilding = True
        try:
            self._rebuild_once(records, viewport)
            while self._pending is not None:
                records, viewport = self._pending
                self._pending = None
                self._rebuild_once(records, viewport)
        finally:
            self._rebuilding = False
        return len(self._pairs)

    def _rebuild_once(self, records: Sequence[SchoolRecord], viewport: Viewport) -> None:
        self.clear()
        self._viewport = viewport
        for record in records:
            try:
                pair = self._create_pair(record, viewport)
            except MarkerCreationError as exc:
                LOGGER.warning("Skipping marker: %s", exc)
                continue
            self._pairs.append(pair)
            LOGGER.debug("Created marker %s at %s.", record.name, pair.resolved.coordinate)
        LOGGER.info("Created %d of %d markers.", len(self._pairs), len(records))

    def _create_pair(self, record: SchoolRecord, viewport: Viewport) -> MarkerPair:
        marker = None
        try:
            resolved = build_resolved_marker(record, self._default_center)
            z_index = BASE_Z_INDEX + len(self._pairs)
            spec = MarkerSpec(
                position=resolved.coordinate,
                icon=resolved.badge_image,
                icon_size=BADGE_SIZE,
                offset=MARKER_OFFSET,
                label=MarkerLabel(
                    text=record.name,
                    direction="top",
                    offset=LABEL_OFFSET,
                    border_color=tier_color(record.tier),
                ),
                z_index=z_index,
                title=record.name,
                popup_html=resolved.popup_content,
            )
            marker = self._capability.create_marker(spec)
            marker.set_map(viewport)
            popup = self._capability.create_popup(
                resolved.popup_content, POPUP_OFFSET, close_when_click_map=True
            )
            pair = MarkerPair(resolved=resolved, marker=marker, popup=popup, z_index=z_index)
            marker.on("click", partial(self._on_marker_click, pair))
            return pair
        except Exception as exc:
            if marker is not None:
                try:
                    marker.off("click")
                    marker.set_map(None)
                except Exception:
                    LOGGER.exception("Could not detach half-built marker for %s.", record.name)
            raise MarkerCreationError(record.name, exc) from exc

    def _on_marker_click(self, pair: MarkerPair, _event=None) -> None:
        self._open(pair)

    def select(self, index: int) -> MarkerPair:
        pair = self._pairs[index]
        self._open(pair)
        return pair

    def _open(self, pair: MarkerPair) -> None:
        if not any(p is pair for p in self._pairs) or self._viewport is None:
            LOGGER.warning("Ignoring selection of an untracked marker.")
            return
        for other in self._pairs:
            if other is not pair and other.popup.is_open:
                other.popup.close()
        pair.popup.open(self._viewport, pair.marker.get_position())

    def close_popups(self) -> None:
        for pair in self._pairs:
            if pair.popup.is_open:
                pair.popup.close()

    def clear(self) -> None:
        for pair in self._pairs:
            name = pair.resolved.source_record.name
            try:
                pair.popup.close()
            except Exception:
                LOGGER.exception("Failed to close popup for %s.", name)
            try:
                pair.marker.off("click")
                pair.marker.set_map(None)
            except Exception:
                LOGGER.exception("Failed to detach marker for %s.", name)
        self._pairs = []
        self._viewport = None
