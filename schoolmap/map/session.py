import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Sequence

from ..config import DEFAULT_MAP_CONFIG, MapConfig
from ..data.records import SchoolRecord
from ..errors import ConfigurationError, TeardownError, ViewportInitError
from ..utils.geo import round_lnglat
from .capability import (
    Bootstrap,
    Coordinate,
    LoadingIndicator,
    MapCapability,
    Viewport,
    ViewportEvent,
)
from .registry import MarkerRegistry

LOGGER = logging.getLogger(__name__)

LOADING_MESSAGE = "正在加载地图..."


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    DESTROYED = "destroyed"


class MapSessionController:
    """Drives one map viewport from mount to unmount.

    ``mount`` acquires the bootstrap resource and the viewport; markers are
    built when the viewport reports ``complete``. ``unmount`` releases
    markers, viewport and bootstrap in that order, each step independently.
    """

    def __init__(
        self,
        capability: MapCapability,
        config: MapConfig = DEFAULT_MAP_CONFIG,
        on_click: Optional[Callable[[Coordinate], None]] = None,
        registry: Optional[MarkerRegistry] = None,
    ):
        self.capability = capability
        self.config = config
        self.on_click = on_click
        if registry is None:
            registry = MarkerRegistry(capability, default_center=config.center)
        self.registry = registry
        self.state = SessionState.UNINITIALIZED
        self.viewport: Optional[Viewport] = None
        self.last_click: Optional[Coordinate] = None
        self._bootstrap: Optional[Bootstrap] = None
        self._loading: Optional[LoadingIndicator] = None
        self._container: Any = None
        self._records: List[SchoolRecord] = []

    @property
    def records(self) -> List[SchoolRecord]:
        return list(self._records)

    def mount(self, container: Any, records: Sequence[SchoolRecord]) -> SessionState:
        if container is None or (isinstance(container, str) and not container.strip()):
            raise ConfigurationError("map container is missing")
        self._container = container
        self._records = list(records)
        if self.viewport is not None or self._bootstrap is not None:
            self._release()
        if not self._records:
            LOGGER.info("No records yet; map not created.")
            self.state = SessionState.UNINITIALIZED
            return self.state
        try:
            self._bootstrap = self.capability.load()
            self.viewport = self.capability.create_viewport(container, self.config)
            self._loading = self.viewport.show_loading(LOADING_MESSAGE)
            self.viewport.on("click", self._on_click)
            self.viewport.on("complete", self._on_ready)
        except Exception as exc:
            err = ViewportInitError(f"map initialisation failed: {exc}")
            LOGGER.error("%s", err, exc_info=exc)
            self._release()
            self.state = SessionState.UNINITIALIZED
            return self.state
        self.state = SessionState.LOADING
        LOGGER.info("Map viewport created for %d schools; waiting for ready.", len(self._records))
        return self.state

    def update_records(self, records: Sequence[SchoolRecord]) -> SessionState:
        self._records = list(records)
        if self.state is SessionState.READY and self.viewport is not None:
            self.registry.rebuild(self._records, self.viewport)
        elif self.state is SessionState.UNINITIALIZED and self._container is not None:
            return self.mount(self._container, self._records)
        return self.state

    def _on_ready(self, _event: Optional[ViewportEvent] = None) -> None:
        if self.state is not SessionState.LOADING or self.viewport is None:
            return
        LOGGER.info("Map ready.")
        if self._loading is not None:
            try:
                self._loading.remove()
            except Exception:
                LOGGER.exception("Failed to remove loading indicator.")
            self._loading = None
        self.state = SessionState.READY
        self.registry.rebuild(self._records, self.viewport)

    def _on_click(self, event: ViewportEvent) -> None:
        if self.state is not SessionState.READY or event.lnglat is None:
            return
        self.last_click = round_lnglat(*event.lnglat)
        LOGGER.debug("Map clicked at %.6f,%.6f.", *self.last_click)
        if self.on_click is not None:
            self.on_click(self.last_click)

    def _step(self, what: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception as exc:
            LOGGER.error("%s", TeardownError(f"{what} failed: {exc}"), exc_info=exc)

    def _release(self) -> None:
        self._step("marker cleanup", self.registry.clear)
        if self._loading is not None:
            self._step("loading indicator removal", self._loading.remove)
            self._loading = None
        if self.viewport is not None:
            viewport = self.viewport
            self._step("viewport clear", viewport.clear_map)
            self._step("viewport destroy", viewport.destroy)
            self.viewport = None
        if self._bootstrap is not None:
            self._step("bootstrap release", self._bootstrap.release)
            self._bootstrap = None

    def unmount(self) -> None:
        if self.state is SessionState.DESTROYED:
            return
        LOGGER.info("Cleaning up map resources.")
        self._release()
        self.state = SessionState.DESTROYED


@contextmanager
def mounted(
    capability: MapCapability, container: Any, records: Sequence[SchoolRecord], **kwargs
) -> Iterator[MapSessionController]:
    controller = MapSessionController(capability, **kwargs)
    try:
        controller.mount(container, records)
        yield controller
    finally:
        controller.unmount()
