import sys
from io import BytesIO
from base64 import b64decode
from pathlib import Path

import pytest
from PIL import Image

sys.path.append(str(Path(__file__).resolve().parents[1]))

from schoolmap.config import DEFAULT_CENTER, DEFAULT_MAP_CONFIG
from schoolmap.data.records import SchoolRecord, load_records
from schoolmap.errors import ConfigurationError
from schoolmap.map.deck import DeckMapCapability
from schoolmap.map.session import MapSessionController, SessionState, mounted


class BrokenLoad(DeckMapCapability):
    def load(self):
        raise RuntimeError("script failed to load")


class BrokenViewport(DeckMapCapability):
    def create_viewport(self, container, config):
        raise RuntimeError("no WebGL")


class BrokenDestroy(DeckMapCapability):
    def create_viewport(self, container, config):
        viewport = super().create_viewport(container, config)

        def destroy():
            raise RuntimeError("destroy failed")

        viewport.destroy = destroy
        return viewport


def _ready(controller, records, container="map"):
    controller.mount(container, records)
    controller.viewport.render()
    return controller


def _badge_pixel(uri):
    png = b64decode(uri.split(",", 1)[1])
    return Image.open(BytesIO(png)).convert("RGB").getpixel((25, 5))


def test_mount_goes_loading_then_ready():
    cap = DeckMapCapability()
    controller = MapSessionController(cap)
    records = load_records()[:3]
    assert controller.mount("map", records) is SessionState.LOADING
    viewport = controller.viewport
    assert viewport.loading is not None
    assert len(controller.registry) == 0

    viewport.render()
    assert controller.state is SessionState.READY
    assert viewport.loading is None
    assert len(controller.registry) == 3
    assert len(viewport.markers) == 3


def test_missing_container_is_configuration_error():
    cap = DeckMapCapability()
    controller = MapSessionController(cap)
    for container in (None, "", "   "):
        with pytest.raises(ConfigurationError):
            controller.mount(container, load_records())
    assert cap.viewport is None
    assert cap.bootstrap is None
    assert controller.state is SessionState.UNINITIALIZED


def test_empty_records_do_not_create_viewport_until_supplied():
    cap = DeckMapCapability()
    controller = MapSessionController(cap)
    assert controller.mount("map", []) is SessionState.UNINITIALIZED
    assert cap.viewport is None
    assert len(controller.registry) == 0

    assert controller.update_records(load_records()[:2]) is SessionState.LOADING
    assert cap.viewport is controller.viewport


def test_load_failure_leaves_uninitialized():
    cap = BrokenLoad()
    controller = MapSessionController(cap)
    assert controller.mount("map", load_records()) is SessionState.UNINITIALIZED
    assert controller.viewport is None


def test_viewport_failure_releases_bootstrap():
    cap = BrokenViewport()
    controller = MapSessionController(cap)
    assert controller.mount("map", load_records()) is SessionState.UNINITIALIZED
    assert cap.bootstrap is not None
    assert cap.bootstrap.released


def test_click_is_republished_only_when_ready():
    seen = []
    controller = MapSessionController(DeckMapCapability(), on_click=seen.append)
    controller.mount("map", load_records()[:1])
    controller.viewport.click(116.1, 39.9)
    assert seen == []

    controller.viewport.render()
    controller.viewport.click(116.3000001, 39.9500004)
    assert controller.last_click == (116.3, 39.95)
    assert seen == [(116.3, 39.95)]


def test_record_change_rebuilds_everything():
    controller = _ready(MapSessionController(DeckMapCapability()), load_records()[:2])
    controller.registry.select(0)
    fresh = load_records()[5:9]
    controller.update_records(fresh)
    assert [p.resolved.source_record.name for p in controller.registry.pairs] == [r.name for r in fresh]
    assert controller.registry.open_pair is None
    assert len(controller.viewport.markers) == 4


def test_unmount_releases_everything_and_is_idempotent():
    cap = DeckMapCapability()
    controller = _ready(MapSessionController(cap), load_records())
    viewport = controller.viewport
    controller.registry.select(1)

    controller.unmount()
    assert controller.state is SessionState.DESTROYED
    assert len(controller.registry) == 0
    assert controller.viewport is None
    assert viewport.destroyed
    assert viewport.markers == []
    assert cap.bootstrap.released

    controller.unmount()
    assert controller.state is SessionState.DESTROYED


def test_unmount_from_uninitialized_is_safe():
    controller = MapSessionController(DeckMapCapability())
    controller.unmount()
    assert controller.state is SessionState.DESTROYED


def test_teardown_failure_does_not_block_remaining_steps():
    cap = BrokenDestroy()
    controller = _ready(MapSessionController(cap), load_records()[:2])
    controller.unmount()
    assert controller.state is SessionState.DESTROYED
    assert cap.bootstrap.released


def test_context_manager_unmounts_on_error():
    cap = DeckMapCapability()
    with pytest.raises(ValueError):
        with mounted(cap, "map", load_records()[:2]) as controller:
            controller.viewport.render()
            raise ValueError("host blew up")
    assert controller.state is SessionState.DESTROYED
    assert cap.viewport.destroyed
    assert cap.bootstrap.released


def test_two_record_mount_end_to_end():
    records = [
        SchoolRecord(
            name="北京市十一学校",
            tier="第一梯队",
            location=(116.255328, 39.902167),
            acceptanceRate2025="7.04%",
        ),
        SchoolRecord(name="借址校区", tier="第八梯队", location=(0, 0), acceptanceRate2025="3.3%"),
    ]
    with mounted(DeckMapCapability(), "map", records) as controller:
        deck = controller.viewport.render()
        pairs = controller.registry.pairs
        assert len(pairs) == 2
        assert pairs[0].resolved.coordinate == (116.255328, 39.902167)
        assert pairs[1].resolved.coordinate == DEFAULT_CENTER
        assert _badge_pixel(pairs[0].resolved.badge_image) == (255, 0, 0)
        assert _badge_pixel(pairs[1].resolved.badge_image) == (128, 128, 128)
        assert pairs[1].z_index > pairs[0].z_index
        assert len(deck.layers) == 2
    assert len(controller.registry) == 0


def test_map_click_closes_open_popup():
    controller = _ready(MapSessionController(DeckMapCapability()), load_records()[:3])
    controller.registry.select(0)
    assert controller.registry.open_pair is controller.registry.pairs[0]

    controller.viewport.click(116.1, 39.9)
    assert controller.registry.open_pair is None
    assert controller.viewport.open_popup is None
    assert controller.last_click == (116.1, 39.9)


def test_popup_can_opt_out_of_closing_on_map_click():
    cap = DeckMapCapability()
    viewport = cap.create_viewport("map", DEFAULT_MAP_CONFIG)
    popup = cap.create_popup("<b>x</b>", (0, -30), close_when_click_map=False)
    popup.open(viewport, DEFAULT_CENTER)
    viewport.click(116.1, 39.9)
    assert popup.is_open
    assert viewport.open_popup is popup


def test_deck_rows_carry_popup_html_and_label_offset():
    controller = _ready(MapSessionController(DeckMapCapability()), load_records()[:2])
    rows = controller.viewport.rows()
    pairs = controller.registry.pairs
    assert [row["popup"] for row in rows] == [p.resolved.popup_content for p in pairs]
    # (0, -15) from the label, lifted by half of the 50px badge
    assert all(row["label_offset"] == [0, -40] for row in rows)


def test_remount_keeps_only_current_viewport():
    cap = DeckMapCapability()
    controller = _ready(MapSessionController(cap), load_records()[:2])
    first_viewport, first_bootstrap = cap.viewport, cap.bootstrap
    controller.unmount()
    _ready(controller, load_records()[2:4])
    assert cap.viewport is controller.viewport
    assert cap.viewport is not first_viewport
    assert cap.bootstrap is not first_bootstrap
    assert first_viewport.destroyed
    assert first_bootstrap.released
