import logging
from typing import List, Optional

from fastapi import FastAPI, Query, Response
from pydantic import BaseModel, Field

from ..data.amap import AMapPlaceSearch
from ..data.records import SchoolRecord, dump_records, load_records
from ..geo.location import fill_missing_locations, resolve_by_name
from ..map.deck import DeckMapCapability
from ..map.session import SessionState, mounted
from ..render.badge import format_rate, render_badge_png, tier_color

app = FastAPI(title="School Tier Map API", version="0.1.0")
LOGGER = logging.getLogger(__name__)


class LocateRequest(BaseModel):
    name: str
    address: Optional[str] = Field(default=None, description="Fallback query when the name is not found.")


class MarkersRequest(BaseModel):
    schools: List[SchoolRecord]
    locate: bool = False


def _place_search() -> AMapPlaceSearch:
    return AMapPlaceSearch()


@app.get("/health")
async def health():
    return {"ok": True}


@app.get("/schools")
async def schools():
    return {"schools": dump_records(load_records())}


def _marker_payload(records: List[SchoolRecord]) -> dict:
    with mounted(DeckMapCapability(), "api", records) as controller:
        if controller.state is SessionState.LOADING:
            controller.viewport.render()
        markers = []
        for pair in controller.registry.pairs:
            record = pair.resolved.source_record
            markers.append(
                {
                    "name": record.name,
                    "tier": record.tier,
                    "color": tier_color(record.tier),
                    "coordinate": list(pair.resolved.coordinate),
                    "rate_label": format_rate(record.acceptance_rate_2025 or "0%"),
                    "badge": pair.resolved.badge_image,
                    "popup": pair.resolved.popup_content,
                    "z_index": pair.z_index,
                }
            )
        state = controller.state.value
    skipped = len(records) - len(markers)
    if skipped:
        LOGGER.warning("%d of %d schools could not be placed on the map.", skipped, len(records))
    return {"markers": markers, "count": len(markers), "skipped": skipped, "state": state}


async def _maybe_locate(records: List[SchoolRecord], locate: bool) -> List[SchoolRecord]:
    if not locate:
        return records
    return await fill_missing_locations(records, _place_search())


@app.get("/markers")
async def markers(locate: bool = False):
    records = await _maybe_locate(load_records(), locate)
    return _marker_payload(records)


@app.post("/markers")
async def markers_for(req: MarkersRequest):
    records = await _maybe_locate(list(req.schools), req.locate)
    return _marker_payload(records)


@app.get("/badge.png")
async def badge(tier: str = Query(...), rate: Optional[str] = Query(default=None)):
    return Response(content=render_badge_png(tier, rate), media_type="image/png")


@app.post("/locate")
async def locate(req: LocateRequest):
    lookup = await resolve_by_name(req.name, req.address, _place_search())
    return {
        "found": lookup.found,
        "coordinate": list(lookup.coordinate) if lookup.coordinate else None,
        "source": lookup.source,
    }
