import logging
from typing import Any, Optional

import httpx

from ..config import AMAP_API_KEY
from ..map.capability import PlaceResult
from ..utils.geo import parse_lnglat

# Text search against the AMap web service. The JS SDK's PlaceSearch plugin
# hits the same backend; this is the server-side equivalent.

BASE = "https://restapi.amap.com/v3/place/text"
LOGGER = logging.getLogger(__name__)

NOT_FOUND = PlaceResult(found=False)


class AMapPlaceSearch:
    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 20,
    ):
        self.api_key = AMAP_API_KEY if api_key is None else api_key
        self._client = client
        self._timeout = timeout

    async def search(
        self, query: str, *, city: str, city_limit: bool = True, page_size: int = 1
    ) -> PlaceResult:
        if not self.api_key:
            LOGGER.warning("AMAP_API_KEY not set; place search for %r skipped.", query)
            return NOT_FOUND
        params = {
            "key": self.api_key,
            "keywords": query,
            "city": city,
            "citylimit": "true" if city_limit else "false",
            "offset": page_size,
            "page": 1,
            "output": "json",
        }
        try:
            if self._client is not None:
                r = await self._client.get(BASE, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    r = await client.get(BASE, params=params)
            r.raise_for_status()
            body = r.json()
        except httpx.HTTPStatusError as exc:
            LOGGER.warning("AMap place search failed (%s) for %r: %s", exc.response.status_code, query, exc)
            return NOT_FOUND
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("AMap place search error for %r: %s", query, exc)
            return NOT_FOUND
        return _parse(body, query)


def _parse(body: Any, query: str) -> PlaceResult:
    if not isinstance(body, dict):
        LOGGER.warning("AMap place search for %r returned a non-object payload.", query)
        return NOT_FOUND
    if str(body.get("status")) != "1" or body.get("info") != "OK":
        LOGGER.info("AMap place search for %r returned %s.", query, body.get("info"))
        return NOT_FOUND
    pois = body.get("pois") or []
    if not isinstance(pois, list) or not pois:
        return NOT_FOUND
    poi = pois[0]
    location = poi.get("location") if isinstance(poi, dict) else None
    coord = parse_lnglat(location)
    if coord is None:
        LOGGER.warning("AMap POI for %r has no usable location: %r", query, location)
        return NOT_FOUND
    LOGGER.info("AMap place search found %r at %.6f,%.6f.", query, coord[0], coord[1])
    return PlaceResult(found=True, coordinate=coord)
