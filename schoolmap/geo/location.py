import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config import AMAP_SEARCH_CITY, DEFAULT_CENTER, PLACE_SEARCH_TIMEOUT
from ..data.records import SchoolRecord
from ..map.capability import Coordinate, PlaceSearch
from ..utils.geo import is_unset

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaceLookup:
    coordinate: Optional[Coordinate]
    source: str

    @property
    def found(self) -> bool:
        return self.coordinate is not None

    @classmethod
    def not_found(cls) -> "PlaceLookup":
        return cls(coordinate=None, source="not_found")


def resolve_location(record: SchoolRecord, default: Coordinate = DEFAULT_CENTER) -> Coordinate:
    if is_unset(record.location):
        LOGGER.info("No coordinate for %s; using default centre.", record.name)
        return default
    return record.location


async def _search_once(
    search: PlaceSearch, query: str, city: str, timeout: float
) -> Optional[Coordinate]:
    try:
        result = await asyncio.wait_for(
            search.search(query, city=city, city_limit=True, page_size=1), timeout
        )
    except asyncio.TimeoutError:
        LOGGER.warning("Place search for %r timed out after %.1fs.", query, timeout)
        return None
    except Exception as exc:
        LOGGER.warning("Place search for %r failed: %s", query, exc)
        return None
    if result.found and result.coordinate is not None:
        return result.coordinate
    return None


async def resolve_by_name(
    name: Optional[str],
    address: Optional[str],
    search: PlaceSearch,
    *,
    city: str = AMAP_SEARCH_CITY,
    timeout: float = PLACE_SEARCH_TIMEOUT,
) -> PlaceLookup:
    """Look a school up by name, then by address.

    The first query that yields a place wins; there is no third attempt.
    Transport failures and timeouts count as a miss.
    """
    for source, query in (("name", name), ("address", address)):
        if not query or not query.strip():
            continue
        coord = await _search_once(search, query.strip(), city, timeout)
        if coord is not None:
            LOGGER.info("Located %r via %s query.", name, source)
            return PlaceLookup(coordinate=coord, source=source)
    LOGGER.info("No place found for %r (address %r).", name, address)
    return PlaceLookup.not_found()


async def fill_missing_locations(
    records: Sequence[SchoolRecord], search: PlaceSearch, **kwargs
) -> List[SchoolRecord]:
    out: List[SchoolRecord] = []
    for record in records:
        if not is_unset(record.location):
            out.append(record)
            continue
        lookup = await resolve_by_name(record.name, record.address, search, **kwargs)
        if lookup.found:
            record = record.model_copy(update={"location": lookup.coordinate})
        out.append(record)
    return out
