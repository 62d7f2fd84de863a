import math
from typing import Optional, Sequence, Tuple

Coordinate = Tuple[float, float]

# (0, 0) doubles as "no coordinate"; a real point at null island is indistinguishable.
UNSET_COORDINATE: Coordinate = (0.0, 0.0)


def round_lnglat(lng: float, lat: float, ndigits: int = 6) -> Coordinate:
    return (round(float(lng), ndigits), round(float(lat), ndigits))


def is_unset(coord: Optional[Sequence[float]]) -> bool:
    if coord is None:
        return True
    return float(coord[0]) == 0.0 and float(coord[1]) == 0.0


def is_valid_lnglat(lng: float, lat: float) -> bool:
    if not (math.isfinite(lng) and math.isfinite(lat)):
        return False
    return -180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0


def parse_lnglat(text: str) -> Optional[Coordinate]:
    """Parse an AMap style ``"lng,lat"`` string."""
    try:
        lng_s, lat_s = text.split(",")
        lng, lat = float(lng_s), float(lat_s)
    except (AttributeError, ValueError):
        return None
    if not is_valid_lnglat(lng, lat):
        return None
    return (lng, lat)
