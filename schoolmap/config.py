from dataclasses import dataclass
from types import MappingProxyType
from typing import Tuple
import os

from dotenv import load_dotenv

load_dotenv()

AMAP_API_KEY = os.getenv("AMAP_API_KEY", "")
AMAP_SEARCH_CITY = os.getenv("AMAP_SEARCH_CITY", "北京")
PLACE_SEARCH_TIMEOUT = float(os.getenv("PLACE_SEARCH_TIMEOUT", "10"))
BADGE_FONT_PATH = os.getenv("SCHOOLMAP_BADGE_FONT", "")

# Haidian district centre, (lng, lat)
DEFAULT_CENTER: Tuple[float, float] = (116.298056, 39.959912)

TIER_COLORS = MappingProxyType(
    {
        "第一梯队": "#FF0000",
        "第二梯队": "#FF7F00",
        "第三梯队": "#FFFF00",
        "第四梯队": "#00FF00",
        "第五梯队": "#00FFFF",
        "第六梯队": "#0000FF",
        "第七梯队": "#8B00FF",
        "第八梯队": "#808080",
    }
)
DEFAULT_TIER_COLOR = "#808080"

BADGE_SIZE = 50
BADGE_FONT_SIZE = 12
MARKER_OFFSET = (-BADGE_SIZE // 2, -BADGE_SIZE // 2)
LABEL_OFFSET = (0, -15)
POPUP_OFFSET = (0, -30)
BASE_Z_INDEX = 100


@dataclass(frozen=True)
class MapConfig:
    center: Tuple[float, float] = DEFAULT_CENTER
    zoom: int = 12
    zooms: Tuple[int, int] = (9, 18)
    lang: str = "zh_cn"
    view_mode: str = "2D"


DEFAULT_MAP_CONFIG = MapConfig()
