import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

LOGGER = logging.getLogger(__name__)

BUNDLED_SCHOOLS = Path(__file__).resolve().parent / "schools.json"


class SchoolFeatures(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    advantages: Optional[str] = None
    education_path: List[str] = Field(default_factory=list, alias="educationPath")


class SchoolRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    tier: str
    address: Optional[str] = None
    location: Optional[Tuple[float, float]] = Field(
        default=None, description="(lng, lat); (0, 0) means unset"
    )
    score: Optional[Union[int, str]] = None
    district_rank: Optional[str] = Field(default=None, alias="districtRank")
    enrollment_2024: Optional[int] = Field(default=None, alias="enrollment2024")
    enrollment_2025: Optional[int] = Field(default=None, alias="enrollment2025")
    applicants: Optional[int] = None
    acceptance_rate: Optional[str] = Field(default=None, alias="acceptanceRate")
    acceptance_rate_2025: Optional[str] = Field(default=None, alias="acceptanceRate2025")
    features: SchoolFeatures = Field(default_factory=SchoolFeatures)
    description: Optional[str] = None


_RECORDS = TypeAdapter(List[SchoolRecord])

# flat CSV column -> record field
FRAME_COLUMNS = {
    "name": "name",
    "tier": "tier",
    "address": "address",
    "score": "score",
    "district_rank": "district_rank",
    "enrollment_2024": "enrollment_2024",
    "enrollment_2025": "enrollment_2025",
    "applicants": "applicants",
    "acceptance_rate": "acceptance_rate",
    "acceptance_rate_2025": "acceptance_rate_2025",
    "description": "description",
}


def load_records(path: Optional[Union[str, Path]] = None) -> List[SchoolRecord]:
    p = Path(path) if path else BUNDLED_SCHOOLS
    records = _RECORDS.validate_json(p.read_bytes())
    LOGGER.info("Loaded %d school records from %s.", len(records), p)
    return records


def dump_records(records: List[SchoolRecord]) -> list:
    return _RECORDS.dump_python(records, by_alias=True, mode="json")


def _cell(value):
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if hasattr(value, "item"):
        return value.item()
    return value


def records_from_frame(df: pd.DataFrame) -> List[SchoolRecord]:
    """Build records from a flat table (one row per school).

    Expects at least ``name`` and ``tier``; ``lng``/``lat`` become the location,
    ``advantages`` and ``education_path`` (``/`` separated) become features.
    Rows that fail validation are skipped.
    """
    records: List[SchoolRecord] = []
    for idx, row in enumerate(df.to_dict(orient="records")):
        data = {}
        for column, field in FRAME_COLUMNS.items():
            value = _cell(row.get(column))
            if value is not None:
                data[field] = value
        if isinstance(data.get("score"), float) and data["score"].is_integer():
            data["score"] = int(data["score"])
        for field in ("enrollment_2024", "enrollment_2025", "applicants"):
            if isinstance(data.get(field), float):
                data[field] = int(data[field])
        lng, lat = _cell(row.get("lng")), _cell(row.get("lat"))
        if lng is not None and lat is not None:
            data["location"] = (float(lng), float(lat))
        path = _cell(row.get("education_path"))
        data["features"] = {
            "advantages": _cell(row.get("advantages")),
            "education_path": [p.strip() for p in str(path).split("/") if p.strip()] if path else [],
        }
        try:
            records.append(SchoolRecord.model_validate(data))
        except ValidationError as exc:
            LOGGER.warning("Skipping row %d (%s): %s", idx + 1, row.get("name"), exc)
    return records
