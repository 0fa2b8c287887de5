"""
Content hashing for listing observations.

The digest is the single idempotency key of the pipeline: the scheduler
compares it with the job's previous hash to skip unchanged pages, and the
ingestion writer uses it to spot the same listing arriving from another
source URL.

Only a normalized subset of the extracted fields takes part:
- title: lower-cased, whitespace collapsed
- price, area, rooms, floor, year built
- currency: upper-cased
- lat/lng: rounded to 6 decimals
- photo count (photo URLs rotate between crawls and are left out)
"""

import hashlib
import json
import re
from typing import Any, Dict, Mapping, Optional

# Keys an extractor may use for each hashed field
FIELD_ALIASES = {
    "area_m2": ("area_m2", "areaM2", "area"),
    "year_built": ("year_built", "yearBuilt"),
    "floor": ("floor_raw", "floorRaw", "floor"),
    "photo_count": ("photo_count", "photoCount"),
}

COORDINATE_PRECISION = 6


def pick(fields: Mapping[str, Any], name: str) -> Any:
    """Value of ``name`` in ``fields``, honoring camelCase aliases."""
    for key in FIELD_ALIASES.get(name, (name,)):
        value = fields.get(key)
        if value is not None:
            return value
    return None


def normalize_number(value: Any) -> Optional[float]:
    """Numbers and numeric strings as float/int; anything else as None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return None
        try:
            value = float(value)
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float):
        if value != value:  # NaN
            return None
        if value.is_integer():
            return int(value)
    return value


def normalize_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = re.sub(r"\s+", " ", str(value)).strip().lower()
    return text or None


def _photo_count(fields: Mapping[str, Any]) -> int:
    photos = fields.get("photos")
    if isinstance(photos, (list, tuple)):
        return len(photos)
    count = normalize_number(pick(fields, "photo_count"))
    return int(count) if count else 0


def _coordinate(value: Any) -> Optional[float]:
    number = normalize_number(value)
    if number is None:
        return None
    return normalize_number(round(float(number), COORDINATE_PRECISION))


def normalized_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """The normalized field subset that feeds the digest."""
    currency = normalize_text(pick(fields, "currency"))
    return {
        "title": normalize_text(pick(fields, "title")),
        "price": normalize_number(pick(fields, "price")),
        "currency": currency.upper() if currency else None,
        "area_m2": normalize_number(pick(fields, "area_m2")),
        "rooms": normalize_number(pick(fields, "rooms")),
        "floor": normalize_text(pick(fields, "floor")),
        "year_built": normalize_number(pick(fields, "year_built")),
        "lat": _coordinate(pick(fields, "lat")),
        "lng": _coordinate(pick(fields, "lng")),
        "photo_count": _photo_count(fields),
    }


def compute_content_hash(fields: Mapping[str, Any]) -> str:
    """
    Deterministic SHA-256 hex digest over the normalized listing fields.

    Key order, surrounding whitespace and title case do not affect the
    result; ``100`` and ``100.0`` hash identically.
    """
    payload = json.dumps(
        normalized_fields(fields or {}),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
