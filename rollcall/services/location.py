"""
Location payload normalisation.

Mobile clients send locations in several shapes: a JSON object with assorted
key aliases, a JSON string of that object, a bare ``"lat,lng"`` string, or
separate latitude / longitude / address form fields. All of them collapse
into one :class:`Location` here; nothing past intake sees the raw shapes.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel

from rollcall.core.exceptions import ValidationError

_LAT_KEYS = ("latitude", "lat")
_LNG_KEYS = ("longitude", "lng", "lon", "long")
_ADDRESS_KEYS = ("address", "formattedAddress", "formatted_address")


class Location(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None

    def is_empty(self) -> bool:
        return self.latitude is None and self.longitude is None and not self.address


def _pick(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _coerce_coordinate(value: Any, name: str, limit: float) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", field=f"location.{name}") from None
    if not -limit <= number <= limit:
        raise ValidationError(
            f"{name} must be between -{limit:g} and {limit:g}",
            field=f"location.{name}",
        )
    return number


def _from_mapping(data: dict[str, Any]) -> Location:
    # Some clients nest the coordinates under "coords".
    coords = data.get("coords")
    if isinstance(coords, dict):
        data = {**coords, **{k: v for k, v in data.items() if k != "coords"}}

    latitude = _coerce_coordinate(_pick(data, _LAT_KEYS), "latitude", 90)
    longitude = _coerce_coordinate(_pick(data, _LNG_KEYS), "longitude", 180)
    if (latitude is None) != (longitude is None):
        raise ValidationError(
            "latitude and longitude must be supplied together", field="location"
        )
    address = _pick(data, _ADDRESS_KEYS)
    return Location(
        latitude=latitude,
        longitude=longitude,
        address=str(address).strip() if address is not None else None,
    )


def _from_string(raw: str) -> Location:
    text = raw.strip()
    if not text:
        return Location()
    if text.startswith("{"):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            raise ValidationError("location is not valid JSON", field="location") from None
        if not isinstance(parsed, dict):
            raise ValidationError("location JSON must be an object", field="location")
        return _from_mapping(parsed)

    parts = [p.strip() for p in text.split(",")]
    if len(parts) >= 2:
        try:
            float(parts[0]), float(parts[1])
        except ValueError:
            return Location(address=text)
        return _from_mapping(
            {
                "latitude": parts[0],
                "longitude": parts[1],
                "address": ", ".join(parts[2:]) or None,
            }
        )
    return Location(address=text)


def normalize_location(
    location: Any = None,
    *,
    latitude: Any = None,
    longitude: Any = None,
    address: str | None = None,
) -> Location | None:
    """Collapse any accepted location shape into a :class:`Location`.

    Returns ``None`` when nothing usable was supplied. Explicit
    latitude / longitude / address arguments win over the same values found
    inside *location*.
    """
    if isinstance(location, Location):
        base = location
    elif isinstance(location, dict):
        base = _from_mapping(location)
    elif isinstance(location, str):
        base = _from_string(location)
    elif location is None:
        base = Location()
    else:
        raise ValidationError("Unsupported location format", field="location")

    if latitude is not None or longitude is not None or address:
        explicit = _from_mapping(
            {"latitude": latitude, "longitude": longitude, "address": address}
        )
        base = Location(
            latitude=explicit.latitude if explicit.latitude is not None else base.latitude,
            longitude=explicit.longitude if explicit.longitude is not None else base.longitude,
            address=explicit.address or base.address,
        )

    return None if base.is_empty() else base
