from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class GeoPoint:
    lat: float
    lon: float
    ele: float | None = None

    def __str__(self) -> str:
        if self.ele is None:
            return f"{self.lat},{self.lon}"
        return f"{self.lat},{self.lon},{self.ele}"


def parse_point(raw: str) -> GeoPoint:
    """Parse a ``lat,lon`` or ``lat,lon,ele`` string.

    Raises ValueError on malformed input or out-of-range coordinates.
    """
    payload = (raw or "").strip()
    parts = [p.strip() for p in payload.split(",")]
    if len(parts) not in (2, 3) or not all(parts):
        raise ValueError(f"Cannot parse point '{raw}'. Use 'lat,lon' or 'lat,lon,ele'.")
    try:
        values = [float(p) for p in parts]
    except ValueError as exc:
        raise ValueError(f"Cannot parse point '{raw}'. Use 'lat,lon' or 'lat,lon,ele'.") from exc
    if not all(math.isfinite(v) for v in values):
        raise ValueError(f"Point '{raw}' contains non-finite values")

    lat, lon = values[0], values[1]
    if not -90 <= lat <= 90:
        raise ValueError(f"Invalid point '{raw}': latitude must be between -90 and 90")
    if not -180 <= lon <= 180:
        raise ValueError(f"Invalid point '{raw}': longitude must be between -180 and 180")
    ele = values[2] if len(values) == 3 else None
    return GeoPoint(lat=lat, lon=lon, ele=ele)


__all__ = ["GeoPoint", "parse_point"]
