"""
Geo and time similarity primitives used by duplicate detection.

Two distinct spatial checks live here on purpose:

- ``bounding_box()`` builds the coarse degree-based box used to prefilter
  candidate reports (index friendly, cheap).
- ``distance_meters()`` is the precise great-circle distance used when scoring
  a single candidate.
"""

import math
from dataclasses import dataclass
from datetime import datetime

# Mean earth radius in meters
EARTH_RADIUS_M = 6371000.0


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance in meters between two points
    on the earth (specified in decimal degrees).

    No range validation is done here; callers validate coordinates.
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def time_delta_ms(t1: datetime, t2: datetime) -> int:
    """Absolute difference between two instants, in whole milliseconds."""
    return abs(int(round((t1 - t2).total_seconds() * 1000)))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned lat/lon box in decimal degrees (inclusive bounds)."""
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_lat <= latitude <= self.max_lat
            and self.min_lon <= longitude <= self.max_lon
        )


def bounding_box(latitude: float, longitude: float, delta_deg: float) -> BoundingBox:
    """Box of +/- ``delta_deg`` around a point. 0.001 deg is roughly 100m."""
    return BoundingBox(
        min_lat=latitude - delta_deg,
        max_lat=latitude + delta_deg,
        min_lon=longitude - delta_deg,
        max_lon=longitude + delta_deg,
    )
