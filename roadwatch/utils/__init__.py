"""
Utility helpers.
"""

from .clock import Clock, start_of_utc_day, utcnow
from .geo import BoundingBox, bounding_box, distance_meters, time_delta_ms

__all__ = [
    "Clock",
    "start_of_utc_day",
    "utcnow",
    "BoundingBox",
    "bounding_box",
    "distance_meters",
    "time_delta_ms",
]
