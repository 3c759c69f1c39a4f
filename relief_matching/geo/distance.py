"""Great-circle distance and bounding-box helpers.

No I/O. Distances are in kilometres on a spherical Earth.
"""

import math

from pydantic import BaseModel, ConfigDict

EARTH_RADIUS_KM = 6371.0

# Slack added to box edges so float rounding never drops a point on the circle.
_BOX_MARGIN_DEG = 1e-6


class BoundingBox(BaseModel):
    """Lat/lon rectangle enclosing a search circle.

    When the circle straddles the 180th meridian, min_lon > max_lon and the
    longitude range wraps around.
    """

    model_config = ConfigDict(frozen=True)

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.min_lon > self.max_lon

    def contains(self, latitude: float, longitude: float) -> bool:
        if not self.min_lat <= latitude <= self.max_lat:
            return False
        if self.crosses_antimeridian:
            return longitude >= self.min_lon or longitude <= self.max_lon
        return self.min_lon <= longitude <= self.max_lon


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two points, in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push a a hair outside [0, 1] for antipodal or identical points.
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bounding_box(latitude: float, longitude: float, radius_km: float) -> BoundingBox:
    """Smallest lat/lon box containing every point within radius_km of the origin."""
    angular = radius_km / EARTH_RADIUS_KM
    d_lat = math.degrees(angular) + _BOX_MARGIN_DEG

    min_lat = latitude - d_lat
    max_lat = latitude + d_lat
    if max_lat >= 90.0 or min_lat <= -90.0 or angular >= math.pi / 2:
        # A pole falls inside the circle: every longitude qualifies.
        return BoundingBox(
            min_lat=max(min_lat, -90.0),
            max_lat=min(max_lat, 90.0),
            min_lon=-180.0,
            max_lon=180.0,
        )

    ratio = math.sin(angular) / math.cos(math.radians(latitude))
    if ratio >= 1.0:
        return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=-180.0, max_lon=180.0)
    d_lon = math.degrees(math.asin(ratio)) + _BOX_MARGIN_DEG

    min_lon = longitude - d_lon
    max_lon = longitude + d_lon
    if min_lon < -180.0:
        min_lon += 360.0
    if max_lon > 180.0:
        max_lon -= 360.0
    return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=min_lon, max_lon=max_lon)
