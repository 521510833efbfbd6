"""
Great-circle distance and bounding-box helpers.

All distances are in kilometres on a spherical Earth of radius 6371 km.
"""

import math
from typing import NamedTuple, Tuple

from NearbyCities.exceptions import ValidationError

EARTH_RADIUS_KM = 6371.0

# Length of one degree of latitude (and of longitude at the equator)
KM_PER_DEGREE = 111.32


class BoundingBox(NamedTuple):
    """Axis-aligned latitude/longitude rectangle."""
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2)


def validate_coordinates(lat: float, lng: float) -> Tuple[float, float]:
    """
    Check that a latitude/longitude pair is numeric, finite and in range.

    Returns:
        The pair converted to floats

    Raises:
        ValidationError: If either value is not a number or out of range
    """
    try:
        lat = float(lat)
        lng = float(lng)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            message=f"Coordinates must be numeric, got ({lat!r}, {lng!r})",
            user_message="Latitude and longitude must be numbers.",
            context={"lat": lat, "lng": lng}
        ) from e

    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise ValidationError(
            message=f"Coordinates must be finite, got ({lat}, {lng})",
            user_message="Latitude and longitude must be finite numbers.",
            context={"lat": lat, "lng": lng}
        )

    if not -90 <= lat <= 90:
        raise ValidationError(
            message=f"Latitude must be between -90 and 90, got {lat}",
            user_message="Latitude must be between -90 and 90.",
            context={"lat": lat}
        )

    if not -180 <= lng <= 180:
        raise ValidationError(
            message=f"Longitude must be between -180 and 180, got {lng}",
            user_message="Longitude must be between -180 and 180.",
            context={"lng": lng}
        )

    return lat, lng


def validate_radius(radius_km: float) -> float:
    """Return the radius as a float, rejecting non-positive or non-finite values."""
    try:
        radius = float(radius_km)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            message=f"Radius must be numeric, got {radius_km!r}",
            user_message="The search radius must be a number.",
        ) from e

    if not math.isfinite(radius) or radius <= 0:
        raise ValidationError(
            message=f"Radius must be a positive number of kilometres, got {radius_km}",
            user_message="The search radius must be greater than zero.",
            context={"radius_km": radius_km}
        )

    return radius


def haversine(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points in kilometres.

    Example:
        >>> round(haversine(21.0278, 105.8342, 21.0283, 105.8542), 2)
        2.08
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push `a` a hair above 1 for antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return EARTH_RADIUS_KM * c


def bounding_box(lat: float, lng: float, radius_km: float) -> BoundingBox:
    """
    Rectangle that contains the circle of ``radius_km`` around a point.

    Latitudes are clamped to [-90, 90]. Longitudes are not wrapped at the
    antimeridian, so a box near +/-180 may extend past that range. When the
    centre is at a pole every longitude is within reach and the box spans
    [-180, 180].
    """
    lat, lng = validate_coordinates(lat, lng)
    radius = validate_radius(radius_km)

    delta_lat = radius / KM_PER_DEGREE
    cos_lat = math.cos(math.radians(lat))

    if cos_lat < 1e-12:
        min_lng, max_lng = -180.0, 180.0
    else:
        delta_lng = radius / (KM_PER_DEGREE * cos_lat)
        min_lng, max_lng = lng - delta_lng, lng + delta_lng

    return BoundingBox(
        min_lat=max(-90.0, lat - delta_lat),
        max_lat=min(90.0, lat + delta_lat),
        min_lng=min_lng,
        max_lng=max_lng,
    )
