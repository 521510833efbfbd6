"""
Geographic primitives: geohash encoding, great-circle distance, bounding
boxes and IPv4 helpers.
"""

from NearbyCities.geo.distance import BoundingBox, bounding_box, haversine, validate_coordinates
from NearbyCities.geo.geohash import (
    BASE32, MAX_PRECISION, cell_size, decode, encode, estimate_length_required, prefix_range
)
from NearbyCities.geo.ip import ip_to_integer, is_private_ip

__all__ = [
    'BoundingBox', 'bounding_box', 'haversine', 'validate_coordinates',
    'BASE32', 'MAX_PRECISION', 'cell_size', 'decode', 'encode',
    'estimate_length_required', 'prefix_range',
    'ip_to_integer', 'is_private_ip',
]
