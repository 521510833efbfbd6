"""
Tests for the geohash codec.
"""

import unittest

from NearbyCities.exceptions import ValidationError
from NearbyCities.geo.geohash import (
    BASE32, MAX_PRECISION, cell_size, decode, encode, estimate_length_required, prefix_range
)


class TestEncode(unittest.TestCase):
    """Test cases for geohash encoding."""

    def test_known_values(self):
        self.assertEqual(encode(57.64911, 10.40744, 11), 'u4pruydqqvj')
        self.assertEqual(encode(21.0283, 105.8542, 5), 'w7er8')
        self.assertEqual(encode(42.605, -5.603, 5), 'ezs42')

    def test_default_precision_is_full_length(self):
        geohash = encode(21.0283, 105.8542)
        self.assertEqual(len(geohash), MAX_PRECISION)
        self.assertTrue(all(char in BASE32 for char in geohash))

    def test_truncation_is_a_prefix(self):
        full = encode(48.8566, 2.3522)
        for precision in range(1, MAX_PRECISION + 1):
            self.assertEqual(encode(48.8566, 2.3522, precision), full[:precision])

    def test_midpoint_goes_to_upper_half(self):
        # 0,0 sits on the first midpoint of both ranges
        self.assertEqual(encode(0, 0, 1), 's')
        self.assertEqual(encode(90, 180, 1), 'z')
        self.assertEqual(encode(-90, -180, 1), '0')

    def test_nearby_points_share_prefix(self):
        self.assertEqual(encode(21.0278, 105.8342, 3), encode(21.0283, 105.8542, 3))

    def test_out_of_range_coordinates_rejected(self):
        with self.assertRaises(ValidationError):
            encode(200, 0)
        with self.assertRaises(ValidationError):
            encode(0, -180.5)
        with self.assertRaises(ValidationError):
            encode(float('nan'), 0)
        with self.assertRaises(ValidationError):
            encode('north', 0)

    def test_invalid_precision_rejected(self):
        for precision in (0, MAX_PRECISION + 1, 2.5, True):
            with self.subTest(precision=precision):
                with self.assertRaises(ValidationError):
                    encode(10, 10, precision)

    def test_validation_error_is_value_error(self):
        with self.assertRaises(ValueError):
            encode(-91, 0)


class TestDecode(unittest.TestCase):
    """Test cases for geohash decoding."""

    def test_decode_contains_encoded_point(self):
        points = [(21.0283, 105.8542), (-33.8688, 151.2093), (64.1466, -21.9426), (0, 0), (-90, 180)]
        for lat, lng in points:
            for precision in (1, 3, 5, 8, MAX_PRECISION):
                with self.subTest(lat=lat, lng=lng, precision=precision):
                    cell = decode(encode(lat, lng, precision))
                    self.assertTrue(cell.contains(lat, lng))

    def test_decode_known_cell(self):
        cell = decode('ezs42')
        self.assertAlmostEqual(cell.min_lat, 42.5830078125)
        self.assertAlmostEqual(cell.max_lat, 42.626953125)
        self.assertAlmostEqual(cell.min_lng, -5.625)
        self.assertAlmostEqual(cell.max_lng, -5.5810546875)

    def test_decode_w7e(self):
        cell = decode('w7e')
        self.assertAlmostEqual(cell.min_lat, 19.6875)
        self.assertAlmostEqual(cell.max_lat, 21.09375)
        self.assertAlmostEqual(cell.min_lng, 105.46875)
        self.assertAlmostEqual(cell.max_lng, 106.875)

    def test_decode_is_case_insensitive(self):
        self.assertEqual(decode('W7ER8'), decode('w7er8'))

    def test_invalid_geohash_rejected(self):
        for geohash in ('', 'abc', 'w7e!', None):
            with self.subTest(geohash=geohash):
                with self.assertRaises(ValidationError):
                    decode(geohash)


class TestPrecision(unittest.TestCase):
    """Test cases for cell sizes and the radius to precision mapping."""

    def test_cell_size(self):
        height, width = cell_size(1)
        self.assertAlmostEqual(height, 45 * 111.32)
        self.assertAlmostEqual(width, 45 * 111.32)

        height, width = cell_size(2)
        self.assertAlmostEqual(height, 5.625 * 111.32)
        self.assertAlmostEqual(width, 11.25 * 111.32)

    def test_estimate_length_for_default_radius(self):
        self.assertEqual(estimate_length_required(100), 3)
        # Deterministic
        self.assertEqual(estimate_length_required(100), estimate_length_required(100.0))

    def test_estimate_length_bounds(self):
        self.assertEqual(estimate_length_required(10000), 1)
        self.assertEqual(estimate_length_required(600), 2)
        self.assertEqual(estimate_length_required(15), 4)
        self.assertEqual(estimate_length_required(0.00001), MAX_PRECISION)

    def test_estimate_length_is_monotonic(self):
        radii = [0.01, 0.5, 1, 5, 20, 50, 100, 200, 500, 1000, 5000]
        lengths = [estimate_length_required(r) for r in radii]
        self.assertEqual(lengths, sorted(lengths, reverse=True))

    def test_estimate_length_rejects_bad_radius(self):
        for radius in (0, -5, float('inf'), 'far'):
            with self.subTest(radius=radius):
                with self.assertRaises(ValidationError):
                    estimate_length_required(radius)


class TestPrefixRange(unittest.TestCase):
    """Test cases for prefix range scans."""

    def test_range_covers_prefix(self):
        low, high = prefix_range('w7e')
        for geohash in ('w7e', 'w7e0000', 'w7ezzzzzzzzz', encode(21.0283, 105.8542)):
            self.assertTrue(low <= geohash < high, geohash)

    def test_range_excludes_neighbours(self):
        low, high = prefix_range('w7e')
        for geohash in ('w7d', 'w7dzzzzzzzzz', 'w7f', 'w7f000000000', 'w7'):
            self.assertFalse(low <= geohash < high, geohash)

    def test_empty_prefix_rejected(self):
        with self.assertRaises(ValidationError):
            prefix_range('')


if __name__ == "__main__":
    unittest.main()
