"""
Geometry Tests — segment pose and circle-circle overlap area.
"""

import sys
import os
import math
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from geometry import (
    SegmentPose, segment_pose, segment_angle_deg, _clamped_acos,
    circle_overlap_area, overlap_fraction,
)


PIN_PAIRS = [
    ((200.0, 300.0), (600.0, 300.0)),
    ((200.0, 100.0), (600.0, 331.0)),
    ((200.0, 500.0), (600.0, 269.0)),
    ((200.0, 123.0), (600.0, 456.0)),
    ((0.0, 0.0), (-3.0, -4.0)),
]


class TestSegmentPose:

    def test_level_pins(self):
        pose = segment_pose((200, 300), (600, 300))
        assert isinstance(pose, SegmentPose)
        assert pose.length == pytest.approx(400.0)
        assert pose.angle == pytest.approx(0.0)
        assert pose.midpoint == pytest.approx((400.0, 300.0))

    @pytest.mark.parametrize("a,b", PIN_PAIRS)
    def test_round_trip_reconstructs_right_pin(self, a, b):
        """left + length * (cos, sin)(angle) lands on the right pin."""
        pose = segment_pose(a, b)
        assert pose.length >= 0.0
        x = a[0] + pose.length * math.cos(pose.angle)
        y = a[1] + pose.length * math.sin(pose.angle)
        assert x == pytest.approx(b[0], abs=1e-9)
        assert y == pytest.approx(b[1], abs=1e-9)

    @pytest.mark.parametrize("a,b", PIN_PAIRS)
    def test_midpoint_is_average(self, a, b):
        pose = segment_pose(a, b)
        assert pose.midpoint == pytest.approx(((a[0] + b[0]) / 2, (a[1] + b[1]) / 2))

    def test_degenerate_segment(self):
        pose = segment_pose((5, 5), (5, 5))
        assert pose.length == 0.0
        assert pose.midpoint == (5.0, 5.0)

    def test_right_pin_lower_is_positive_angle(self):
        """Screen y grows downward, so a lower right pin tilts positive."""
        assert segment_angle_deg((200, 300), (600, 400)) > 0
        assert segment_angle_deg((200, 300), (600, 200)) < 0

    def test_angle_deg_matches_pose(self):
        a, b = (200, 150), (600, 360)
        assert segment_angle_deg(a, b) == pytest.approx(math.degrees(segment_pose(a, b).angle))


class TestCircleOverlapArea:

    @pytest.mark.parametrize("r", [1.0, 12.0, 14.0])
    def test_concentric_equal_radii_is_full_area(self, r):
        assert circle_overlap_area(0.0, r, r) == pytest.approx(math.pi * r * r)

    def test_contained_circle_uses_smaller_radius(self):
        assert circle_overlap_area(1.5, 12.0, 14.0) == pytest.approx(math.pi * 144.0)
        assert circle_overlap_area(1.5, 14.0, 12.0) == pytest.approx(math.pi * 144.0)

    @pytest.mark.parametrize("d", [26.0, 26.5, 40.0, 1e6])
    def test_apart_or_tangent_is_zero(self, d):
        assert circle_overlap_area(d, 12.0, 14.0) == 0.0

    def test_unit_circles_half_apart(self):
        """Two unit circles one radius apart: 2π/3 − √3/2."""
        expected = 2 * math.pi / 3 - math.sqrt(3) / 2
        assert circle_overlap_area(1.0, 1.0, 1.0) == pytest.approx(expected)

    def test_symmetric_in_radii(self):
        for d in (3.0, 10.0, 20.0, 25.0):
            assert circle_overlap_area(d, 12.0, 14.0) == pytest.approx(
                circle_overlap_area(d, 14.0, 12.0))

    @pytest.mark.parametrize("r1,r2", [(12.0, 14.0), (12.0, 12.0), (5.0, 30.0)])
    def test_monotonically_non_increasing(self, r1, r2):
        ds = np.linspace(0.0, r1 + r2 + 2.0, 600)
        areas = np.array([circle_overlap_area(float(d), r1, r2) for d in ds])
        assert np.all(np.diff(areas) <= 1e-9)

    @pytest.mark.parametrize("d,r1,r2", [
        (0.00018287625736945764, 17.988144451075296, 17.988327327332666),
        (0.00018287625736945764, 17.988327327332666, 17.988144451075296),
    ])
    def test_rounding_past_unit_acos_argument(self, d, r1, r2):
        """Nearly concentric, nearly equal circles push the cosine just past 1."""
        area = circle_overlap_area(d, r1, r2)
        assert math.isfinite(area)
        assert 0.0 <= area <= math.pi * min(r1, r2) ** 2 + 1e-9


class TestOverlapFraction:

    def test_ball_at_hazard_center(self):
        assert overlap_fraction(0.0, 12.0, 12.0) == pytest.approx(1.0)
        assert overlap_fraction(0.0, 12.0, 14.0) == pytest.approx(1.0)

    def test_beyond_reach(self):
        assert overlap_fraction(27.0, 12.0, 14.0) == 0.0

    def test_fraction_bounded(self):
        for d in np.linspace(0.0, 30.0, 61):
            f = overlap_fraction(float(d), 12.0, 14.0)
            assert 0.0 <= f <= 1.0 + 1e-12


class TestClampedAcos:

    def test_just_above_one(self):
        assert _clamped_acos(1.0000000000000002) == 0.0

    def test_just_below_minus_one(self):
        assert _clamped_acos(-1.0000000000000002) == pytest.approx(math.pi)

    def test_inside_range_unchanged(self):
        assert _clamped_acos(0.5) == pytest.approx(math.acos(0.5))
