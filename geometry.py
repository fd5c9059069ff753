"""
Balance Platform Geometry
Segment pose from two anchor points and circle-circle overlap area.
"""

import math
from typing import NamedTuple, Sequence


class SegmentPose(NamedTuple):
    """Pose of the segment a→b."""
    length: float
    angle: float          # radians, atan2(dy, dx)
    midpoint: tuple


def segment_pose(a: Sequence[float], b: Sequence[float]) -> SegmentPose:
    """Return length, angle and midpoint of the segment from a to b."""
    dx = float(b[0]) - float(a[0])
    dy = float(b[1]) - float(a[1])
    return SegmentPose(
        length=math.hypot(dx, dy),
        angle=math.atan2(dy, dx),
        midpoint=(float(a[0]) + dx / 2, float(a[1]) + dy / 2),
    )


def segment_angle_deg(a: Sequence[float], b: Sequence[float]) -> float:
    return math.degrees(math.atan2(float(b[1]) - float(a[1]), float(b[0]) - float(a[0])))


def _clamped_acos(x: float) -> float:
    # near-tangent distances overshoot [-1, 1] by rounding error
    return math.acos(max(-1.0, min(1.0, x)))


def circle_overlap_area(d: float, r1: float, r2: float) -> float:
    """
    Area of intersection of two circles.

    Args:
        d:  Distance between the centers.
        r1: Radius of the first circle.
        r2: Radius of the second circle.

    Returns:
        pi * min(r1, r2)^2 when one circle contains the other, the two
        circular-segment sum for a partial overlap, and 0.0 when the circles
        are apart or tangent.
    """
    if d <= abs(r2 - r1):
        return math.pi * min(r1, r2) ** 2
    if d >= r1 + r2:
        return 0.0

    a = _clamped_acos((r1 * r1 + d * d - r2 * r2) / (2 * r1 * d))
    b = _clamped_acos((r2 * r2 + d * d - r1 * r1) / (2 * r2 * d))
    area = (r1 * r1 * (a - math.sin(2 * a) / 2) +
            r2 * r2 * (b - math.sin(2 * b) / 2))
    return max(0.0, area)


def overlap_fraction(d: float, ball_radius: float, hazard_radius: float) -> float:
    """Fraction of the ball's area that lies inside the hazard."""
    ball_area = math.pi * ball_radius * ball_radius
    return circle_overlap_area(d, ball_radius, hazard_radius) / ball_area
