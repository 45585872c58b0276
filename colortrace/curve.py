"""Vertex adjustment and corner/curve smoothing."""
import logging
import math
from typing import List, Optional, Tuple

import numpy as np

from colortrace.geometry import ddenom, dpara, interval
from colortrace.types import Curve, Path, Point, Segment, SegmentTag, Sums

logger = logging.getLogger(__name__)

# Auxiliary constraints tried before a singular vertex system is given up
MAX_REGULARIZE_STEPS = 3


def point_slope(
    points: List[Point],
    sums: List[Sums],
    i: int,
    j: int
) -> Tuple[Point, Point]:
    """
    Best fitting line through points i..j (indices may wrap).

    Returns:
        (center, unit direction); the direction is (0, 0) for a degenerate fit
    """
    n = len(points)

    r = 0
    while j >= n:
        j -= n
        r += 1
    while i >= n:
        i -= n
        r -= 1
    while j < 0:
        j += n
        r -= 1
    while i < 0:
        i += n
        r += 1

    s_j, s_i, s_n = sums[j + 1], sums[i], sums[n]
    x = s_j.x - s_i.x + r * s_n.x
    y = s_j.y - s_i.y + r * s_n.y
    x2 = s_j.x2 - s_i.x2 + r * s_n.x2
    xy = s_j.xy - s_i.xy + r * s_n.xy
    y2 = s_j.y2 - s_i.y2 + r * s_n.y2
    k = j + 1 - i + r * n

    center = Point(x / k, y / k)

    a = (x2 - x * x / k) / k
    b = (xy - x * y / k) / k
    c = (y2 - y * y / k) / k

    # Larger eigenvalue of the covariance matrix
    lambda2 = (a + c + math.sqrt((a - c) * (a - c) + 4 * b * b)) / 2

    a -= lambda2
    c -= lambda2

    if abs(a) >= abs(c):
        length = math.sqrt(a * a + b * b)
        if length != 0:
            return center, Point(-b / length, a / length)
    else:
        length = math.sqrt(c * c + b * b)
        if length != 0:
            return center, Point(-c / length, b / length)

    return center, Point(0.0, 0.0)


def quadform(Q: np.ndarray, w: Point) -> float:
    """Value of the quadratic form Q at (w.x, w.y, 1)."""
    v = np.array([w.x, w.y, 1.0])
    return float(v @ Q @ v)


def _line_form(center: Point, direction: Point) -> np.ndarray:
    """Quadratic form measuring squared distance from the line through center."""
    d = direction.x * direction.x + direction.y * direction.y
    if d == 0.0:
        return np.zeros((3, 3))
    v = np.array([direction.y, -direction.x, 0.0])
    v[2] = -v[1] * center.y - v[0] * center.x
    return np.outer(v, v) / d


def _solve_vertex(Q: np.ndarray, s: Point) -> Optional[Tuple[Point, np.ndarray]]:
    """
    Minimize the quadratic form Q.

    When the system is singular an auxiliary constraint through ``s`` is
    added and solving is retried.

    Returns:
        (minimizer, possibly regularized Q), or None if Q stays singular
    """
    Q = Q.copy()
    for _ in range(MAX_REGULARIZE_STEPS + 1):
        det = Q[0, 0] * Q[1, 1] - Q[0, 1] * Q[1, 0]
        if det != 0.0:
            w = Point(
                (-Q[0, 2] * Q[1, 1] + Q[1, 2] * Q[0, 1]) / det,
                (Q[0, 2] * Q[1, 0] - Q[1, 2] * Q[0, 0]) / det
            )
            return w, Q

        # Degenerate: add an orthogonal constraint through s
        if Q[0, 0] > Q[1, 1]:
            v = np.array([-Q[0, 1], Q[0, 0], 0.0])
        elif Q[1, 1]:
            v = np.array([-Q[1, 1], Q[1, 0], 0.0])
        else:
            v = np.array([1.0, 0.0, 0.0])
        d = v[0] * v[0] + v[1] * v[1]
        v[2] = -v[1] * s.y - v[0] * s.x
        Q += np.outer(v, v) / d

    return None


def adjust_vertices(path: Path) -> Curve:
    """
    Place each polygon vertex where the two adjacent fitted lines meet.

    The vertex stays within the unit square around its original corner:
    when the line intersection falls outside it, the quadratic form is
    minimized over the square's border instead.

    Args:
        path: Path with points, sums and polygon filled in

    Returns:
        Curve with one segment per polygon vertex (vertices only)
    """
    points = path.points
    polygon = path.polygon
    n = len(points)
    m = len(polygon)
    x0, y0 = path.x0, path.y0

    forms = []
    for i in range(m):
        j = polygon[(i + 1) % m]
        j = (j - polygon[i]) % n + polygon[i]
        center, direction = point_slope(points, path.sums, polygon[i], j)
        forms.append(_line_form(center, direction))

    segments = []
    for i in range(m):
        s = Point(points[polygon[i]].x - x0, points[polygon[i]].y - y0)

        solved = _solve_vertex(forms[(i - 1) % m] + forms[i], s)
        if solved is None:
            logger.warning(f"Could not place vertex at ({points[polygon[i]].x}, "
                           f"{points[polygon[i]].y}); keeping it as a corner")
            segments.append(Segment(vertex=points[polygon[i]], locked_corner=True))
            continue
        w, Q = solved

        if abs(w.x - s.x) <= 0.5 and abs(w.y - s.y) <= 0.5:
            segments.append(Segment(vertex=Point(w.x + x0, w.y + y0)))
            continue

        # Minimum over the border of the unit square around s
        best = quadform(Q, s)
        best_point = s

        if Q[0, 0] != 0.0:
            for z in range(2):
                wy = s.y - 0.5 + z
                wx = -(Q[0, 1] * wy + Q[0, 2]) / Q[0, 0]
                candidate = Point(wx, wy)
                value = quadform(Q, candidate)
                if abs(wx - s.x) <= 0.5 and value < best:
                    best = value
                    best_point = candidate

        if Q[1, 1] != 0.0:
            for z in range(2):
                wx = s.x - 0.5 + z
                wy = -(Q[1, 0] * wx + Q[1, 2]) / Q[1, 1]
                candidate = Point(wx, wy)
                value = quadform(Q, candidate)
                if abs(wy - s.y) <= 0.5 and value < best:
                    best = value
                    best_point = candidate

        for l in range(2):
            for k in range(2):
                candidate = Point(s.x - 0.5 + l, s.y - 0.5 + k)
                value = quadform(Q, candidate)
                if value < best:
                    best = value
                    best_point = candidate

        segments.append(Segment(vertex=Point(best_point.x + x0, best_point.y + y0)))

    return Curve(segments=segments)


def reverse(curve: Curve) -> Curve:
    """Reverse the vertex order (used for holes)."""
    return Curve(segments=list(reversed(curve.segments)))


def smooth(curve: Curve, alphamax: float) -> Curve:
    """
    Decide corner or curve for every vertex and set Bezier control points.

    alpha measures how far the vertex sticks out from the line between its
    neighbours; vertices at or above ``alphamax`` become corners.

    Args:
        curve: Curve from adjust_vertices, filled in place
        alphamax: Corner threshold

    Returns:
        The same curve
    """
    m = len(curve)
    for i in range(m):
        j = (i + 1) % m
        k = (i + 2) % m
        segment = curve[j]
        vi, vj, vk = curve[i].vertex, segment.vertex, curve[k].vertex

        p4 = interval(0.5, vk, vj)

        denom = ddenom(vi, vk)
        if denom != 0.0:
            dd = abs(dpara(vi, vj, vk) / denom)
            alpha = 1 - 1.0 / dd if dd > 1 else 0.0
            alpha = alpha / 0.75
        else:
            alpha = 4 / 3.0
        segment.alpha0 = alpha

        if alpha >= alphamax or segment.locked_corner:
            segment.tag = SegmentTag.CORNER
            segment.c0 = vj
            segment.c1 = vj
            segment.c2 = p4
        else:
            alpha = min(max(alpha, 0.55), 1.0)
            segment.tag = SegmentTag.CURVE
            segment.c0 = interval(0.5 + 0.5 * alpha, vi, vj)
            segment.c1 = interval(0.5 + 0.5 * alpha, vk, vj)
            segment.c2 = p4

        segment.alpha = alpha
        segment.beta = 0.5

    return curve
