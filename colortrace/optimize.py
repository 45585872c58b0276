"""Bezier merge optimization: join runs of curve segments into fewer Beziers."""
import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional

from colortrace.geometry import (
    COS_179,
    bezier,
    cprod,
    ddist,
    dpara,
    interval,
    iprod,
    iprod1,
    sign,
    tangent,
)
from colortrace.types import Curve, Point, Segment, SegmentTag

logger = logging.getLogger(__name__)


@dataclass
class MergeCandidate:
    """A single Bezier replacing the segments from i to j."""
    pen: float
    c0: Point
    c1: Point
    t: float
    s: float
    alpha: float


def opti_penalty(
    curve: Curve,
    i: int,
    j: int,
    opttolerance: float,
    convc: List[int],
    areac: List[float]
) -> Optional[MergeCandidate]:
    """
    Try to replace the segments from vertex i to vertex j by one Bezier.

    Args:
        curve: Smoothed curve
        i: First vertex index
        j: Last vertex index (cyclic, j may equal i only for the full curve)
        opttolerance: Allowed deviation
        convc: Convexity sign per vertex (0 for corners)
        areac: Cumulative area table

    Returns:
        MergeCandidate, or None if the merge is not admissible
    """
    m = len(curve)
    vertex = [seg.vertex for seg in curve]
    end = [seg.c2 for seg in curve]

    if i == j:
        return None

    k = i
    i1 = (i + 1) % m
    k1 = (k + 1) % m
    conv = convc[k1]
    if conv == 0:
        return None

    d = ddist(vertex[i], vertex[i1])
    k = k1
    while k != j:
        k1 = (k + 1) % m
        k2 = (k + 2) % m
        if convc[k1] != conv:
            return None
        if sign(cprod(vertex[i], vertex[i1], vertex[k1], vertex[k2])) != conv:
            return None
        if iprod1(vertex[i], vertex[i1], vertex[k1], vertex[k2]) < (
            d * ddist(vertex[k1], vertex[k2]) * COS_179
        ):
            return None
        k = k1

    p0 = end[i % m]
    p1 = vertex[(i + 1) % m]
    p2 = vertex[j % m]
    p3 = end[j % m]

    # Area enclosed by the segments being replaced
    area = areac[j] - areac[i]
    area -= dpara(vertex[0], end[i], end[j]) / 2
    if i >= j:
        area += areac[m]

    A1 = dpara(p0, p1, p2)
    A2 = dpara(p0, p1, p3)
    A3 = dpara(p0, p2, p3)
    A4 = A1 + A3 - A2

    # A3 - A4 == A2 - A1, so this also guards t
    if A2 == A1:
        return None

    t = A3 / (A3 - A4)
    s = A2 / (A2 - A1)
    A = A2 * t / 2.0
    if A == 0.0:
        return None

    R = area / A
    radicand = 4 - R / 0.3
    if radicand < 0:
        return None
    alpha = 2 - math.sqrt(radicand)

    c0 = interval(t * alpha, p0, p1)
    c1 = interval(s * alpha, p3, p2)
    pen = 0.0

    # The Bezier must pass close to every replaced edge
    k = (i + 1) % m
    while k != j:
        k1 = (k + 1) % m
        tt = tangent(p0, c0, c1, p3, vertex[k], vertex[k1])
        if tt < -0.5:
            return None
        pt = bezier(tt, p0, c0, c1, p3)
        d = ddist(vertex[k], vertex[k1])
        if d == 0.0:
            return None
        d1 = dpara(vertex[k], vertex[k1], pt) / d
        if abs(d1) > opttolerance:
            return None
        if iprod(vertex[k], vertex[k1], pt) < 0 or iprod(vertex[k1], vertex[k], pt) < 0:
            return None
        pen += d1 * d1
        k = k1

    # ... and must not cut inside the existing curve near the corners
    k = i
    while k != j:
        k1 = (k + 1) % m
        tt = tangent(p0, c0, c1, p3, end[k], end[k1])
        if tt < -0.5:
            return None
        pt = bezier(tt, p0, c0, c1, p3)
        d = ddist(end[k], end[k1])
        if d == 0.0:
            return None
        d1 = dpara(end[k], end[k1], pt) / d
        d2 = dpara(end[k], end[k1], vertex[k1]) / d
        d2 *= 0.75 * curve[k1].alpha
        if d2 < 0:
            d1 = -d1
            d2 = -d2
        if d1 < d2 - opttolerance:
            return None
        if d1 < d2:
            pen += (d1 - d2) * (d1 - d2)
        k = k1

    return MergeCandidate(pen=pen, c0=c0, c1=c1, t=t, s=s, alpha=alpha)


def optimize_curve(curve: Curve, opttolerance: float) -> Curve:
    """
    Merge runs of curve segments into as few Beziers as possible.

    A shortest-path search over vertex pairs picks the fewest segments,
    breaking ties by total penalty. The input curve is not modified.

    Args:
        curve: Smoothed curve
        opttolerance: Allowed deviation of a merged Bezier

    Returns:
        New Curve with at most as many segments
    """
    m = len(curve)
    vertex = [seg.vertex for seg in curve]
    end = [seg.c2 for seg in curve]

    # Convexity of each vertex: +1/-1 for curves, 0 for corners
    convc = []
    for i in range(m):
        if curve[i].tag == SegmentTag.CURVE:
            convc.append(sign(dpara(vertex[(i - 1) % m], vertex[i], vertex[(i + 1) % m])))
        else:
            convc.append(0)

    # Cumulative area, relative to vertex 0
    area = 0.0
    areac = [0.0]
    p0 = vertex[0]
    for i in range(m):
        i1 = (i + 1) % m
        if curve[i1].tag == SegmentTag.CURVE:
            alpha = curve[i1].alpha
            area += 0.3 * alpha * (4 - alpha) * dpara(end[i], vertex[i1], end[i1]) / 2
            area += dpara(p0, end[i], end[i1]) / 2
        areac.append(area)

    pt = [-1] * (m + 1)
    pen = [0.0] * (m + 1)
    length = [0] * (m + 1)
    opt: List[Optional[MergeCandidate]] = [None] * (m + 1)

    for j in range(1, m + 1):
        pt[j] = j - 1
        pen[j] = pen[j - 1]
        length[j] = length[j - 1] + 1

        for i in range(j - 2, -1, -1):
            candidate = opti_penalty(curve, i, j % m, opttolerance, convc, areac)
            if candidate is None:
                break
            if length[j] > length[i] + 1 or (
                length[j] == length[i] + 1 and pen[j] > pen[i] + candidate.pen
            ):
                pt[j] = i
                pen[j] = pen[i] + candidate.pen
                length[j] = length[i] + 1
                opt[j] = candidate

    om = length[m]
    segments: List[Optional[Segment]] = [None] * om
    s = [0.0] * om
    t = [0.0] * om

    # Walked back from m, so unmerged output starts at input segment 1
    j = m
    for i in range(om - 1, -1, -1):
        if pt[j] == j - 1:
            segments[i] = replace(curve[j % m])
            s[i] = t[i] = 1.0
        else:
            candidate = opt[j]
            segments[i] = Segment(
                vertex=interval(candidate.s, end[j % m], vertex[j % m]),
                tag=SegmentTag.CURVE,
                c0=candidate.c0,
                c1=candidate.c1,
                c2=end[j % m],
                alpha=candidate.alpha,
                alpha0=candidate.alpha
            )
            s[i] = candidate.s
            t[i] = candidate.t
        j = pt[j]

    for i in range(om):
        i1 = (i + 1) % om
        denom = s[i] + t[i1]
        segments[i].beta = s[i] / denom if denom != 0 else 0.5

    logger.debug(f"Merged {m} segments into {om}")
    return Curve(segments=segments)
