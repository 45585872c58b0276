"""Optimal polygon approximation of traced paths."""
import math
from typing import List

from colortrace.geometry import cyclic, sign, xprod
from colortrace.types import Point, Sums


def calc_sums(points: List[Point]) -> List[Sums]:
    """
    Prefix sums of x, y, xy, x^2 and y^2 relative to the first point.

    Returns:
        len(points) + 1 rows, the first all zero
    """
    x0, y0 = points[0].x, points[0].y
    sums = [Sums(0, 0, 0, 0, 0)]
    for point in points:
        x = point.x - x0
        y = point.y - y0
        s = sums[-1]
        sums.append(Sums(s.x + x, s.y + y, s.xy + x * y, s.x2 + x * x, s.y2 + y * y))
    return sums


def calc_lon(points: List[Point]) -> List[int]:
    """
    Find the straight subpaths of a closed path.

    lon[i] is the furthest index such that the points from i to lon[i]
    (cyclically) can be joined by one straight segment. Constraints are
    only checked at corners, using the next-corner table.

    Args:
        points: Closed path points

    Returns:
        lon list, one entry per point
    """
    n = len(points)
    pivk = [0] * n
    nc = [0] * n
    lon = [0] * n

    # Next corner: first index after i where both coordinates differ
    k = 0
    for i in range(n - 1, -1, -1):
        if points[i].x != points[k].x and points[i].y != points[k].y:
            k = i + 1
        nc[i] = k

    for i in range(n - 1, -1, -1):
        ct = [0, 0, 0, 0]

        nxt = points[(i + 1) % n]
        direction = (3 + 3 * (nxt.x - points[i].x) + (nxt.y - points[i].y)) // 2
        ct[direction] += 1

        constraint0 = Point(0, 0)
        constraint1 = Point(0, 0)

        k = nc[i]
        k1 = i
        found = False
        while True:
            direction = (
                3 + 3 * sign(points[k].x - points[k1].x) + sign(points[k].y - points[k1].y)
            ) // 2
            ct[direction] += 1

            # All four directions used: not straight
            if ct[0] and ct[1] and ct[2] and ct[3]:
                pivk[i] = k1
                found = True
                break

            cur = Point(points[k].x - points[i].x, points[k].y - points[i].y)

            if xprod(constraint0, cur) < 0 or xprod(constraint1, cur) > 0:
                break

            if abs(cur.x) > 1 or abs(cur.y) > 1:
                off = Point(
                    cur.x + (1 if cur.y >= 0 and (cur.y > 0 or cur.x < 0) else -1),
                    cur.y + (1 if cur.x <= 0 and (cur.x < 0 or cur.y < 0) else -1)
                )
                if xprod(constraint0, off) >= 0:
                    constraint0 = off

                off = Point(
                    cur.x + (1 if cur.y <= 0 and (cur.y < 0 or cur.x < 0) else -1),
                    cur.y + (1 if cur.x >= 0 and (cur.x > 0 or cur.y < 0) else -1)
                )
                if xprod(constraint1, off) <= 0:
                    constraint1 = off

            k1 = k
            k = nc[k1]
            if not cyclic(k, i, k1):
                break

        if not found:
            # Last corner k1 is admissible, k is not: find how far past k1 we get
            dk = Point(sign(points[k].x - points[k1].x), sign(points[k].y - points[k1].y))
            cur = Point(points[k1].x - points[i].x, points[k1].y - points[i].y)

            a = xprod(constraint0, cur)
            b = xprod(constraint0, dk)
            c = xprod(constraint1, cur)
            d = xprod(constraint1, dk)

            j = 10000000
            if b < 0:
                j = a // -b
            if d > 0:
                j = min(j, -c // d)
            pivk[i] = (k1 + j) % n

    # Straight runs from i reach at most as far as runs from i + 1
    j = pivk[n - 1]
    lon[n - 1] = j
    for i in range(n - 2, -1, -1):
        if cyclic(i + 1, pivk[i], j):
            j = pivk[i]
        lon[i] = j

    i = n - 1
    while i >= 0 and cyclic((i + 1) % n, j, lon[i]):
        lon[i] = j
        i -= 1

    return lon


def penalty3(points: List[Point], sums: List[Sums], i: int, j: int) -> float:
    """
    Penalty of the polygon edge from point i to point j.

    The RMS distance of the points i..j from the line through them,
    measured along the edge normal. j may exceed len(points) by wrapping.
    """
    n = len(points)

    if j >= n:
        j -= n
        s_j, s_i, s_n = sums[j + 1], sums[i], sums[n]
        x = s_j.x - s_i.x + s_n.x
        y = s_j.y - s_i.y + s_n.y
        x2 = s_j.x2 - s_i.x2 + s_n.x2
        xy = s_j.xy - s_i.xy + s_n.xy
        y2 = s_j.y2 - s_i.y2 + s_n.y2
        k = j + 1 - i + n
    else:
        s_j, s_i = sums[j + 1], sums[i]
        x = s_j.x - s_i.x
        y = s_j.y - s_i.y
        x2 = s_j.x2 - s_i.x2
        xy = s_j.xy - s_i.xy
        y2 = s_j.y2 - s_i.y2
        k = j + 1 - i

    px = (points[i].x + points[j].x) / 2.0 - points[0].x
    py = (points[i].y + points[j].y) / 2.0 - points[0].y
    ey = points[j].x - points[i].x
    ex = -(points[j].y - points[i].y)

    a = (x2 - 2 * x * px) / k + px * px
    b = (xy - x * py - y * px) / k + px * py
    c = (y2 - 2 * y * py) / k + py * py

    s = ex * ex * a + 2 * ex * ey * b + ey * ey * c
    return math.sqrt(max(s, 0.0))


def best_polygon(points: List[Point], sums: List[Sums], lon: List[int]) -> List[int]:
    """
    Optimal polygon for a path: fewest segments first, lowest penalty second.

    Args:
        points: Closed path points
        sums: Prefix sums from calc_sums
        lon: Straight run table from calc_lon

    Returns:
        Point indices of the polygon vertices, increasing
    """
    n = len(points)

    pen = [0.0] * (n + 1)
    prev = [0] * (n + 1)
    clip0 = [0] * n
    clip1 = [0] * (n + 1)
    seg0 = [0] * (n + 1)
    seg1 = [0] * (n + 1)

    # clip0[i]: furthest point a segment starting at i may reach
    for i in range(n):
        c = (lon[(i - 1) % n] - 1) % n
        if c == i:
            c = (i + 1) % n
        clip0[i] = n if c < i else c

    # clip1[j]: earliest point a segment ending at j may start from
    j = 1
    for i in range(n):
        while j <= clip0[i]:
            clip1[j] = i
            j += 1

    # seg0[j]: furthest point reachable in j segments
    i = 0
    j = 0
    while i < n:
        seg0[j] = i
        i = clip0[i]
        j += 1
    seg0[j] = n
    m = j

    # seg1[j]: earliest point that needs j segments
    i = n
    for j in range(m, 0, -1):
        seg1[j] = i
        i = clip1[i]
    seg1[0] = 0

    pen[0] = 0.0
    for j in range(1, m + 1):
        for i in range(seg1[j], seg0[j] + 1):
            best = -1.0
            for k in range(seg0[j - 1], clip1[i] - 1, -1):
                this_pen = penalty3(points, sums, k, i) + pen[k]
                if best < 0 or this_pen < best:
                    prev[i] = k
                    best = this_pen
            pen[i] = best

    polygon = [0] * m
    i = n
    for j in range(m - 1, -1, -1):
        i = prev[i]
        polygon[j] = i

    return polygon
