"""Border following: decompose a bitmap into closed paths."""
import logging
from typing import List, Optional

from colortrace.bitmap import Bitmap
from colortrace.types import TURN_POLICIES, Deadline, Path, Point

logger = logging.getLogger(__name__)


def majority(bitmap: Bitmap, x: int, y: int) -> bool:
    """
    Majority vote of the pixels around corner (x, y).

    Rings of growing radius (2 to 4) are tried until one is not a tie.
    """
    for i in range(2, 5):
        ct = 0
        for a in range(-i + 1, i):
            ct += 1 if bitmap.at(x + a, y + i - 1) else -1
            ct += 1 if bitmap.at(x + i - 1, y + a - 1) else -1
            ct += 1 if bitmap.at(x + a - 1, y - i) else -1
            ct += 1 if bitmap.at(x - i, y + a) else -1
        if ct > 0:
            return True
        if ct < 0:
            return False
    return False


def _turns_right(policy: str, sign: str, bitmap: Bitmap, x: int, y: int) -> bool:
    """Decide an ambiguous turn (only the right-hand pixel ahead is on)."""
    if policy == "right":
        return True
    if policy == "black":
        return sign == "+"
    if policy == "white":
        return sign == "-"
    if policy == "majority":
        return majority(bitmap, x, y)
    if policy == "minority":
        return not majority(bitmap, x, y)
    return False


def find_path(original: Bitmap, work: Bitmap, x0: int, y0: int, turnpolicy: str) -> Path:
    """
    Walk the boundary starting at the upper-left corner of pixel (x0, y0).

    Args:
        original: Unmodified bitmap, used for the path sign
        work: Working bitmap being erased path by path
        x0: Start x
        y0: Start y
        turnpolicy: How to resolve ambiguous turns

    Returns:
        Closed Path with its signed area and bounding box
    """
    sign = "+" if original.at(x0, y0) else "-"
    x, y = x0, y0
    dirx, diry = 0, 1

    points = []
    area = 0
    min_x = max_x = x0
    min_y = max_y = y0

    while True:
        points.append(Point(x, y))
        min_x = min(min_x, x)
        max_x = max(max_x, x)
        min_y = min(min_y, y)
        max_y = max(max_y, y)

        x += dirx
        y += diry
        area -= x * diry

        if x == x0 and y == y0:
            break

        left = work.at(x + (dirx + diry - 1) // 2, y + (diry - dirx - 1) // 2)
        right = work.at(x + (dirx - diry - 1) // 2, y + (diry + dirx - 1) // 2)

        if right and not left:
            if _turns_right(turnpolicy, sign, work, x, y):
                dirx, diry = -diry, dirx
            else:
                dirx, diry = diry, -dirx
        elif right:
            dirx, diry = -diry, dirx
        elif not left:
            dirx, diry = diry, -dirx

    return Path(
        points=points,
        area=area,
        sign=sign,
        min_x=min_x,
        min_y=min_y,
        max_x=max_x,
        max_y=max_y
    )


def xor_path(work: Bitmap, path: Path) -> None:
    """Invert every pixel enclosed by ``path``, row by row from each vertical edge."""
    y1 = path.points[0].y
    for point in path.points[1:]:
        if point.y != y1:
            work.flip_row(min(y1, point.y), point.x, path.max_x)
            y1 = point.y


def trace_bitmap(
    bitmap: Bitmap,
    turnpolicy: str = "minority",
    turdsize: int = 2,
    deadline: Optional[Deadline] = None
) -> List[Path]:
    """
    Decompose a bitmap into closed boundary paths.

    Regions and holes alternate: after a path is traced its interior is
    inverted on a working copy, so the next scan finds the outer boundary of
    whatever was nested inside it. The caller's bitmap is not modified.

    Args:
        bitmap: Bitmap to trace
        turnpolicy: One of black, white, left, right, minority, majority
        turdsize: Paths enclosing this many pixels or fewer are dropped
        deadline: Optional deadline checked once per path

    Returns:
        Paths in discovery order

    Raises:
        ValueError: If turnpolicy is unknown
        VectorizationTimeout: If the deadline expires
    """
    if turnpolicy not in TURN_POLICIES:
        raise ValueError(f"Unknown turn policy: {turnpolicy}")

    work = bitmap.copy()
    paths = []
    dropped = 0

    index = work.find_next(0)
    while index is not None:
        if deadline is not None:
            deadline.check("Tracing")

        x, y = work.index(index)
        path = find_path(bitmap, work, x, y, turnpolicy)
        xor_path(work, path)

        if abs(path.area) > turdsize:
            paths.append(path)
        else:
            dropped += 1

        index = work.find_next(index)

    logger.debug(f"Traced {len(paths)} paths ({dropped} below turdsize)")
    return paths
