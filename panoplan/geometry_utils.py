# Panoplan imports
from panoplan.models import PointLike, as_point

# Standard library imports
from typing import Sequence

# Third-party imports
import numpy as np
from matplotlib.path import Path as MplPath


def _vertex_array(polygon: Sequence[PointLike]) -> np.ndarray:
    """Return an (N, 2) float array for a polygon vertex sequence."""
    return np.array([as_point(v).as_tuple() for v in polygon], dtype=float).reshape(-1, 2)


def euclidean_distance(p1: PointLike, p2: PointLike) -> float:
    """
    Calculates the straight-line pixel distance between two plane points.

    Args:
        p1: First point, a Point or (x, y) pair.
        p2: Second point, a Point or (x, y) pair.

    Returns:
        float: Distance in pixels.
    """
    a, b = as_point(p1), as_point(p2)
    return float(np.hypot(b.x - a.x, b.y - a.y))


def polygon_area(polygon: Sequence[PointLike]) -> float:
    """
    Calculates the enclosed area of a polygon with the shoelace formula.

    The first and last vertices are implicitly connected, so the polygon
    does not need to be explicitly closed.

    Args:
        polygon: Ordered vertex sequence.

    Returns:
        float: Area in square pixels. 0.0 for fewer than 3 vertices.
    """
    verts = _vertex_array(polygon)
    if len(verts) < 3:
        return 0.0
    x, y = verts[:, 0], verts[:, 1]
    return float(0.5 * abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))


def polygon_perimeter(polygon: Sequence[PointLike]) -> float:
    """
    Calculates the closed perimeter of a polygon.

    Args:
        polygon: Ordered vertex sequence.

    Returns:
        float: Perimeter in pixels. 0.0 for fewer than 2 vertices.
    """
    verts = _vertex_array(polygon)
    if len(verts) < 2:
        return 0.0
    deltas = np.roll(verts, -1, axis=0) - verts
    return float(np.hypot(deltas[:, 0], deltas[:, 1]).sum())


def point_in_polygon(point: PointLike, polygon: Sequence[PointLike]) -> bool:
    """Return True if the point lies inside the (implicitly closed) polygon."""
    verts = _vertex_array(polygon)
    if len(verts) < 3:
        return False
    if not np.allclose(verts[0], verts[-1]):
        verts = np.vstack([verts, verts[0]])
    return bool(MplPath(verts).contains_point(as_point(point).as_tuple()))
