"""
Domain records for the floor plan annotation engine.

All records are frozen dataclasses. Registries never mutate a record in place;
they build a replacement with ``dataclasses.replace`` and swap it into a new
state object.

This module contains:
- Point: planar pixel coordinate on a floor plan image
- Building, Floor, Calibration: the building and its ordered floors
- Room, Pano: annotated spaces and the 360 degree images attached to them
- Unassigned / AssignedTo: explicit pano-to-room assignment
- Measurement: a named point pair frozen in pixel space
"""

# Panoplan imports
from panoplan import config

# Standard library imports
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union


class Unit(str, Enum):
    """Real-world length unit chosen by the operator."""

    METERS = "meters"
    FEET = "feet"

    @property
    def suffix(self) -> str:
        return config.UNIT_SUFFIX[self.value]


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


PointLike = Union[Point, Sequence[float]]


def as_point(value: PointLike) -> Point:
    """Coerce an ``(x, y)`` pair or Point into a Point."""
    if isinstance(value, Point):
        return value
    if len(value) < 2:
        raise ValueError(f"Point needs two coordinates, got {value!r}")
    return Point(float(value[0]), float(value[1]))


def as_polygon(vertices: Sequence[PointLike]) -> Tuple[Point, ...]:
    """Coerce a vertex sequence into a polygon tuple.

    An empty polygon is allowed (room not drawn yet). Anything else must
    carry at least ``config.MIN_POLYGON_POINTS`` vertices.
    """
    polygon = tuple(as_point(v) for v in vertices)
    if polygon and len(polygon) < config.MIN_POLYGON_POINTS:
        raise ValueError(
            f"Polygon needs at least {config.MIN_POLYGON_POINTS} points, got {len(polygon)}"
        )
    return polygon


@dataclass(frozen=True)
class Building:
    id: str
    name: str
    address: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Calibration:
    """Floor scale derived from a reference segment of known real length.

    Attributes:
        p1, p2: End points of the reference segment (pixels).
        px_length: Pixel distance between p1 and p2.
        pixels_per_meter: Scale factor, px_length / real length in metres.
    """

    p1: Point
    p2: Point
    px_length: float
    pixels_per_meter: float

    def __post_init__(self):
        for name in ("px_length", "pixels_per_meter"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise ValueError(f"Calibration {name} must be strictly positive, got {value}")


@dataclass(frozen=True)
class Floor:
    id: str
    building_id: str
    name: str
    order_index: int
    plan_image: str = ""
    width_px: Optional[int] = None
    height_px: Optional[int] = None
    calibration: Optional[Calibration] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def pixels_per_meter(self) -> float:
        if self.calibration is None:
            return config.DEFAULT_PIXELS_PER_METER
        return self.calibration.pixels_per_meter


@dataclass(frozen=True)
class Room:
    id: str
    floor_id: str
    name: str
    polygon: Tuple[Point, ...] = ()
    properties: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        object.__setattr__(self, "polygon", as_polygon(self.polygon))

    @property
    def is_drawn(self) -> bool:
        return bool(self.polygon)


@dataclass(frozen=True)
class Unassigned:
    """Pano is not attached to any room."""


@dataclass(frozen=True)
class AssignedTo:
    room_id: str


RoomAssignment = Union[Unassigned, AssignedTo]
UNASSIGNED = Unassigned()


@dataclass(frozen=True)
class Pano:
    id: str
    building_id: str
    node_id: str
    title: str
    floor_id: Optional[str] = None
    image: str = ""
    captured_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    assignment: RoomAssignment = UNASSIGNED
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def room_id(self) -> Optional[str]:
        if isinstance(self.assignment, AssignedTo):
            return self.assignment.room_id
        return None


@dataclass(frozen=True)
class Measurement:
    """Named point pair on a floor.

    ``px_length`` is fixed at creation. Real-world lengths are always derived
    from the floor's current calibration and never stored here.
    """

    id: str
    floor_id: str
    name: str
    p1: Point
    p2: Point
    px_length: float
    unit: Unit = Unit.METERS
    room_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
