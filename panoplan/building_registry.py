"""
Building/Floor Registry
=======================

Owns the session's building and its floors, ordered by ``order_index``, and
tracks the active floor. Every transition is a pure function returning a new
``BuildingState``.

Floor order is never renumbered. Callers pick a non-colliding ``order_index``
(``next_order_index`` gives one past the current maximum).
"""

# Panoplan imports
from panoplan.models import Building, Floor

# Standard library imports
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

# Third-party imports
from PIL import Image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildingState:
    building:           Optional[Building]  = None
    floors:             Tuple[Floor, ...]   = ()
    active_floor_id:    Optional[str]       = None


def _sorted_floors(floors: Iterable[Floor]) -> Tuple[Floor, ...]:
    return tuple(sorted(floors, key=lambda f: f.order_index))


# -------------------------------------------------------------------------
# Transitions
# -------------------------------------------------------------------------

def set_building(state: BuildingState, building: Building) -> BuildingState:
    return replace(state, building=building)


def set_floors(state: BuildingState, floors: Iterable[Floor]) -> BuildingState:
    """Bulk replace all floors. The active floor id is kept as-is."""
    return replace(state, floors=_sorted_floors(floors))


def add_floor(state: BuildingState, floor: Floor) -> BuildingState:
    """Insert a floor and re-sort by ascending ``order_index``."""
    if any(f.order_index == floor.order_index for f in state.floors):
        logger.warning(f"Floor '{floor.name}' reuses order index {floor.order_index}")
    return replace(state, floors=_sorted_floors(state.floors + (floor,)))


def update_floor(state: BuildingState, floor_id: str, **changes) -> BuildingState:
    """Merge ``changes`` into the floor. Unknown ids are a silent no-op."""
    if get_floor(state, floor_id) is None:
        logger.debug(f"update_floor: no floor '{floor_id}'")
        return state
    if "id" in changes:
        raise ValueError("Floor id cannot be changed")
    changes.setdefault("updated_at", datetime.now())
    floors = (replace(f, **changes) if f.id == floor_id else f for f in state.floors)
    return replace(state, floors=_sorted_floors(floors))


def delete_floor(state: BuildingState, floor_id: str) -> BuildingState:
    """Remove a floor. If it was active, no floor is active afterwards."""
    floors = tuple(f for f in state.floors if f.id != floor_id)
    active = None if state.active_floor_id == floor_id else state.active_floor_id
    return replace(state, floors=floors, active_floor_id=active)


def set_active_floor(state: BuildingState, floor_id: Optional[str]) -> BuildingState:
    return replace(state, active_floor_id=floor_id)


# -------------------------------------------------------------------------
# Queries
# -------------------------------------------------------------------------

def get_floor(state: BuildingState, floor_id: Optional[str]) -> Optional[Floor]:
    return next((f for f in state.floors if f.id == floor_id), None)


def get_active_floor(state: BuildingState) -> Optional[Floor]:
    return get_floor(state, state.active_floor_id)


def get_floor_by_order(state: BuildingState, order_index: int) -> Optional[Floor]:
    return next((f for f in state.floors if f.order_index == order_index), None)


def next_order_index(state: BuildingState) -> int:
    return max((f.order_index for f in state.floors), default=-1) + 1


# -------------------------------------------------------------------------
# Construction helpers
# -------------------------------------------------------------------------

def floor_from_plan_image(
    image_path:     Union[Path, str],
    building_id:    str,
    name:           str,
    order_index:    int,
    floor_id:       Optional[str] = None,
) -> Floor:
    """
    Create a floor for a plan image, reading its pixel dimensions with Pillow.

    Args:
        image_path: Plan image (PNG, JPEG, TIFF...).
        building_id: Owning building.
        name: Display name, e.g. "Level 1".
        order_index: Position in the building's floor sequence.
        floor_id: Explicit id; a random one is generated if omitted.

    Returns:
        Floor: Uncalibrated floor with width_px / height_px populated.
    """
    image_path = Path(image_path)
    with Image.open(image_path) as img:
        width, height = img.size
    logger.info(f"Loaded plan image {image_path.name} ({width}x{height} px) for floor '{name}'")
    return Floor(
        id=floor_id or f"floor_{uuid.uuid4().hex}",
        building_id=building_id,
        name=name,
        order_index=order_index,
        plan_image=str(image_path),
        width_px=width,
        height_px=height,
    )
