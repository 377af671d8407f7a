"""
Room/Pano Registry
==================

Owns room polygons and 360 degree panos, the many-to-one assignment of panos
to rooms, the current selection and the ``unsaved_changes`` flag.

Transitions are pure functions over ``FloorplanState``. Every room/pano
mutation marks the state unsaved; only ``mark_saved`` (used by the save and
load paths) clears the flag. Updates and deletes addressed to an unknown id
return the state unchanged.

Naming convention for imported tables:
    row 1   human-readable labels       ("Room Name", "Area", ...)
    row 2   internal field codes        ("ROOM_NAME", "Q01_AREA", ...)
    row 3+  one room per row
"""

# Panoplan imports
from panoplan import config
from panoplan.geometry_utils import point_in_polygon, polygon_area, polygon_perimeter
from panoplan.models import UNASSIGNED, AssignedTo, Pano, PointLike, Room, as_polygon

# Standard library imports
import json
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FloorplanState:
    rooms:              Tuple[Room, ...]    = ()
    panos:              Tuple[Pano, ...]    = ()
    selected_room_id:   Optional[str]       = None
    selected_pano_id:   Optional[str]       = None
    visibility_filter:  str                 = "both"
    unsaved_changes:    bool                = False


def new_room_id() -> str:
    return f"{config.ROOM_ID_PREFIX}{uuid.uuid4().hex}"


# -------------------------------------------------------------------------
# Bulk seeding / flags (do not mark unsaved)
# -------------------------------------------------------------------------

def set_rooms(state: FloorplanState, rooms: Iterable[Room]) -> FloorplanState:
    return replace(state, rooms=tuple(rooms))


def set_panos(state: FloorplanState, panos: Iterable[Pano]) -> FloorplanState:
    return replace(state, panos=tuple(panos))


def mark_saved(state: FloorplanState) -> FloorplanState:
    return replace(state, unsaved_changes=False)


def mark_unsaved(state: FloorplanState) -> FloorplanState:
    return replace(state, unsaved_changes=True)


def set_selected_room(state: FloorplanState, room_id: Optional[str]) -> FloorplanState:
    return replace(state, selected_room_id=room_id)


def set_selected_pano(state: FloorplanState, pano_id: Optional[str]) -> FloorplanState:
    return replace(state, selected_pano_id=pano_id)


def set_visibility_filter(state: FloorplanState, visibility: str) -> FloorplanState:
    if visibility not in config.VISIBILITY_FILTERS:
        raise ValueError(f"visibility must be one of {config.VISIBILITY_FILTERS}, got '{visibility}'")
    return replace(state, visibility_filter=visibility)


# -------------------------------------------------------------------------
# Room transitions
# -------------------------------------------------------------------------

def add_room(state: FloorplanState, room: Room) -> FloorplanState:
    return replace(state, rooms=state.rooms + (room,), unsaved_changes=True)


def add_rooms(state: FloorplanState, rooms: Iterable[Room]) -> FloorplanState:
    return replace(state, rooms=state.rooms + tuple(rooms), unsaved_changes=True)


def update_room(state: FloorplanState, room_id: str, **changes) -> FloorplanState:
    """
    Merge ``changes`` into a room (polygon is re-validated).

    Moving a room to another floor unassigns every pano that is not on the
    new floor, in the same transition.
    """
    room = get_room(state, room_id)
    if room is None:
        logger.debug(f"update_room: no room '{room_id}'")
        return state
    if "id" in changes:
        raise ValueError("Room id cannot be changed")
    now = changes.setdefault("updated_at", datetime.now())
    rooms = tuple(replace(r, **changes) if r.id == room_id else r for r in state.rooms)
    panos = state.panos
    new_floor = changes.get("floor_id", room.floor_id)
    if new_floor != room.floor_id:
        panos = tuple(
            replace(p, assignment=UNASSIGNED, updated_at=now)
            if p.room_id == room_id and p.floor_id != new_floor else p
            for p in state.panos
        )
    return replace(state, rooms=rooms, panos=panos, unsaved_changes=True)


def delete_room(state: FloorplanState, room_id: str) -> FloorplanState:
    """Remove a room, unassign every pano that pointed at it and clear its selection."""
    if get_room(state, room_id) is None:
        logger.debug(f"delete_room: no room '{room_id}'")
        return state
    now = datetime.now()
    panos = tuple(
        replace(p, assignment=UNASSIGNED, updated_at=now) if p.room_id == room_id else p
        for p in state.panos
    )
    return replace(
        state,
        rooms=tuple(r for r in state.rooms if r.id != room_id),
        panos=panos,
        selected_room_id=None if state.selected_room_id == room_id else state.selected_room_id,
        unsaved_changes=True,
    )


# -------------------------------------------------------------------------
# Pano transitions
# -------------------------------------------------------------------------

def add_pano(state: FloorplanState, pano: Pano) -> FloorplanState:
    return replace(state, panos=state.panos + (pano,), unsaved_changes=True)


def _set_assignment(state: FloorplanState, pano_id: str, assignment) -> FloorplanState:
    if get_pano(state, pano_id) is None:
        logger.debug(f"No pano '{pano_id}' to (un)assign")
        return state
    now = datetime.now()
    panos = tuple(
        replace(p, assignment=assignment, updated_at=now) if p.id == pano_id else p
        for p in state.panos
    )
    return replace(state, panos=panos, unsaved_changes=True)


def assign_pano_to_room(state: FloorplanState, pano_id: str, room_id: str) -> FloorplanState:
    """Point the pano at ``room_id``. Does not check that the room exists."""
    return _set_assignment(state, pano_id, AssignedTo(room_id))


def unassign_pano(state: FloorplanState, pano_id: str) -> FloorplanState:
    return _set_assignment(state, pano_id, UNASSIGNED)


# -------------------------------------------------------------------------
# Queries
# -------------------------------------------------------------------------

def get_room(state: FloorplanState, room_id: Optional[str]) -> Optional[Room]:
    return next((r for r in state.rooms if r.id == room_id), None)


def get_pano(state: FloorplanState, pano_id: Optional[str]) -> Optional[Pano]:
    return next((p for p in state.panos if p.id == pano_id), None)


def get_unassigned_panos(state: FloorplanState) -> List[Pano]:
    return [p for p in state.panos if p.room_id is None]


def get_room_panos(state: FloorplanState, room_id: str) -> List[Pano]:
    return [p for p in state.panos if p.room_id == room_id]


def get_selected_room(state: FloorplanState) -> Optional[Room]:
    return get_room(state, state.selected_room_id)


def get_selected_pano(state: FloorplanState) -> Optional[Pano]:
    return get_pano(state, state.selected_pano_id)


def rooms_on_floor(state: FloorplanState, floor_id: Optional[str]) -> List[Room]:
    return [r for r in state.rooms if r.floor_id == floor_id]


def panos_on_floor(state: FloorplanState, floor_id: Optional[str]) -> List[Pano]:
    return [p for p in state.panos if p.floor_id == floor_id]


def room_at(state: FloorplanState, point: PointLike, floor_id: Optional[str]) -> Optional[Room]:
    """Return the first drawn room on ``floor_id`` whose polygon contains the point."""
    for room in rooms_on_floor(state, floor_id):
        if room.is_drawn and point_in_polygon(point, room.polygon):
            return room
    return None


def room_area_px(room: Room) -> float:
    return polygon_area(room.polygon)


def room_perimeter_px(room: Room) -> float:
    return polygon_perimeter(room.polygon)


def shows_rooms(state: FloorplanState) -> bool:
    return state.visibility_filter in ("both", "rooms")


def shows_panos(state: FloorplanState) -> bool:
    return state.visibility_filter in ("both", "panos")


# -------------------------------------------------------------------------
# Search
# -------------------------------------------------------------------------

def pano_matches(pano: Pano, term: str) -> bool:
    """Case-insensitive substring match on the pano title or its viewer node id."""
    needle = (term or "").lower()
    return needle in (pano.title or "").lower() or needle in (pano.node_id or "").lower()


def filter_panos(state: FloorplanState, term: str, unassigned_only: bool = False) -> List[Pano]:
    """Apply ``pano_matches`` over the unassigned subset or over every pano."""
    pool = get_unassigned_panos(state) if unassigned_only else state.panos
    return [p for p in pool if pano_matches(p, term)]


def filter_rooms(state: FloorplanState, term: str) -> List[Room]:
    needle = (term or "").lower()
    return [r for r in state.rooms if needle in r.name.lower()]


# -------------------------------------------------------------------------
# Import table -> rooms
# -------------------------------------------------------------------------

def parse_polygon(text: str) -> Tuple:
    """
    Parse a polygon cell from an imported table.

    Accepts a JSON array ``[[x, y], ...]`` or ``x1,y1;x2,y2;...``.

    Returns:
        tuple: Validated polygon (empty for a blank cell).

    Raises:
        ValueError: If the cell cannot be read as a polygon.
    """
    text = (text or "").strip()
    if not text:
        return ()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = [pair.split(",") for pair in text.split(";") if pair.strip()]
    if not isinstance(parsed, list):
        raise ValueError(f"Invalid polygon '{text}'")
    points = []
    for pair in parsed:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ValueError(f"Invalid coordinate pair {pair!r}")
        try:
            points.append((float(pair[0]), float(pair[1])))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid coordinate pair {pair!r}")
    return as_polygon(points)


def _field_index(codes: Sequence[str], candidates: Sequence[str]) -> Optional[int]:
    upper = [str(c).strip().upper() for c in codes]
    for candidate in candidates:
        if candidate in upper:
            return upper.index(candidate)
    return None


def _room_name(row: Sequence[Any], name_idx: Optional[int], number: int) -> str:
    cells = [str(c).strip() for c in row]
    if name_idx is not None and name_idx < len(cells) and cells[name_idx]:
        return cells[name_idx]
    for idx in (1, 0):
        if idx < len(cells) and cells[idx]:
            return cells[idx]
    return f"ROOM_{number:03d}"


def rooms_from_table(
    headers: Tuple[Sequence[str], Sequence[str]],
    rows: Iterable[Sequence[Any]],
    floor_id: str,
) -> Tuple[List[Room], List[str]]:
    """
    Build one Room per imported data row.

    Properties are keyed by the row-2 field code (``col_<n>`` where a code is
    blank). A ``POLYGON``-coded column, if present, supplies the room outline;
    an unreadable outline leaves the room undrawn and is reported.

    Args:
        headers: (row1 labels, row2 field codes).
        rows: Data rows with blank rows already removed.
        floor_id: Floor the rooms belong to.

    Returns:
        tuple: (rooms, warnings)
    """
    _, codes = headers
    codes = [str(c).strip() for c in codes]
    name_idx = _field_index(codes, config.NAME_FIELD_CODES)
    polygon_idx = _field_index(codes, config.POLYGON_FIELD_CODES)

    rooms: List[Room] = []
    warnings: List[str] = []
    now = datetime.now()
    for number, row in enumerate(rows, start=1):
        properties: Dict[str, Any] = {}
        for i, value in enumerate(row):
            if i == polygon_idx:
                continue
            key = codes[i] if i < len(codes) and codes[i] else f"col_{i}"
            properties[key] = value

        name = _room_name(row, name_idx, number)
        polygon = ()
        if polygon_idx is not None and polygon_idx < len(row):
            try:
                polygon = parse_polygon(str(row[polygon_idx]))
            except ValueError as e:
                warnings.append(f"Row {number} ({name}): {e}")

        rooms.append(Room(
            id=new_room_id(),
            floor_id=floor_id,
            name=name,
            polygon=polygon,
            properties=properties,
            created_at=now,
            updated_at=now,
        ))
    return rooms, warnings
