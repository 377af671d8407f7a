"""
Session persistence for annotation state.

The engine itself is purely in-memory. This module is the default persistence
collaborator: it turns a ``SessionSnapshot`` into JSON and back, and exports
room boundaries as CSV for downstream tools.

JSON layout:
    {
      "saved_at": "...",
      "unsaved_changes": true,
      "building": {...} | null,
      "floors": [...], "rooms": [...], "panos": [...], "measurements": [...],
      "import_headers": [[row1...], [row2...]]
    }
"""

# Panoplan imports
from panoplan import config
from panoplan.models import (
    UNASSIGNED,
    AssignedTo,
    Building,
    Calibration,
    Floor,
    Measurement,
    Pano,
    Point,
    Room,
    Unit,
)

# Standard library imports
import csv
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass
class SessionSnapshot:
    building:       Optional[Building]              = None
    floors:         List[Floor]                     = field(default_factory=list)
    rooms:          List[Room]                      = field(default_factory=list)
    panos:          List[Pano]                      = field(default_factory=list)
    measurements:   List[Measurement]               = field(default_factory=list)
    import_headers: Tuple[List[str], List[str]]     = field(default_factory=lambda: ([], []))


# -------------------------------------------------------------------------
# Record <-> dict
# -------------------------------------------------------------------------

def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _pt(point: Point) -> List[float]:
    return [point.x, point.y]


def _parse_pt(value: Sequence[float]) -> Point:
    return Point(float(value[0]), float(value[1]))


def building_to_dict(building: Building) -> Dict[str, Any]:
    return {
        "id":           building.id,
        "name":         building.name,
        "address":      building.address,
        "created_at":   _dt(building.created_at),
        "updated_at":   _dt(building.updated_at),
    }


def building_from_dict(data: Dict[str, Any]) -> Building:
    return Building(
        id=data["id"],
        name=data["name"],
        address=data.get("address", ""),
        created_at=_parse_dt(data.get("created_at")) or datetime.now(),
        updated_at=_parse_dt(data.get("updated_at")) or datetime.now(),
    )


def floor_to_dict(floor: Floor) -> Dict[str, Any]:
    cal = floor.calibration
    return {
        "id":           floor.id,
        "building_id":  floor.building_id,
        "name":         floor.name,
        "order_index":  floor.order_index,
        "plan_image":   floor.plan_image,
        "width_px":     floor.width_px,
        "height_px":    floor.height_px,
        "calibration":  None if cal is None else {
            "p1":               _pt(cal.p1),
            "p2":               _pt(cal.p2),
            "px_length":        cal.px_length,
            "pixels_per_meter": cal.pixels_per_meter,
        },
        "created_at":   _dt(floor.created_at),
        "updated_at":   _dt(floor.updated_at),
    }


def floor_from_dict(data: Dict[str, Any]) -> Floor:
    cal = data.get("calibration")
    return Floor(
        id=data["id"],
        building_id=data["building_id"],
        name=data.get("name", ""),
        order_index=int(data["order_index"]),
        plan_image=data.get("plan_image", ""),
        width_px=data.get("width_px"),
        height_px=data.get("height_px"),
        calibration=None if not cal else Calibration(
            p1=_parse_pt(cal["p1"]),
            p2=_parse_pt(cal["p2"]),
            px_length=float(cal["px_length"]),
            pixels_per_meter=float(cal["pixels_per_meter"]),
        ),
        created_at=_parse_dt(data.get("created_at")) or datetime.now(),
        updated_at=_parse_dt(data.get("updated_at")) or datetime.now(),
    )


def room_to_dict(room: Room) -> Dict[str, Any]:
    return {
        "id":           room.id,
        "floor_id":     room.floor_id,
        "name":         room.name,
        "polygon":      [_pt(p) for p in room.polygon],
        "properties":   room.properties,
        "created_at":   _dt(room.created_at),
        "updated_at":   _dt(room.updated_at),
    }


def room_from_dict(data: Dict[str, Any]) -> Room:
    return Room(
        id=data["id"],
        floor_id=data["floor_id"],
        name=data["name"],
        polygon=[_parse_pt(p) for p in data.get("polygon", [])],
        properties=dict(data.get("properties", {})),
        created_at=_parse_dt(data.get("created_at")) or datetime.now(),
        updated_at=_parse_dt(data.get("updated_at")) or datetime.now(),
    )


def pano_to_dict(pano: Pano) -> Dict[str, Any]:
    return {
        "id":           pano.id,
        "building_id":  pano.building_id,
        "floor_id":     pano.floor_id,
        "room_id":      pano.room_id,
        "node_id":      pano.node_id,
        "title":        pano.title,
        "image":        pano.image,
        "captured_at":  _dt(pano.captured_at),
        "metadata":     pano.metadata,
        "created_at":   _dt(pano.created_at),
        "updated_at":   _dt(pano.updated_at),
    }


def pano_from_dict(data: Dict[str, Any]) -> Pano:
    room_id = data.get("room_id")
    return Pano(
        id=data["id"],
        building_id=data["building_id"],
        node_id=data.get("node_id", ""),
        title=data.get("title", ""),
        floor_id=data.get("floor_id"),
        image=data.get("image", ""),
        captured_at=_parse_dt(data.get("captured_at")),
        metadata=dict(data.get("metadata", {})),
        assignment=AssignedTo(room_id) if room_id else UNASSIGNED,
        created_at=_parse_dt(data.get("created_at")) or datetime.now(),
        updated_at=_parse_dt(data.get("updated_at")) or datetime.now(),
    )


def measurement_to_dict(measurement: Measurement) -> Dict[str, Any]:
    return {
        "id":           measurement.id,
        "floor_id":     measurement.floor_id,
        "room_id":      measurement.room_id,
        "name":         measurement.name,
        "p1":           _pt(measurement.p1),
        "p2":           _pt(measurement.p2),
        "px_length":    measurement.px_length,
        "unit":         measurement.unit.value,
        "created_at":   _dt(measurement.created_at),
    }


def measurement_from_dict(data: Dict[str, Any]) -> Measurement:
    return Measurement(
        id=data["id"],
        floor_id=data["floor_id"],
        name=data["name"],
        p1=_parse_pt(data["p1"]),
        p2=_parse_pt(data["p2"]),
        px_length=float(data["px_length"]),
        unit=Unit(data.get("unit", Unit.METERS.value)),
        room_id=data.get("room_id"),
        created_at=_parse_dt(data.get("created_at")) or datetime.now(),
    )


def snapshot_to_dict(snapshot: SessionSnapshot) -> Dict[str, Any]:
    return {
        "building":         building_to_dict(snapshot.building) if snapshot.building else None,
        "floors":           [floor_to_dict(f) for f in snapshot.floors],
        "rooms":            [room_to_dict(r) for r in snapshot.rooms],
        "panos":            [pano_to_dict(p) for p in snapshot.panos],
        "measurements":     [measurement_to_dict(m) for m in snapshot.measurements],
        "import_headers":   [list(snapshot.import_headers[0]), list(snapshot.import_headers[1])],
    }


def snapshot_from_dict(data: Dict[str, Any]) -> SessionSnapshot:
    headers = data.get("import_headers") or [[], []]
    return SessionSnapshot(
        building=building_from_dict(data["building"]) if data.get("building") else None,
        floors=[floor_from_dict(f) for f in data.get("floors", [])],
        rooms=[room_from_dict(r) for r in data.get("rooms", [])],
        panos=[pano_from_dict(p) for p in data.get("panos", [])],
        measurements=[measurement_from_dict(m) for m in data.get("measurements", [])],
        import_headers=(list(headers[0]), list(headers[1])),
    )


# -------------------------------------------------------------------------
# JSON session store
# -------------------------------------------------------------------------

class JsonSessionStore:
    """Persistence collaborator backed by a single JSON file.

    Args:
        path: Session file; defaults to ``config.SESSION_PATH``.
    """

    def __init__(self, path: Union[Path, str, None] = None):
        self.path = Path(path) if path else config.SESSION_PATH

    def load(self) -> SessionSnapshot:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        snapshot = snapshot_from_dict(data)
        logger.info(
            f"Loaded session from {self.path}: {len(snapshot.floors)} floors, "
            f"{len(snapshot.rooms)} rooms, {len(snapshot.panos)} panos"
        )
        return snapshot

    def save(self, snapshot: SessionSnapshot, unsaved_changes: bool) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "saved_at":         datetime.now().isoformat(),
            "unsaved_changes":  unsaved_changes,
            **snapshot_to_dict(snapshot),
        }
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info(f"Session saved to {self.path}")
        return self.path


# -------------------------------------------------------------------------
# Export
# -------------------------------------------------------------------------

def export_room_boundaries_csv(rooms: Sequence[Room], output_path: Union[Path, str, None] = None) -> Optional[Path]:
    """
    Export drawn room boundaries as CSV.

    Format: name, floor_id, X_px Y_px, X_px Y_px, ...
    Rows are padded to a common width. Undrawn rooms are skipped.

    Returns:
        Path or None: The written file, or None if there was nothing to export.
    """
    drawn = [r for r in rooms if r.is_drawn]
    if not drawn:
        return None

    output_path = Path(output_path) if output_path else config.ROOM_BOUNDARIES_CSV
    output_path.parent.mkdir(parents=True, exist_ok=True)

    rows = []
    for room in drawn:
        coord_strings = [f"X_{p.x:.3f} Y_{p.y:.3f}" for p in room.polygon]
        rows.append([room.name, room.floor_id] + coord_strings)

    max_cols = max(len(r) for r in rows)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        for row in rows:
            row += [""] * (max_cols - len(row))
            writer.writerow(row)

    logger.info(f"Exported {len(drawn)} room boundaries to {output_path}")
    return output_path
