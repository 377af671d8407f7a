"""
Annotation Engine
=================

Composition root for the floor plan annotation state. Holds one immutable
``AnnotationState`` and swaps it for a new one on every action, using the pure
transitions of the building, room/pano and measurement registries.

Validation failures are reported on the ``Notifier`` and leave state
unchanged; updates and deletes addressed to unknown ids are silent no-ops.

Workflow:
    1. load() a session, or set_building() / add_floor() / import_room_file()
    2. set_active_floor(floor_id)
    3. start_calibration(), two handle_click() calls, commit_calibration(3.5, "meters")
    4. draw rooms, assign panos, start_measuring() ... commit_measurement("Door width")
    5. save(store) clears the unsaved flag
"""

# Panoplan imports
from panoplan import building_registry as floors_reg
from panoplan import measurement_ledger as ledger_reg
from panoplan import room_registry as rooms_reg
from panoplan.building_registry import BuildingState
from panoplan.import_staging import ImportResult, stage_file
from panoplan.measurement_ledger import MeasurementLedger
from panoplan.models import Building, Calibration, Floor, Measurement, Pano, PointLike, Room, Unit
from panoplan.notifications import Notifier, ValidationError
from panoplan.point_capture import CaptureStage, PointPair, PointPairCapture
from panoplan.room_registry import FloorplanState
from panoplan.scale_calibration import (
    build_calibration,
    describe_calibration,
    validate_calibration_input,
)
from panoplan.session import SessionSnapshot

# Standard library imports
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnnotationState:
    buildings:      BuildingState           = field(default_factory=BuildingState)
    plan:           FloorplanState          = field(default_factory=FloorplanState)
    ledger:         MeasurementLedger       = field(default_factory=MeasurementLedger)
    import_headers: Tuple[tuple, tuple]     = ((), ())


class AnnotationEngine:
    """Authoritative in-memory state for one authoring session.

    Args:
        notifier: User-facing message channel; a fresh one is created if omitted.
        state: Initial state, e.g. from a test fixture.
    """

    def __init__(self, notifier: Optional[Notifier] = None, state: Optional[AnnotationState] = None):
        self.notifier                   = notifier or Notifier()
        self._state: AnnotationState    = state or AnnotationState()
        self.calibration_capture        = PointPairCapture(
            "calibration", validate_calibration_input, self._commit_calibration, self.notifier
        )
        self.measure_capture            = PointPairCapture(
            "measurement", ledger_reg.validate_measurement_input, self._commit_measurement, self.notifier
        )

    # -------------------------------------------------------------------------
    # State plumbing
    # -------------------------------------------------------------------------

    @property
    def state(self) -> AnnotationState:
        return self._state

    @property
    def unsaved_changes(self) -> bool:
        return self._state.plan.unsaved_changes

    def _set_buildings(self, buildings: BuildingState, dirty: bool = False) -> None:
        plan = rooms_reg.mark_unsaved(self._state.plan) if dirty else self._state.plan
        self._state = replace(self._state, buildings=buildings, plan=plan)

    def _set_plan(self, plan: FloorplanState) -> None:
        self._state = replace(self._state, plan=plan)

    def _set_ledger(self, ledger: MeasurementLedger) -> None:
        self._state = replace(self._state, ledger=ledger, plan=rooms_reg.mark_unsaved(self._state.plan))

    # -------------------------------------------------------------------------
    # Building / floors
    # -------------------------------------------------------------------------

    @property
    def building(self) -> Optional[Building]:
        return self._state.buildings.building

    @property
    def floors(self) -> Tuple[Floor, ...]:
        return self._state.buildings.floors

    def set_building(self, building: Building) -> None:
        self._set_buildings(floors_reg.set_building(self._state.buildings, building))

    def set_floors(self, floors: Sequence[Floor]) -> None:
        self._set_buildings(floors_reg.set_floors(self._state.buildings, floors))

    def add_floor(self, floor: Floor) -> None:
        self._set_buildings(floors_reg.add_floor(self._state.buildings, floor), dirty=True)

    def add_floor_from_image(self, image_path: Union[Path, str], name: str, order_index: Optional[int] = None) -> Optional[Floor]:
        """Create and add a floor sized from its plan image. Requires a building."""
        if self.building is None:
            self.notifier.error("Create a building before adding floors")
            return None
        if order_index is None:
            order_index = floors_reg.next_order_index(self._state.buildings)
        floor = floors_reg.floor_from_plan_image(image_path, self.building.id, name, order_index)
        self.add_floor(floor)
        self.notifier.success(f"Added floor '{name}'")
        return floor

    def update_floor(self, floor_id: str, **changes) -> None:
        if floors_reg.get_floor(self._state.buildings, floor_id) is None:
            return
        self._set_buildings(floors_reg.update_floor(self._state.buildings, floor_id, **changes), dirty=True)

    def delete_floor(self, floor_id: str) -> None:
        if floors_reg.get_floor(self._state.buildings, floor_id) is None:
            return
        if floor_id == self._state.buildings.active_floor_id:
            self.cancel_calibration()
            self.cancel_measuring()
        self._set_buildings(floors_reg.delete_floor(self._state.buildings, floor_id), dirty=True)

    def set_active_floor(self, floor_id: Optional[str]) -> None:
        if floor_id != self._state.buildings.active_floor_id:
            self.cancel_calibration()
            self.cancel_measuring()
        self._set_buildings(floors_reg.set_active_floor(self._state.buildings, floor_id))

    def get_floor(self, floor_id: Optional[str]) -> Optional[Floor]:
        return floors_reg.get_floor(self._state.buildings, floor_id)

    def get_active_floor(self) -> Optional[Floor]:
        return floors_reg.get_active_floor(self._state.buildings)

    def get_floor_by_order(self, order_index: int) -> Optional[Floor]:
        return floors_reg.get_floor_by_order(self._state.buildings, order_index)

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    @property
    def rooms(self) -> Tuple[Room, ...]:
        return self._state.plan.rooms

    def set_rooms(self, rooms: Sequence[Room]) -> None:
        self._set_plan(rooms_reg.set_rooms(self._state.plan, rooms))

    def add_room(self, room: Room) -> None:
        self._set_plan(rooms_reg.add_room(self._state.plan, room))

    def draw_room(self, name: str, polygon: Sequence[PointLike], properties: Optional[Dict[str, Any]] = None) -> Optional[Room]:
        """Create a room on the active floor from a finished drawing."""
        floor = self.get_active_floor()
        clean_name = (name or "").strip()
        if floor is None:
            self.notifier.error("Select a floor before drawing rooms")
            return None
        if not clean_name:
            self.notifier.error("Please enter a room name")
            return None
        try:
            room = Room(
                id=rooms_reg.new_room_id(),
                floor_id=floor.id,
                name=clean_name,
                polygon=tuple(polygon),
                properties=dict(properties or {}),
            )
        except ValueError as e:
            self.notifier.error(str(e))
            return None
        if not room.is_drawn:
            self.notifier.error("Draw at least 3 points")
            return None
        self.add_room(room)
        self.notifier.success(f"Saved room '{clean_name}'")
        return room

    def update_room(self, room_id: str, **changes) -> None:
        self._set_plan(rooms_reg.update_room(self._state.plan, room_id, **changes))

    def delete_room(self, room_id: str) -> None:
        self._set_plan(rooms_reg.delete_room(self._state.plan, room_id))

    def get_room(self, room_id: Optional[str]) -> Optional[Room]:
        return rooms_reg.get_room(self._state.plan, room_id)

    def rooms_on_active_floor(self) -> List[Room]:
        return rooms_reg.rooms_on_floor(self._state.plan, self._state.buildings.active_floor_id)

    def room_at(self, point: PointLike) -> Optional[Room]:
        return rooms_reg.room_at(self._state.plan, point, self._state.buildings.active_floor_id)

    def filter_rooms(self, term: str) -> List[Room]:
        return rooms_reg.filter_rooms(self._state.plan, term)

    def room_area(self, room_id: str, unit: Union[Unit, str] = Unit.METERS) -> Optional[float]:
        """Room area in square ``unit`` using its floor's current calibration."""
        room = self.get_room(room_id)
        if room is None:
            return None
        side = ledger_reg.px_to_unit(1.0, self.get_floor(room.floor_id), unit)
        return rooms_reg.room_area_px(room) * side * side

    def room_perimeter(self, room_id: str, unit: Union[Unit, str] = Unit.METERS) -> Optional[float]:
        room = self.get_room(room_id)
        if room is None:
            return None
        return ledger_reg.px_to_unit(rooms_reg.room_perimeter_px(room), self.get_floor(room.floor_id), unit)

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    def import_rooms(self, result: ImportResult) -> List[Room]:
        """Create rooms on the active floor from a staged import table."""
        if not result.ok:
            for error in result.errors:
                self.notifier.error(error)
            return []
        floor = self.get_active_floor()
        if floor is None:
            self.notifier.error("Select a floor before importing rooms")
            return []

        rooms, warnings = rooms_reg.rooms_from_table(result.headers, result.rows, floor.id)
        for warning in warnings:
            self.notifier.notify(warning, "warning")
        self._set_plan(rooms_reg.add_rooms(self._state.plan, rooms))
        self._state = replace(
            self._state, import_headers=(tuple(result.headers[0]), tuple(result.headers[1]))
        )
        self.notifier.success(f"Imported {len(rooms)} rooms onto '{floor.name}'")
        return rooms

    def import_room_file(self, path: Union[Path, str]) -> List[Room]:
        return self.import_rooms(stage_file(path))

    # -------------------------------------------------------------------------
    # Panos
    # -------------------------------------------------------------------------

    @property
    def panos(self) -> Tuple[Pano, ...]:
        return self._state.plan.panos

    def set_panos(self, panos: Sequence[Pano]) -> None:
        self._set_plan(rooms_reg.set_panos(self._state.plan, panos))

    def add_pano(self, pano: Pano) -> None:
        self._set_plan(rooms_reg.add_pano(self._state.plan, pano))

    def assign_pano_to_room(self, pano_id: str, room_id: str) -> bool:
        """Assign a pano to a room on the same floor.

        Returns:
            bool: False if the room is unknown or sits on another floor.
        """
        pano = rooms_reg.get_pano(self._state.plan, pano_id)
        if pano is None:
            return False
        room = self.get_room(room_id)
        if room is None:
            self.notifier.error(f"Room '{room_id}' does not exist")
            return False
        if pano.floor_id is not None and pano.floor_id != room.floor_id:
            self.notifier.error(f"'{pano.title}' and '{room.name}' are on different floors")
            return False
        self._set_plan(rooms_reg.assign_pano_to_room(self._state.plan, pano_id, room_id))
        return True

    def unassign_pano(self, pano_id: str) -> None:
        self._set_plan(rooms_reg.unassign_pano(self._state.plan, pano_id))

    def get_pano(self, pano_id: Optional[str]) -> Optional[Pano]:
        return rooms_reg.get_pano(self._state.plan, pano_id)

    def get_unassigned_panos(self) -> List[Pano]:
        return rooms_reg.get_unassigned_panos(self._state.plan)

    def get_room_panos(self, room_id: str) -> List[Pano]:
        return rooms_reg.get_room_panos(self._state.plan, room_id)

    def filter_panos(self, term: str, unassigned_only: bool = False) -> List[Pano]:
        return rooms_reg.filter_panos(self._state.plan, term, unassigned_only)

    # -------------------------------------------------------------------------
    # Selection / view
    # -------------------------------------------------------------------------

    def select_room(self, room_id: Optional[str]) -> None:
        self._set_plan(rooms_reg.set_selected_room(self._state.plan, room_id))

    def select_pano(self, pano_id: Optional[str]) -> None:
        self._set_plan(rooms_reg.set_selected_pano(self._state.plan, pano_id))

    def get_selected_room(self) -> Optional[Room]:
        return rooms_reg.get_selected_room(self._state.plan)

    def get_selected_pano(self) -> Optional[Pano]:
        return rooms_reg.get_selected_pano(self._state.plan)

    def set_visibility_filter(self, visibility: str) -> None:
        self._set_plan(rooms_reg.set_visibility_filter(self._state.plan, visibility))

    @property
    def shows_rooms(self) -> bool:
        return rooms_reg.shows_rooms(self._state.plan)

    @property
    def shows_panos(self) -> bool:
        return rooms_reg.shows_panos(self._state.plan)

    # -------------------------------------------------------------------------
    # Pointer input
    # -------------------------------------------------------------------------

    def handle_click(self, point: PointLike) -> Optional[CaptureStage]:
        """Route a plan click to whichever capture is waiting for points."""
        for capture in (self.calibration_capture, self.measure_capture):
            if capture.is_picking:
                return capture.add_point(point)
        return None

    # -------------------------------------------------------------------------
    # Scale calibration
    # -------------------------------------------------------------------------

    def start_calibration(self) -> None:
        self.measure_capture.cancel()
        self.calibration_capture.activate()

    def cancel_calibration(self) -> None:
        self.calibration_capture.cancel()

    @property
    def pending_calibration(self) -> Optional[PointPair]:
        return self.calibration_capture.pending

    def commit_calibration(self, distance: Union[float, str], unit: Union[Unit, str] = Unit.METERS) -> Optional[Calibration]:
        """Commit the picked reference segment as the active floor's scale."""
        return self.calibration_capture.commit(distance, unit)

    def _commit_calibration(self, pair: PointPair, meters: float) -> Calibration:
        floor = self.get_active_floor()
        if floor is None:
            raise ValidationError("Select a floor before calibrating")
        calibration = build_calibration(pair, meters)
        self.update_floor(floor.id, calibration=calibration)
        self.notifier.success(f"Scale set for '{floor.name}': {describe_calibration(calibration)}")
        return calibration

    # -------------------------------------------------------------------------
    # Measurements
    # -------------------------------------------------------------------------

    def start_measuring(self) -> None:
        self.calibration_capture.cancel()
        self.measure_capture.activate()

    def cancel_measuring(self) -> None:
        self.measure_capture.cancel()

    @property
    def pending_measurement(self) -> Optional[PointPair]:
        return self.measure_capture.pending

    def format_pending_measurement(self, unit: Union[Unit, str] = Unit.METERS) -> Optional[str]:
        pair = self.pending_measurement
        if pair is None:
            return None
        value = ledger_reg.px_to_unit(pair.px_length, self.get_active_floor(), unit)
        return ledger_reg.format_length(value, unit)

    def commit_measurement(self, name: str, unit: Union[Unit, str] = Unit.METERS, room_id: Optional[str] = None) -> Optional[Measurement]:
        """Save the picked pair as a named measurement, tagged with the selected room by default."""
        if room_id is None:
            room_id = self._state.plan.selected_room_id
        return self.measure_capture.commit(name, unit, room_id)

    def _commit_measurement(self, pair: PointPair, validated: Tuple[str, Unit, Optional[str]]) -> Measurement:
        name, unit, room_id = validated
        floor = self.get_active_floor()
        if floor is None:
            raise ValidationError("Select a floor before measuring")
        measurement = ledger_reg.create_measurement(floor.id, pair, name, unit, room_id)
        self._set_ledger(ledger_reg.add_measurement(self._state.ledger, measurement))
        self.notifier.success(f'Measurement "{name}" added')
        return measurement

    @property
    def measurements(self) -> Tuple[Measurement, ...]:
        return self._state.ledger.measurements

    def get_measurement(self, measurement_id: str) -> Optional[Measurement]:
        return ledger_reg.get_measurement(self._state.ledger, measurement_id)

    def measurements_on_active_floor(self) -> List[Measurement]:
        return ledger_reg.measurements_for_floor(self._state.ledger, self._state.buildings.active_floor_id)

    def measurements_by_room(self, room_id: str) -> List[Measurement]:
        return ledger_reg.measurements_by_room(self._state.ledger, room_id)

    def update_measurement(self, measurement_id: str, **changes) -> bool:
        """Rename, re-unit or re-tag a measurement. Rejected edits leave state unchanged."""
        if self.get_measurement(measurement_id) is None:
            return False
        try:
            ledger = ledger_reg.update_measurement(self._state.ledger, measurement_id, **changes)
        except ValidationError as e:
            self.notifier.error(str(e))
            return False
        self._set_ledger(ledger)
        self.notifier.success("Measurement updated")
        return True

    def delete_measurement(self, measurement_id: str) -> None:
        if self.get_measurement(measurement_id) is None:
            return
        self._set_ledger(ledger_reg.delete_measurement(self._state.ledger, measurement_id))
        self.notifier.success("Measurement removed")

    def measurement_length(self, measurement_id: str, unit: Union[Unit, str, None] = None) -> Optional[float]:
        measurement = self.get_measurement(measurement_id)
        if measurement is None:
            return None
        return ledger_reg.measurement_length(measurement, self.get_floor(measurement.floor_id), unit)

    def format_measurement(self, measurement_id: str, unit: Union[Unit, str, None] = None) -> Optional[str]:
        measurement = self.get_measurement(measurement_id)
        if measurement is None:
            return None
        return ledger_reg.format_measurement(measurement, self.get_floor(measurement.floor_id), unit)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        s = self._state
        return SessionSnapshot(
            building=s.buildings.building,
            floors=list(s.buildings.floors),
            rooms=list(s.plan.rooms),
            panos=list(s.plan.panos),
            measurements=list(s.ledger.measurements),
            import_headers=(list(s.import_headers[0]), list(s.import_headers[1])),
        )

    def load(self, store) -> bool:
        """Seed the engine from a persistence collaborator (anything with ``load()``)."""
        try:
            snapshot = store.load() if hasattr(store, "load") else store
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.notifier.error(f"Load failed: {e}")
            return False
        floors = floors_reg.set_floors(BuildingState(building=snapshot.building), snapshot.floors)
        if floors.floors:
            floors = floors_reg.set_active_floor(floors, floors.floors[0].id)
        self.cancel_calibration()
        self.cancel_measuring()
        self._state = AnnotationState(
            buildings=floors,
            plan=FloorplanState(rooms=tuple(snapshot.rooms), panos=tuple(snapshot.panos)),
            ledger=MeasurementLedger(tuple(snapshot.measurements)),
            import_headers=(tuple(snapshot.import_headers[0]), tuple(snapshot.import_headers[1])),
        )
        logger.info(f"Engine seeded with {len(self.rooms)} rooms and {len(self.panos)} panos")
        return True

    def save(self, store) -> bool:
        """Hand the snapshot to a persistence collaborator; clear the flag only on success."""
        try:
            store.save(self.snapshot(), self.unsaved_changes)
        except (OSError, ValueError, TypeError) as e:
            self.notifier.error(f"Save failed: {e}")
            return False
        self._set_plan(rooms_reg.mark_saved(self._state.plan))
        self.notifier.success(f"Saved at {datetime.now():%H:%M:%S}")
        return True
