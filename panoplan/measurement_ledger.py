"""
Measurement Ledger
==================

Named point-pair measurements per floor. Each measurement freezes its pixel
length at creation; the real-world length shown to the operator is always
recomputed from the floor's *current* calibration, so recalibrating a floor
changes the displayed length of every existing measurement on it.

An uncalibrated floor uses ``config.DEFAULT_PIXELS_PER_METER`` (1.0), i.e. the
displayed "metres" are raw pixel counts.
"""

# Panoplan imports
from panoplan import config
from panoplan.models import Floor, Measurement, Unit
from panoplan.notifications import ValidationError
from panoplan.point_capture import PointPair
from panoplan.scale_calibration import meters_to_unit, parse_unit, pixels_to_meters

# Standard library imports
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Fields an existing measurement may change; points and px_length never do
EDITABLE_FIELDS = ("name", "unit", "room_id")


@dataclass(frozen=True)
class MeasurementLedger:
    measurements: Tuple[Measurement, ...] = ()


def new_measurement_id() -> str:
    return f"{config.MEASUREMENT_ID_PREFIX}{uuid.uuid4().hex}"


# -------------------------------------------------------------------------
# Capture validator / constructor
# -------------------------------------------------------------------------

def validate_measurement_input(
    pair: PointPair,
    name: str,
    unit: Union[Unit, str] = Unit.METERS,
    room_id: Optional[str] = None,
) -> Tuple[str, Unit, Optional[str]]:
    """Validator for the measurement capture: trims the name and checks the unit."""
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("Please enter a measurement name")
    return clean_name, parse_unit(unit), room_id


def create_measurement(
    floor_id: str,
    pair: PointPair,
    name: str,
    unit: Unit,
    room_id: Optional[str] = None,
) -> Measurement:
    return Measurement(
        id=new_measurement_id(),
        floor_id=floor_id,
        name=name,
        p1=pair.p1,
        p2=pair.p2,
        px_length=pair.px_length,
        unit=unit,
        room_id=room_id,
        created_at=datetime.now(),
    )


# -------------------------------------------------------------------------
# Transitions
# -------------------------------------------------------------------------

def add_measurement(ledger: MeasurementLedger, measurement: Measurement) -> MeasurementLedger:
    return replace(ledger, measurements=ledger.measurements + (measurement,))


def update_measurement(ledger: MeasurementLedger, measurement_id: str, **changes) -> MeasurementLedger:
    """Rename, re-unit or re-tag a measurement. Unknown ids are a no-op."""
    frozen = set(changes) - set(EDITABLE_FIELDS)
    if frozen:
        raise ValueError(f"Measurement fields {sorted(frozen)} cannot be edited")
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise ValidationError("Please enter a measurement name")
    if "unit" in changes:
        changes["unit"] = parse_unit(changes["unit"])
    if not any(m.id == measurement_id for m in ledger.measurements):
        logger.debug(f"update_measurement: no measurement '{measurement_id}'")
        return ledger
    return replace(ledger, measurements=tuple(
        replace(m, **changes) if m.id == measurement_id else m
        for m in ledger.measurements
    ))


def delete_measurement(ledger: MeasurementLedger, measurement_id: str) -> MeasurementLedger:
    kept = tuple(m for m in ledger.measurements if m.id != measurement_id)
    if len(kept) == len(ledger.measurements):
        logger.debug(f"delete_measurement: no measurement '{measurement_id}'")
        return ledger
    return replace(ledger, measurements=kept)



# -------------------------------------------------------------------------
# Queries
# -------------------------------------------------------------------------

def get_measurement(ledger: MeasurementLedger, measurement_id: str) -> Optional[Measurement]:
    return next((m for m in ledger.measurements if m.id == measurement_id), None)


def measurements_for_floor(ledger: MeasurementLedger, floor_id: str) -> List[Measurement]:
    return [m for m in ledger.measurements if m.floor_id == floor_id]


def measurements_by_room(ledger: MeasurementLedger, room_id: str) -> List[Measurement]:
    return [m for m in ledger.measurements if m.room_id == room_id]


# -------------------------------------------------------------------------
# Display conversion
# -------------------------------------------------------------------------

def px_to_unit(px_length: float, floor: Optional[Floor], unit: Union[Unit, str]) -> float:
    """
    Convert a pixel length into real units using the floor's current calibration.

    Args:
        px_length: Length in pixels.
        floor: Floor whose calibration applies. None or uncalibrated uses 1 px/m.
        unit: Display unit.

    Returns:
        float: Length in the requested unit.
    """
    ppm = floor.pixels_per_meter if floor is not None else config.DEFAULT_PIXELS_PER_METER
    return meters_to_unit(pixels_to_meters(px_length, ppm), unit)


def measurement_length(measurement: Measurement, floor: Optional[Floor], unit: Union[Unit, str, None] = None) -> float:
    """Real length of a measurement, in its own unit unless one is given."""
    return px_to_unit(measurement.px_length, floor, unit or measurement.unit)


def format_length(value: float, unit: Union[Unit, str]) -> str:
    return f"{value:.{config.DISPLAY_DECIMALS}f} {parse_unit(unit).suffix}"


def format_measurement(measurement: Measurement, floor: Optional[Floor], unit: Union[Unit, str, None] = None) -> str:
    """Display string such as ``"2.00 m"`` or ``"6.56 ft"``."""
    unit = unit or measurement.unit
    return format_length(measurement_length(measurement, floor, unit), unit)
