"""Pixel-to-real-world scale calibration.

A floor is calibrated by picking two points on its plan image and stating the
real distance between them. The result is stored on the floor as a
``Calibration`` and replaces any previous calibration wholesale.
"""

# Panoplan imports
from panoplan import config
from panoplan.models import Calibration, Unit
from panoplan.notifications import ValidationError
from panoplan.point_capture import PointPair

# Standard library imports
import math
from typing import Union

Number = Union[int, float, str]


def parse_unit(unit: Union[Unit, str]) -> Unit:
    """Return the Unit for ``"meters"`` / ``"feet"``, raising ValidationError otherwise."""
    try:
        return Unit(unit)
    except ValueError:
        raise ValidationError(f"Unknown unit '{unit}'. Use one of {', '.join(config.UNITS)}")


def parse_distance(value: Number) -> float:
    """
    Parse an operator-entered real-world distance.

    Args:
        value: Number or numeric string from a form field.

    Returns:
        float: The distance, guaranteed finite and > 0.

    Raises:
        ValidationError: For non-numeric, non-finite, zero or negative input.
    """
    if isinstance(value, bool):
        raise ValidationError("Please enter a valid distance")
    try:
        distance = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a valid distance")
    if not math.isfinite(distance) or distance <= 0:
        raise ValidationError("Please enter a valid distance")
    return distance


def to_meters(distance: float, unit: Union[Unit, str]) -> float:
    if parse_unit(unit) is Unit.FEET:
        return distance / config.FEET_PER_METER
    return distance


def meters_to_unit(meters: float, unit: Union[Unit, str]) -> float:
    if parse_unit(unit) is Unit.FEET:
        return meters * config.FEET_PER_METER
    return meters


def pixels_to_meters(px_length: float, pixels_per_meter: float) -> float:
    return px_length / pixels_per_meter


def meters_to_pixels(meters: float, pixels_per_meter: float) -> float:
    return meters * pixels_per_meter


def validate_calibration_input(pair: PointPair, distance: Number, unit: Union[Unit, str] = Unit.METERS) -> float:
    """
    Validator for the calibration capture.

    Returns:
        float: The real distance converted to metres.
    """
    meters = to_meters(parse_distance(distance), parse_unit(unit))
    if pair.px_length <= 0:
        raise ValidationError("Calibration points must not coincide")
    # Tiny distances can underflow to 0 m or push the scale to inf
    if meters <= 0 or not math.isfinite(pair.px_length / meters):
        raise ValidationError("Please enter a valid distance")
    return meters


def build_calibration(pair: PointPair, meters: float) -> Calibration:
    """Create the calibration record for a captured pair and a distance in metres."""
    return Calibration(
        p1=pair.p1,
        p2=pair.p2,
        px_length=pair.px_length,
        pixels_per_meter=pair.px_length / meters,
    )


def describe_calibration(calibration: Calibration) -> str:
    return f"{calibration.pixels_per_meter:.{config.DISPLAY_DECIMALS}f} pixels per meter"
