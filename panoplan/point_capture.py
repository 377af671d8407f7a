"""
Two-point capture protocol shared by scale calibration and measurement.

The pointer layer feeds plane-point clicks into a capture once it is armed.
The first click becomes ``p1``, the second ``p2``; further clicks are ignored
until the capture is committed or cancelled. Commit runs a validator over the
operator's input and, if it passes, a commit action over the captured pair.

Stages:
    idle -> armed -> awaiting_second_point -> ready_to_commit
    any stage --cancel--> idle
    ready_to_commit --commit (valid)--> idle
"""

# Panoplan imports
from panoplan.geometry_utils import euclidean_distance
from panoplan.models import Point, PointLike, as_point
from panoplan.notifications import Notifier, ValidationError

# Standard library imports
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CaptureStage(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    AWAITING_SECOND = "awaiting_second_point"
    READY = "ready_to_commit"


@dataclass(frozen=True)
class PointPair:
    """Pending capture: two picked points and the pixel distance between them."""

    p1: Point
    p2: Point
    px_length: float


class PointPairCapture(Generic[T]):
    """Reusable point-pair capture state machine.

    Args:
        label: Human name used in notifications ("calibration", "measurement").
        validate: Called as ``validate(pair, *args, **kwargs)``; returns the
            normalized input or raises ValidationError.
        commit: Called as ``commit(pair, validated)``; returns the committed value.
        notifier: Channel that receives rejection messages.
    """

    def __init__(
        self,
        label:      str,
        validate:   Callable[..., Any],
        commit:     Callable[[PointPair, Any], T],
        notifier:   Optional[Notifier] = None,
    ):
        self.label                      = label
        self._validate                  = validate
        self._commit                    = commit
        self.notifier                   = notifier or Notifier()
        self._p1:   Optional[Point]     = None
        self._p2:   Optional[Point]     = None
        self._armed: bool               = False

    @property
    def stage(self) -> CaptureStage:
        if not self._armed:
            return CaptureStage.IDLE
        if self._p1 is None:
            return CaptureStage.ARMED
        if self._p2 is None:
            return CaptureStage.AWAITING_SECOND
        return CaptureStage.READY

    @property
    def is_picking(self) -> bool:
        return self.stage in (CaptureStage.ARMED, CaptureStage.AWAITING_SECOND)

    @property
    def pending(self) -> Optional[PointPair]:
        """The captured pair once both points are in, otherwise None."""
        if self.stage is not CaptureStage.READY:
            return None
        return PointPair(self._p1, self._p2, euclidean_distance(self._p1, self._p2))

    def activate(self) -> None:
        """Arm the capture, discarding any previously picked points."""
        self._p1 = self._p2 = None
        self._armed = True
        logger.debug(f"{self.label} capture armed")

    def cancel(self) -> None:
        """Return to idle without side effects."""
        self._p1 = self._p2 = None
        self._armed = False

    def add_point(self, point: PointLike) -> CaptureStage:
        """Record a click. Only the first two clicks after arming count."""
        stage = self.stage
        if stage is CaptureStage.ARMED:
            self._p1 = as_point(point)
        elif stage is CaptureStage.AWAITING_SECOND:
            self._p2 = as_point(point)
        return self.stage

    def commit(self, *args, **kwargs) -> Optional[T]:
        """Validate operator input and commit the pending pair.

        Returns:
            The commit action's result, or None if the attempt was rejected.
            A rejected attempt keeps the pending pair so it can be retried.
        """
        pair = self.pending
        if pair is None:
            self.notifier.error(f"Pick two points before saving the {self.label}")
            return None
        try:
            validated = self._validate(pair, *args, **kwargs)
            result    = self._commit(pair, validated)
        except ValidationError as e:
            self.notifier.error(str(e))
            return None
        self.cancel()
        return result
