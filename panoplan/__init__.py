from .engine import AnnotationEngine, AnnotationState
from .import_staging import ImportResult, stage_file, stage_rows
from .models import AssignedTo, Building, Calibration, Floor, Measurement, Pano, Point, Room, Unassigned, Unit
from .notifications import Notifier, ValidationError
from .session import JsonSessionStore, SessionSnapshot, export_room_boundaries_csv
from . import config
