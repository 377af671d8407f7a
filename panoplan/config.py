"""
Panoplan Configuration Module
=============================

Centralized constants and paths for the floor plan annotation engine.
"""

# fmt: off
# autopep8: off

import os
from pathlib import Path

# Root directory of the project
PROJECT_ROOT        = Path(__file__).parent.parent

# Output directory
OUTPUTS_DIR         = PROJECT_ROOT / "outputs"

# Session files (JSON snapshot is the single source of truth, CSV is an export)
SESSION_PATH        = Path(os.getenv("PANOPLAN_SESSION_PATH", str(OUTPUTS_DIR / "annotation_session.json")))
ROOM_BOUNDARIES_CSV = OUTPUTS_DIR / "room_boundaries.csv"

# ============================================================================
# UNITS
# ============================================================================
FEET_PER_METER              = 3.28084
DEFAULT_PIXELS_PER_METER    = 1.0       # uncalibrated floors display raw pixel counts
UNITS                       = ("meters", "feet")
UNIT_SUFFIX                 = {"meters": "m", "feet": "ft"}
DISPLAY_DECIMALS            = 2

# ============================================================================
# IMPORT STAGING
# ============================================================================
HEADER_ROWS                 = 2         # row 1 = human labels, row 2 = field codes
MIN_IMPORT_ROWS             = 3         # 2 header rows + at least 1 data row
IMPORT_EXTENSIONS           = (".csv", ".xlsx", ".xls")
NAME_FIELD_CODES            = ("ROOM_NAME", "NAME", "ROOM")
POLYGON_FIELD_CODES         = ("POLYGON", "COORDINATES", "GEOMETRY")

# ============================================================================
# ROOMS / PANOS
# ============================================================================
MIN_POLYGON_POINTS          = 3
VISIBILITY_FILTERS          = ("both", "rooms", "panos")
MEASUREMENT_ID_PREFIX       = "measure_"
ROOM_ID_PREFIX              = "room_"
