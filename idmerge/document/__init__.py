# idmerge/document/__init__.py
# ============================================================
# Document Package
# ============================================================
# Everything that touches files and pages:
#   - LogicalUnit / UnitImage: one card owner's images
#   - loader: folders on disk → LogicalUnits
#   - storage: per-unit staging directories and the PDF output
#   - PillowCompositor: front + back + fields → one A4 PDF page
# ============================================================

from idmerge.document.compositor import Compositor, PillowCompositor
from idmerge.document.loader import (
    SUPPORTED_IMAGE_EXTENSIONS,
    discover_unit_dirs,
    load_unit_from_directory,
    load_units,
)
from idmerge.document.storage import ArtifactStore, claim_title, safe_file_name, stage_unit
from idmerge.document.units import LogicalUnit, UnitImage

__all__ = [
    "Compositor",
    "PillowCompositor",
    "SUPPORTED_IMAGE_EXTENSIONS",
    "discover_unit_dirs",
    "load_unit_from_directory",
    "load_units",
    "ArtifactStore",
    "claim_title",
    "safe_file_name",
    "stage_unit",
    "LogicalUnit",
    "UnitImage",
]
