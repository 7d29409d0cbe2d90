# idmerge/pipeline/__init__.py
# ============================================================
# Pipeline Package
# ============================================================
# Contains the BatchOrchestrator that takes logical units from
# grouping through matching and composition to saved documents.
#
# Key classes:
#   - BatchOrchestrator: units → outcomes + summary
#   - BatchResult / BatchSummary / UnitOutcome: the batch response
#   - group_uploads / parse_structure: raw uploads → units
#   - merge_pair: an already labelled front + back → one document
# ============================================================

from idmerge.pipeline.grouping import UnitDeclaration, UploadedFile, group_uploads, parse_structure
from idmerge.pipeline.orchestrator import (
    BatchOrchestrator,
    BatchResult,
    BatchSummary,
    UnitOutcome,
    batch_session,
)
from idmerge.pipeline.merge import MergedDocument, merge_pair

__all__ = [
    "UnitDeclaration",
    "UploadedFile",
    "group_uploads",
    "parse_structure",
    "BatchOrchestrator",
    "BatchResult",
    "BatchSummary",
    "UnitOutcome",
    "batch_session",
    "MergedDocument",
    "merge_pair",
]
