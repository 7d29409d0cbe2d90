# idmerge/__init__.py
# ============================================================
# ID Card Merge — Source Package
# ============================================================
# Classifies ID card photos as front or back and merges each
# owner's pair into one PDF page. Sub-packages:
#   - idmerge.ocr            → Recognition provider + retry gateway
#   - idmerge.validation     → Front/back scoring rules
#   - idmerge.classification → Per-image classifier, per-unit matcher
#   - idmerge.document       → Loading, staging, compositing, storage
#   - idmerge.pipeline       → Grouping and the batch orchestrator
#   - idmerge.utils          → Shared utilities (logging, events, images)
# ============================================================

__version__ = "0.1.0"
