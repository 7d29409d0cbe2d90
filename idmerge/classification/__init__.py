# idmerge/classification/__init__.py
# ============================================================
# Classification Package
# ============================================================
# Decides which images of a unit show the card front and back:
#   - SideClassifier: scores one image for both sides
#   - BatchMatcher: picks the front/back pair of a whole unit
# ============================================================

from idmerge.classification.classifier import ImageCandidate, Side, SideClassifier, recommend_side
from idmerge.classification.matcher import BatchMatcher, MatchResult

__all__ = [
    "ImageCandidate",
    "Side",
    "SideClassifier",
    "recommend_side",
    "BatchMatcher",
    "MatchResult",
]
