# idmerge/validation/__init__.py
# ============================================================
# Validation Package
# ============================================================
# Scoring rules that decide whether an extraction result is a
# plausible card front or back:
#   - FieldValidator / score_front / score_back: pure scoring
#   - ValidationVerdict: score + pass/fail + per-field reasons
#   - RuleTable: injectable locale heuristics
# ============================================================

from idmerge.validation.rules import DEFAULT_RULES, RuleTable, load_rules
from idmerge.validation.scoring import FieldValidator, ValidationVerdict, score_back, score_front

__all__ = [
    "DEFAULT_RULES",
    "RuleTable",
    "load_rules",
    "FieldValidator",
    "ValidationVerdict",
    "score_front",
    "score_back",
]
