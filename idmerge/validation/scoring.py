# idmerge/validation/scoring.py
# ============================================================
# Field Validator — Confidence Scoring for Card Sides
# ============================================================
# Pure functions that turn an extraction result into a score
# (0-100), a pass/fail verdict and one human-readable reason per
# examined field. Operators read the reasons to debug wrong side
# classifications, so they are deterministic and always come in
# the same field order.
#
# Front (valid at >= 60):
#   name 30 | id_number 30 | gender 15 | nation 10 | birthday 10 | address 5
#
# Back (valid at >= 80 with a marker phrase, >= 70 without):
#   marker phrase 80 | authority 30 (10 partial) | period 20 (10 partial)
#
# Usage:
#   from idmerge.validation.scoring import score_front
#   verdict = score_front(fields)
#   verdict.is_valid, verdict.score, verdict.reasons
# ============================================================

import re
from dataclasses import dataclass

from idmerge.ocr.results import BackFields, FrontFields
from idmerge.validation.rules import DEFAULT_RULES, RuleTable

FRONT_PASS_SCORE = 60
BACK_PASS_SCORE_WITH_MARKER = 80
BACK_PASS_SCORE_WITHOUT_MARKER = 70
MAX_SCORE = 100

ID_NUMBER_PATTERN = re.compile(r"\d{17}[\dXx]")

PASS = "pass"
PARTIAL = "partial"
FAIL = "fail"


@dataclass(frozen=True)
class ValidationVerdict:
    """
    Outcome of scoring one extraction result for one side.

    Attributes:
        is_valid: Score reached the side's pass threshold.
        score: Confidence 0-100.
        reasons: One line per examined field, in a fixed order.
    """
    is_valid: bool
    score: int
    reasons: tuple = ()

    @classmethod
    def unavailable(cls, reason: str) -> "ValidationVerdict":
        """Verdict for a side that could not be recognized at all."""
        return cls(is_valid=False, score=0, reasons=(reason,))

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "score": self.score, "reasons": list(self.reasons)}


def _reason(field: str, status: str, points: int, detail: str) -> str:
    return f"{field}: {status} (+{points}) {detail}"


class FieldValidator:
    """
    Scores FrontFields and BackFields against a RuleTable.

    Example:
        >>> validator = FieldValidator()
        >>> validator.score_front(FrontFields(name="李雷", id_number="11010119900101001X")).score
        60
    """

    def __init__(self, rules: RuleTable = DEFAULT_RULES):
        self.rules = rules

    # --------------------------------------------------------
    # Front
    # --------------------------------------------------------

    def score_front(self, fields: FrontFields) -> ValidationVerdict:
        score = 0
        reasons = []

        name = fields.name.strip()
        if len(name) >= 2:
            score += 30
            reasons.append(_reason("name", PASS, 30, f"'{name}'"))
        elif name:
            reasons.append(_reason("name", PARTIAL, 0, f"too short: '{name}'"))
        else:
            reasons.append(_reason("name", FAIL, 0, "missing"))

        id_number = re.sub(r"\s+", "", fields.id_number)
        if ID_NUMBER_PATTERN.fullmatch(id_number):
            score += 30
            reasons.append(_reason("id_number", PASS, 30, "matches 17 digits + check digit"))
        elif id_number:
            reasons.append(
                _reason("id_number", PARTIAL, 0, f"'{id_number}' does not match 17 digits + check digit")
            )
        else:
            reasons.append(_reason("id_number", FAIL, 0, "missing"))

        gender = fields.gender.strip()
        if gender and self.rules.is_gender_label(gender):
            score += 15
            reasons.append(_reason("gender", PASS, 15, f"'{gender}'"))
        elif gender:
            reasons.append(_reason("gender", PARTIAL, 0, f"unrecognized label '{gender}'"))
        else:
            reasons.append(_reason("gender", FAIL, 0, "missing"))

        for field_name, points in (("nation", 10), ("birthday", 10), ("address", 5)):
            value = getattr(fields, field_name).strip()
            if value:
                score += points
                reasons.append(_reason(field_name, PASS, points, f"'{value}'"))
            else:
                reasons.append(_reason(field_name, FAIL, 0, "missing"))

        score = min(score, MAX_SCORE)
        return ValidationVerdict(
            is_valid=score >= FRONT_PASS_SCORE,
            score=score,
            reasons=tuple(reasons),
        )

    # --------------------------------------------------------
    # Back
    # --------------------------------------------------------

    def score_back(self, fields: BackFields) -> ValidationVerdict:
        score = 0
        reasons = []

        # Keyword tier; report markers in rule-table order
        markers = [phrase for phrase in self.rules.marker_phrases if phrase in fields.keyword_hits]
        if markers:
            score += 80
            reasons.append(_reason("keywords", PASS, 80, f"markers found: {', '.join(markers)}"))
        else:
            reasons.append(_reason("keywords", FAIL, 0, "no marker phrase"))

        # Supplementary tier, always evaluated
        authority = fields.issue_authority.strip()
        keyword = self.rules.matching_authority_keyword(authority) if authority else None
        if keyword:
            score += 30
            reasons.append(_reason("issue_authority", PASS, 30, f"'{authority}' contains '{keyword}'"))
        elif authority:
            score += 10
            reasons.append(
                _reason("issue_authority", PARTIAL, 10, f"'{authority}' matches no authority keyword")
            )
        else:
            reasons.append(_reason("issue_authority", FAIL, 0, "missing"))

        period = fields.valid_period.strip()
        if period and self.rules.period_matches(period):
            score += 20
            reasons.append(_reason("valid_period", PASS, 20, f"'{period}' matches a validity format"))
        elif period:
            score += 10
            reasons.append(
                _reason("valid_period", PARTIAL, 10, f"'{period}' is not a recognized validity format")
            )
        else:
            reasons.append(_reason("valid_period", FAIL, 0, "missing"))

        score = min(score, MAX_SCORE)
        threshold = BACK_PASS_SCORE_WITH_MARKER if markers else BACK_PASS_SCORE_WITHOUT_MARKER
        return ValidationVerdict(
            is_valid=score >= threshold,
            score=score,
            reasons=tuple(reasons),
        )


_default_validator = FieldValidator()


def score_front(fields: FrontFields) -> ValidationVerdict:
    """Score front fields with the default rule table."""
    return _default_validator.score_front(fields)


def score_back(fields: BackFields) -> ValidationVerdict:
    """Score back fields with the default rule table."""
    return _default_validator.score_back(fields)
