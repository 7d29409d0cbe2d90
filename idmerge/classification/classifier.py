# idmerge/classification/classifier.py
# ============================================================
# Side Classifier — Is This Image a Front or a Back?
# ============================================================
# Scores a single image under both side hypotheses:
#   1. Keyword scan (full-page text) looking for the marker
#      phrases printed on the card back
#   2. Front extraction → front score
#   3. Back extraction → back score (skipped when the scan alone
#      already gave markers plus authority and period)
# Steps 1 and 2 run concurrently.
#
# Recognition failures never escape: a side whose recognition
# failed gets a zero, invalid verdict. One image failing one
# hypothesis is the normal case (a back photo is not a front).
# The failures are kept on the candidate so the matcher can tell
# "not an ID card" apart from "the provider never answered".
#
# Usage:
#   classifier = SideClassifier(gateway)
#   candidate = await classifier.classify(unit_image)
#   candidate.recommended_side  # Side.FRONT / Side.BACK / Side.UNKNOWN
# ============================================================

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from idmerge.document.units import UnitImage
from idmerge.errors import RecognitionError
from idmerge.ocr.gateway import RecognitionGateway
from idmerge.ocr.hints import RecognitionHint
from idmerge.ocr.results import BackFields, FrontFields
from idmerge.utils.logger import get_logger
from idmerge.validation.rules import DEFAULT_RULES, RuleTable
from idmerge.validation.scoring import (
    BACK_PASS_SCORE_WITHOUT_MARKER,
    FRONT_PASS_SCORE,
    FieldValidator,
    ValidationVerdict,
)

logger = get_logger(__name__)


class Side(str, Enum):
    FRONT = "front"
    BACK = "back"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ImageCandidate:
    """
    Classification of one image. Created once, never modified.

    Attributes:
        ref: Image identity within its unit.
        name: Display name of the image.
        front_verdict / back_verdict: Scores for each side hypothesis.
        front_fields / back_fields: What was extracted, when anything was.
        recommended_side: The side this image most likely shows.
        recognition_errors: Every recognition call that failed.
        provider_answered: At least one call got a response.
    """
    ref: str
    name: str
    front_verdict: Optional[ValidationVerdict] = None
    back_verdict: Optional[ValidationVerdict] = None
    front_fields: Optional[FrontFields] = None
    back_fields: Optional[BackFields] = None
    recommended_side: Side = Side.UNKNOWN
    recognition_errors: tuple[RecognitionError, ...] = ()
    provider_answered: bool = True

    @property
    def front_score(self) -> int:
        return self.front_verdict.score if self.front_verdict else 0

    @property
    def back_score(self) -> int:
        return self.back_verdict.score if self.back_verdict else 0

    @property
    def provider_unavailable(self) -> bool:
        """No call was answered and every failure was retryable (retries ran out)."""
        return (
            not self.provider_answered
            and bool(self.recognition_errors)
            and all(e.retryable for e in self.recognition_errors)
        )

    def to_dict(self) -> dict:
        return {
            "ref": self.ref,
            "name": self.name,
            "recommended_side": self.recommended_side.value,
            "front": self.front_verdict.to_dict() if self.front_verdict else None,
            "back": self.back_verdict.to_dict() if self.back_verdict else None,
            "front_fields": self.front_fields.to_dict() if self.front_fields else None,
            "back_fields": self.back_fields.to_dict() if self.back_fields else None,
            "provider_unavailable": self.provider_unavailable,
        }


def recommend_side(front_score: int, back_score: int) -> Side:
    """
    Pick the side an image most likely shows.

    Precedence: a clearly better, passing front; then a clearly better,
    passing back; then a non-zero tie, which goes to the front because
    the front carries the identity fields.
    """
    if front_score > back_score and front_score >= FRONT_PASS_SCORE:
        return Side.FRONT
    if back_score > front_score and back_score >= BACK_PASS_SCORE_WITHOUT_MARKER:
        return Side.BACK
    if front_score == back_score and front_score > 0:
        return Side.FRONT
    return Side.UNKNOWN


def merge_back_fields(extracted: Optional[BackFields], scanned: Optional[BackFields]) -> Optional[BackFields]:
    """Extracted values win; the scan fills gaps and supplies the marker hits."""
    if extracted is None:
        return scanned
    if scanned is None:
        return extracted
    return BackFields(
        issue_authority=extracted.issue_authority or scanned.issue_authority,
        valid_period=extracted.valid_period or scanned.valid_period,
        keyword_hits=extracted.keyword_hits | scanned.keyword_hits,
    )


class SideClassifier:
    """Scores images for both card sides using a RecognitionGateway."""

    def __init__(
        self,
        gateway: RecognitionGateway,
        validator: Optional[FieldValidator] = None,
        rules: RuleTable = DEFAULT_RULES,
    ):
        self.gateway = gateway
        self.rules = rules
        self.validator = validator or FieldValidator(rules)

    async def _recognize(self, image: UnitImage, hint: RecognitionHint, expected: type, failures: list):
        """(result, None) on success, else (None, reason). RecognitionErrors also go to `failures`."""
        try:
            result = await self.gateway.recognize(image.data, hint)
        except RecognitionError as e:
            failures.append(e)
            return None, f"{hint.value}: recognition failed ({e.kind.value}): {e.message}"
        if not isinstance(result, expected):
            return None, f"{hint.value}: provider returned {type(result).__name__}"
        return result, None

    async def classify(self, image: UnitImage) -> ImageCandidate:
        """Score `image` as front and as back. Never raises for recognition failures."""
        failures: list[RecognitionError] = []
        calls = 2
        (scanned, scan_error), (front_fields, front_error) = await asyncio.gather(
            self._recognize(image, RecognitionHint.COMBINED, BackFields, failures),
            self._recognize(image, RecognitionHint.FRONT, FrontFields, failures),
        )

        if front_fields is not None:
            front_verdict = self.validator.score_front(front_fields)
        else:
            front_verdict = ValidationVerdict.unavailable(front_error)

        has_markers = scanned is not None and bool(
            scanned.keyword_hits & frozenset(self.rules.marker_phrases)
        )
        extracted, back_error = None, None
        if has_markers and scanned.is_complete:
            logger.debug(f"{image.display_name}: keyword scan complete, back extraction skipped")
        else:
            calls += 1
            extracted, back_error = await self._recognize(image, RecognitionHint.BACK, BackFields, failures)

        back_fields = merge_back_fields(extracted, scanned)
        if back_fields is not None:
            back_verdict = self.validator.score_back(back_fields)
        else:
            back_verdict = ValidationVerdict.unavailable(back_error or scan_error)

        side = recommend_side(front_verdict.score, back_verdict.score)
        logger.info(
            f"Classified [bold]{image.display_name}[/bold] — "
            f"front {front_verdict.score}, back {back_verdict.score} → {side.value}"
        )

        return ImageCandidate(
            ref=image.ref,
            name=image.display_name,
            front_verdict=front_verdict,
            back_verdict=back_verdict,
            front_fields=front_fields,
            back_fields=back_fields,
            recommended_side=side,
            recognition_errors=tuple(failures),
            provider_answered=len(failures) < calls,
        )
