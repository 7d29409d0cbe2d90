# idmerge/classification/matcher.py
# ============================================================
# Batch Matcher — Pick One Front and One Back per Unit
# ============================================================
# Classifies every image of a unit, then chooses:
#   - front: highest front score among images recommended as
#     front or with any front score; else the first image, with
#     the unit name standing in for the holder name
#   - back: highest back score among images recommended as back
#     or with any back score, never the image chosen as front;
#     else the first other image, flagged as low confidence
#
# A unit where the provider never answered a single call (every
# failure retryable, retries used up) is a failure, not a
# best-effort pick: there is nothing to pick from.
#
# The pick only starts once all classifications are done: which
# back wins depends on which image was claimed as front. Sorting
# is stable, so equal scores keep the unit's image order.
#
# Usage:
#   matcher = BatchMatcher(SideClassifier(gateway))
#   match = await matcher.match(unit)
#   match.front.ref, match.back.ref, match.extracted_name
# ============================================================

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from config.settings import settings
from idmerge.classification.classifier import ImageCandidate, Side, SideClassifier
from idmerge.document.units import LogicalUnit
from idmerge.errors import ClassificationFailedError, DocumentIncompleteError, InsufficientImagesError
from idmerge.utils.logger import get_logger

logger = get_logger(__name__)

LOW_CONFIDENCE_MARKER = "low confidence"


@dataclass
class MatchResult:
    """
    The chosen front/back pair of a unit.

    Attributes:
        front: Candidate used as the card front.
        back: Candidate used as the card back.
        extracted_name: Holder name, or the unit name when none was read.
        extracted_fields: Front fields plus the back's authority/period.
        reasons: Why each pick was made; fallbacks are spelled out.
        candidates: Every classified image, in unit order.
    """
    front: ImageCandidate
    back: ImageCandidate
    extracted_name: str
    extracted_fields: dict = field(default_factory=dict)
    reasons: list[str] = field(default_factory=list)
    candidates: list[ImageCandidate] = field(default_factory=list)
    front_fallback: bool = False
    back_fallback: bool = False

    @property
    def low_confidence(self) -> bool:
        return self.front_fallback or self.back_fallback


def _front_pool(candidates: list[ImageCandidate]) -> list[ImageCandidate]:
    pool = [c for c in candidates if c.recommended_side == Side.FRONT or c.front_score > 0]
    return sorted(pool, key=lambda c: c.front_score, reverse=True)


def _back_pool(candidates: list[ImageCandidate], front_ref: str) -> list[ImageCandidate]:
    pool = [
        c for c in candidates
        if c.ref != front_ref and (c.recommended_side == Side.BACK or c.back_score > 0)
    ]
    return sorted(pool, key=lambda c: c.back_score, reverse=True)


def _extracted_fields(front: ImageCandidate, back: ImageCandidate, name: str) -> dict:
    fields = front.front_fields.to_dict() if front.front_fields else {}
    fields["name"] = name
    if back.back_fields:
        fields["issue_authority"] = back.back_fields.issue_authority
        fields["valid_period"] = back.back_fields.valid_period
    return fields


class BatchMatcher:
    """Chooses the front/back pair of a LogicalUnit."""

    def __init__(self, classifier: SideClassifier, max_concurrent_images: Optional[int] = None):
        self.classifier = classifier
        self.max_concurrent_images = max_concurrent_images or settings.max_concurrent_images

    async def classify_all(self, unit: LogicalUnit) -> list[ImageCandidate]:
        """Classify every image of the unit; results keep unit order."""
        semaphore = asyncio.Semaphore(self.max_concurrent_images)

        async def _classify(image):
            async with semaphore:
                return await self.classifier.classify(image)

        return list(await asyncio.gather(*[_classify(image) for image in unit.images]))

    def _provider_unavailable(self, unit: LogicalUnit, candidates: list[ImageCandidate]) -> ClassificationFailedError:
        last_error = candidates[-1].recognition_errors[-1]
        attempts = self.classifier.gateway.max_attempts
        logger.error(f"Unit '{unit.name}': Recognition provider unavailable, no document produced")
        return ClassificationFailedError(
            unit.name,
            f'Unit "{unit.name}" failed: recognition provider unavailable after '
            f"{attempts} attempts: {last_error}",
        )

    async def match(self, unit: LogicalUnit) -> MatchResult:
        """
        Pick the front and back images of `unit`.

        Raises:
            InsufficientImagesError: The unit has fewer than 2 images.
            ClassificationFailedError: The recognition provider did not
                answer any call for any image of the unit.
            DocumentIncompleteError: No image is left for the back side
                once the front has been chosen.
        """
        if unit.image_count < 2:
            raise InsufficientImagesError(unit.name, unit.image_count)

        candidates = await self.classify_all(unit)
        if all(c.provider_unavailable for c in candidates):
            raise self._provider_unavailable(unit, candidates)

        reasons: list[str] = []

        # --- Front ---
        front_pool = _front_pool(candidates)
        front_fallback = not front_pool
        if front_pool:
            front = front_pool[0]
            reasons.append(f"front: {front.name} (score {front.front_score})")
            extracted_name = front.front_fields.name.strip() if front.front_fields else ""
            if not extracted_name:
                extracted_name = unit.name
                reasons.append(f"name: not recognized, using unit name '{unit.name}'")
        else:
            front = candidates[0]
            extracted_name = unit.name
            reasons.append(f"front: no candidate, fallback to first image {front.name}")
            reasons.append(f"name: using unit name '{unit.name}'")
            logger.warning(f"Unit '{unit.name}': No front candidate — using first image {front.name}")

        # --- Back ---
        back_pool = _back_pool(candidates, front.ref)
        back_fallback = not back_pool
        if back_pool:
            back = back_pool[0]
            reasons.append(f"back: {back.name} (score {back.back_score})")
        else:
            remaining = [c for c in candidates if c.ref != front.ref]
            if not remaining:
                raise DocumentIncompleteError(unit.name)
            back = remaining[0]
            reasons.append(f"back: {LOW_CONFIDENCE_MARKER}, best-effort fallback to {back.name}")
            logger.warning(
                f"Unit '{unit.name}': No back candidate — best-effort pick {back.name}, validation did not pass"
            )

        logger.info(
            f"Unit '{unit.name}': Matched front={front.name} ({front.front_score}), "
            f"back={back.name} ({back.back_score}), name='{extracted_name}'"
        )

        return MatchResult(
            front=front,
            back=back,
            extracted_name=extracted_name,
            extracted_fields=_extracted_fields(front, back, extracted_name),
            reasons=reasons,
            candidates=candidates,
            front_fallback=front_fallback,
            back_fallback=back_fallback,
        )
