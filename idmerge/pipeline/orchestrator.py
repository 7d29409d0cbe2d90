# idmerge/pipeline/orchestrator.py
# ============================================================
# Batch Orchestrator — Units In, Merged Documents Out
# ============================================================
# Drives a whole batch: for each logical unit,
#   1. check it has at least two images
#   2. stage its images in a temporary directory it owns
#   3. let the BatchMatcher pick front and back
#   4. compose the merged page and save it as "<name>身份证.pdf"
#      (a name already used earlier in the batch gets the unit
#      name appended, so no unit overwrites another one's document)
#   5. record exactly one UnitOutcome
#
# Design Decisions:
#   1. Unit isolation: every unit failure (too few images, no back
#      side, timeout, composition) becomes a failed outcome and the
#      batch moves on. Only BatchLevelError stops a batch, and it
#      is raised before any unit starts.
#   2. Ordering: units may run concurrently (max_concurrent_units)
#      but results and summary always follow input order.
#   3. Cleanup: staging directories are removed on every path,
#      including timeouts.
#   4. The unit timeout covers matching and rendering. Saving is a
#      short local write and runs after it.
#
# Usage:
#   async with batch_session() as orchestrator:
#       result = await orchestrator.run(load_units(folders))
#   result.summary.failed_unit_names
#   result.save_json("output/batch.json")
# ============================================================

import asyncio
import json
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from config.settings import settings
from idmerge.classification.classifier import SideClassifier
from idmerge.classification.matcher import BatchMatcher, MatchResult
from idmerge.document.compositor import Compositor, PillowCompositor
from idmerge.document.storage import ArtifactStore, claim_title, stage_unit
from idmerge.document.units import LogicalUnit
from idmerge.errors import (
    ClassificationFailedError,
    CompositionError,
    CompositionFailedError,
    InsufficientImagesError,
    UnitError,
    UnitTimeoutError,
)
from idmerge.ocr.baidu import BaiduOcrClient
from idmerge.ocr.gateway import RecognitionGateway
from idmerge.pipeline.grouping import UnitDeclaration, UploadedFile, group_uploads
from idmerge.utils.events import EventSink, LoggingEventSink
from idmerge.utils.logger import get_logger
from idmerge.validation.rules import RuleTable, load_rules

logger = get_logger(__name__)

MIN_IMAGES_PER_UNIT = 2


# ============================================================
# Data Classes
# ============================================================

@dataclass
class UnitOutcome:
    """
    Final record of one unit. Written once, when the unit is done.

    Attributes:
        unit_name: Name of the unit (folder).
        success: Whether a merged document was produced.
        extracted_fields: Holder fields used for the document.
        front_image_ref / back_image_ref: Names of the chosen images.
        artifact_ref: Path of the saved document.
        error_message: Human-readable reason for a failure, naming the unit.
        error_kind: UnitErrorKind value of the failure.
        reasons: How the front/back pair was chosen.
        low_confidence: The pair includes a fallback pick.
        latency_ms: Wall time spent on this unit.
    """
    unit_name: str
    success: bool
    extracted_fields: Optional[dict] = None
    front_image_ref: Optional[str] = None
    back_image_ref: Optional[str] = None
    artifact_ref: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    reasons: list[str] = field(default_factory=list)
    low_confidence: bool = False
    latency_ms: float = 0.0

    @classmethod
    def failed(cls, error: UnitError, latency_ms: float = 0.0) -> "UnitOutcome":
        return cls(
            unit_name=error.unit_name,
            success=False,
            error_message=error.message,
            error_kind=error.kind.value,
            latency_ms=latency_ms,
        )

    def to_dict(self) -> dict:
        data = {
            "unit_name": self.unit_name,
            "success": self.success,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.success:
            data.update({
                "extracted_fields": self.extracted_fields,
                "front_image_ref": self.front_image_ref,
                "back_image_ref": self.back_image_ref,
                "artifact_ref": self.artifact_ref,
                "reasons": self.reasons,
                "low_confidence": self.low_confidence,
            })
        else:
            data.update({"error_message": self.error_message, "error_kind": self.error_kind})
        return data


@dataclass
class BatchSummary:
    """Counters folded over the outcomes, one record() per unit."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_unit_names: list[str] = field(default_factory=list)

    def record(self, outcome: UnitOutcome) -> None:
        self.total += 1
        if outcome.success:
            self.succeeded += 1
        else:
            self.failed += 1
            self.failed_unit_names.append(outcome.unit_name)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_unit_names": list(self.failed_unit_names),
        }


@dataclass
class BatchResult:
    """Outcomes in input order plus the summary."""
    results: list[UnitOutcome] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)
    total_latency_ms: float = 0.0

    @classmethod
    def from_outcomes(cls, outcomes: list[UnitOutcome], total_latency_ms: float = 0.0) -> "BatchResult":
        summary = BatchSummary()
        for outcome in outcomes:
            summary.record(outcome)
        return cls(results=list(outcomes), summary=summary, total_latency_ms=total_latency_ms)

    def to_dict(self) -> dict:
        return {
            "results": [outcome.to_dict() for outcome in self.results],
            "summary": self.summary.to_dict(),
        }

    def save_json(self, output_path: Union[str, Path]) -> str:
        """
        Save the batch response as a JSON file.

        Returns:
            The absolute path to the saved file.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(self.to_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.info(f"Saved JSON to [bold]{output_path}[/bold]")
        return str(output_path.resolve())


# ============================================================
# Batch Orchestrator
# ============================================================

class BatchOrchestrator:
    """
    Runs logical units through matching, composition and storage.

    Example:
        >>> orchestrator = BatchOrchestrator(matcher, PillowCompositor(), ArtifactStore("out"))
        >>> result = await orchestrator.run(units)
        >>> result.summary.total
    """

    def __init__(
        self,
        matcher: BatchMatcher,
        compositor: Compositor,
        store: ArtifactStore,
        unit_timeout: Optional[float] = None,
        max_concurrent_units: Optional[int] = None,
        temp_root: Optional[Union[str, Path]] = None,
        events: Optional[EventSink] = None,
    ):
        """
        Args:
            matcher: Picks the front/back pair of a unit.
            compositor: Renders the merged document.
            store: Persists rendered documents.
            unit_timeout: Seconds allowed for matching and rendering one unit. Default: from settings.
            max_concurrent_units: Units processed at the same time. Default: from settings.
            temp_root: Parent directory for staging. Default: system temp dir.
            events: Sink for unit events. Default: a LoggingEventSink.
        """
        self.matcher = matcher
        self.compositor = compositor
        self.store = store
        self.unit_timeout = unit_timeout or settings.effective_unit_timeout
        self.max_concurrent_units = max_concurrent_units or settings.max_concurrent_units
        self.temp_root = temp_root
        self._events = events or LoggingEventSink(__name__)

    async def run(self, units: list[LogicalUnit]) -> BatchResult:
        """
        Process every unit. Never raises for a unit-level failure.

        Returns:
            BatchResult whose results follow the order of `units`.
        """
        batch_start = time.perf_counter()
        logger.info(
            f"Batch starting — [green]{len(units)}[/green] units, "
            f"concurrency {self.max_concurrent_units}, unit timeout {self.unit_timeout:.0f}s"
        )

        semaphore = asyncio.Semaphore(self.max_concurrent_units)
        # Document names already used in this batch
        claimed_titles: set[str] = set()

        async def _run_unit(unit: LogicalUnit) -> UnitOutcome:
            async with semaphore:
                return await self._process_unit(unit, claimed_titles)

        outcomes = await asyncio.gather(*[_run_unit(unit) for unit in units])

        total_latency = (time.perf_counter() - batch_start) * 1000
        result = BatchResult.from_outcomes(list(outcomes), total_latency_ms=total_latency)
        summary = result.summary

        self._events.emit(
            "batch.completed",
            total=summary.total,
            succeeded=summary.succeeded,
            failed=summary.failed,
        )
        logger.info(
            f"Batch complete — {summary.succeeded}/{summary.total} units succeeded, "
            f"{total_latency:.0f}ms total"
        )
        return result

    async def run_uploads(
        self,
        uploads: list[UploadedFile],
        structure: Optional[list[UnitDeclaration]] = None,
    ) -> BatchResult:
        """Group raw uploads into units, then run them."""
        return await self.run(group_uploads(uploads, structure))

    async def _process_unit(self, unit: LogicalUnit, claimed_titles: set[str]) -> UnitOutcome:
        unit_start = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - unit_start) * 1000

        try:
            outcome = await self._produce_document(unit, claimed_titles)
            outcome.latency_ms = elapsed()
        except UnitError as e:
            outcome = UnitOutcome.failed(e, latency_ms=elapsed())
        except Exception as e:
            logger.exception(f"Unit '{unit.name}': Unexpected failure")
            error = ClassificationFailedError(
                unit.name,
                f'Unit "{unit.name}" failed unexpectedly: {type(e).__name__}: {e}',
            )
            outcome = UnitOutcome.failed(error, latency_ms=elapsed())

        if outcome.success:
            self._events.emit(
                "unit.completed",
                unit=unit.name,
                front=outcome.front_image_ref,
                back=outcome.back_image_ref,
                artifact=outcome.artifact_ref,
                low_confidence=outcome.low_confidence,
            )
        else:
            self._events.emit(
                "unit.failed", unit=unit.name, kind=outcome.error_kind, error=outcome.error_message
            )
        return outcome

    async def _produce_document(self, unit: LogicalUnit, claimed_titles: set[str]) -> UnitOutcome:
        if unit.error:
            raise ClassificationFailedError(
                unit.name, f'Unit "{unit.name}" could not be loaded: {unit.error}'
            )
        if unit.image_count < MIN_IMAGES_PER_UNIT:
            raise InsufficientImagesError(unit.name, unit.image_count)

        async with stage_unit(unit, self.temp_root) as staged:
            try:
                match, pdf = await asyncio.wait_for(
                    self._match_and_compose(staged), timeout=self.unit_timeout
                )
            except asyncio.TimeoutError:
                raise UnitTimeoutError(unit.name, self.unit_timeout)

        reasons = list(match.reasons)
        title = claim_title(match.extracted_name, unit.name, claimed_titles)
        if title != match.extracted_name:
            reasons.append(f"document: '{match.extracted_name}' already used in this batch, saved as '{title}'")
            logger.warning(
                f"Unit '{unit.name}': Document name '{match.extracted_name}' already used, saving as '{title}'"
            )

        # Saving stays outside the timeout: a worker thread cannot be stopped
        # once started, and a late write would leave a file for a failed unit
        try:
            artifact = await asyncio.to_thread(self.store.save, title, pdf)
        except OSError as e:
            raise CompositionFailedError(
                unit.name, f'Unit "{unit.name}": the merged document could not be saved: {e}'
            ) from e

        return UnitOutcome(
            unit_name=unit.name,
            success=True,
            extracted_fields=match.extracted_fields,
            front_image_ref=match.front.name,
            back_image_ref=match.back.name,
            artifact_ref=artifact,
            reasons=reasons,
            low_confidence=match.low_confidence,
        )

    async def _match_and_compose(self, staged: LogicalUnit) -> tuple[MatchResult, bytes]:
        match = await self.matcher.match(staged)
        data_by_ref = {image.ref: image.data for image in staged.images}
        return match, await self._compose(staged, match, data_by_ref)

    async def _compose(self, unit: LogicalUnit, match: MatchResult, data_by_ref: dict) -> bytes:
        try:
            pdf = await asyncio.to_thread(
                self.compositor.compose,
                data_by_ref[match.front.ref],
                data_by_ref[match.back.ref],
                match.extracted_fields,
            )
        except CompositionError as e:
            raise CompositionFailedError(
                unit.name, f'Unit "{unit.name}": the merged document could not be rendered: {e}'
            ) from e
        except Exception as e:
            logger.exception(f"Unit '{unit.name}': Compositor crashed")
            raise CompositionFailedError(
                unit.name,
                f'Unit "{unit.name}": the merged document could not be rendered: {type(e).__name__}: {e}',
            ) from e

        if not pdf:
            raise CompositionFailedError(unit.name, f'Unit "{unit.name}": the compositor returned an empty document')
        return pdf


# ============================================================
# Wiring
# ============================================================

@asynccontextmanager
async def batch_session(
    output_dir: Optional[Union[str, Path]] = None,
    rules: Optional[RuleTable] = None,
    max_concurrent_units: Optional[int] = None,
    events: Optional[EventSink] = None,
) -> AsyncIterator[BatchOrchestrator]:
    """
    Build an orchestrator on the Baidu OCR client and close the client afterwards.

    Raises:
        ConfigurationError: Recognition credentials are missing. Raised
            before any unit is attempted.
    """
    rules = rules or load_rules(settings.rules_path)
    client = BaiduOcrClient.from_settings(rules)
    try:
        gateway = RecognitionGateway(client, events=events)
        matcher = BatchMatcher(SideClassifier(gateway, rules=rules))
        yield BatchOrchestrator(
            matcher=matcher,
            compositor=PillowCompositor(),
            store=ArtifactStore(output_dir),
            max_concurrent_units=max_concurrent_units,
            temp_root=settings.temp_dir,
            events=events,
        )
    finally:
        await client.aclose()
