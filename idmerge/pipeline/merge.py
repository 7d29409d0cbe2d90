# idmerge/pipeline/merge.py
# ============================================================
# Direct Merge — Labelled Front + Back → One Document
# ============================================================
# For callers who already know which photo is which side. No
# classification or matching happens: the front image is read
# as a front and the back image as a back (both optional, for
# the field block only), then the pair is composed and saved.
#
# Document name: the explicit name when given, else the holder
# name read from the front, else the fallback (the front file's
# stem when called from the CLI).
#
# Recognition problems never block the merge; the page is then
# rendered with whatever fields were read.
#
# Usage:
#   doc = await merge_pair(front, back, compositor, store, gateway=gateway)
#   doc.artifact_ref
# ============================================================

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from idmerge.document.compositor import Compositor
from idmerge.document.storage import ArtifactStore
from idmerge.errors import CompositionError, RecognitionError
from idmerge.ocr.gateway import RecognitionGateway
from idmerge.ocr.hints import RecognitionHint
from idmerge.ocr.results import BackFields, FrontFields
from idmerge.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class MergedDocument:
    """A saved front/back document and the fields printed on it."""
    title: str
    artifact_ref: str
    extracted_fields: dict = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "artifact_ref": self.artifact_ref,
            "extracted_fields": self.extracted_fields,
            "notes": list(self.notes),
        }


async def _read_side(gateway: RecognitionGateway, data: bytes, hint: RecognitionHint, expected: type, notes: list):
    try:
        result = await gateway.recognize(data, hint)
    except RecognitionError as e:
        notes.append(f"{hint.value}: fields not read ({e})")
        logger.warning(f"Merge: {hint.value} side not recognized: {e}")
        return None
    if not isinstance(result, expected):
        notes.append(f"{hint.value}: provider returned {type(result).__name__}")
        return None
    return result


async def read_fields(gateway: RecognitionGateway, front: bytes, back: bytes, notes: list) -> dict:
    """Front fields plus the back's authority and period; missing sides are skipped."""
    front_fields, back_fields = await asyncio.gather(
        _read_side(gateway, front, RecognitionHint.FRONT, FrontFields, notes),
        _read_side(gateway, back, RecognitionHint.BACK, BackFields, notes),
    )
    fields = front_fields.to_dict() if front_fields else {}
    if back_fields:
        fields["issue_authority"] = back_fields.issue_authority
        fields["valid_period"] = back_fields.valid_period
    return fields


async def merge_pair(
    front: bytes,
    back: bytes,
    compositor: Compositor,
    store: ArtifactStore,
    gateway: Optional[RecognitionGateway] = None,
    name: Optional[str] = None,
    fallback_name: str = "unnamed",
) -> MergedDocument:
    """
    Compose an explicitly labelled front and back into one saved document.

    Args:
        front / back: Raw image bytes of each side.
        compositor: Renders the page.
        store: Persists the PDF.
        gateway: Reads the printed fields. None skips recognition.
        name: Document name; overrides the recognized holder name.
        fallback_name: Used when no name is given or recognized.

    Raises:
        CompositionError: The page could not be rendered.
        OSError: The document could not be saved.
    """
    notes: list[str] = []
    fields = await read_fields(gateway, front, back, notes) if gateway else {}

    title = (name or "").strip() or fields.get("name", "").strip() or fallback_name
    if name or not fields.get("name"):
        fields["name"] = title

    pdf = await asyncio.to_thread(compositor.compose, front, back, fields)
    if not pdf:
        raise CompositionError("The compositor returned an empty document")

    artifact = await asyncio.to_thread(store.save, title, pdf)
    logger.info(f"Merged document [bold]{title}[/bold] saved to {artifact}")
    return MergedDocument(title=title, artifact_ref=artifact, extracted_fields=fields, notes=notes)
