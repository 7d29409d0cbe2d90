# idmerge/errors.py
# ============================================================
# Error Taxonomy
# ============================================================
# Three layers of failure, each stopping at a different place:
#   - RecognitionError: one provider call failed. Absorbed by the
#     side classifier and turned into a zero score; only a unit
#     where the provider never answered at all fails because of it.
#   - UnitError: one unit cannot produce a document. Converted to
#     a failed UnitOutcome by the orchestrator; the batch goes on.
#   - BatchLevelError: the batch cannot start at all (missing
#     credentials, malformed request). Surfaces to the caller.
# A low validation score is NOT an exception: it is carried as
# ValidationVerdict.is_valid == False.
# ============================================================

from enum import Enum


class IDMergeError(Exception):
    """Base class for every error raised by this package."""


# ============================================================
# Recognition
# ============================================================

class RecognitionErrorKind(str, Enum):
    """
    Failure classes of the recognition provider.

    - TRANSIENT: network trouble, timeouts, rate limits, provider 5xx
    - AUTH: access token missing, invalid, or expired
    - INVALID: the image itself cannot be recognized (bad format,
      not an ID card, wrong side); retrying will not help
    """
    TRANSIENT = "transient"
    AUTH = "auth"
    INVALID = "invalid"


class RecognitionError(IDMergeError):
    """A recognition call failed with a classified `kind`."""

    def __init__(self, kind: RecognitionErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind in (RecognitionErrorKind.TRANSIENT, RecognitionErrorKind.AUTH)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


# ============================================================
# Composition
# ============================================================

class CompositionError(IDMergeError):
    """The compositor could not render the merged document."""


# ============================================================
# Unit-level errors
# ============================================================

class UnitErrorKind(str, Enum):
    INSUFFICIENT_IMAGES = "insufficient_images"
    DOCUMENT_INCOMPLETE = "document_incomplete"
    CLASSIFICATION_FAILED = "classification_failed"
    COMPOSITION_FAILED = "composition_failed"
    TIMEOUT = "timeout"


class UnitError(IDMergeError):
    """A single unit failed. Never aborts the batch."""

    kind: UnitErrorKind = UnitErrorKind.CLASSIFICATION_FAILED

    def __init__(self, unit_name: str, message: str):
        super().__init__(message)
        self.unit_name = unit_name
        self.message = message


class InsufficientImagesError(UnitError):
    kind = UnitErrorKind.INSUFFICIENT_IMAGES

    def __init__(self, unit_name: str, count: int):
        message = (
            f'Unit "{unit_name}" does not have enough images: at least 2 images '
            f"are required, found {count}."
        )
        if count == 0:
            message += " File matching may have failed."
        super().__init__(unit_name, message)
        self.count = count


class DocumentIncompleteError(UnitError):
    kind = UnitErrorKind.DOCUMENT_INCOMPLETE

    def __init__(self, unit_name: str):
        super().__init__(
            unit_name,
            f'Document incomplete for unit "{unit_name}": no usable back side image '
            f"remains after choosing the front side. Make sure the folder contains "
            f"clear photos of both sides of the card.",
        )


class ClassificationFailedError(UnitError):
    kind = UnitErrorKind.CLASSIFICATION_FAILED


class CompositionFailedError(UnitError):
    kind = UnitErrorKind.COMPOSITION_FAILED


class UnitTimeoutError(UnitError):
    kind = UnitErrorKind.TIMEOUT

    def __init__(self, unit_name: str, timeout_s: float):
        super().__init__(
            unit_name,
            f'Unit "{unit_name}" timed out after {timeout_s:.0f}s while recognizing '
            f"and rendering its images.",
        )
        self.timeout_s = timeout_s


# ============================================================
# Batch-level errors
# ============================================================

class BatchLevelError(IDMergeError):
    """The batch cannot run; nothing has been attempted."""


class ConfigurationError(BatchLevelError):
    """Required configuration (e.g. recognition credentials) is missing."""


class StructureError(BatchLevelError):
    """The declared unit structure of a batch request is malformed."""
