# idmerge/ocr/hints.py
# ============================================================
# Recognition Hints for the Baidu OCR API
# ============================================================
# A hint tells the recognition provider which hypothesis to test
# for an image. Each hint maps to a different OCR endpoint and
# request parameters. This module centralizes that table so it
# can be modified or extended in one place.
#
# Usage:
#   from idmerge.ocr.hints import RecognitionHint, get_endpoint
#   endpoint = get_endpoint(RecognitionHint.FRONT)
#   url = f"{api_base}/{endpoint.path}"
# ============================================================

from dataclasses import dataclass, field
from enum import Enum


class RecognitionHint(str, Enum):
    """
    Side hypotheses a recognition call can be made under.

    - FRONT: ID card front → name, ID number, gender, nation, ...
    - BACK: ID card back → issuing authority, validity dates
    - COMBINED: full-page text scan → marker phrases plus any
      labelled authority/period lines found in the raw text
    """
    FRONT = "front"
    BACK = "back"
    COMBINED = "combined"


@dataclass(frozen=True)
class Endpoint:
    """One OCR endpoint: path under the API base and its form parameters."""
    path: str
    params: dict = field(default_factory=dict)


# ============================================================
# Endpoint Table
# ============================================================
# NOTE: `detect_direction` lets the provider correct rotated
# photos, which are common in phone scans.
# ============================================================

_ENDPOINTS: dict[RecognitionHint, Endpoint] = {
    RecognitionHint.FRONT: Endpoint(
        path="idcard",
        params={"id_card_side": "front", "detect_direction": "true", "detect_risk": "false"},
    ),
    RecognitionHint.BACK: Endpoint(
        path="idcard",
        params={"id_card_side": "back", "detect_direction": "true", "detect_risk": "false"},
    ),
    RecognitionHint.COMBINED: Endpoint(
        path="general_basic",
        params={"detect_direction": "true", "probability": "false"},
    ),
}


def get_endpoint(hint: RecognitionHint) -> Endpoint:
    """
    Get the endpoint used for a recognition hint.

    Raises:
        ValueError: If the hint is not recognized.
    """
    if hint not in _ENDPOINTS:
        raise ValueError(
            f"Unknown recognition hint: {hint}. "
            f"Available hints: {list_hints()}"
        )
    return _ENDPOINTS[hint]


def list_hints() -> list[str]:
    """All hint names, e.g. for CLI help text."""
    return [hint.value for hint in RecognitionHint]
