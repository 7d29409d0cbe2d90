# idmerge/ocr/mapping.py
# ============================================================
# Provider Response Mapping
# ============================================================
# Turns raw Baidu OCR JSON payloads into explicit extraction
# records. This is the only place that knows the provider's key
# names. A payload missing the keys we rely on is rejected here
# as INVALID instead of flowing on as empty strings.
#
# Payload shapes:
#   idcard:        {"words_result": {"姓名": {"words": "..."}, ...},
#                   "image_status": "normal"}
#   general_basic: {"words_result": [{"words": "..."}, ...]}
#   error:         {"error_code": 110, "error_msg": "..."}
# ============================================================

import re
from typing import Optional

from idmerge.errors import RecognitionError, RecognitionErrorKind
from idmerge.ocr.hints import RecognitionHint
from idmerge.ocr.results import BackFields, ExtractionResult, FrontFields
from idmerge.validation.rules import DEFAULT_RULES, RuleTable

# Provider key → FrontFields attribute
FRONT_KEYS = {
    "姓名": "name",
    "公民身份号码": "id_number",
    "性别": "gender",
    "民族": "nation",
    "出生": "birthday",
    "住址": "address",
}

BACK_AUTHORITY_KEY = "签发机关"
BACK_ISSUE_DATE_KEY = "签发日期"
BACK_EXPIRY_DATE_KEY = "失效日期"
BACK_KEYS = (BACK_AUTHORITY_KEY, BACK_ISSUE_DATE_KEY, BACK_EXPIRY_DATE_KEY)

# Labels printed next to the values on the card back
AUTHORITY_LABEL = "签发机关"
PERIOD_LABEL = "有效期限"

# image_status values meaning "this is not the side you asked for"
REJECTED_IMAGE_STATUSES = {"non_idcard", "reversed_side", "other_type_card"}

# Provider error codes
AUTH_ERROR_CODES = {110, 111}
TRANSIENT_ERROR_CODES = {1, 2, 4, 17, 18, 19, 282000}


# ============================================================
# Error translation
# ============================================================

def classify_error_code(code: int) -> RecognitionErrorKind:
    """Map a provider `error_code` to a recognition error kind."""
    if code in AUTH_ERROR_CODES:
        return RecognitionErrorKind.AUTH
    if code in TRANSIENT_ERROR_CODES:
        return RecognitionErrorKind.TRANSIENT
    return RecognitionErrorKind.INVALID


def raise_for_error(payload: dict) -> None:
    """Raise RecognitionError if the payload is a provider error response."""
    code = payload.get("error_code")
    if code is None:
        return
    try:
        code = int(code)
    except (TypeError, ValueError):
        raise RecognitionError(
            RecognitionErrorKind.INVALID, f"Malformed error code in response: {code!r}"
        )
    message = payload.get("error_msg") or "unknown provider error"
    raise RecognitionError(classify_error_code(code), f"provider error {code}: {message}")


# ============================================================
# Field mapping
# ============================================================

def _words_dict(payload: dict, required: tuple) -> dict:
    words = payload.get("words_result")
    if not isinstance(words, dict):
        raise RecognitionError(
            RecognitionErrorKind.INVALID, "Response has no structured words_result"
        )
    missing = [key for key in required if key not in words]
    if missing:
        raise RecognitionError(
            RecognitionErrorKind.INVALID,
            f"Response is missing expected fields: {', '.join(missing)}",
        )
    return words


def _word(words: dict, key: str) -> str:
    entry = words.get(key) or {}
    if isinstance(entry, dict):
        return str(entry.get("words") or "").strip()
    return str(entry).strip()


def _check_image_status(payload: dict) -> None:
    status = payload.get("image_status")
    if status in REJECTED_IMAGE_STATUSES:
        raise RecognitionError(
            RecognitionErrorKind.INVALID, f"Provider rejected the image: image_status={status}"
        )


def map_front_words(payload: dict) -> FrontFields:
    raise_for_error(payload)
    _check_image_status(payload)
    words = _words_dict(payload, tuple(FRONT_KEYS))
    return FrontFields(**{attr: _word(words, key) for key, attr in FRONT_KEYS.items()})


def join_period(issue_date: str, expiry_date: str) -> str:
    """`签发日期` + `失效日期` → `YYYYMMDD-YYYYMMDD` (or the one that is known)."""
    if issue_date and expiry_date:
        return f"{issue_date}-{expiry_date}"
    return issue_date or expiry_date


def map_back_words(payload: dict) -> BackFields:
    raise_for_error(payload)
    _check_image_status(payload)
    words = _words_dict(payload, BACK_KEYS)
    return BackFields(
        issue_authority=_word(words, BACK_AUTHORITY_KEY),
        valid_period=join_period(
            _word(words, BACK_ISSUE_DATE_KEY), _word(words, BACK_EXPIRY_DATE_KEY)
        ),
    )


def _labelled_value(lines: list[str], label: str) -> str:
    """
    Value printed after `label`, on the same line or, when the label
    stands alone, on the next line.
    """
    for index, line in enumerate(lines):
        if label not in line:
            continue
        value = line.split(label, 1)[1]
        value = re.sub(r"^[\s:：]+", "", value).strip()
        if value:
            return value
        if index + 1 < len(lines):
            return lines[index + 1].strip()
    return ""


def map_general_words(payload: dict, rules: RuleTable = DEFAULT_RULES) -> BackFields:
    """Full-page scan → marker hits plus any labelled authority/period lines."""
    raise_for_error(payload)
    items = payload.get("words_result")
    if not isinstance(items, list):
        raise RecognitionError(RecognitionErrorKind.INVALID, "Response has no words_result list")

    lines = [str(item.get("words") or "").strip() for item in items if isinstance(item, dict)]
    # Phrases can be split over two detected lines
    hits = rules.find_markers("".join(lines))
    return BackFields(
        issue_authority=_labelled_value(lines, AUTHORITY_LABEL),
        valid_period=_labelled_value(lines, PERIOD_LABEL),
        keyword_hits=hits,
    )


def map_response(
    payload: dict,
    hint: RecognitionHint,
    rules: Optional[RuleTable] = None,
) -> ExtractionResult:
    """Dispatch on the hint the call was made under."""
    if hint == RecognitionHint.FRONT:
        return map_front_words(payload)
    if hint == RecognitionHint.BACK:
        return map_back_words(payload)
    return map_general_words(payload, rules or DEFAULT_RULES)
