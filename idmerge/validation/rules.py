# idmerge/validation/rules.py
# ============================================================
# Locale Rule Table
# ============================================================
# The heuristics that recognize an ID card back are locale data,
# not code: marker phrases printed on the card, substrings of
# issuing-authority names, and the accepted validity-period
# formats. They are bundled into one immutable RuleTable that is
# injected wherever scoring or text mapping happens, and can be
# overridden from a JSON file without touching the code.
#
# Usage:
#   from idmerge.validation.rules import DEFAULT_RULES, RuleTable
#   rules = RuleTable.from_json("rules/zh_cn.json")
# ============================================================

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from idmerge.utils.logger import get_logger

logger = get_logger(__name__)


_DEFAULT_PERIOD_PATTERNS = (
    r"\d{4}\.\d{2}\.\d{2}-\d{4}\.\d{2}\.\d{2}",
    r"\d{4}\.\d{2}\.\d{2}-(长期|indefinite)",
    r"\d{8}-\d{8}",
    r"\d{8}-(长期|indefinite)",
    r"(长期|indefinite)",
)


@dataclass(frozen=True)
class RuleTable:
    """
    Locale-specific classification heuristics.

    Attributes:
        marker_phrases: Phrases whose presence on a page strongly
            indicates the back of a national ID card.
        authority_keywords: Substrings expected in an issuing-authority name.
        period_patterns: Regular expressions a validity period must fully
            match (whitespace is removed before matching).
        gender_labels: Accepted gender values, compared case-insensitively.
    """
    marker_phrases: tuple = ("中华人民共和国", "居民身份证")
    authority_keywords: tuple = ("公安局", "分局", "派出所", "公安")
    period_patterns: tuple = _DEFAULT_PERIOD_PATTERNS
    gender_labels: tuple = ("男", "女", "male", "female")

    def __post_init__(self):
        # Fail at load time, not in the middle of a batch
        for pattern in self.period_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid period pattern {pattern!r}: {e}") from e

    def find_markers(self, text: str) -> frozenset:
        """Marker phrases contained in `text`."""
        return frozenset(phrase for phrase in self.marker_phrases if phrase in text)

    def matching_authority_keyword(self, authority: str) -> Optional[str]:
        for keyword in self.authority_keywords:
            if keyword in authority:
                return keyword
        return None

    def period_matches(self, period: str) -> bool:
        compact = re.sub(r"\s+", "", period)
        return any(re.fullmatch(pattern, compact) for pattern in self.period_patterns)

    def is_gender_label(self, value: str) -> bool:
        normalized = value.strip().lower()
        return any(normalized == label.lower() for label in self.gender_labels)

    def to_dict(self) -> dict:
        return {
            "marker_phrases": list(self.marker_phrases),
            "authority_keywords": list(self.authority_keywords),
            "period_patterns": list(self.period_patterns),
            "gender_labels": list(self.gender_labels),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RuleTable":
        """Build a table from a dict; missing keys keep their defaults."""
        known = {"marker_phrases", "authority_keywords", "period_patterns", "gender_labels"}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown rule table keys: {sorted(unknown)}")
        return cls(**{key: tuple(value) for key, value in data.items()})

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "RuleTable":
        path = Path(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        table = cls.from_dict(data)
        logger.info(f"Loaded rule table from [bold]{path}[/bold]")
        return table


DEFAULT_RULES = RuleTable()


def load_rules(path: Optional[Union[str, Path]] = None) -> RuleTable:
    """The rule table at `path`, or the built-in defaults."""
    if path is None:
        return DEFAULT_RULES
    return RuleTable.from_json(path)
