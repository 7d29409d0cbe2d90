# idmerge/ocr/results.py
# ============================================================
# Extraction Results
# ============================================================
# The recognition provider answers with loosely-typed key/value
# data. At the gateway boundary that data is mapped into one of
# two explicit, immutable records:
#   - FrontFields: identity fields printed on the card front
#   - BackFields: issuing authority, validity period, and which
#     national-document marker phrases were seen on the page
# ExtractionResult is the union of the two; the class is the tag.
# ============================================================

from dataclasses import asdict, dataclass, field
from typing import Union


@dataclass(frozen=True)
class FrontFields:
    """Fields recognized on the front of an ID card. Empty string = not recognized."""
    name: str = ""
    id_number: str = ""
    gender: str = ""
    nation: str = ""
    birthday: str = ""
    address: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BackFields:
    """Fields recognized on the back of an ID card."""
    issue_authority: str = ""
    valid_period: str = ""
    keyword_hits: frozenset = field(default_factory=frozenset)

    @property
    def is_complete(self) -> bool:
        """Both display fields are known."""
        return bool(self.issue_authority.strip() and self.valid_period.strip())

    def to_dict(self) -> dict:
        return {
            "issue_authority": self.issue_authority,
            "valid_period": self.valid_period,
            "keyword_hits": sorted(self.keyword_hits),
        }


ExtractionResult = Union[FrontFields, BackFields]
