# idmerge/document/units.py
# ============================================================
# Logical Units — One Card Owner's Images
# ============================================================
# A logical unit is the set of candidate images for one physical
# ID card (normally one folder). The images arrive unordered and
# unlabelled; deciding which is the front and which the back is
# the matcher's job.
# ============================================================

from dataclasses import dataclass, field, replace
from pathlib import PurePath
from typing import Optional


@dataclass(frozen=True)
class UnitImage:
    """
    One raw image belonging to a unit.

    Attributes:
        name: File name as declared by the caller.
        data: Raw image bytes.
        ref: Identity of the image within its unit. Defaults to `name`;
            becomes the staged file path once the unit is staged on disk.
    """
    name: str
    data: bytes = field(repr=False)
    ref: str = ""

    def __post_init__(self):
        if not self.ref:
            object.__setattr__(self, "ref", self.name)

    @property
    def display_name(self) -> str:
        return PurePath(self.name.replace("\\", "/")).name or self.name

    def with_ref(self, ref: str) -> "UnitImage":
        return replace(self, ref=ref)


@dataclass
class LogicalUnit:
    """
    One card owner's images, processed as a whole.

    Attributes:
        name: Unit name (folder name); also the fallback holder name.
        images: Candidate images, in the order they were supplied.
        error: Set when the unit is already known to be unprocessable
            (e.g. its folder does not exist).
    """
    name: str
    images: list[UnitImage] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def image_count(self) -> int:
        return len(self.images)
