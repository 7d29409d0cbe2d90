# idmerge/pipeline/grouping.py
# ============================================================
# Upload Grouping — Raw Uploads → LogicalUnits
# ============================================================
# Uploads arrive as a flat list of files. Two ways to split them
# into units:
#
#   1. Declared structure: the caller lists each unit and the
#      file names it expects. Folder and file names are compared
#      case-insensitively. A declared unit whose files were not
#      uploaded still becomes a unit, with zero images, so the
#      batch reports it instead of silently dropping it.
#
#   2. Path convention: no structure given, so the first segment
#      of each upload's path is its unit ("alice/front.jpg" →
#      "alice"). Files without a folder go to "default".
#
# Usage:
#   uploads = [UploadedFile("alice/1.jpg", data1), UploadedFile("alice/2.jpg", data2)]
#   units = group_uploads(uploads)
#   units = group_uploads(uploads, parse_structure(request_json))
# ============================================================

import json
import re
from dataclasses import dataclass, field
from typing import Optional

from idmerge.document.units import LogicalUnit, UnitImage
from idmerge.errors import StructureError
from idmerge.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_UNIT_NAME = "default"

_SEPARATOR = re.compile(r"[/\\]")


@dataclass(frozen=True)
class UploadedFile:
    """
    One uploaded file as handed over by the transport layer.

    Attributes:
        path: Declared relative path, e.g. "alice/front.jpg".
        data: Raw file bytes.
        folder: Folder explicitly declared for this file, if any.
        file_name: File name explicitly declared for this file, if any.
    """
    path: str
    data: bytes = field(repr=False)
    folder: Optional[str] = None
    file_name: Optional[str] = None

    @property
    def resolved_folder(self) -> str:
        if self.folder:
            return self.folder
        parts = _SEPARATOR.split(self.path, maxsplit=1)
        if len(parts) == 2 and parts[0]:
            return parts[0]
        return DEFAULT_UNIT_NAME

    @property
    def resolved_file_name(self) -> str:
        if self.file_name:
            return self.file_name
        return _SEPARATOR.split(self.path)[-1]

    def to_image(self) -> UnitImage:
        return UnitImage(name=self.resolved_file_name, data=self.data)


@dataclass(frozen=True)
class UnitDeclaration:
    """A unit the caller expects, with the file names it should contain."""
    unit_name: str
    expected_file_names: tuple[str, ...] = ()


def parse_structure(json_text: str) -> list[UnitDeclaration]:
    """
    Parse the transport's structure payload.

    Expected form: [{"folderName": "alice", "files": ["1.jpg", "2.jpg"]}, ...]

    Raises:
        StructureError: The payload is not valid JSON or not of that form.
    """
    try:
        payload = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise StructureError(f"Folder structure is not valid JSON: {e}") from e

    if not isinstance(payload, list):
        raise StructureError("Folder structure must be a list of folders")

    declarations = []
    for index, entry in enumerate(payload):
        if not isinstance(entry, dict):
            raise StructureError(f"Folder entry {index} must be an object")
        name = entry.get("folderName")
        files = entry.get("files", [])
        if not isinstance(name, str) or not name.strip():
            raise StructureError(f"Folder entry {index} has no folderName")
        if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
            raise StructureError(f'Folder "{name}" must list its files as strings')
        declarations.append(UnitDeclaration(unit_name=name, expected_file_names=tuple(files)))

    return declarations


def _group_by_declaration(
    uploads: list[UploadedFile],
    structure: list[UnitDeclaration],
) -> list[LogicalUnit]:
    units = []
    for declaration in structure:
        unit_key = declaration.unit_name.lower()
        expected = {name.lower() for name in declaration.expected_file_names}
        images = [
            upload.to_image()
            for upload in uploads
            if upload.resolved_folder.lower() == unit_key
            and upload.resolved_file_name.lower() in expected
        ]
        if not images:
            logger.warning(
                f"Unit '{declaration.unit_name}': None of the "
                f"{len(declaration.expected_file_names)} declared files were uploaded"
            )
        units.append(LogicalUnit(name=declaration.unit_name, images=images))
    return units


def _group_by_path(uploads: list[UploadedFile]) -> list[LogicalUnit]:
    units: dict[str, LogicalUnit] = {}
    for upload in uploads:
        folder = upload.resolved_folder
        unit = units.setdefault(folder, LogicalUnit(name=folder))
        unit.images.append(upload.to_image())
    return list(units.values())


def group_uploads(
    uploads: list[UploadedFile],
    structure: Optional[list[UnitDeclaration]] = None,
) -> list[LogicalUnit]:
    """
    Split uploads into logical units.

    Args:
        uploads: Uploaded files, in upload order.
        structure: Declared units. When omitted, units are inferred from paths.

    Returns:
        Units in declaration order (or first-seen order without a structure);
        each unit's images keep upload order.
    """
    if structure:
        units = _group_by_declaration(uploads, structure)
    else:
        units = _group_by_path(uploads)

    logger.info(
        f"Grouped [green]{len(uploads)}[/green] uploads into "
        f"[green]{len(units)}[/green] units"
    )
    return units
