# idmerge/document/storage.py
# ============================================================
# Staging & Artifact Storage
# ============================================================
# Two kinds of files are written while a batch runs:
#   - staged images: each unit's uploaded bytes, written to a
#     temporary directory owned by that unit and removed once the
#     unit's outcome is final (success, failure, or timeout)
#   - artifacts: the merged PDF per unit, written to the output
#     directory as "<holder name>身份证.pdf"; within one batch a
#     name that is already taken gets the unit name appended
#
# Usage:
#   async with stage_unit(unit) as staged:
#       match = await matcher.match(staged)
#   path = ArtifactStore("output").save("李雷", pdf_bytes)
# ============================================================

import asyncio
import itertools
import os
import re
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from config.settings import settings
from idmerge.document.units import LogicalUnit
from idmerge.utils.logger import get_logger

logger = get_logger(__name__)

ARTIFACT_SUFFIX = "身份证.pdf"

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def safe_file_name(name: str, default: str = "unnamed") -> str:
    """Replace characters that are not allowed in file names."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip().strip(".")
    return cleaned or default


def write_staging(unit: LogicalUnit, temp_root: Optional[Union[str, Path]] = None) -> tuple[LogicalUnit, Path]:
    """
    Write the unit's images to a fresh temporary directory.

    Returns a copy of the unit whose image refs are the staged paths,
    plus the directory. Images sharing a file name end up as the same
    file and the same ref. Nothing is left behind if writing fails.
    """
    root = temp_root or settings.temp_dir
    if root:
        Path(root).mkdir(parents=True, exist_ok=True)
    staging_dir = Path(tempfile.mkdtemp(prefix=f"batch_{safe_file_name(unit.name)}_", dir=root))
    logger.debug(f"Staging {unit.image_count} images for '{unit.name}' in {staging_dir}")

    try:
        staged_images = []
        for index, image in enumerate(unit.images):
            file_name = safe_file_name(image.display_name, default=f"image_{index}.jpg")
            path = staging_dir / file_name
            path.write_bytes(image.data)
            staged_images.append(image.with_ref(str(path)))
    except Exception:
        remove_staging(staging_dir)
        raise

    return LogicalUnit(name=unit.name, images=staged_images, error=unit.error), staging_dir


def remove_staging(staging_dir: Path) -> None:
    try:
        shutil.rmtree(staging_dir)
        logger.debug(f"Removed staging directory {staging_dir}")
    except OSError as e:
        logger.warning(f"Failed to remove staging directory {staging_dir}: {e}")


@asynccontextmanager
async def stage_unit(unit: LogicalUnit, temp_root: Optional[Union[str, Path]] = None) -> AsyncIterator[LogicalUnit]:
    """
    Stage the unit's images for the duration of the block.

    File writes and the final removal run in worker threads so other
    units keep recognizing meanwhile. The directory is deleted when the
    block exits, however it exits.
    """
    staged, staging_dir = await asyncio.to_thread(write_staging, unit, temp_root)
    try:
        yield staged
    finally:
        await asyncio.to_thread(remove_staging, staging_dir)


def claim_title(title: str, qualifier: str, claimed: set[str]) -> str:
    """
    Return a document title whose file name is not in `claimed`, and claim it.

    The first claimant keeps `title`; later ones get "<title>_<qualifier>",
    then "<title>_<qualifier>_2", "<title>_<qualifier>_3" and so on.
    File names are compared case-insensitively.
    """
    alternatives = itertools.chain(
        [title, f"{title}_{qualifier}"],
        (f"{title}_{qualifier}_{n}" for n in itertools.count(2)),
    )
    for candidate in alternatives:
        key = safe_file_name(candidate).casefold()
        if key not in claimed:
            claimed.add(key)
            return candidate


class ArtifactStore:
    """
    Saves merged documents to a local output directory.

    Example:
        >>> store = ArtifactStore("output")
        >>> store.save("李雷", pdf_bytes)
        '/abs/path/output/李雷身份证.pdf'
    """

    def __init__(self, output_dir: Optional[Union[str, Path]] = None):
        self.output_dir = Path(output_dir or settings.output_dir)

    def path_for(self, title: str) -> Path:
        return self.output_dir / f"{safe_file_name(title)}{ARTIFACT_SUFFIX}"

    def save(self, title: str, data: bytes) -> str:
        """
        Write `data` as the document for `title`. Existing files are replaced.

        Returns:
            The absolute path of the written file.

        Raises:
            OSError: The file could not be written or ended up empty.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(title)

        # Write next to the target, then swap it in
        fd, tmp_name = tempfile.mkstemp(dir=self.output_dir, prefix=f".{path.name}.", suffix=".tmp")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            if tmp_path.stat().st_size == 0:
                raise OSError(f"Saved document is empty: {path}")
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.info(f"Saved document to [bold]{path}[/bold] ({len(data)} bytes)")
        return str(path.resolve())
