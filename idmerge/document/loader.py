# idmerge/document/loader.py
# ============================================================
# Unit Loader — Folders on Disk → LogicalUnits
# ============================================================
# Directory mode: each folder is one card owner, and every
# supported image file directly inside it is a candidate image.
#
# A folder that does not exist is NOT an exception: it becomes a
# unit carrying an `error`, so the batch still reports it as a
# failed unit next to the others.
#
# Usage:
#   from idmerge.document.loader import load_units
#   units = load_units(["input/张三", "input/李四"])
#   for unit in units:
#       print(f"{unit.name}: {unit.image_count} images")
# ============================================================

import time
from pathlib import Path
from typing import Iterable, Union

from idmerge.document.units import LogicalUnit, UnitImage
from idmerge.utils.logger import get_logger

logger = get_logger(__name__)

# Supported image file extensions (case-insensitive matching)
SUPPORTED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".gif", ".webp", ".tiff", ".tif"}


def is_supported_image(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS


def load_unit_from_directory(path: Union[str, Path]) -> LogicalUnit:
    """
    Load every supported image of one folder as a LogicalUnit.

    Files are sorted by name so the image order is stable between runs.
    Subdirectories are not traversed.

    Args:
        path: Folder holding the images of one card owner.

    Returns:
        LogicalUnit named after the folder. When the folder is missing
        or unreadable, the unit has no images and `error` is set.
    """
    path = Path(path)
    unit_name = path.name or str(path)

    if not path.is_dir():
        logger.warning(f"Folder not found: {path}")
        return LogicalUnit(name=unit_name, error=f'Folder "{path}" does not exist')

    load_start = time.perf_counter()
    try:
        image_files = sorted(f for f in path.iterdir() if is_supported_image(f))
        images = [UnitImage(name=f.name, data=f.read_bytes()) for f in image_files]
    except OSError as e:
        logger.error(f"Failed to read folder {path}: {e}")
        return LogicalUnit(name=unit_name, error=f'Folder "{path}" could not be read: {e}')

    load_time = (time.perf_counter() - load_start) * 1000
    logger.info(
        f"Loaded [green]{len(images)}[/green] images from "
        f"[bold]{unit_name}[/bold] in {load_time:.0f}ms"
    )
    return LogicalUnit(name=unit_name, images=images)


def load_units(paths: Iterable[Union[str, Path]]) -> list[LogicalUnit]:
    """Load one unit per folder, in the order given."""
    return [load_unit_from_directory(p) for p in paths]


def discover_unit_dirs(root: Union[str, Path]) -> list[Path]:
    """Subfolders of `root`, sorted by name. Each one is a unit."""
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Input path not found: {root}")
    return sorted(p for p in root.iterdir() if p.is_dir())
