# tests/test_document.py
# ============================================================
# Unit Tests — Loading, Staging & Storage
# ============================================================
# Tests folder loading, per-unit staging directories and the
# artifact store. Uses real files in pytest's tmp_path.
# ============================================================

import asyncio
from pathlib import Path

import pytest

from idmerge.document.loader import (
    SUPPORTED_IMAGE_EXTENSIONS,
    discover_unit_dirs,
    load_unit_from_directory,
    load_units,
)
from idmerge.document.storage import (
    ArtifactStore,
    claim_title,
    remove_staging,
    safe_file_name,
    stage_unit,
    write_staging,
)
from idmerge.document.units import LogicalUnit, UnitImage


# ============================================================
# Loader Tests
# ============================================================

class TestLoader:
    """Test loading units from folders."""

    def test_supported_extensions(self):
        assert ".jpg" in SUPPORTED_IMAGE_EXTENSIONS
        assert ".webp" in SUPPORTED_IMAGE_EXTENSIONS
        assert ".pdf" not in SUPPORTED_IMAGE_EXTENSIONS

    def test_loads_images_sorted(self, tmp_path, make_png):
        folder = tmp_path / "张三"
        folder.mkdir()
        (folder / "b.PNG").write_bytes(make_png())
        (folder / "a.jpg").write_bytes(make_png(fmt="JPEG"))
        (folder / "notes.txt").write_text("not an image")
        (folder / "nested").mkdir()

        unit = load_unit_from_directory(folder)

        assert unit.name == "张三"
        assert unit.error is None
        assert [i.name for i in unit.images] == ["a.jpg", "b.PNG"]
        assert unit.images[1].data == (folder / "b.PNG").read_bytes()

    def test_missing_folder_is_unit_error(self, tmp_path):
        unit = load_unit_from_directory(tmp_path / "missing")
        assert unit.name == "missing"
        assert unit.image_count == 0
        assert "does not exist" in unit.error

    def test_load_units_keeps_order(self, tmp_path):
        for name in ("b", "a"):
            (tmp_path / name).mkdir()
        units = load_units([tmp_path / "b", tmp_path / "a"])
        assert [u.name for u in units] == ["b", "a"]

    def test_discover_unit_dirs(self, tmp_path):
        for name in ("li", "han"):
            (tmp_path / name).mkdir()
        (tmp_path / "readme.txt").write_text("x")
        assert [p.name for p in discover_unit_dirs(tmp_path)] == ["han", "li"]

    def test_discover_missing_root(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            discover_unit_dirs(tmp_path / "nope")


# ============================================================
# Staging Tests
# ============================================================

class TestStaging:
    """Test per-unit temporary directories."""

    def test_images_written_and_removed(self, tmp_path):
        unit = LogicalUnit("alice", [UnitImage("dir/front.jpg", b"F"), UnitImage("back.jpg", b"B")])
        seen = {}

        async def use_staging():
            async with stage_unit(unit, tmp_path) as staged:
                paths = [Path(image.ref) for image in staged.images]
                seen["paths"] = paths
                seen["names"] = [p.name for p in paths]
                seen["data"] = [p.read_bytes() for p in paths]
                seen["display"] = [image.name for image in staged.images]

        asyncio.run(use_staging())

        assert seen["names"] == ["front.jpg", "back.jpg"]
        assert seen["data"] == [b"F", b"B"]
        assert seen["paths"][0].parent.parent == tmp_path
        assert seen["display"] == ["dir/front.jpg", "back.jpg"]
        assert not seen["paths"][0].parent.exists()
        assert list(tmp_path.iterdir()) == []

    def test_removed_when_block_raises(self, tmp_path):
        unit = LogicalUnit("alice", [UnitImage("a.jpg", b"A")])

        async def crash():
            async with stage_unit(unit, tmp_path):
                raise RuntimeError("matcher crashed")

        with pytest.raises(RuntimeError):
            asyncio.run(crash())

        assert list(tmp_path.iterdir()) == []

    def test_duplicate_names_share_a_ref(self, tmp_path):
        unit = LogicalUnit("erin", [UnitImage("card.jpg", b"1"), UnitImage("card.jpg", b"2")])
        staged, staging_dir = write_staging(unit, tmp_path)

        assert staged.images[0].ref == staged.images[1].ref
        remove_staging(staging_dir)
        assert not staging_dir.exists()

    def test_unsafe_unit_name(self, tmp_path):
        unit = LogicalUnit("a/b:c", [UnitImage("1.jpg", b"1")])
        staged, staging_dir = write_staging(unit, tmp_path)

        assert Path(staged.images[0].ref).parent.name.startswith("batch_a_b_c_")
        remove_staging(staging_dir)

    def test_failed_write_leaves_nothing(self, tmp_path, monkeypatch):
        unit = LogicalUnit("alice", [UnitImage("a.jpg", b"A"), UnitImage("b.jpg", b"B")])

        def disk_full(self, data):
            raise OSError("No space left on device")

        monkeypatch.setattr(Path, "write_bytes", disk_full)

        with pytest.raises(OSError, match="No space"):
            write_staging(unit, tmp_path)
        assert list(tmp_path.iterdir()) == []


# ============================================================
# Artifact Store Tests
# ============================================================

class TestArtifactStore:
    """Test saving merged documents."""

    def test_save_names_file_after_holder(self, tmp_path):
        store = ArtifactStore(tmp_path / "out")
        saved = store.save("李雷", b"%PDF-1.4")

        assert Path(saved).name == "李雷身份证.pdf"
        assert Path(saved).read_bytes() == b"%PDF-1.4"
        assert [p.name for p in (tmp_path / "out").iterdir()] == ["李雷身份证.pdf"]

    def test_save_replaces_existing(self, tmp_path):
        store = ArtifactStore(tmp_path)
        store.save("李雷", b"old")
        saved = store.save("李雷", b"new")
        assert Path(saved).read_bytes() == b"new"

    def test_empty_document_rejected(self, tmp_path):
        store = ArtifactStore(tmp_path)
        with pytest.raises(OSError, match="empty"):
            store.save("李雷", b"")
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize("name, expected", [
        ("李雷", "李雷"),
        ("a/b\\c", "a_b_c"),
        ('x:y*?"<>|', "x_y______"),
        ("...", "unnamed"),
    ])
    def test_safe_file_name(self, name, expected):
        assert safe_file_name(name) == expected


class TestClaimTitle:
    """Test document names within one batch."""

    def test_first_claim_keeps_title(self):
        claimed = set()
        assert claim_title("王伟", "u1", claimed) == "王伟"

    def test_taken_title_gets_unit_name(self):
        claimed = set()
        claim_title("王伟", "u1", claimed)
        assert claim_title("王伟", "u2", claimed) == "王伟_u2"

    def test_numbered_when_qualified_title_taken(self):
        claimed = set()
        titles = [claim_title("王伟", "scans", claimed) for _ in range(4)]
        assert titles == ["王伟", "王伟_scans", "王伟_scans_2", "王伟_scans_3"]

    def test_compares_file_names(self):
        claimed = set()
        claim_title("Li/Lei", "u1", claimed)
        assert claim_title("li_lei", "u2", claimed) == "li_lei_u2"
