# tests/test_grouping.py
# ============================================================
# Unit Tests — Upload Grouping
# ============================================================
# Tests splitting flat uploads into logical units, by declared
# structure and by path convention, and parsing the structure
# payload sent by the transport layer.
# ============================================================

import pytest

from idmerge.errors import BatchLevelError, StructureError
from idmerge.pipeline.grouping import (
    UnitDeclaration,
    UploadedFile,
    group_uploads,
    parse_structure,
)


def upload(path, data=b"x", **kwargs):
    return UploadedFile(path=path, data=data, **kwargs)


class TestPathConvention:
    """Units inferred from the first path segment."""

    def test_groups_by_first_segment(self):
        units = group_uploads([
            upload("alice/1.jpg", b"a1"),
            upload("bob/1.jpg", b"b1"),
            upload("alice/2.jpg", b"a2"),
        ])

        assert [u.name for u in units] == ["alice", "bob"]
        assert [i.name for i in units[0].images] == ["1.jpg", "2.jpg"]
        assert [i.data for i in units[0].images] == [b"a1", b"a2"]

    def test_backslash_separator(self):
        [unit] = group_uploads([upload("carol\\front.jpg"), upload("carol\\back.jpg")])
        assert unit.name == "carol"
        assert [i.name for i in unit.images] == ["front.jpg", "back.jpg"]

    def test_only_first_separator_splits(self):
        [unit] = group_uploads([upload("dave/scans/front.jpg")])
        assert unit.name == "dave"
        assert unit.images[0].name == "front.jpg"

    def test_no_folder_goes_to_default(self):
        [unit] = group_uploads([upload("front.jpg"), upload("back.jpg")])
        assert unit.name == "default"
        assert unit.image_count == 2

    def test_declared_folder_and_name_win(self):
        [unit] = group_uploads([upload("tmp/upload_123", folder="erin", file_name="front.jpg")])
        assert unit.name == "erin"
        assert unit.images[0].name == "front.jpg"


class TestDeclaredStructure:
    """Units taken from the caller's declaration."""

    def test_matches_case_insensitively(self):
        structure = [UnitDeclaration("Alice", ("Front.JPG", "back.jpg"))]
        [unit] = group_uploads(
            [upload("alice/front.jpg", b"f"), upload("ALICE/BACK.JPG", b"b")],
            structure,
        )
        assert unit.name == "Alice"
        assert [i.data for i in unit.images] == [b"f", b"b"]

    def test_undeclared_files_are_ignored(self):
        structure = [UnitDeclaration("alice", ("1.jpg",))]
        [unit] = group_uploads([upload("alice/1.jpg"), upload("alice/notes.jpg")], structure)
        assert [i.name for i in unit.images] == ["1.jpg"]

    def test_declaration_order_kept(self):
        structure = [UnitDeclaration("bob", ("1.jpg",)), UnitDeclaration("alice", ("1.jpg",))]
        units = group_uploads([upload("alice/1.jpg"), upload("bob/1.jpg")], structure)
        assert [u.name for u in units] == ["bob", "alice"]

    def test_unmatched_declaration_yields_empty_unit(self):
        structure = [UnitDeclaration("alice", ("1.jpg", "2.jpg"))]
        [unit] = group_uploads([upload("bob/1.jpg")], structure)
        assert unit.name == "alice"
        assert unit.image_count == 0

    def test_same_file_name_in_other_folder_not_matched(self):
        structure = [UnitDeclaration("alice", ("1.jpg",)), UnitDeclaration("bob", ("1.jpg",))]
        units = group_uploads([upload("alice/1.jpg", b"a"), upload("bob/1.jpg", b"b")], structure)
        assert [u.images[0].data for u in units] == [b"a", b"b"]


class TestParseStructure:
    """Parsing the transport's JSON payload."""

    def test_parses_folders(self):
        declarations = parse_structure(
            '[{"folderName": "张三", "files": ["1.jpg", "2.jpg"]}, {"folderName": "李四"}]'
        )
        assert declarations == [
            UnitDeclaration("张三", ("1.jpg", "2.jpg")),
            UnitDeclaration("李四", ()),
        ]

    @pytest.mark.parametrize("payload", [
        "not json",
        '{"folderName": "a"}',
        '["a"]',
        '[{"files": ["1.jpg"]}]',
        '[{"folderName": "a", "files": "1.jpg"}]',
        '[{"folderName": "a", "files": [1, 2]}]',
    ])
    def test_malformed_payload(self, payload):
        with pytest.raises(StructureError):
            parse_structure(payload)

    def test_structure_error_is_batch_level(self):
        assert issubclass(StructureError, BatchLevelError)
