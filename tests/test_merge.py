# tests/test_merge.py
# ============================================================
# Unit Tests — Direct Merge of a Labelled Pair
# ============================================================
# Tests merging a front and back the caller has already told
# apart: which name the document gets, which fields reach the
# page, and that recognition trouble never blocks the merge.
# ============================================================

import asyncio
from pathlib import Path

import pytest

from idmerge.document.storage import ArtifactStore
from idmerge.errors import CompositionError, RecognitionError, RecognitionErrorKind
from idmerge.pipeline.merge import merge_pair

from conftest import BACK, COMPLETE_BACK, FRONT, FULL_FRONT, FakeCompositor


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(tmp_path / "output")


class TestMergePair:
    """Test merge_pair with scripted recognition."""

    def test_fields_from_both_sides(self, gateway, recognition, store):
        recognition.responses.update({
            (b"front", FRONT): FULL_FRONT,
            (b"back", BACK): COMPLETE_BACK,
        })
        compositor = FakeCompositor()

        doc = asyncio.run(merge_pair(b"front", b"back", compositor, store, gateway=gateway))

        assert doc.title == "李雷"
        assert Path(doc.artifact_ref).name == "李雷身份证.pdf"
        assert Path(doc.artifact_ref).read_bytes() == b"%PDF-1.4 fake"
        front, back, fields = compositor.calls[0]
        assert (front, back) == (b"front", b"back")
        assert fields["id_number"] == "11010119900101001X"
        assert fields["issue_authority"] == "北京市公安局东城分局"
        assert doc.notes == []

    def test_explicit_name_wins(self, gateway, recognition, store):
        recognition.responses[(b"front", FRONT)] = FULL_FRONT
        compositor = FakeCompositor()

        doc = asyncio.run(merge_pair(
            b"front", b"back", compositor, store, gateway=gateway, name="韩梅梅"
        ))

        assert doc.title == "韩梅梅"
        assert compositor.calls[0][2]["name"] == "韩梅梅"

    def test_unrecognized_front_uses_fallback_name(self, gateway, store):
        doc = asyncio.run(merge_pair(
            b"front", b"back", FakeCompositor(), store, gateway=gateway, fallback_name="scan_01"
        ))

        assert doc.title == "scan_01"
        assert Path(doc.artifact_ref).name == "scan_01身份证.pdf"
        assert len(doc.notes) == 2

    def test_provider_outage_does_not_block(self, gateway, recognition, store):
        outage = RecognitionError(RecognitionErrorKind.TRANSIENT, "HTTP 503")
        recognition.responses.update({(b"front", FRONT): outage, (b"back", BACK): outage})

        doc = asyncio.run(merge_pair(
            b"front", b"back", FakeCompositor(), store, gateway=gateway, name="李雷"
        ))

        assert Path(doc.artifact_ref).exists()
        assert any("HTTP 503" in note for note in doc.notes)

    def test_without_recognition(self, recognition, store):
        compositor = FakeCompositor()

        doc = asyncio.run(merge_pair(b"front", b"back", compositor, store, name="李雷"))

        assert recognition.calls == []
        assert compositor.calls[0][2] == {"name": "李雷"}
        assert doc.extracted_fields == {"name": "李雷"}

    def test_composition_error_propagates(self, store, tmp_path):
        with pytest.raises(CompositionError):
            asyncio.run(merge_pair(b"front", b"back", FakeCompositor(fail=True), store, name="x"))
        assert not (tmp_path / "output").exists()
