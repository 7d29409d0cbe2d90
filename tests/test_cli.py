# tests/test_cli.py
# ============================================================
# Unit Tests — Command Line Interface
# ============================================================
# Tests the Typer commands that need no recognition provider,
# that a batch without credentials stops before any unit, and
# the direct merge command against a scripted provider.
# ============================================================

import json

from typer.testing import CliRunner

from cli.main import app
from config.settings import settings
from idmerge.ocr.baidu import BaiduOcrClient

from conftest import BACK, COMPLETE_BACK, FRONT, FULL_FRONT, FakeRecognition

runner = CliRunner()


class TestRulesCommand:
    """Test `idmerge rules`."""

    def test_shows_default_rules(self):
        result = runner.invoke(app, ["rules"])
        assert result.exit_code == 0
        assert "marker_phrases" in result.output
        assert "居民身份证" in result.output

    def test_custom_rules_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"authority_keywords": ["Police"]}), encoding="utf-8")

        result = runner.invoke(app, ["rules", "--rules", str(path)])

        assert result.exit_code == 0
        assert "Police" in result.output

    def test_bad_rules_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"unknown": []}), encoding="utf-8")

        result = runner.invoke(app, ["rules", "--rules", str(path)])

        assert result.exit_code == 2


class TestBatchCommand:
    """Test `idmerge batch` argument handling."""

    def test_missing_credentials_abort(self, tmp_path, make_png, monkeypatch):
        monkeypatch.setattr(settings, "baidu_api_key", "")
        folder = tmp_path / "alice"
        folder.mkdir()
        (folder / "1.png").write_bytes(make_png())
        (folder / "2.png").write_bytes(make_png())

        result = runner.invoke(app, ["batch", str(folder), "--output", str(tmp_path / "out")])

        assert result.exit_code == 2
        assert "credentials" in result.output
        assert not (tmp_path / "out").exists()

    def test_root_without_folders(self, tmp_path):
        result = runner.invoke(app, ["batch", str(tmp_path), "--root"])
        assert result.exit_code == 1
        assert "No unit folders" in result.output

    def test_classify_missing_file(self, tmp_path):
        result = runner.invoke(app, ["classify", str(tmp_path / "nope.jpg")])
        assert result.exit_code == 1


class TestMergeCommand:
    """Test `idmerge merge FRONT BACK`."""

    def _write_pair(self, tmp_path, make_png):
        front = tmp_path / "front.png"
        back = tmp_path / "back.png"
        front.write_bytes(make_png())
        back.write_bytes(make_png(color=(30, 30, 200)))
        return front, back

    def test_merge_with_recognition(self, tmp_path, make_png, monkeypatch):
        front, back = self._write_pair(tmp_path, make_png)
        recognition = FakeRecognition({
            (front.read_bytes(), FRONT): FULL_FRONT,
            (back.read_bytes(), BACK): COMPLETE_BACK,
        })
        monkeypatch.setattr(BaiduOcrClient, "from_settings", staticmethod(lambda rules=None: recognition))

        result = runner.invoke(app, ["merge", str(front), str(back), "--output", str(tmp_path / "out")])

        assert result.exit_code == 0
        saved = tmp_path / "out" / "李雷身份证.pdf"
        assert saved.read_bytes().startswith(b"%PDF")
        assert recognition.closed is True

    def test_merge_without_recognition(self, tmp_path, make_png, monkeypatch):
        front, back = self._write_pair(tmp_path, make_png)
        monkeypatch.setattr(settings, "baidu_api_key", "")

        result = runner.invoke(app, [
            "merge", str(front), str(back), "--no-ocr", "--name", "韩梅梅", "--output", str(tmp_path / "out"),
        ])

        assert result.exit_code == 0
        assert (tmp_path / "out" / "韩梅梅身份证.pdf").exists()

    def test_merge_falls_back_to_front_file_name(self, tmp_path, make_png):
        front, back = self._write_pair(tmp_path, make_png)

        result = runner.invoke(app, [
            "merge", str(front), str(back), "--no-ocr", "--output", str(tmp_path / "out"),
        ])

        assert result.exit_code == 0
        assert (tmp_path / "out" / "front身份证.pdf").exists()

    def test_merge_missing_back(self, tmp_path, make_png):
        front, _ = self._write_pair(tmp_path, make_png)
        result = runner.invoke(app, ["merge", str(front), str(tmp_path / "nope.jpg")])
        assert result.exit_code == 1
