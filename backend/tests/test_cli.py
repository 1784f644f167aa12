"""Tests for the Typer CLI (no ffmpeg, no cloud calls)."""

import json

import pytest
from typer.testing import CliRunner

from conftest import data_uri
from storyreel.cli import commands
from storyreel.errors import InsufficientShots

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(commands.settings.storage, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setattr(commands.settings.storage, "tmp_dir", tmp_path / "artifacts")
    monkeypatch.setattr(commands, "ffmpeg_version", lambda: "ffmpeg version test")


def _shot(index):
    return {
        "shot": index,
        "description": f"Shot {index}",
        "prompt": f"Prompt {index}",
        "imageUrl": data_uri(b"img"),
    }


def test_load_storyboard_accepts_list_and_wrapped_object(tmp_path):
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps([_shot(1), _shot(2)]), encoding="utf-8")
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"storyboard": [_shot(1), _shot(2), _shot(3)]}), encoding="utf-8")

    assert [s.index for s in commands.load_storyboard(as_list)] == [1, 2]
    assert [s.index for s in commands.load_storyboard(wrapped)] == [1, 2, 3]


def test_load_storyboard_rejects_other_shapes(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"scenes": []}), encoding="utf-8")

    with pytest.raises(ValueError):
        commands.load_storyboard(bad)


def test_generate_invalid_storyboard_exits_1(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("[{\"shot\": 1}]", encoding="utf-8")

    result = runner.invoke(commands.app, ["generate", str(bad)])

    assert result.exit_code == 1
    assert "Invalid storyboard" in result.output


class FakeOrchestrator:
    def __init__(self):
        self.closed = False

    async def aclose(self):
        self.closed = True


def test_generate_reports_pipeline_failure(tmp_path, monkeypatch):
    class FailingOrchestrator(FakeOrchestrator):
        async def run(self, shots, progress_callback=None):
            raise InsufficientShots("Need at least 2 shots to generate a video sequence.")

    orchestrator = FailingOrchestrator()
    monkeypatch.setattr(commands, "build_orchestrator", lambda settings, session_factory: orchestrator)
    storyboard = tmp_path / "one.json"
    storyboard.write_text(json.dumps([_shot(1)]), encoding="utf-8")

    result = runner.invoke(commands.app, ["generate", str(storyboard)])

    assert result.exit_code == 1
    assert "Need at least 2 shots" in result.output
    assert orchestrator.closed


def test_generate_prints_output_reference(tmp_path, monkeypatch):
    class DoneOrchestrator(FakeOrchestrator):
        async def run(self, shots, progress_callback=None):
            progress_callback("Stitching final video...")
            return "/videos/full_story_1.mp4"

    orchestrator = DoneOrchestrator()
    monkeypatch.setattr(commands, "build_orchestrator", lambda settings, session_factory: orchestrator)
    storyboard = tmp_path / "two.json"
    storyboard.write_text(json.dumps([_shot(1), _shot(2)]), encoding="utf-8")

    result = runner.invoke(commands.app, ["generate", str(storyboard)])

    assert result.exit_code == 0
    assert "/videos/full_story_1.mp4" in result.output
    assert orchestrator.closed


def test_runs_empty():
    result = runner.invoke(commands.app, ["runs"])

    assert result.exit_code == 0
    assert "No runs found" in result.output


def test_show_and_delete_unknown_run():
    assert runner.invoke(commands.app, ["show", "run_missing"]).exit_code == 1
    assert runner.invoke(commands.app, ["delete", "run_missing"]).exit_code == 1


def test_clear_with_yes():
    result = runner.invoke(commands.app, ["clear", "--yes"])

    assert result.exit_code == 0
    assert "Deleted 0 run(s)" in result.output


def test_stitch_missing_clip_exits_1(tmp_path):
    result = runner.invoke(commands.app, ["stitch", str(tmp_path / "nope.mp4")])

    assert result.exit_code == 1
    assert "Stitching failed" in result.output


def test_generate_exits_when_ffmpeg_missing(tmp_path, monkeypatch):
    def missing():
        raise RuntimeError("ffmpeg not found on PATH.")

    monkeypatch.setattr(commands, "ffmpeg_version", missing)
    storyboard = tmp_path / "two.json"
    storyboard.write_text(json.dumps([_shot(1), _shot(2)]), encoding="utf-8")

    result = runner.invoke(commands.app, ["generate", str(storyboard)])

    assert result.exit_code == 1
    assert "ffmpeg not found" in result.output
