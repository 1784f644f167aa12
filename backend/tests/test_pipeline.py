"""End-to-end tests for PipelineOrchestrator with scripted collaborators."""

import asyncio
import subprocess
from pathlib import Path

import pytest

from conftest import FakeVideoBackend, ScriptedAdapter, done_after, make_shots
from storyreel.errors import EncodingFailed, InsufficientShots, JobFailed, SynthesisFailed
from storyreel.orchestrator.pipeline import PipelineOrchestrator
from storyreel.orchestrator.state import COMPLETED, ERROR
from storyreel.pipeline import stitcher as stitcher_module
from storyreel.pipeline.planner import FALLBACK_PROMPT, TransitionPlanner
from storyreel.pipeline.stitcher import Stitcher
from storyreel.pipeline.synthesizer import SegmentSynthesizer
from storyreel.schemas.shots import ClipResult
from storyreel.services.image_source import ImageResolver
from storyreel.services.video_backend import JobStatus


@pytest.fixture
def ffmpeg_calls(monkeypatch):
    """Stub ffmpeg: record each manifest's clip order and write the output file."""
    calls = []

    def fake_run(cmd, check=False, capture_output=False):
        manifest = Path(cmd[cmd.index("-i") + 1]).read_text(encoding="utf-8")
        calls.append([line[len("file '"):-1] for line in manifest.splitlines()])
        Path(cmd[-1]).write_bytes(b"final")
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(stitcher_module.subprocess, "run", fake_run)
    return calls


def _orchestrator(adapter, backend, resolver, file_manager, ledger, **kwargs):
    planner = TransitionPlanner(adapter, resolver, retry_attempts=1, retry_delay=0)
    synthesizer = SegmentSynthesizer(backend, resolver, file_manager, poll_interval=0, poll_max=3)
    return PipelineOrchestrator(planner, synthesizer, Stitcher(file_manager), ledger, **kwargs)


class RecordingStitcher:
    def __init__(self, output: Path):
        self.output = output
        self.calls = []

    async def stitch(self, ordered_paths, run_id=None):
        self.calls.append(list(ordered_paths))
        return self.output


class StaticPlanner:
    """Delegates to a real planner's closing logic with fallback transitions."""

    def __init__(self, resolver):
        self._planner = TransitionPlanner(ScriptedAdapter([RuntimeError("offline")] * 20), resolver, retry_attempts=1)

    async def plan_all(self, shots):
        return await self._planner.plan_all(shots)


class ReverseOrderSynthesizer:
    """Finishes later plans first; writes a real file per plan."""

    def __init__(self, clip_dir: Path, total: int, missing_index=None):
        self._clip_dir = clip_dir
        self._total = total
        self._missing_index = missing_index
        self.completion_order = []

    async def synthesize(self, plan, run_id):
        await asyncio.sleep((self._total - plan.index) * 0.01)
        self.completion_order.append(plan.index)
        path = None
        if plan.index != self._missing_index:
            path = self._clip_dir / f"clip_{plan.index:03d}.mp4"
            path.write_bytes(b"clip")
        return ClipResult(
            index=plan.index, file_path=path, provider="fake",
            duration_seconds=plan.duration_seconds, prompt=plan.prompt,
        )


@pytest.mark.asyncio
async def test_three_shots_produce_three_ordered_segments(resolver, file_manager, ledger, ffmpeg_calls):
    adapter = ScriptedAdapter([
        '{"transition_prompt": "dolly in", "duration": 4}',
        '{"transition_prompt": "pan right", "duration": 8}',
    ])
    backend = FakeVideoBackend(done_after(1))
    orchestrator = _orchestrator(adapter, backend, resolver, file_manager, ledger)
    progress = []

    final_ref = await orchestrator.run(make_shots(3), progress_callback=progress.append)

    assert Path(final_ref).read_bytes() == b"final"
    assert len(backend.requests) == 3
    assert [Path(p).name for p in ffmpeg_calls[0]] == ["clip_000.mp4", "clip_001.mp4", "clip_002.mp4"]
    assert progress

    record = (await ledger.list_runs())[0]
    assert record.status == COMPLETED
    assert record.final_output_ref == final_ref
    assert record.elapsed_ms is not None
    assert [p["duration_seconds"] for p in record.transition_plans] == [4, 8, 6]
    assert [c["index"] for c in record.clip_results] == [0, 1, 2]


@pytest.mark.asyncio
async def test_planner_failure_falls_back_and_run_completes(resolver, file_manager, ledger, ffmpeg_calls):
    adapter = ScriptedAdapter([RuntimeError("reasoning service down")])
    backend = FakeVideoBackend(done_after(2))
    orchestrator = _orchestrator(adapter, backend, resolver, file_manager, ledger)

    await orchestrator.run(make_shots(2))

    record = (await ledger.list_runs())[0]
    assert record.status == COMPLETED
    assert record.transition_plans[0]["prompt"] == FALLBACK_PROMPT
    assert record.transition_plans[0]["duration_seconds"] == 6
    assert len(ffmpeg_calls) == 1


@pytest.mark.asyncio
async def test_failed_segment_fails_run_without_stitching(resolver, file_manager, ledger, ffmpeg_calls):
    def script(request, poll_number):
        if request.prompt == "pan right":
            return JobStatus(done=True, error="internal error")
        return JobStatus(done=True, video_bytes=b"mp4")

    adapter = ScriptedAdapter([
        '{"transition_prompt": "dolly in", "duration": 6}',
        '{"transition_prompt": "pan right", "duration": 6}',
    ])
    orchestrator = _orchestrator(adapter, FakeVideoBackend(script), resolver, file_manager, ledger)

    with pytest.raises(JobFailed) as exc_info:
        await orchestrator.run(make_shots(3))

    assert exc_info.value.index == 1
    assert ffmpeg_calls == []
    record = (await ledger.list_runs())[0]
    assert record.status == ERROR
    assert "internal error" in record.error_message
    assert record.final_output_ref is None
    assert record.elapsed_ms is not None


@pytest.mark.asyncio
async def test_reverse_completion_order_is_restored(tmp_path, resolver, ledger):
    shots = make_shots(4)
    synthesizer = ReverseOrderSynthesizer(tmp_path, total=len(shots))
    stitcher = RecordingStitcher(tmp_path / "final.mp4")
    orchestrator = PipelineOrchestrator(StaticPlanner(resolver), synthesizer, stitcher, ledger)

    await orchestrator.run(shots)

    assert synthesizer.completion_order == [3, 2, 1, 0]
    assert [Path(p).name for p in stitcher.calls[0]] == [
        "clip_000.mp4", "clip_001.mp4", "clip_002.mp4", "clip_003.mp4",
    ]


@pytest.mark.asyncio
async def test_missing_clip_path_is_fatal(tmp_path, resolver, ledger):
    synthesizer = ReverseOrderSynthesizer(tmp_path, total=3, missing_index=1)
    stitcher = RecordingStitcher(tmp_path / "final.mp4")
    orchestrator = PipelineOrchestrator(StaticPlanner(resolver), synthesizer, stitcher, ledger)

    with pytest.raises(SynthesisFailed):
        await orchestrator.run(make_shots(3))

    assert stitcher.calls == []
    assert (await ledger.list_runs())[0].status == ERROR


@pytest.mark.asyncio
async def test_fewer_than_two_shots_rejected(tmp_path, resolver, ledger):
    synthesizer = ReverseOrderSynthesizer(tmp_path, total=1)
    stitcher = RecordingStitcher(tmp_path / "final.mp4")
    orchestrator = PipelineOrchestrator(StaticPlanner(resolver), synthesizer, stitcher, ledger)

    with pytest.raises(InsufficientShots):
        await orchestrator.run(make_shots(1))

    assert synthesizer.completion_order == []
    record = (await ledger.list_runs())[0]
    assert record.status == ERROR
    assert record.error_message == "Need at least 2 shots to generate a video sequence."


@pytest.mark.asyncio
async def test_public_base_url_builds_video_reference(tmp_path, resolver, ledger):
    synthesizer = ReverseOrderSynthesizer(tmp_path, total=2)
    stitcher = RecordingStitcher(tmp_path / "full_story_1.mp4")
    orchestrator = PipelineOrchestrator(
        StaticPlanner(resolver), synthesizer, stitcher, ledger,
        public_base_url="https://videos.example.com/",
    )

    final_ref = await orchestrator.run(make_shots(2))

    record = (await ledger.list_runs())[0]
    assert final_ref == f"https://videos.example.com/videos/{record.id}/full_story_1.mp4"
    assert record.final_output_ref == final_ref


class CompletionFailingLedger:
    """Wraps a RunLedger; the write that marks a run completed fails."""

    def __init__(self, ledger):
        self._ledger = ledger

    def __getattr__(self, name):
        return getattr(self._ledger, name)

    async def update_run(self, run_id, **fields):
        if fields.get("status") == COMPLETED:
            raise OSError("disk I/O error")
        return await self._ledger.update_run(run_id, **fields)


@pytest.mark.asyncio
async def test_stitch_failure_marks_run_error(resolver, file_manager, ledger, monkeypatch):
    def failing_run(cmd, check=False, capture_output=False):
        raise subprocess.CalledProcessError(1, cmd, stderr=b"Invalid data found when processing input")

    monkeypatch.setattr(stitcher_module.subprocess, "run", failing_run)
    backend = FakeVideoBackend(done_after(1))
    orchestrator = _orchestrator(ScriptedAdapter([RuntimeError("offline")] * 10), backend, resolver, file_manager, ledger)

    with pytest.raises(EncodingFailed, match="Invalid data found"):
        await orchestrator.run(make_shots(2))

    record = (await ledger.list_runs())[0]
    assert record.status == ERROR
    assert "Invalid data found" in record.error_message
    assert record.final_output_ref is None
    assert record.elapsed_ms is not None
    assert [c["index"] for c in record.clip_results] == [0, 1]


@pytest.mark.asyncio
async def test_completion_write_failure_marks_run_error(tmp_path, resolver, ledger):
    synthesizer = ReverseOrderSynthesizer(tmp_path, total=2)
    stitcher = RecordingStitcher(tmp_path / "final.mp4")
    orchestrator = PipelineOrchestrator(StaticPlanner(resolver), synthesizer, stitcher, CompletionFailingLedger(ledger))

    with pytest.raises(OSError, match="disk I/O error"):
        await orchestrator.run(make_shots(2))

    record = (await ledger.list_runs())[0]
    assert record.status == ERROR
    assert record.error_message == "disk I/O error"
    assert record.elapsed_ms is not None


@pytest.mark.asyncio
async def test_aclose_closes_resolver_client(tmp_path, ledger):
    resolver = ImageResolver()
    client = resolver.client
    orchestrator = PipelineOrchestrator(
        StaticPlanner(resolver), ReverseOrderSynthesizer(tmp_path, total=2),
        RecordingStitcher(tmp_path / "final.mp4"), ledger, resolver=resolver,
    )

    await orchestrator.aclose()

    assert client.is_closed
