"""Shared fixtures and fakes for the storyreel test suite.

No network, no ffmpeg, no cloud credentials: the reasoning service and video
backend are replaced by scripted fakes, and the run ledger uses a throwaway
SQLite file per test.
"""

import asyncio
import base64
from typing import Callable, Optional, Sequence, Type, Union

import pytest
import pytest_asyncio

from storyreel.db import init_database, make_engine, make_sessionmaker
from storyreel.errors import ProviderError
from storyreel.schemas.shots import Shot
from storyreel.services.file_manager import FileManager
from storyreel.services.image_source import ImageData, ImageResolver
from storyreel.services.llm import LLMAdapter, parse_structured_response
from storyreel.services.run_ledger import RunLedger
from storyreel.services.video_backend import JobStatus, VideoBackend, VideoJobRequest


def data_uri(payload: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(payload).decode()}"


def make_shot(index: int, **overrides) -> Shot:
    fields = {
        "index": index,
        "description": f"Shot {index} description",
        "image_prompt": f"Shot {index} prompt",
        "image_ref": data_uri(f"image-{index}".encode()),
    }
    fields.update(overrides)
    return Shot(**fields)


def make_shots(count: int) -> list[Shot]:
    return [make_shot(i) for i in range(1, count + 1)]


# ---------------------------------------------------------------------------
# Reasoning service fake
# ---------------------------------------------------------------------------

class ScriptedAdapter(LLMAdapter):
    """Replays raw text answers (or raises exceptions) in order.

    Text answers go through the same parsing path as the real adapters.
    """

    def __init__(self, answers: Sequence[Union[str, BaseException]] = (), delay: float = 0.0):
        self._answers = list(answers)
        self._delay = delay
        self.calls: list[dict] = []

    async def analyze_images(
        self,
        images: Sequence[ImageData],
        prompt: str,
        schema: Type,
        *,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
    ):
        self.calls.append({"images": list(images), "prompt": prompt, "system_prompt": system_prompt})
        if self._delay:
            await asyncio.sleep(self._delay)
        answer = self._answers.pop(0) if self._answers else '{"transition_prompt": "slow pan", "duration": 6}'
        if isinstance(answer, BaseException):
            raise answer
        return parse_structured_response(answer, schema)


# ---------------------------------------------------------------------------
# Video backend fake
# ---------------------------------------------------------------------------

PollScript = Callable[[VideoJobRequest, int], Union[JobStatus, BaseException]]


def done_after(polls: int, video_bytes: bytes = b"mp4") -> PollScript:
    """Job that reports done with inline bytes on the given poll (1-based)."""

    def script(request: VideoJobRequest, poll_number: int):
        if poll_number >= polls:
            return JobStatus(done=True, video_bytes=video_bytes + request.prompt.encode())
        return JobStatus(done=False)

    return script


class FakeVideoBackend(VideoBackend):
    """Scripted submit/poll backend.

    ``script`` decides each poll's outcome from the submitted request and
    the poll number for that job; returning an exception raises it.
    """

    provider = "fake"

    def __init__(self, script: PollScript = done_after(1), submit_error: Optional[BaseException] = None):
        self._script = script
        self._submit_error = submit_error
        self.requests: dict[str, VideoJobRequest] = {}
        self.poll_counts: dict[str, int] = {}

    async def submit(self, request: VideoJobRequest) -> str:
        if self._submit_error is not None:
            raise self._submit_error
        handle = f"operations/job-{len(self.requests)}"
        self.requests[handle] = request
        self.poll_counts[handle] = 0
        return handle

    async def poll(self, handle: str) -> JobStatus:
        self.poll_counts[handle] += 1
        outcome = self._script(self.requests[handle], self.poll_counts[handle])
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def flaky_then_done(failures: int) -> PollScript:
    """Poll requests fail ``failures`` times, then the job is done."""

    def script(request: VideoJobRequest, poll_number: int):
        if poll_number <= failures:
            return ProviderError("503 Service Unavailable")
        return JobStatus(done=True, video_bytes=b"mp4")

    return script


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def resolver():
    return ImageResolver()


@pytest.fixture
def file_manager(tmp_path):
    return FileManager(tmp_path / "artifacts")


@pytest_asyncio.fixture
async def ledger(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'runs.db'}")
    await init_database(engine)
    yield RunLedger(make_sessionmaker(engine))
    await engine.dispose()
