"""Asynchronous video generation backends.

A backend exposes the two halves of a long-running generation job:
``submit`` returns an opaque job handle, ``poll`` reports whether the job is
done and, if so, its result or error. Polling cadence and attempt limits are
owned by the segment synthesizer, not the backend.

VeoVideoBackend drives Veo on Vertex AI through google-genai with
first/last frame interpolation.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from google import genai
from google.genai import types

from storyreel.errors import ProviderError
from storyreel.services.image_source import ImageData
from storyreel.services.retry import bounded_retry, is_transient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoJobRequest:
    """Everything a backend needs to start one segment."""

    prompt: str
    first_frame: ImageData
    duration_seconds: int
    last_frame: Optional[ImageData] = None
    aspect_ratio: str = "16:9"
    resolution: str = "1080p"
    generate_audio: bool = True
    enhance_prompt: bool = True
    person_generation: str = "allow_all"


@dataclass(frozen=True)
class JobStatus:
    """Snapshot of a generation job.

    ``error`` set means the backend reported an explicit job failure. A done
    job without error carries inline ``video_bytes`` and/or a remote
    ``video_uri``.
    """

    done: bool
    video_bytes: Optional[bytes] = None
    video_uri: Optional[str] = None
    error: Optional[str] = None


class VideoBackend(ABC):
    """Submit/poll contract for an external video generation service."""

    provider: str = "unknown"

    @abstractmethod
    async def submit(self, request: VideoJobRequest) -> str:
        """Start a job and return its handle.

        Raises:
            ProviderError: The job could not be submitted.
        """
        ...

    @abstractmethod
    async def poll(self, handle: str) -> JobStatus:
        """Fetch the current state of a job.

        Raises:
            ProviderError: The poll request itself failed (transient).
        """
        ...


# Content-policy keywords seen in Veo operation errors
_POLICY_KEYWORDS = ("violat", "usage guidelines", "safety", "content polic", "responsible ai")


def _error_message(error: Any) -> str:
    """Flatten an operation error (dict or object) into a readable message."""
    if isinstance(error, dict):
        message = error.get("message") or str(error)
        code = error.get("code")
    else:
        message = getattr(error, "message", None) or str(error)
        code = getattr(error, "code", None)
    return f"{message} (code {code})" if code is not None else message


class VeoVideoBackend(VideoBackend):
    """Veo video generation on Vertex AI.

    Submission is retried on transient 429/5xx/network failures with
    exponential backoff; any other submission error is reported as
    ProviderError without retry.
    """

    provider = "vertex"

    def __init__(self, client: genai.Client, model_id: str, submit_attempts: int = 5):
        self._client = client
        self._model_id = model_id
        self._submit = bounded_retry(
            attempts=submit_attempts,
            delay=4,
            retry_on=is_transient,
            exponential=True,
            log=logger,
        )(self._submit_once)

    async def _submit_once(self, request: VideoJobRequest):
        video_config = types.GenerateVideosConfig(
            aspect_ratio=request.aspect_ratio,
            duration_seconds=request.duration_seconds,
            resolution=request.resolution,
            person_generation=request.person_generation,
            enhance_prompt=request.enhance_prompt,
            generate_audio=request.generate_audio,
            number_of_videos=1,
        )
        # Closing segments have no trailing frame: plain image-to-video
        if request.last_frame is not None:
            video_config.last_frame = types.Image(
                image_bytes=request.last_frame.data,
                mime_type=request.last_frame.mime_type,
            )
        return await self._client.aio.models.generate_videos(
            model=self._model_id,
            prompt=request.prompt,
            image=types.Image(
                image_bytes=request.first_frame.data,
                mime_type=request.first_frame.mime_type,
            ),
            config=video_config,
        )

    async def submit(self, request: VideoJobRequest) -> str:
        logger.info(
            f"Submitting {self._model_id} job "
            f"({request.duration_seconds}s, last_frame={request.last_frame is not None})"
        )
        try:
            operation = await self._submit(request)
        except Exception as e:
            raise ProviderError(f"Failed to start video job: {type(e).__name__}: {e}") from e

        if not operation.name:
            raise ProviderError("Video backend returned no operation name")
        return operation.name

    async def poll(self, handle: str) -> JobStatus:
        try:
            operation = await self._client.aio.operations.get(
                operation=types.GenerateVideosOperation(name=handle)
            )
        except Exception as e:
            raise ProviderError(f"Poll request failed: {type(e).__name__}: {e}") from e

        if operation.error:
            return JobStatus(done=True, error=_error_message(operation.error))

        if not operation.done:
            return JobStatus(done=False)

        response = operation.response
        videos = list(response.generated_videos or []) if response else []
        if not videos:
            filtered = getattr(response, "rai_media_filtered_count", 0) if response else 0
            if filtered:
                reasons = getattr(response, "rai_media_filtered_reasons", None) or []
                detail = "; ".join(reasons) or "Content filtered by responsible AI"
                return JobStatus(done=True, error=detail)
            return JobStatus(done=True)

        video = videos[0].video
        if video is None:
            return JobStatus(done=True)
        return JobStatus(
            done=True,
            video_bytes=video.video_bytes,
            video_uri=getattr(video, "uri", None),
        )


def is_content_policy_error(message: str) -> bool:
    """Return True if a job error message reads like a content-policy rejection."""
    lowered = (message or "").lower()
    return any(kw in lowered for kw in _POLICY_KEYWORDS)
