"""Per-segment video synthesis.

Drives one TransitionPlan through the video backend:
- Resolve first (and, for transitions, last) frame images
- Submit the generation job
- Poll on a fixed interval up to a bounded number of attempts
- Save the resulting MP4 under the run's clips/ directory

Poll outcomes:
  request error   -> logged as ProviderError, counts as an attempt, retried
  job error       -> JobFailed, no further polling
  done            -> clip saved and returned
  attempts spent  -> JobTimeout
"""

import asyncio
import logging
from typing import Optional

import httpx

from storyreel.errors import JobFailed, JobTimeout, ProviderError, SynthesisFailed
from storyreel.schemas.shots import ClipResult, TransitionPlan
from storyreel.services.file_manager import FileManager
from storyreel.services.image_source import ImageResolver
from storyreel.services.video_backend import (
    JobStatus,
    VideoBackend,
    VideoJobRequest,
    is_content_policy_error,
)

logger = logging.getLogger(__name__)


class SegmentSynthesizer:
    """Turns transition plans into local clip files.

    Args:
        backend: Video generation backend.
        resolver: Resolves shot image references to bytes.
        file_manager: Per-run artifact storage.
        poll_interval: Seconds between polls.
        poll_max: Maximum number of polls before giving up.
        aspect_ratio / resolution / generate_audio / enhance_prompt /
        person_generation: Output parameters forwarded to every job.
        materialize_remote_results: Download results the backend only returns
            as a remote URI instead of failing the segment.
        http_client: Client used for remote downloads (created on demand).
    """

    def __init__(
        self,
        backend: VideoBackend,
        resolver: ImageResolver,
        file_manager: FileManager,
        *,
        poll_interval: float = 10,
        poll_max: int = 60,
        aspect_ratio: str = "16:9",
        resolution: str = "1080p",
        generate_audio: bool = True,
        enhance_prompt: bool = True,
        person_generation: str = "allow_all",
        materialize_remote_results: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._backend = backend
        self._resolver = resolver
        self._file_mgr = file_manager
        self._poll_interval = poll_interval
        self._poll_max = poll_max
        self._aspect_ratio = aspect_ratio
        self._resolution = resolution
        self._generate_audio = generate_audio
        self._enhance_prompt = enhance_prompt
        self._person_generation = person_generation
        self._materialize_remote = materialize_remote_results
        self._http_client = http_client

    async def synthesize(self, plan: TransitionPlan, run_id: str) -> ClipResult:
        """Generate the clip for one plan.

        Raises:
            ResourceUnavailable / UnsupportedReference: A frame image cannot be resolved.
            ProviderError: The job could not be submitted.
            JobFailed: The backend reported the job as failed.
            JobTimeout: The job did not finish within poll_max polls.
            SynthesisFailed: The job finished without a usable local artifact.
        """
        logger.info(
            f"Segment {plan.index}: generating clip "
            f"({plan.duration_seconds}s, closing={plan.is_closing})"
        )
        first_frame = await self._resolver.resolve(plan.from_shot.image_ref)
        last_frame = None
        if plan.to_shot is not None:
            last_frame = await self._resolver.resolve(plan.to_shot.image_ref)

        request = VideoJobRequest(
            prompt=plan.prompt,
            first_frame=first_frame,
            last_frame=last_frame,
            duration_seconds=plan.duration_seconds,
            aspect_ratio=self._aspect_ratio,
            resolution=self._resolution,
            generate_audio=self._generate_audio,
            enhance_prompt=self._enhance_prompt,
            person_generation=self._person_generation,
        )
        handle = await self._backend.submit(request)
        logger.info(f"Segment {plan.index}: job started {handle}")

        status = await self._poll_until_done(plan.index, handle)
        video_bytes = await self._obtain_bytes(plan.index, status)

        file_path = self._file_mgr.save_clip(run_id, plan.index, video_bytes)
        logger.info(f"Segment {plan.index}: clip saved to {file_path}")

        return ClipResult(
            index=plan.index,
            file_path=file_path,
            provider=self._backend.provider,
            duration_seconds=plan.duration_seconds,
            prompt=plan.prompt,
        )

    async def _poll_until_done(self, index: int, handle: str) -> JobStatus:
        for poll_attempt in range(self._poll_max):
            try:
                status = await self._backend.poll(handle)
            except ProviderError as e:
                logger.warning(
                    f"Segment {index}: poll {poll_attempt + 1}/{self._poll_max} failed: {e}"
                )
                await asyncio.sleep(self._poll_interval)
                continue

            if status.error:
                reason = " (content policy)" if is_content_policy_error(status.error) else ""
                raise JobFailed(
                    f"Video generation failed for segment {index}{reason}: {status.error}",
                    index=index,
                )

            if status.done:
                logger.info(f"Segment {index}: job done after {poll_attempt + 1} poll(s)")
                return status

            await asyncio.sleep(self._poll_interval)

        raise JobTimeout(
            f"Video generation timed out for segment {index} "
            f"after {self._poll_max} polls ({self._poll_max * self._poll_interval:g}s)",
            index=index,
        )

    async def _obtain_bytes(self, index: int, status: JobStatus) -> bytes:
        if status.video_bytes:
            return status.video_bytes

        if status.video_uri:
            if not self._materialize_remote:
                logger.warning(f"Segment {index}: backend returned remote-only result {status.video_uri}")
                raise SynthesisFailed(
                    f"Segment {index}: backend returned a remote URI ({status.video_uri}) "
                    "and remote download is disabled",
                    index=index,
                )
            return await self._download(index, status.video_uri)

        raise SynthesisFailed(f"Segment {index}: no video data in backend response", index=index)

    async def _download(self, index: int, uri: str) -> bytes:
        """Download a remote result (gs:// URIs via the public storage endpoint)."""
        if uri.startswith("gs://"):
            http_url = uri.replace("gs://", "https://storage.googleapis.com/", 1)
        else:
            http_url = uri

        try:
            if self._http_client is not None:
                response = await self._http_client.get(http_url)
                response.raise_for_status()
                return response.content
            async with httpx.AsyncClient(follow_redirects=True, timeout=300.0) as client:
                response = await client.get(http_url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise SynthesisFailed(
                f"Segment {index}: failed to download {uri}: {e}", index=index
            ) from e
