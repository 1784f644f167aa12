"""Main pipeline orchestrator: plan, synthesize concurrently, stitch.

Coordinates one run end to end with:
- Shot-count validation before any work begins
- Transition planning for every adjacent pair plus a closing plan
- Concurrent segment synthesis (join all, fail fast)
- Order restoration by plan index before stitching
- Run ledger state transitions, each terminal state recorded exactly once
- Progress callback interface for CLI integration
"""

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from storyreel.errors import InsufficientShots, SynthesisFailed
from storyreel.orchestrator.concurrency import gather_fail_fast
from storyreel.orchestrator.state import COMPLETED, ERROR, GENERATING, STITCHING
from storyreel.pipeline.planner import TransitionPlanner
from storyreel.pipeline.stitcher import Stitcher
from storyreel.pipeline.synthesizer import SegmentSynthesizer
from storyreel.schemas.shots import Shot

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from storyreel.config import Settings
    from storyreel.services.run_ledger import RunLedger
    from storyreel.services.image_source import ImageResolver

logger = logging.getLogger(__name__)

MIN_SHOTS = 2


class PipelineOrchestrator:
    """Runs the shot-to-video pipeline and drives the run's lifecycle.

    Args:
        planner: Produces transition and closing plans.
        synthesizer: Turns one plan into one local clip.
        stitcher: Concatenates clips in order.
        ledger: Persists the run's lifecycle and artifacts.
        public_base_url: If set, the final reference is
            ``<public_base_url>/videos/<run_id>/<file name>``;
            otherwise it is the absolute output path.
        cancel_on_failure: Cancel sibling synthesis jobs once one fails.
        resolver: Image resolver shared by planner and synthesizer; closed
            by ``aclose``.
    """

    def __init__(
        self,
        planner: TransitionPlanner,
        synthesizer: SegmentSynthesizer,
        stitcher: Stitcher,
        ledger: "RunLedger",
        *,
        public_base_url: Optional[str] = None,
        cancel_on_failure: bool = False,
        resolver: Optional["ImageResolver"] = None,
    ):
        self._planner = planner
        self._synthesizer = synthesizer
        self._stitcher = stitcher
        self._ledger = ledger
        self._public_base_url = public_base_url
        self._cancel_on_failure = cancel_on_failure
        self._resolver = resolver

    async def aclose(self) -> None:
        """Release the HTTP resources held by the shared image resolver."""
        if self._resolver is not None:
            await self._resolver.aclose()

    async def run(
        self,
        shots: Sequence[Shot],
        progress_callback: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Execute one pipeline run.

        Args:
            shots: Ordered storyboard shots (at least two).
            progress_callback: Optional callback for status updates.

        Returns:
            Reference to the final stitched video.

        Raises:
            InsufficientShots: Fewer than two shots were supplied.
            SynthesisError / StitchError / ResourceUnavailable / UnsupportedReference:
                Re-raised after the run is recorded as ``error``.
        """
        shots = list(shots)
        pipeline_start = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - pipeline_start) * 1000)

        def progress(message: str) -> None:
            if progress_callback:
                progress_callback(message)

        run_id = await self._ledger.create_run(shots)
        logger.info(f"Run {run_id}: video generation start, {len(shots)} shots")

        if len(shots) < MIN_SHOTS:
            message = f"Need at least {MIN_SHOTS} shots to generate a video sequence."
            await self._ledger.update_run(
                run_id, status=ERROR, error_message=message, elapsed_ms=elapsed_ms(),
            )
            raise InsufficientShots(message)

        try:
            await self._ledger.update_run(run_id, status=GENERATING)

            # Phase 1: plan every segment before any synthesis starts
            progress("Analyzing shot transitions...")
            plans = await self._planner.plan_all(shots)
            await self._ledger.update_run(run_id, transition_plans=plans)

            # Phase 2: synthesize all segments concurrently
            progress(f"Generating {len(plans)} clips...")
            results = await gather_fail_fast(
                (self._synthesizer.synthesize(plan, run_id) for plan in plans),
                cancel_pending=self._cancel_on_failure,
                name="segment",
            )
            results = sorted(results, key=lambda r: r.index)

            missing = [r.index for r in results if r.file_path is None]
            if missing:
                raise SynthesisFailed(f"No local clip produced for segment(s) {missing}")

            await self._ledger.update_run(run_id, status=STITCHING, clip_results=results)

            # Phase 3: stitch in plan order
            progress("Stitching final video...")
            output_path = await self._stitcher.stitch(
                [r.file_path for r in results], run_id=run_id,
            )

            final_ref = self._output_ref(run_id, output_path)
            duration = elapsed_ms()
            await self._ledger.update_run(
                run_id, status=COMPLETED, final_output_ref=final_ref, elapsed_ms=duration,
            )

        except Exception as e:
            logger.error(f"Run {run_id} failed: {type(e).__name__}: {e}")
            await self._ledger.update_run(
                run_id,
                status=ERROR,
                error_message=str(e) or type(e).__name__,
                elapsed_ms=elapsed_ms(),
            )
            raise

        logger.info(f"Run {run_id}: full video complete in {duration}ms -> {final_ref}")
        return final_ref

    def _output_ref(self, run_id: str, output_path: Path) -> str:
        output_path = Path(output_path).resolve()
        if not self._public_base_url:
            return str(output_path)
        return f"{self._public_base_url.rstrip('/')}/videos/{run_id}/{output_path.name}"


def build_orchestrator(
    settings: "Settings",
    session_factory: "async_sessionmaker[AsyncSession]",
) -> PipelineOrchestrator:
    """Wire the default Vertex-backed pipeline from application settings."""
    from storyreel.pipeline.planner import load_prompt_guide
    from storyreel.services.file_manager import FileManager
    from storyreel.services.image_source import ImageResolver
    from storyreel.services.llm import get_adapter
    from storyreel.services.run_ledger import RunLedger
    from storyreel.services.vertex_client import create_vertex_client, location_for_model
    from storyreel.services.video_backend import VeoVideoBackend

    pipeline_cfg = settings.pipeline
    resolver = ImageResolver()
    file_mgr = FileManager(settings.storage.tmp_dir)

    planner = TransitionPlanner(
        get_adapter(settings.models.transition_llm, settings),
        resolver,
        prompt_guide=load_prompt_guide(pipeline_cfg.prompt_guide_path),
        retry_attempts=pipeline_cfg.planner_retry_attempts,
        retry_delay=pipeline_cfg.planner_retry_delay,
        timeout=pipeline_cfg.planner_timeout,
    )

    video_model = settings.models.video_gen
    video_client = create_vertex_client(
        settings.google_cloud,
        location=location_for_model(video_model, settings.google_cloud.location),
    )
    synthesizer = SegmentSynthesizer(
        VeoVideoBackend(video_client, video_model, submit_attempts=pipeline_cfg.submit_retry_attempts),
        resolver,
        file_mgr,
        poll_interval=pipeline_cfg.video_poll_interval,
        poll_max=pipeline_cfg.video_poll_max,
        aspect_ratio=pipeline_cfg.aspect_ratio,
        resolution=pipeline_cfg.resolution,
        generate_audio=pipeline_cfg.generate_audio,
        enhance_prompt=pipeline_cfg.enhance_prompt,
        person_generation=pipeline_cfg.person_generation,
        materialize_remote_results=pipeline_cfg.materialize_remote_results,
    )

    return PipelineOrchestrator(
        planner,
        synthesizer,
        Stitcher(file_mgr),
        RunLedger(session_factory),
        public_base_url=settings.server.public_base_url,
        cancel_on_failure=pipeline_cfg.cancel_on_failure,
        resolver=resolver,
    )
