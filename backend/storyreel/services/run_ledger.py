"""Run ledger: persistent lifecycle record of every pipeline run.

Stores status transitions plus the intermediate artifacts (plans, clip
results) so failed runs can be inspected after the fact. Heavy image
payloads are stripped before anything is written.

Only the orchestrator writes to a run while it is in flight; the ledger
enforces the lifecycle rules so a terminal run is never mutated again.
"""

import logging
import secrets
import time
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storyreel.db.models import VideoRun
from storyreel.errors import RunStateError
from storyreel.orchestrator.state import STARTED, can_transition, is_terminal
from storyreel.schemas.shots import ClipResult, PipelineRunRecord, Shot, TransitionPlan

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100


def generate_run_id() -> str:
    """Return a unique, time-sortable run identifier."""
    return f"run_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def sanitize_shots(shots: Sequence[Shot]) -> list[dict]:
    return [shot.summary() for shot in shots]


def sanitize_plans(plans: Sequence[TransitionPlan]) -> list[dict]:
    return [
        {
            "index": plan.index,
            "from_shot": plan.from_shot.summary(),
            "to_shot": plan.to_shot.summary() if plan.to_shot else None,
            "prompt": plan.prompt,
            "duration_seconds": plan.duration_seconds,
            "is_closing": plan.is_closing,
        }
        for plan in plans
    ]


def sanitize_clips(clips: Sequence[ClipResult]) -> list[dict]:
    return [clip.model_dump(mode="json") for clip in clips]


def _to_record(row: VideoRun) -> PipelineRunRecord:
    return PipelineRunRecord(
        id=row.id,
        created_at=row.created_at.isoformat(),
        status=row.status,
        shots=row.storyboard or [],
        transition_plans=row.transition_plans or [],
        clip_results=row.clip_results or [],
        final_output_ref=row.final_video_url,
        error_message=row.error_message,
        elapsed_ms=row.duration_ms,
    )


class RunLedger:
    """CRUD over VideoRun rows with lifecycle enforcement.

    Args:
        session_factory: Async session factory (see storyreel.db.make_sessionmaker).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_run(self, shots: Sequence[Shot]) -> str:
        """Record a new run in ``started`` state and return its id."""
        run = VideoRun(
            id=generate_run_id(),
            status=STARTED,
            storyboard=sanitize_shots(shots),
        )
        async with self._session_factory() as session:
            session.add(run)
            await session.commit()
        logger.info(f"Run {run.id} created with {len(shots)} shots")
        return run.id

    async def update_run(
        self,
        run_id: str,
        *,
        status: Optional[str] = None,
        transition_plans: Optional[Sequence[TransitionPlan]] = None,
        clip_results: Optional[Sequence[ClipResult]] = None,
        final_output_ref: Optional[str] = None,
        error_message: Optional[str] = None,
        elapsed_ms: Optional[int] = None,
    ) -> None:
        """Apply a partial update to a run.

        Raises:
            RunStateError: The run does not exist, is already terminal, or
                the status change is not an allowed transition.
        """
        async with self._session_factory() as session:
            run = await session.get(VideoRun, run_id)
            if run is None:
                raise RunStateError(f"Run {run_id} not found")
            if is_terminal(run.status):
                raise RunStateError(f"Run {run_id} is already {run.status}")

            if status is not None and status != run.status:
                if not can_transition(run.status, status):
                    raise RunStateError(f"Run {run_id}: illegal transition {run.status} -> {status}")
                logger.info(f"Run {run_id}: {run.status} -> {status}")
                run.status = status
            if transition_plans is not None:
                run.transition_plans = sanitize_plans(transition_plans)
            if clip_results is not None:
                run.clip_results = sanitize_clips(clip_results)
            if final_output_ref is not None:
                run.final_video_url = final_output_ref
            if error_message is not None:
                run.error_message = error_message
            if elapsed_ms is not None:
                run.duration_ms = elapsed_ms

            await session.commit()

    async def get_run(self, run_id: str) -> Optional[PipelineRunRecord]:
        async with self._session_factory() as session:
            run = await session.get(VideoRun, run_id)
            return _to_record(run) if run else None

    async def list_runs(self, limit: int = DEFAULT_LIST_LIMIT) -> list[PipelineRunRecord]:
        """Return the most recent runs, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(VideoRun).order_by(VideoRun.created_at.desc(), VideoRun.id.desc()).limit(limit)
            )
            return [_to_record(run) for run in result.scalars().all()]

    async def delete_run(self, run_id: str) -> bool:
        """Delete one run; returns False if it did not exist."""
        async with self._session_factory() as session:
            result = await session.execute(delete(VideoRun).where(VideoRun.id == run_id))
            await session.commit()
            return result.rowcount > 0

    async def clear_runs(self) -> int:
        """Delete every run and return how many were removed."""
        async with self._session_factory() as session:
            result = await session.execute(delete(VideoRun))
            await session.commit()
            return result.rowcount
