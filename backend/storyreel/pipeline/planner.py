"""Transition planning between adjacent storyboard shots.

For every adjacent pair of shots a vision model looks at both frames and
describes the camera movement that bridges them, plus a duration of 4, 6 or
8 seconds. The final shot gets a closing plan built from its own prompt.

Planning is never fatal: any failure while analyzing a pair (unresolvable
image, provider error, timeout, unparsable answer) produces the generic
fallback plan so the run can still proceed to synthesis.

Usage:
    planner = TransitionPlanner(adapter, ImageResolver())
    plans = await planner.plan_all(shots)
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from storyreel.schemas.shots import (
    DEFAULT_DURATION,
    Shot,
    TransitionAnalysis,
    TransitionPlan,
    normalize_duration,
)
from storyreel.services.image_source import ImageData, ImageResolver
from storyreel.services.llm import LLMAdapter
from storyreel.services.retry import bounded_retry

logger = logging.getLogger(__name__)

FALLBACK_PROMPT = "smooth cinematic transition"
CLOSING_SUFFIX = "Hold on the final frame with a gentle cinematic finish."
CLOSING_DEFAULT = "Final lingering shot."

DEFAULT_PROMPT_GUIDE = """\
- Keep every description safe for all audiences: no violence, weapons, gore,
  nudity, drugs, or real public figures.
- Describe only what the camera does and how the scene evolves; do not add
  on-screen text, captions, logos, or watermarks.
- Preserve the identity, wardrobe, and proportions of recurring characters
  between the two frames.
- Prefer one continuous, physically plausible camera move (dolly, pan, tilt,
  crane, orbit, focus pull) over cuts.
"""

SYSTEM_PROMPT = """\
Role: Expert Film Director and Cinematographer.
Context: You are writing prompts for a video generation model that
interpolates between a first frame and a last frame.

IMPORTANT SAFETY GUIDELINES:
{guide}"""

TASK_PROMPT = """\
Task: Analyze these two sequential storyboard frames (First Frame -> Last Frame).
1. Describe the specific camera movement and visual transition required to bridge
   these two shots seamlessly (e.g., "Slow dolly zoom in while panning right",
   "Focus pull from foreground to background").
2. Determine the optimal duration for this transition to feel natural
   (MUST be 4, 6, or 8 seconds).
{continuity}
Output ONLY a raw JSON object (no markdown):
{{"transition_prompt": "Detailed cinematic description...", "duration": 6}}
"""


def load_prompt_guide(path: Optional[Path]) -> str:
    """Read the style/safety guide, falling back to the built-in one."""
    if path is None:
        return DEFAULT_PROMPT_GUIDE
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Prompt guide {path} unreadable, using built-in guide: {e}")
        return DEFAULT_PROMPT_GUIDE


def _is_retryable(exc: BaseException) -> bool:
    # A malformed answer will not improve on a second identical call
    return not isinstance(exc, ValidationError)


class TransitionPlanner:
    """Builds TransitionPlans for a storyboard.

    Args:
        adapter: Vision-capable reasoning adapter.
        resolver: Resolves shot image references to bytes.
        prompt_guide: Style/safety guide injected into the system prompt.
        retry_attempts: Total reasoning attempts per pair.
        retry_delay: Fixed delay between attempts, in seconds.
        timeout: Per-attempt timeout for the reasoning call, in seconds.
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        resolver: ImageResolver,
        *,
        prompt_guide: str = DEFAULT_PROMPT_GUIDE,
        retry_attempts: int = 2,
        retry_delay: float = 0.4,
        timeout: float = 60.0,
    ):
        self._adapter = adapter
        self._resolver = resolver
        self._system_prompt = SYSTEM_PROMPT.format(guide=prompt_guide.strip())
        self._timeout = timeout
        self._call_with_retry = bounded_retry(
            attempts=retry_attempts,
            delay=retry_delay,
            retry_on=_is_retryable,
            log=logger,
        )(self._call_once)

    async def _call_once(self, first: ImageData, last: ImageData, prompt: str) -> TransitionAnalysis:
        return await asyncio.wait_for(
            self._adapter.analyze_images(
                [first, last],
                prompt,
                TransitionAnalysis,
                system_prompt=self._system_prompt,
            ),
            timeout=self._timeout,
        )

    async def analyze(self, shot_a: Shot, shot_b: Shot) -> TransitionAnalysis:
        """Ask the reasoning service how to bridge two shots.

        Raises:
            ResourceUnavailable: Either image cannot be resolved.
            UnsupportedReference: Either image reference has an unknown form.
            Exception: The last provider error once retries are exhausted.
        """
        first = await self._resolver.resolve(shot_a.image_ref)
        last = await self._resolver.resolve(shot_b.image_ref)

        continuity = ""
        if shot_a.hero_subject or shot_b.hero_subject:
            subject = shot_b.hero_subject or shot_a.hero_subject
            continuity = f"Keep the hero subject consistent across both frames: {subject}\n"

        return await self._call_with_retry(first, last, TASK_PROMPT.format(continuity=continuity))

    async def plan_transition(self, shot_a: Shot, shot_b: Shot, index: int) -> TransitionPlan:
        """Plan the segment bridging shot_a to shot_b; never raises on analysis failure."""
        logger.info(f"Analyzing transition {shot_a.index} -> {shot_b.index}")
        try:
            analysis = await self.analyze(shot_a, shot_b)
            prompt, duration = analysis.transition_prompt, analysis.duration
        except Exception as e:
            logger.warning(
                f"Transition analysis failed for shots {shot_a.index}->{shot_b.index}, "
                f"using fallback plan: {type(e).__name__}: {e}"
            )
            prompt, duration = FALLBACK_PROMPT, DEFAULT_DURATION

        return TransitionPlan(
            index=index,
            from_shot=shot_a,
            to_shot=shot_b,
            prompt=prompt,
            duration_seconds=normalize_duration(duration),
        )

    def plan_closing(self, last_shot: Shot, index: int) -> TransitionPlan:
        """Plan the closing segment that lingers on the final shot."""
        base = last_shot.image_prompt or last_shot.description or CLOSING_DEFAULT
        return TransitionPlan(
            index=index,
            from_shot=last_shot,
            to_shot=None,
            prompt=f"{base} {CLOSING_SUFFIX}",
            duration_seconds=normalize_duration(last_shot.requested_duration),
            is_closing=True,
        )

    async def plan_all(self, shots: Sequence[Shot]) -> list[TransitionPlan]:
        """Plan every segment: N-1 pairwise transitions then one closing plan."""
        plans = []
        for i in range(len(shots) - 1):
            plans.append(await self.plan_transition(shots[i], shots[i + 1], index=i))
        plans.append(self.plan_closing(shots[-1], index=len(plans)))
        logger.info(f"Transition plans ready: {len(plans)}")
        return plans
