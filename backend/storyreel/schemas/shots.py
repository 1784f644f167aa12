"""Pydantic schemas for shots, transition plans, and clip results.

Shots arrive from the storyboard layer (which still speaks the camelCase
keys of the storyboard web API, accepted here as aliases). Plans and clip
results are produced inside the pipeline and persisted, sanitized, by the
run ledger.
"""

import re
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

VALID_DURATIONS = (4, 6, 8)
DEFAULT_DURATION = 6

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def normalize_duration(value: Any) -> int:
    """Coerce a raw duration to one of 4, 6 or 8 seconds.

    The leading integer of the value is used (``"8 seconds"`` -> 8,
    ``"5-6 seconds"`` -> 5, ``6.9`` -> 6). Anything outside the accepted set,
    non-numeric, or missing becomes 6.

    >>> normalize_duration("4")
    4
    >>> normalize_duration(5)
    6
    >>> normalize_duration("about eight")
    6
    """
    if isinstance(value, bool) or value is None:
        return DEFAULT_DURATION
    if isinstance(value, (int, float)):
        parsed = int(value)
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return DEFAULT_DURATION
        parsed = int(match.group(1))
    return parsed if parsed in VALID_DURATIONS else DEFAULT_DURATION


def _coerce_to_str(v: Any) -> str:
    """Coerce list/non-str values to comma-separated string.

    Vision models occasionally return arrays for fields declared as
    string in the JSON schema.
    """
    if isinstance(v, list):
        return ", ".join(str(item) for item in v)
    return v


CoercedStr = Annotated[str, BeforeValidator(_coerce_to_str)]
NormalizedDuration = Annotated[int, BeforeValidator(normalize_duration)]


class Shot(BaseModel):
    """One narrative beat: a still image plus its description.

    Immutable for the duration of a pipeline run.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    index: int = Field(
        validation_alias=AliasChoices("index", "shot"),
        ge=1,
        description="1-based position of the shot in the storyboard",
    )
    description: str = ""
    image_prompt: str = Field(
        default="",
        validation_alias=AliasChoices("image_prompt", "imagePrompt", "prompt"),
    )
    image_ref: str = Field(
        validation_alias=AliasChoices("image_ref", "imageRef", "imageUrl"),
        description="data: URI, http(s) URL, or local file path of the still image",
    )
    hero_subject: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("hero_subject", "heroSubject"),
    )
    requested_duration: Optional[Union[int, str]] = Field(
        default=None,
        validation_alias=AliasChoices("requested_duration", "duration"),
    )
    shot_story: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("shot_story", "shotStory"),
    )

    def summary(self) -> dict:
        """Return the shot without its (potentially huge) image payload."""
        return self.model_dump(mode="json", exclude={"image_ref"})


class TransitionAnalysis(BaseModel):
    """Structured answer expected from the transition reasoning service."""

    transition_prompt: CoercedStr = Field(
        min_length=1,
        description="Camera movement and visual transition bridging the first frame to the last frame",
    )
    duration: NormalizedDuration = Field(
        description="Transition length in seconds; must be 4, 6, or 8",
    )


class TransitionPlan(BaseModel):
    """Synthesis instruction for one segment of the output video."""

    index: int = Field(ge=0, description="0-based position in the synthesis sequence")
    from_shot: Shot
    to_shot: Optional[Shot] = None
    prompt: str
    duration_seconds: Literal[4, 6, 8] = DEFAULT_DURATION
    is_closing: bool = False


class ClipResult(BaseModel):
    """Outcome of synthesizing one TransitionPlan."""

    index: int
    file_path: Optional[Path] = None
    provider: str
    duration_seconds: int
    prompt: str = ""


class PipelineRunRecord(BaseModel):
    """Read-only view of a pipeline run as stored by the run ledger."""

    id: str
    created_at: str
    status: str
    shots: list[dict] = Field(default_factory=list)
    transition_plans: list[dict] = Field(default_factory=list)
    clip_results: list[dict] = Field(default_factory=list)
    final_output_ref: Optional[str] = None
    error_message: Optional[str] = None
    elapsed_ms: Optional[int] = None
