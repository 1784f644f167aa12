"""Exception taxonomy for the transition video pipeline.

Planning failures never surface through these types to the caller (the
planner falls back instead); synthesis and stitching failures propagate to
the orchestrator, which records them on the run and re-raises.
"""

from typing import Optional


class StoryreelError(Exception):
    """Base class for all pipeline errors."""


class ResourceUnavailable(StoryreelError):
    """An image reference could not be resolved to bytes."""


class UnsupportedReference(StoryreelError):
    """An image reference is not a data URI, http(s) URL, or existing path."""


class InsufficientShots(StoryreelError):
    """Fewer than two shots were supplied to a pipeline run."""


class RunStateError(StoryreelError):
    """A ledger mutation targeted an unknown or already-terminal run."""


class SynthesisError(StoryreelError):
    """Base class for failures while producing a single segment."""

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message)
        self.index = index


class ProviderError(SynthesisError):
    """Transient backend or network failure (retried where it occurs)."""


class JobFailed(SynthesisError):
    """The backend reported an explicit job-level failure."""


class JobTimeout(SynthesisError):
    """Polling exhausted its attempts before the job completed."""


class SynthesisFailed(SynthesisError):
    """The job finished but no local artifact could be obtained."""


class StitchError(StoryreelError):
    """Base class for stitching failures."""


class NoInputClips(StitchError):
    """No usable clip files were given to the stitcher."""


class EncodingFailed(StitchError):
    """The external encoder reported an error."""
