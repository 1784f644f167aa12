"""Ordered clip stitching with the ffmpeg concat demuxer.

Clips are concatenated in exactly the order given, with stream copy (no
re-encoding): every clip comes from the same backend and shares encoding
parameters.
"""

import asyncio
import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from storyreel.errors import EncodingFailed, NoInputClips
from storyreel.services.file_manager import FileManager

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

INSTALL_HINT = (
    "Install ffmpeg to stitch transition clips.\n"
    "Ubuntu/Debian: sudo apt-get install ffmpeg\n"
    "macOS: brew install ffmpeg\n"
    "Windows: https://ffmpeg.org/download.html"
)


def ffmpeg_version(ffmpeg_bin: str = "ffmpeg") -> str:
    """Return the first line of ``ffmpeg -version``.

    Entry points call this before any generation work so a missing encoder
    fails before clips are paid for.

    Raises:
        RuntimeError: The binary is missing or exits non-zero.
    """
    try:
        result = subprocess.run(
            [ffmpeg_bin, "-version"], capture_output=True, check=True, text=True,
        )
    except FileNotFoundError as e:
        raise RuntimeError(f"{ffmpeg_bin} not found on PATH. {INSTALL_HINT}") from e
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"{ffmpeg_bin} -version exited with {e.returncode}. {INSTALL_HINT}") from e

    version = result.stdout.split("\n")[0]
    logger.debug(f"Encoder available: {version}")
    return version


@dataclass(frozen=True)
class StitchOutcome:
    """Result of one encoder invocation: an output path or a failure reason."""

    ok: bool
    output_path: Optional[Path] = None
    reason: Optional[str] = None


def _concat_line(clip_path: Path) -> str:
    # Single quotes inside a quoted concat entry are written as '\''
    escaped = str(clip_path.resolve()).replace("'", "'\\''")
    return f"file '{escaped}'\n"


class Stitcher:
    """Concatenates clip files into one MP4.

    Args:
        file_manager: Provides output locations.
        ffmpeg_bin: ffmpeg executable name or path.
    """

    def __init__(self, file_manager: FileManager, ffmpeg_bin: str = "ffmpeg"):
        self._file_mgr = file_manager
        self._ffmpeg = ffmpeg_bin

    async def stitch(
        self,
        ordered_paths: Sequence[Optional[PathLike]],
        run_id: Optional[str] = None,
    ) -> Path:
        """Concatenate clips in the given order.

        Absent (None/empty) entries are dropped; order of the rest is kept.

        Raises:
            NoInputClips: Nothing left to stitch, or a clip file is missing.
            EncodingFailed: ffmpeg reported an error.
        """
        clip_paths = [Path(p) for p in ordered_paths if p]
        if not clip_paths:
            raise NoInputClips("No video files to stitch.")

        missing = [str(p) for p in clip_paths if not p.exists()]
        if missing:
            raise NoInputClips(f"Missing clip files: {missing}")

        output_path = self._file_mgr.get_output_path(run_id)
        logger.info(f"Stitching {len(clip_paths)} clips -> {output_path}")

        outcome = await asyncio.to_thread(self._concat_demuxer, clip_paths, output_path)
        if not outcome.ok:
            logger.error(f"ffmpeg stitch error: {outcome.reason}")
            raise EncodingFailed(f"Video stitching failed: {outcome.reason}")

        logger.info(f"ffmpeg stitch complete: {outcome.output_path}")
        return outcome.output_path

    def _concat_demuxer(self, clip_paths: list[Path], output_path: Path) -> StitchOutcome:
        """Run ffmpeg's concat demuxer over a transient manifest file.

        -safe 0 lets the manifest list absolute paths outside ffmpeg's
        working directory.
        """
        list_file = output_path.parent / f"concat_list_{int(time.time() * 1000)}.txt"

        try:
            with open(list_file, "w", encoding="utf-8") as f:
                for clip_path in clip_paths:
                    f.write(_concat_line(clip_path))

            subprocess.run(
                [
                    self._ffmpeg,
                    "-y",
                    "-f",
                    "concat",
                    "-safe",
                    "0",
                    "-i",
                    str(list_file),
                    "-c",
                    "copy",
                    str(output_path),
                ],
                check=True,
                capture_output=True,
            )
            return StitchOutcome(ok=True, output_path=output_path)

        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace") if e.stderr else "No error output"
            return StitchOutcome(ok=False, reason=stderr[-500:])

        except OSError as e:
            return StitchOutcome(ok=False, reason=f"{type(e).__name__}: {e}")

        finally:
            if list_file.exists():
                list_file.unlink()
