"""
File management service for storyreel.

Handles per-run filesystem artifact storage with path traversal protection.
Creates per-run directories with subdirectories for clips and output.
"""
import time
from pathlib import Path


class FileManager:
    """
    Manage filesystem artifacts for pipeline runs.

    Creates structured directories:
    - {base_dir}/{run_id}/clips/ - One video clip per transition plan
    - {base_dir}/{run_id}/output/ - Final stitched video

    Implements path traversal protection to prevent directory escape attacks.
    """

    def __init__(self, base_dir: str | Path):
        """
        Initialize FileManager with base directory.

        Args:
            base_dir: Root directory for all run artifacts.
        """
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def get_run_dir(self, run_id: str) -> Path:
        """
        Get or create run directory with subdirectories.

        Raises:
            ValueError: If run_id creates path outside base_dir (traversal attack)
        """
        run_dir = (self.base_dir / str(run_id)).resolve()

        if run_dir == self.base_dir or not run_dir.is_relative_to(self.base_dir):
            raise ValueError("Invalid run path")

        run_dir.mkdir(exist_ok=True)
        (run_dir / "clips").mkdir(exist_ok=True)
        (run_dir / "output").mkdir(exist_ok=True)

        return run_dir

    def save_clip(self, run_id: str, index: int, data: bytes) -> Path:
        """
        Save the video clip for one transition plan.

        File names are unique per plan index, so concurrent synthesis tasks
        never write the same file. Write errors propagate.

        Args:
            run_id: Pipeline run identifier
            index: Plan index (0-based)
            data: MP4 video data

        Returns:
            Path to saved clip file
        """
        run_dir = self.get_run_dir(run_id)
        filepath = run_dir / "clips" / f"clip_{index:03d}.mp4"
        filepath.write_bytes(data)
        return filepath

    def get_output_path(self, run_id: str | None = None, filename: str | None = None) -> Path:
        """
        Get path for a stitched output video.

        Without a run_id the file goes to {base_dir}/output/.

        Args:
            run_id: Pipeline run identifier
            filename: Output filename (default: full_story_<ms timestamp>.mp4)
        """
        filename = filename or f"full_story_{int(time.time() * 1000)}.mp4"
        if run_id is None:
            output_dir = self.base_dir / "output"
            output_dir.mkdir(exist_ok=True)
            return output_dir / filename
        return self.get_run_dir(run_id) / "output" / filename
