"""File intake: turns video paths and folders into pending jobs."""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..models.job import Job, JobConfig


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FileHandler:
    """Validates input files and creates jobs for them."""

    SUPPORTED_FORMATS = {'.mp4', '.mov', '.avi', '.mkv', '.m4v', '.flv', '.wmv'}

    def validate_file(self, file_path: PathLike) -> bool:
        """
        Validate if file is acceptable for processing.

        Args:
            file_path: Path to the file to validate

        Returns:
            True if the file exists, is a regular file and has a supported extension
        """
        path = Path(file_path)
        if not path.is_file():
            return False
        return path.suffix.lower() in self.SUPPORTED_FORMATS

    def get_file_info(self, file_path: PathLike) -> Dict[str, object]:
        """
        Get file information including size and format.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        size = path.stat().st_size
        return {
            'path': str(path),
            'size_bytes': size,
            'size_mb': size / (1024 * 1024),
            'format': path.suffix.lower(),
            'is_supported': path.suffix.lower() in self.SUPPORTED_FORMATS,
        }

    def find_media_files(self, folder: PathLike) -> List[str]:
        """Recursively collect supported videos, skipping hidden entries, sorted by file name."""
        root = Path(folder)
        if not root.is_dir():
            raise NotADirectoryError(f"Not a directory: {folder}")

        found = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [name for name in dirnames if not name.startswith('.')]
            for name in filenames:
                if name.startswith('.'):
                    continue
                if Path(name).suffix.lower() in self.SUPPORTED_FORMATS:
                    found.append(os.path.join(dirpath, name))

        return sorted(found, key=lambda path: os.path.basename(path))

    def create_jobs(self, paths: Iterable[PathLike], config: Optional[JobConfig] = None) -> List[Job]:
        """Create one pending job per path, recording the file size when readable."""
        config = config or JobConfig()
        jobs = []
        for path in paths:
            job = Job.from_path(str(path), config)
            job.file_size = _file_size(path)
            jobs.append(job)
        logger.info(f"Created {len(jobs)} job(s)")
        return jobs

    def jobs_from_folder(self, folder: PathLike, config: Optional[JobConfig] = None) -> List[Job]:
        return self.create_jobs(self.find_media_files(folder), config)


def _file_size(path: PathLike) -> Optional[int]:
    try:
        return os.path.getsize(path)
    except OSError:
        return None
