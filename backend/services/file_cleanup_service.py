"""
File Cleanup Service

Removes temp-store files (uploaded inputs, failed outputs, expired artifacts).
A file that is already gone counts as removed; any other failure is logged and
reported through the return value rather than raised, since cleanup always runs
on a path that is already reporting its own outcome.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class FileCleanupService:
    """Service for temp file cleanup operations."""

    @staticmethod
    def remove_file(path: Optional[Path]) -> bool:
        """
        Delete a single file.

        Args:
            path: File to delete (None is ignored)

        Returns:
            True if the file no longer exists afterwards
        """
        if path is None:
            return True
        try:
            Path(path).unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")
            return False

    @staticmethod
    def remove_files(paths: Iterable[Optional[Path]]) -> int:
        """
        Delete several files.

        Returns:
            Number of paths that could not be removed
        """
        failures = 0
        for path in paths:
            if not FileCleanupService.remove_file(path):
                failures += 1
        return failures
