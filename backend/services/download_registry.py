"""
Download Registry

In-memory mapping from opaque download ids to finished artifacts with a bounded
lifetime. The registry owns every registered file: it deletes it when the entry
expires or when the registry is cleared at shutdown.

Entries are reachable for at most ttl_seconds after registration, and never
after their backing file has disappeared, whichever comes first.
"""

import time
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from constants import RegistryDefaults
from exceptions import ArtifactNotFoundError, ServerError
from services.file_cleanup_service import FileCleanupService
from utils.uuid_helper import generate_timestamped_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadEntry:
    """One registered artifact"""

    id: str
    file_path: Path
    created_at: float

    def age(self, now: float) -> float:
        return now - self.created_at


class DownloadRegistry:
    """Thread-safe TTL registry of downloadable artifacts."""

    def __init__(
        self,
        ttl_seconds: float = RegistryDefaults.TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._id_factory = id_factory or (lambda: generate_timestamped_id(RegistryDefaults.ID_PREFIX))
        self._entries: Dict[str, DownloadEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, download_id: str) -> bool:
        with self._lock:
            return download_id in self._entries

    def register(self, file_path: Path) -> str:
        """
        Register a finished artifact and take ownership of its file.

        Args:
            file_path: Location of the artifact

        Returns:
            New download id, unique among live entries
        """
        with self._lock:
            for _ in range(RegistryDefaults.MAX_ID_ATTEMPTS):
                download_id = self._id_factory()
                if download_id not in self._entries:
                    break
            else:
                raise ServerError("Could not allocate a unique download id")

            entry = DownloadEntry(id=download_id, file_path=Path(file_path), created_at=self._clock())
            self._entries[download_id] = entry

        logger.info(f"Registered download {download_id} -> {entry.file_path}")
        return download_id

    def lookup(self, download_id: str) -> Path:
        """
        Resolve a download id to its artifact path.

        The entry must be younger than the TTL and its file must still be a
        regular file on disk. Otherwise the entry is evicted.

        Raises:
            ArtifactNotFoundError: If the id is unknown, expired or its file is gone
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(download_id)
            if entry is None:
                raise ArtifactNotFoundError(download_id)
            expired = entry.age(now) > self.ttl_seconds
            if expired:
                del self._entries[download_id]

        if expired:
            logger.info(f"Download {download_id} expired on lookup")
            FileCleanupService.remove_file(entry.file_path)
            raise ArtifactNotFoundError(download_id)

        # Stat outside the lock; evict only if the entry was not replaced meanwhile
        if not entry.file_path.is_file():
            with self._lock:
                if self._entries.get(download_id) is entry:
                    del self._entries[download_id]
            logger.warning(f"Download {download_id} file vanished: {entry.file_path}")
            raise ArtifactNotFoundError(download_id)

        return entry.file_path

    def evict(self, download_id: str, delete_file: bool = True) -> bool:
        """
        Remove an entry immediately.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            entry = self._entries.pop(download_id, None)
        if entry is None:
            return False
        if delete_file:
            FileCleanupService.remove_file(entry.file_path)
        logger.info(f"Evicted download {download_id}")
        return True

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """
        Remove every entry older than the TTL and delete its file.

        Args:
            now: Clock reading to compare against (defaults to the registry clock)

        Returns:
            Ids of the evicted entries
        """
        now = self._clock() if now is None else now
        with self._lock:
            expired = [entry for entry in self._entries.values() if entry.age(now) > self.ttl_seconds]
            for entry in expired:
                del self._entries[entry.id]

        for entry in expired:
            FileCleanupService.remove_file(entry.file_path)
            logger.info(f"Cleanup expired {entry.id}")
        return [entry.id for entry in expired]

    def clear(self) -> int:
        """
        Remove every entry and delete its file.

        Returns:
            Number of entries removed
        """
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()

        FileCleanupService.remove_files(entry.file_path for entry in entries)
        if entries:
            logger.info(f"Cleared {len(entries)} download(s)")
        return len(entries)
