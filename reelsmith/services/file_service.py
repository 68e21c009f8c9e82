"""Temp/uploads namespaces and per-job temp file bookkeeping."""

import logging
import threading
import time
import uuid
from pathlib import Path

from reelsmith.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Files kept so empty namespaces survive in version control
_KEEP_FILES = {".gitkeep"}


class FileService:
    """Owns the two storage namespaces shared by every job.

    - temp: pipeline outputs, downloads and intermediates
    - uploads: user-provided assets
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.temp_dir = Path(self.settings.temp_path)
        self.uploads_dir = Path(self.settings.uploads_path)
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self._job_files: dict[str, set[Path]] = {}
        self._lock = threading.Lock()

    def temp_file_path(self, ext: str, job_id: str | None = None) -> Path:
        """Allocate a fresh, unique path in the temp namespace."""
        ext = ext.lstrip(".") or "bin"
        path = self.temp_dir / f"{uuid.uuid4()}.{ext}"
        if job_id:
            self.track_file(job_id, path)
        return path

    def track_file(self, job_id: str, path: Path | str) -> None:
        with self._lock:
            self._job_files.setdefault(job_id, set()).add(Path(path))

    def tracked_files(self, job_id: str) -> list[Path]:
        with self._lock:
            return sorted(self._job_files.get(job_id, set()))

    def cleanup_file(self, path: Path | str) -> bool:
        """Delete a file, logging (not raising) on failure."""
        path = Path(path)
        try:
            path.unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.warning(f"[FILES] Failed to delete {path}: {e}")
            return False

    def cleanup_job_files(self, job_id: str, keep: set[Path] | None = None) -> int:
        """Delete every file tracked for a job except the ones in `keep`."""
        keep = {Path(p) for p in (keep or set())}
        with self._lock:
            files = self._job_files.pop(job_id, set())
        removed = 0
        for path in files:
            if path in keep:
                continue
            if path.exists() and self.cleanup_file(path):
                removed += 1
        if removed:
            logger.info(f"[FILES] Cleaned {removed} temp files for job {job_id}")
        return removed

    def cleanup_old_files(self, max_age_s: float | None = None) -> int:
        """Delete temp files whose mtime is older than max_age_s."""
        max_age_s = self.settings.temp_file_max_age_s if max_age_s is None else max_age_s
        cutoff = time.time() - max_age_s
        removed = 0
        for path in self.temp_dir.iterdir():
            if not path.is_file() or path.name in _KEEP_FILES:
                continue
            if path.stat().st_mtime < cutoff and self.cleanup_file(path):
                removed += 1
        return removed

    def cleanup_all_temp_files(self) -> int:
        removed = 0
        for path in self.temp_dir.iterdir():
            if path.is_file() and path.name not in _KEEP_FILES and self.cleanup_file(path):
                removed += 1
        with self._lock:
            self._job_files.clear()
        logger.info(f"[FILES] Removed {removed} temp files")
        return removed

    def get_temp_stats(self) -> dict[str, int]:
        files = [p for p in self.temp_dir.iterdir() if p.is_file() and p.name not in _KEEP_FILES]
        with self._lock:
            tracked_jobs = len(self._job_files)
        return {
            "file_count": len(files),
            "total_size_bytes": sum(p.stat().st_size for p in files),
            "tracked_jobs": tracked_jobs,
        }

    def temp_url(self, path: Path | str) -> str:
        """Public-facing path of a temp file, e.g. /temp/<name>."""
        return f"/temp/{Path(path).name}"
