"""
Per-job work areas.

Each pipeline run gets its own directory below the configured work
root; the directory and everything in it is removed when the run
leaves the ``with`` block, whether it succeeded or not.
"""

import logging
import os
import shutil
import tempfile
from typing import Optional

from .util import ensure_dir, clean_filename

logger = logging.getLogger("reel_worker")


class WorkArea:
    """Exclusive temporary directory for one job run"""

    def __init__(self, base_dir: str, job_id: str):
        self.base_dir = base_dir
        self.job_id = job_id
        self.path: Optional[str] = None

    def __enter__(self) -> 'WorkArea':
        ensure_dir(self.base_dir)
        # mkdtemp guarantees a fresh directory even if a job is re-run
        self.path = tempfile.mkdtemp(prefix=f"job_{clean_filename(self.job_id)}_", dir=self.base_dir)
        logger.debug(f"Allocated work area {self.path}")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

    def file(self, name: str) -> str:
        """Path of a file inside the work area"""
        if self.path is None:
            raise RuntimeError("Work area is not allocated")
        return os.path.join(self.path, name)

    def subdir(self, name: str) -> str:
        path = self.file(name)
        ensure_dir(path)
        return path

    def cleanup(self):
        if self.path is None:
            return
        try:
            shutil.rmtree(self.path)
            logger.debug(f"Removed work area {self.path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove work area {self.path}: {e}")
        self.path = None
