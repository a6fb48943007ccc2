import logging
import os

from ..adapters.base import ObjectStore
from ..errors import PublishFailed
from .util import guess_content_type

logger = logging.getLogger("reel_worker")


class ArtifactPublisher:
    """Uploads job assets to the object store, one upload per asset"""

    def __init__(self, object_store: ObjectStore, key_prefix: str = ""):
        self.object_store = object_store
        self.key_prefix = key_prefix.strip("/")

    def key_for(self, job_id: str, name: str) -> str:
        return f"{self.key_prefix}/{job_id}/{name}" if self.key_prefix else f"{job_id}/{name}"

    def publish(self, job_id: str, file_path: str, name: str = None) -> str:
        """
        Upload one file and return its URL.

        Args:
            job_id: Owning job
            file_path: Local file in the work area
            name: Object name; defaults to the file's base name

        Raises:
            PublishFailed: the file could not be read or uploaded
        """
        name = name or os.path.basename(file_path)
        key = self.key_for(job_id, name)
        content_type = guess_content_type(name)

        try:
            with open(file_path, 'rb') as fh:
                data = fh.read()
            url = self.object_store.put(data, key, content_type)
        except Exception as e:
            raise PublishFailed(f"{name}: {e}") from e

        logger.info(f"Published {name} for job {job_id} ({len(data)} bytes, {content_type})")
        return url
