"""
Per-job update channel.

The orchestrator publishes a job view after every persisted change.
Subscribers receive views through a JobUpdateStream, an iterator that
ends after a terminal view. Push delivery is an optimization: the job
store stays the source of truth and a stream always starts with the
current persisted view.
"""

import logging
import queue
from datetime import datetime
from threading import Lock
from typing import Dict, Any, List, Optional

logger = logging.getLogger("reel_worker")

TERMINAL_STATUSES = ("completed", "failed")

_CLOSED = object()


def _updated_at(view: Dict[str, Any]) -> Optional[datetime]:
    value = view.get('updated_at')
    return datetime.fromisoformat(value) if value else None


class JobUpdateStream:
    """Iterator over the views broadcast for one job"""

    def __init__(self, broker: 'JobUpdateBroker', job_id: str, idle_timeout: Optional[float] = None):
        self.broker = broker
        self.job_id = job_id
        self.idle_timeout = idle_timeout
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._initial: Optional[Dict[str, Any]] = None
        self._last_seen: Optional[datetime] = None
        self.closed = False

    def deliver(self, view: Dict[str, Any]):
        if not self.closed:
            self._queue.put(view)

    def prime(self, view: Dict[str, Any]):
        """Set the current persisted view, yielded before any broadcast"""
        self._initial = view

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.broker.unsubscribe(self)
        self._queue.put(_CLOSED)

    def _is_stale(self, view: Dict[str, Any]) -> bool:
        # broadcasts queued before the initial read can be older than it
        updated_at = _updated_at(view)
        return self._last_seen is not None and updated_at is not None and updated_at < self._last_seen

    def _emit(self, view: Dict[str, Any]) -> Dict[str, Any]:
        self._last_seen = _updated_at(view) or self._last_seen
        return view

    def __iter__(self):
        try:
            if self._initial is not None:
                yield self._emit(self._initial)
                if self._initial.get('status') in TERMINAL_STATUSES:
                    return

            while not self.closed:
                try:
                    item = self._queue.get(timeout=self.idle_timeout)
                except queue.Empty:
                    logger.debug(f"Update stream for job {self.job_id} idle, closing")
                    return
                if item is _CLOSED:
                    return
                if self._is_stale(item):
                    continue
                yield self._emit(item)
                if item.get('status') in TERMINAL_STATUSES:
                    return
        finally:
            self.close()


class JobUpdateBroker:
    """Fan-out of job views to the streams subscribed to each job"""

    def __init__(self):
        self._subscribers: Dict[str, List[JobUpdateStream]] = {}
        self._lock = Lock()

    def subscribe(self, job_id: str, idle_timeout: Optional[float] = None) -> JobUpdateStream:
        stream = JobUpdateStream(self, job_id, idle_timeout)
        with self._lock:
            self._subscribers.setdefault(job_id, []).append(stream)
        return stream

    def unsubscribe(self, stream: JobUpdateStream):
        with self._lock:
            streams = self._subscribers.get(stream.job_id, [])
            if stream in streams:
                streams.remove(stream)
            if not streams:
                self._subscribers.pop(stream.job_id, None)

    def publish(self, job_id: str, view: Dict[str, Any]):
        with self._lock:
            streams = list(self._subscribers.get(job_id, []))
        for stream in streams:
            stream.deliver(view)

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(job_id, []))
