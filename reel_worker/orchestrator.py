"""
Job orchestration.

Owns the job records: creates them, runs the pipeline for each job on a
detached executor, persists every transition through compare-and-set
updates, broadcasts the resulting views and applies the failure and
cancellation policy.
"""

import time
import uuid
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from threading import Lock
from typing import Optional, Dict, Any, List, Set, Union

from pydantic import ValidationError

from .models import VideoJob, JobParams, JobStatus, ProcessingResult, utcnow
from .adapters.base import JobStore
from .config import WorkerConfig
from .errors import InvalidJobParams, InvalidTransition, JobCancelled, JobNotFound
from .fsm import ACTIVE_STATES, STAGE_PROGRESS, allowed_previous_statuses
from .notifications import JobUpdateBroker, JobUpdateStream
from .processor import VideoProcessor
from .logging_setup import log_exception

logger = logging.getLogger("reel_worker")

CANCELLED_MESSAGE = JobCancelled.summary


def validate_params(params: Union[JobParams, Dict[str, Any]]) -> JobParams:
    """Coerce caller input into JobParams or raise InvalidJobParams"""
    if isinstance(params, JobParams):
        return params
    try:
        return JobParams.model_validate(params)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        message = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'params'}: {error['msg']}"
            for error in errors
        )
        raise InvalidJobParams(f"Invalid job parameters: {message}", errors)


class JobOrchestrator:
    """Manages job lifecycle and pipeline execution"""

    def __init__(self, config: WorkerConfig, store: JobStore, processor: VideoProcessor,
                 broker: Optional[JobUpdateBroker] = None, executor: Optional[Executor] = None):
        self.config = config
        self.store = store
        self.processor = processor
        self.broker = broker or JobUpdateBroker()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.MAX_CONCURRENT_JOBS,
            thread_name_prefix="reel-job"
        )
        self._running: Set[str] = set()
        self._futures: Dict[str, Future] = {}
        self._lock = Lock()
        self.stats = {
            'jobs_submitted': 0,
            'jobs_completed': 0,
            'jobs_failed': 0,
            'jobs_cancelled': 0,
            'total_processing_time': 0.0,
            'start_time': datetime.now()
        }

    def submit(self, owner_id: str, params: Union[JobParams, Dict[str, Any]]) -> str:
        """
        Create a PENDING job and schedule its pipeline without waiting for it.

        A job whose ``scheduled_for`` lies in the future stays PENDING until
        ``dispatch_due`` picks it up.

        Raises:
            InvalidJobParams: parameters failed validation
        """
        job_params = validate_params(params)
        job = VideoJob(id=str(uuid.uuid4()), owner_id=owner_id, params=job_params)
        self.store.create(job)
        self._publish(job)

        with self._lock:
            self.stats['jobs_submitted'] += 1

        if job_params.is_deferred():
            logger.info(f"Submitted job {job.id} for owner {owner_id}: '{job_params.topic}' "
                        f"deferred until {job_params.scheduled_for.isoformat()}")
            return job.id

        self._dispatch(job.id)
        logger.info(f"Submitted job {job.id} for owner {owner_id}: '{job_params.topic}' "
                    f"({job_params.style.value}, {job_params.duration}s)")
        return job.id

    def dispatch_due(self, now: Optional[datetime] = None) -> int:
        """
        Start the pipeline for scheduled jobs whose time has come.

        Returns:
            Number of jobs handed to the executor
        """
        due = self.store.list_due(now or utcnow())
        dispatched = 0
        for job in due:
            with self._lock:
                queued = job.id in self._futures or job.id in self._running
            if queued:
                continue
            logger.info(f"Dispatching scheduled job {job.id} (due {job.params.scheduled_for.isoformat()})")
            self._dispatch(job.id)
            dispatched += 1
        return dispatched

    def _dispatch(self, job_id: str):
        future = self.executor.submit(self.execute_pipeline, job_id)
        with self._lock:
            if not future.done():
                self._futures[job_id] = future
        future.add_done_callback(lambda _: self._forget(job_id))

    def get(self, job_id: str) -> Optional[VideoJob]:
        return self.store.get(job_id)

    def list_jobs(self, owner_id: str, limit: int = 20) -> List[VideoJob]:
        return self.store.list_by_owner(owner_id, limit)

    def cancel(self, job_id: str) -> bool:
        """
        Mark a non-terminal job FAILED with the cancellation message.

        In-flight stage work is not interrupted; the pipeline notices the
        cancellation at its next transition.

        Returns:
            True if the job was cancelled, False if missing or already terminal
        """
        updated = self.store.update(job_id, {
            'status': JobStatus.FAILED,
            'error_message': CANCELLED_MESSAGE,
            'metadata': {'error_kind': JobCancelled.__name__}
        }, allowed_from=ACTIVE_STATES)

        if updated is None:
            logger.info(f"Cancel request for job {job_id} ignored: job missing or already finished")
            return False

        with self._lock:
            self.stats['jobs_cancelled'] += 1
        logger.info(f"Job {job_id} cancelled at {updated.progress}%")
        self._publish(updated)
        return True

    def subscribe(self, job_id: str, idle_timeout: Optional[float] = None) -> JobUpdateStream:
        """
        Stream of views for a job, starting with its current persisted view.

        Raises:
            JobNotFound: no such job
        """
        # register before reading so no broadcast falls between the two
        stream = self.broker.subscribe(job_id, idle_timeout)
        job = self.store.get(job_id)
        if job is None:
            stream.close()
            raise JobNotFound(job_id)
        stream.prime(job.to_view())
        return stream

    def execute_pipeline(self, job_id: str) -> Optional[ProcessingResult]:
        """
        Run the pipeline for one job; never raises.

        Returns:
            ProcessingResult, or None when the job was not runnable
        """
        with self._lock:
            if job_id in self._running:
                logger.warning(f"Job {job_id} is already running, skipping")
                return None
            self._running.add(job_id)

        start_time = time.time()
        try:
            job = self.store.get(job_id)
            if job is None:
                logger.warning(f"Job {job_id} disappeared before execution")
                return None
            if job.status != JobStatus.PENDING:
                logger.warning(f"Job {job_id} is {job.status.value}, not starting pipeline")
                return None

            logger.info(f"Executing pipeline for job {job_id}")
            result = self.processor.process(job, lambda status, **changes: self._advance(job_id, status, **changes))

            if result.success:
                self._complete(job_id, result)
            elif result.error_kind == JobCancelled.__name__:
                logger.info(f"Pipeline for job {job_id} stopped after cancellation")
            else:
                self._fail(job_id, result.error, result.error_kind)

            with self._lock:
                self.stats['total_processing_time'] += time.time() - start_time
            return result

        except Exception as e:
            error_msg = f"Unexpected error in pipeline execution: {e}"
            log_exception(logger, error_msg)
            self._fail(job_id, error_msg, "UnexpectedError")
            return ProcessingResult(
                success=False,
                stages_completed=[],
                error=error_msg,
                error_kind="UnexpectedError",
                processing_time_sec=time.time() - start_time
            )
        finally:
            with self._lock:
                self._running.discard(job_id)

    def _advance(self, job_id: str, status: JobStatus, **changes) -> VideoJob:
        """
        Persist a transition into ``status`` together with field changes.

        Raises:
            JobCancelled: the job was cancelled (or removed) meanwhile
            InvalidTransition: the stored status does not allow the move
        """
        changes['status'] = status
        changes['progress'] = STAGE_PROGRESS[status]
        updated = self.store.update(job_id, changes, allowed_from=allowed_previous_statuses(status))

        if updated is None:
            current = self.store.get(job_id)
            if current is None or current.status == JobStatus.FAILED:
                raise JobCancelled(stage=status.value)
            raise InvalidTransition(current.status, status)

        self._publish(updated)
        return updated

    def _complete(self, job_id: str, result: ProcessingResult):
        updated = self.store.update(job_id, {
            'status': JobStatus.COMPLETED,
            'progress': STAGE_PROGRESS[JobStatus.COMPLETED],
            'completed_at': utcnow(),
            'metadata': {'processing_time_sec': round(result.processing_time_sec or 0.0, 3)}
        }, allowed_from={JobStatus.UPLOADING})

        if updated is None:
            logger.info(f"Job {job_id} was cancelled before completion was recorded")
            return

        with self._lock:
            self.stats['jobs_completed'] += 1
        logger.info(f"COMPLETED: job {job_id} -> {updated.final_video_url}")
        self._publish(updated)

    def _fail(self, job_id: str, message: str, kind: Optional[str]):
        try:
            updated = self.store.update(job_id, {
                'status': JobStatus.FAILED,
                'error_message': message,
                'metadata': {'error_kind': kind or "UnexpectedError"}
            }, allowed_from=ACTIVE_STATES)
        except Exception as e:
            log_exception(logger, f"Error recording failure for job {job_id}: {e}")
            return

        if updated is None:
            logger.warning(f"Job {job_id} already finished, failure not recorded: {message}")
            return

        with self._lock:
            self.stats['jobs_failed'] += 1
        logger.error(f"FAILED: job {job_id} ({kind}): {message}")
        self._publish(updated)

    def _publish(self, job: VideoJob):
        try:
            self.broker.publish(job.id, job.to_view())
        except Exception as e:
            logger.warning(f"Error broadcasting update for job {job.id}: {e}")

    def _forget(self, job_id: str):
        with self._lock:
            self._futures.pop(job_id, None)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[ProcessingResult]:
        """
        Block until the job's pipeline run finishes.

        Returns None when the run already finished before the call.
        """
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            return None
        return future.result(timeout=timeout)

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics"""
        with self._lock:
            stats = dict(self.stats)
            running = len(self._running)
        finished = stats['jobs_completed'] + stats['jobs_failed']
        return {
            'jobs_submitted': stats['jobs_submitted'],
            'jobs_completed': stats['jobs_completed'],
            'jobs_failed': stats['jobs_failed'],
            'jobs_cancelled': stats['jobs_cancelled'],
            'jobs_running': running,
            'average_processing_time': (
                stats['total_processing_time'] / finished if finished > 0 else 0
            ),
            'uptime_seconds': (datetime.now() - stats['start_time']).total_seconds(),
            'success_rate': stats['jobs_completed'] / finished if finished > 0 else 0
        }

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)
        logger.info("Job orchestrator stopped")
