"""
Main worker service.

Wires the job store, object store and generation services from
configuration and exposes the caller-facing API: create, get, list,
cancel and subscribe, plus regeneration, per-owner statistics and
retention cleanup.
"""

import time
import signal
import sys
import logging
from concurrent.futures import Executor
from datetime import timedelta
from typing import Optional, Dict, Any, List, Union

from .config import WorkerConfig
from .adapters.base import (
    JobStore, ObjectStore, TextGenerator, SpeechSynthesizer, StockMediaSearch, MediaEngine
)
from .adapters.memory_adapter import InMemoryJobStore, LocalObjectStore
from .errors import JobNotFound
from .models import JobParams, utcnow
from .notifications import JobUpdateStream
from .orchestrator import JobOrchestrator
from .pipeline.publish import ArtifactPublisher
from .processor import VideoProcessor
from .logging_setup import setup_logging, log_exception
from .http_server import start_health_server

logger = logging.getLogger("reel_worker")


class WorkerService:
    """Main worker service with adapter-based architecture"""

    def __init__(self, config: Optional[WorkerConfig] = None,
                 job_store: Optional[JobStore] = None,
                 object_store: Optional[ObjectStore] = None,
                 text_generator: Optional[TextGenerator] = None,
                 speech: Optional[SpeechSynthesizer] = None,
                 stock_search: Optional[StockMediaSearch] = None,
                 engine: Optional[MediaEngine] = None,
                 executor: Optional[Executor] = None):
        self.config = config or WorkerConfig.from_env()
        self.job_store = job_store
        self.object_store = object_store
        self.text_generator = text_generator
        self.speech = speech
        self.stock_search = stock_search
        self.engine = engine
        self.executor = executor
        self.orchestrator: Optional[JobOrchestrator] = None
        self.health_server = None
        self.running = False
        self.last_cleanup = None

    def initialize(self):
        """Initialize adapters and the orchestrator based on configuration"""
        try:
            # Setup logging
            setup_logging(self.config.LOG_LEVEL, self.config.LOG_DIR)

            # Validate configuration
            self.config.validate()

            # Initialize adapters
            self._initialize_adapters()

            publisher = ArtifactPublisher(self.object_store)
            processor = VideoProcessor(
                self.config, self.text_generator, self.speech,
                self.stock_search, self.engine, publisher
            )
            self.orchestrator = JobOrchestrator(self.config, self.job_store, processor, executor=self.executor)

            # Start health server if enabled
            self.health_server = start_health_server(self)

            logger.info("Worker service initialized successfully")

        except Exception as e:
            log_exception(logger, f"Failed to initialize worker service: {e}")
            raise

    def _initialize_adapters(self):
        """Create any collaborator not injected by the caller"""
        if self.job_store is None:
            self.job_store = self._create_job_store()
        self.job_store.connect()

        if self.object_store is None:
            self.object_store = self._create_object_store()
        self.object_store.connect()

        if self.text_generator is None or self.speech is None:
            from .adapters.openai_adapter import OpenAITextGenerator, OpenAISpeechSynthesizer
            if self.text_generator is None:
                self.text_generator = OpenAITextGenerator(
                    model=self.config.SCRIPT_MODEL,
                    temperature=self.config.SCRIPT_TEMPERATURE,
                    max_tokens=self.config.SCRIPT_MAX_TOKENS
                )
            if self.speech is None:
                self.speech = OpenAISpeechSynthesizer()

        if self.stock_search is None and self.config.PEXELS_API_KEY:
            from .adapters.pexels_adapter import PexelsStockSearch
            self.stock_search = PexelsStockSearch(
                api_key=self.config.PEXELS_API_KEY,
                per_page=self.config.STOCK_RESULTS_PER_PAGE,
                timeout=self.config.STOCK_TIMEOUT_SEC
            )
        if self.stock_search is None:
            logger.warning("PEXELS_API_KEY not set, backgrounds will always be synthesized")

        if self.engine is None:
            from .adapters.ffmpeg_adapter import FFmpegEngine
            self.engine = FFmpegEngine()

        job_store_class, object_store_class = self.config.get_adapter_class_names()
        logger.info(f"Initialized adapters: {job_store_class} job store, {object_store_class} object store")

    def _create_job_store(self) -> JobStore:
        """Create job store based on configuration"""
        if self.config.JOB_STORE_TYPE == "memory":
            return InMemoryJobStore()

        elif self.config.JOB_STORE_TYPE == "postgres":
            from .adapters.postgres_adapter import PostgresJobStore
            config = self.config.JOB_STORE_CONFIG
            return PostgresJobStore(
                database_url=config["database_url"],
                pool_size=config.get("connection_pool_size", 5),
                timeout=config.get("connection_timeout", 10)
            )

        else:
            raise ValueError(f"Unsupported job store type: {self.config.JOB_STORE_TYPE}")

    def _create_object_store(self) -> ObjectStore:
        """Create object store based on configuration"""
        config = self.config.OBJECT_STORE_CONFIG or {}

        if self.config.OBJECT_STORE_TYPE == "local":
            return LocalObjectStore(
                root_dir=config.get("root_dir") or f"{self.config.DATA_DIR}/published",
                base_url=config.get("base_url")
            )

        elif self.config.OBJECT_STORE_TYPE == "s3":
            from .adapters.s3_adapter import S3ObjectStore
            return S3ObjectStore(
                bucket=config["bucket"],
                region=config.get("region", "us-east-1"),
                prefix=config.get("prefix", "videos/"),
                public_base_url=config.get("public_base_url")
            )

        else:
            raise ValueError(f"Unsupported object store type: {self.config.OBJECT_STORE_TYPE}")

    def _require_orchestrator(self) -> JobOrchestrator:
        if self.orchestrator is None:
            raise RuntimeError("Worker service not initialized. Call initialize() first.")
        return self.orchestrator

    # Caller API

    def create_job(self, owner_id: str, params: Union[JobParams, Dict[str, Any]]) -> str:
        """
        Submit a new job; returns as soon as the record exists.

        Raises:
            InvalidJobParams: parameters failed validation
        """
        return self._require_orchestrator().submit(owner_id, params)

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = self._require_orchestrator().get(job_id)
        return job.to_view() if job else None

    def list_jobs(self, owner_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return [job.to_view() for job in self._require_orchestrator().list_jobs(owner_id, limit)]

    def cancel_job(self, job_id: str) -> bool:
        return self._require_orchestrator().cancel(job_id)

    def subscribe_job_updates(self, job_id: str, idle_timeout: Optional[float] = None) -> JobUpdateStream:
        return self._require_orchestrator().subscribe(job_id, idle_timeout)

    def regenerate_job(self, original_id: str, owner_id: str,
                       overrides: Optional[Dict[str, Any]] = None) -> str:
        """
        Submit a fresh job reusing an earlier job's parameters.

        Args:
            original_id: Job to regenerate
            owner_id: Requesting owner; must own the original job
            overrides: Parameters replacing the original ones; the original
                schedule is not carried over

        Raises:
            JobNotFound: original job missing or owned by someone else
            InvalidJobParams: merged parameters failed validation
        """
        original = self._require_orchestrator().get(original_id)
        if original is None or original.owner_id != owner_id:
            raise JobNotFound(original_id)

        params = original.params.model_dump(mode="json", exclude_none=True)
        params.pop("scheduled_for", None)
        for name, value in (overrides or {}).items():
            if value is not None:
                params[name] = value
        if not params.get("topic"):
            params["topic"] = original.params.topic

        job_id = self.create_job(owner_id, params)
        logger.info(f"Regenerated job {original_id} as {job_id}")
        return job_id

    def get_job_stats(self, owner_id: str) -> Dict[str, Any]:
        """Totals for one owner: all jobs, completed today (UTC) and per-status counts"""
        breakdown = self.job_store.count_by_status(owner_id)
        midnight = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        today = self.job_store.count_by_status(owner_id, since=midnight)
        return {
            'total_generated': sum(breakdown.values()),
            'completed_today': today.get("completed", 0),
            'status_breakdown': breakdown
        }

    def cleanup_old_jobs(self, days_old: Optional[int] = None) -> int:
        """Delete COMPLETED and FAILED jobs created more than ``days_old`` days ago"""
        days = self.config.RETENTION_DAYS if days_old is None else days_old
        cutoff = utcnow() - timedelta(days=days)
        deleted = self.job_store.delete_terminal_before(cutoff)
        self.last_cleanup = utcnow()
        logger.info(f"Cleaned up {deleted} jobs older than {days} days")
        return deleted

    def dispatch_scheduled_jobs(self) -> int:
        """Hand scheduled jobs that are now due to the orchestrator"""
        dispatched = self._require_orchestrator().dispatch_due()
        if dispatched:
            logger.info(f"Dispatched {dispatched} scheduled jobs")
        return dispatched

    def check_health(self):
        """Raise if the job store cannot be queried"""
        self.job_store.list_by_owner("__healthcheck__", limit=1)

    # Lifecycle

    def start(self):
        """
        Run the scheduling and retention loop until stopped; jobs themselves
        run on the orchestrator's executor.
        """
        if self.running:
            logger.warning("Worker service is already running")
            return

        self.running = True
        logger.info("Worker service started")

        next_dispatch = next_sweep = time.time()
        while self.running:
            try:
                if time.time() >= next_dispatch:
                    next_dispatch = time.time() + self.config.SCHEDULE_POLL_INTERVAL_SEC
                    self.dispatch_scheduled_jobs()
                if time.time() >= next_sweep:
                    next_sweep = time.time() + self.config.RETENTION_SWEEP_INTERVAL_SEC
                    self.cleanup_old_jobs()
                time.sleep(1)
            except KeyboardInterrupt:
                logger.info("Received interrupt signal, shutting down...")
                break
            except Exception as e:
                log_exception(logger, f"Unexpected error in worker loop: {str(e)}")

        logger.info("Worker service loop stopped")

    def stop(self):
        """Stop the worker service"""
        self.running = False

        # Stop health server
        if self.health_server:
            self.health_server.stop()

        if self.orchestrator:
            self.orchestrator.shutdown(wait=True)

        # Close adapters
        if self.job_store:
            self.job_store.close()
        if self.object_store:
            self.object_store.close()

        logger.info("Worker service stopped")

    def get_stats(self) -> Dict[str, Any]:
        """Get worker statistics"""
        stats = {
            'running': self.running,
            'last_cleanup': self.last_cleanup.isoformat() if self.last_cleanup else None,
            'config': {
                'job_store_type': self.config.JOB_STORE_TYPE,
                'object_store_type': self.config.OBJECT_STORE_TYPE,
                'max_concurrent_jobs': self.config.MAX_CONCURRENT_JOBS,
                'stock_search_enabled': self.stock_search is not None,
                'quality_review_enabled': self.config.ENABLE_QUALITY_REVIEW
            }
        }

        if self.orchestrator:
            stats['orchestrator'] = self.orchestrator.get_stats()

        return stats


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main():
    """Main entry point"""
    # Setup signal handlers
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    worker = WorkerService()

    try:
        worker.initialize()
        worker.start()
    except Exception as e:
        log_exception(logger, f"Worker failed to start: {str(e)}")
        sys.exit(1)
    finally:
        worker.stop()


if __name__ == "__main__":
    main()
