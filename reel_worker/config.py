"""
Configuration management for the reel worker.

Centralizes all configuration loading from environment variables
and provides type-safe access to configuration values.
"""

import os
from typing import Dict, Any, Optional
from dataclasses import dataclass


@dataclass
class WorkerConfig:
    """Configuration for the reel worker"""

    # Job store settings
    JOB_STORE_TYPE: str = "memory"  # memory, postgres
    JOB_STORE_CONFIG: Dict[str, Any] = None

    # Object store settings
    OBJECT_STORE_TYPE: str = "local"  # local, s3
    OBJECT_STORE_CONFIG: Dict[str, Any] = None

    # Script generation
    SCRIPT_MODEL: str = "gpt-4o-mini"
    SCRIPT_TEMPERATURE: float = 0.7
    SCRIPT_MAX_TOKENS: int = 1000
    ENABLE_QUALITY_REVIEW: bool = False
    QUALITY_THRESHOLD: int = 7

    # Speech synthesis
    TTS_MODEL: str = "tts-1-hd"
    TTS_VOICE: str = "nova"
    TTS_SPEED: float = 0.95
    TTS_FORMAT: str = "mp3"

    # Stock media search
    PEXELS_API_KEY: Optional[str] = None
    STOCK_RESULTS_PER_PAGE: int = 15
    STOCK_TIMEOUT_SEC: int = 30

    # Rendering
    CAPTION_OVERLAY_FPS: int = 25
    MAX_WORDS_PER_CAPTION: int = 6
    MOTION_FPS: int = 25

    # Execution
    MAX_CONCURRENT_JOBS: int = 4

    # Retention
    RETENTION_DAYS: int = 30
    RETENTION_SWEEP_INTERVAL_SEC: int = 3600

    # Scheduling
    SCHEDULE_POLL_INTERVAL_SEC: int = 60

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "/app/data/worker"

    # HTTP server
    ENABLE_HTTP_SERVER: bool = False
    HTTP_PORT: int = 8000

    # Data directories
    DATA_DIR: str = "/app/data"
    WORK_DIR: str = "/app/data/work"

    @classmethod
    def from_env(cls) -> 'WorkerConfig':
        """Load configuration from environment variables"""
        config = cls()

        config.DATA_DIR = os.getenv("DATA_DIR", "/app/data")
        config.WORK_DIR = os.getenv("WORK_DIR", os.path.join(config.DATA_DIR, "work"))

        # Job store configuration
        config.JOB_STORE_TYPE = os.getenv("JOB_STORE_TYPE", "memory")
        config.JOB_STORE_CONFIG = cls._parse_job_store_config()

        # Object store configuration
        config.OBJECT_STORE_TYPE = os.getenv("OBJECT_STORE_TYPE", "local")
        config.OBJECT_STORE_CONFIG = cls._parse_object_store_config(config.DATA_DIR)

        # Script generation
        config.SCRIPT_MODEL = os.getenv("SCRIPT_MODEL", "gpt-4o-mini")
        config.SCRIPT_TEMPERATURE = float(os.getenv("SCRIPT_TEMPERATURE", "0.7"))
        config.SCRIPT_MAX_TOKENS = int(os.getenv("SCRIPT_MAX_TOKENS", "1000"))
        config.ENABLE_QUALITY_REVIEW = os.getenv("ENABLE_QUALITY_REVIEW", "false").lower() == "true"
        config.QUALITY_THRESHOLD = int(os.getenv("QUALITY_THRESHOLD", "7"))

        # Speech synthesis
        config.TTS_MODEL = os.getenv("TTS_MODEL", "tts-1-hd")
        config.TTS_VOICE = os.getenv("TTS_VOICE", "nova")
        config.TTS_SPEED = float(os.getenv("TTS_SPEED", "0.95"))
        config.TTS_FORMAT = os.getenv("TTS_FORMAT", "mp3")

        # Stock media search
        config.PEXELS_API_KEY = os.getenv("PEXELS_API_KEY") or None
        config.STOCK_RESULTS_PER_PAGE = int(os.getenv("STOCK_RESULTS_PER_PAGE", "15"))
        config.STOCK_TIMEOUT_SEC = int(os.getenv("STOCK_TIMEOUT_SEC", "30"))

        # Rendering
        config.CAPTION_OVERLAY_FPS = int(os.getenv("CAPTION_OVERLAY_FPS", "25"))
        config.MAX_WORDS_PER_CAPTION = int(os.getenv("MAX_WORDS_PER_CAPTION", "6"))
        config.MOTION_FPS = int(os.getenv("MOTION_FPS", "25"))

        # Execution
        config.MAX_CONCURRENT_JOBS = int(os.getenv("MAX_CONCURRENT_JOBS", "4"))

        # Retention
        config.RETENTION_DAYS = int(os.getenv("RETENTION_DAYS", "30"))
        config.RETENTION_SWEEP_INTERVAL_SEC = int(os.getenv("RETENTION_SWEEP_INTERVAL_SEC", "3600"))

        # Scheduling
        config.SCHEDULE_POLL_INTERVAL_SEC = int(os.getenv("SCHEDULE_POLL_INTERVAL_SEC", "60"))

        # Logging
        config.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        config.LOG_DIR = os.getenv("LOG_DIR", os.path.join(config.DATA_DIR, "worker"))

        # HTTP server
        config.ENABLE_HTTP_SERVER = os.getenv("WORKER_DEV_HTTP", "false").lower() == "true"
        config.HTTP_PORT = int(os.getenv("WORKER_HTTP_PORT", "8000"))

        return config

    @classmethod
    def _parse_job_store_config(cls) -> Dict[str, Any]:
        """Parse job store specific configuration"""
        job_store_type = os.getenv("JOB_STORE_TYPE", "memory")

        if job_store_type == "postgres":
            return {
                "database_url": os.getenv("DATABASE_URL"),
                "connection_pool_size": int(os.getenv("POSTGRES_POOL_SIZE", "5")),
                "connection_timeout": int(os.getenv("POSTGRES_TIMEOUT", "10"))
            }
        else:
            return {}

    @classmethod
    def _parse_object_store_config(cls, data_dir: str) -> Dict[str, Any]:
        """Parse object store specific configuration"""
        object_store_type = os.getenv("OBJECT_STORE_TYPE", "local")

        if object_store_type == "s3":
            return {
                "bucket": os.getenv("AWS_S3_BUCKET"),
                "region": os.getenv("AWS_REGION", "us-east-1"),
                "prefix": os.getenv("S3_PREFIX", "videos/"),
                "public_base_url": os.getenv("S3_PUBLIC_BASE_URL")
            }
        elif object_store_type == "local":
            return {
                "root_dir": os.getenv("LOCAL_STORE_DIR", os.path.join(data_dir, "published")),
                "base_url": os.getenv("LOCAL_STORE_BASE_URL")
            }
        else:
            return {}

    def validate(self) -> None:
        """Validate configuration and raise errors for missing required values"""
        required_vars = []

        if self.JOB_STORE_TYPE not in ("memory", "postgres"):
            raise ValueError(f"Unsupported job store type: {self.JOB_STORE_TYPE}")

        if self.OBJECT_STORE_TYPE not in ("local", "s3"):
            raise ValueError(f"Unsupported object store type: {self.OBJECT_STORE_TYPE}")

        job_store_config = self.JOB_STORE_CONFIG or {}
        object_store_config = self.OBJECT_STORE_CONFIG or {}

        # Check required environment variables based on configuration
        if self.JOB_STORE_TYPE == "postgres" and not job_store_config.get("database_url"):
            required_vars.append("DATABASE_URL")

        if self.OBJECT_STORE_TYPE == "s3" and not object_store_config.get("bucket"):
            required_vars.append("AWS_S3_BUCKET")

        # Script generation and speech synthesis both go through OpenAI
        if not os.getenv("OPENAI_API_KEY"):
            required_vars.append("OPENAI_API_KEY")

        if required_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(required_vars)}")

        if self.MAX_CONCURRENT_JOBS < 1:
            raise ValueError("MAX_CONCURRENT_JOBS must be at least 1")

    def get_adapter_class_names(self) -> tuple[str, str]:
        """Get the class names for job store and object store adapters"""
        job_store_map = {
            "memory": "InMemoryJobStore",
            "postgres": "PostgresJobStore"
        }

        object_store_map = {
            "local": "LocalObjectStore",
            "s3": "S3ObjectStore"
        }

        job_store_class = job_store_map.get(self.JOB_STORE_TYPE, "InMemoryJobStore")
        object_store_class = object_store_map.get(self.OBJECT_STORE_TYPE, "LocalObjectStore")

        return job_store_class, object_store_class
