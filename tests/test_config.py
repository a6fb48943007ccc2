import pytest

from reel_worker.config import WorkerConfig


def test_defaults_from_empty_environment(monkeypatch):
    for name in ("JOB_STORE_TYPE", "OBJECT_STORE_TYPE", "DATA_DIR", "WORK_DIR", "LOCAL_STORE_DIR",
                 "PEXELS_API_KEY", "WORKER_DEV_HTTP", "RETENTION_DAYS", "SCHEDULE_POLL_INTERVAL_SEC"):
        monkeypatch.delenv(name, raising=False)

    config = WorkerConfig.from_env()

    assert config.JOB_STORE_TYPE == "memory"
    assert config.OBJECT_STORE_TYPE == "local"
    assert config.OBJECT_STORE_CONFIG["root_dir"] == "/app/data/published"
    assert config.WORK_DIR == "/app/data/work"
    assert config.PEXELS_API_KEY is None
    assert config.ENABLE_HTTP_SERVER is False
    assert config.RETENTION_DAYS == 30
    assert config.SCHEDULE_POLL_INTERVAL_SEC == 60


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("JOB_STORE_TYPE", "postgres")
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/reels")
    monkeypatch.setenv("OBJECT_STORE_TYPE", "s3")
    monkeypatch.setenv("AWS_S3_BUCKET", "reels")
    monkeypatch.setenv("MAX_CONCURRENT_JOBS", "8")
    monkeypatch.setenv("ENABLE_QUALITY_REVIEW", "true")

    config = WorkerConfig.from_env()

    assert config.JOB_STORE_CONFIG["database_url"] == "postgresql://localhost/reels"
    assert config.OBJECT_STORE_CONFIG["bucket"] == "reels"
    assert config.OBJECT_STORE_CONFIG["prefix"] == "videos/"
    assert config.WORK_DIR == str(tmp_path / "work")
    assert config.MAX_CONCURRENT_JOBS == 8
    assert config.ENABLE_QUALITY_REVIEW is True
    assert config.get_adapter_class_names() == ("PostgresJobStore", "S3ObjectStore")


def test_validate_reports_missing_variables(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    config = WorkerConfig(JOB_STORE_TYPE="postgres", JOB_STORE_CONFIG={}, OBJECT_STORE_TYPE="s3")

    with pytest.raises(ValueError) as exc_info:
        config.validate()

    message = str(exc_info.value)
    assert "DATABASE_URL" in message
    assert "AWS_S3_BUCKET" in message
    assert "OPENAI_API_KEY" in message


def test_validate_rejects_unknown_store(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    with pytest.raises(ValueError, match="Unsupported job store"):
        WorkerConfig(JOB_STORE_TYPE="redis").validate()


def test_validate_rejects_zero_concurrency(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    with pytest.raises(ValueError, match="MAX_CONCURRENT_JOBS"):
        WorkerConfig(MAX_CONCURRENT_JOBS=0).validate()
