"""
Configuration for the scout engine processes.

Settings are read once at process start (environment plus an optional
`.env` file) and passed down explicitly to the scheduler, worker and
engine. Nothing reads secrets from shared storage during a tick.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


# Default models on OpenRouter / OpenAI
DEFAULT_AGENT_MODEL = "openai/gpt-4o-mini"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class SchedulerConfig(BaseModel):
    """Cadence and limits for the dispatcher and reaper."""

    dispatch_interval_seconds: float = Field(default=60.0, gt=0)
    batch_size: int = Field(default=20, ge=1, description="Max scouts claimed per dispatch tick")
    reap_interval_seconds: float = Field(default=300.0, gt=0)
    execution_timeout_seconds: float = Field(default=300.0, gt=0)
    job_log_retention_hours: float = Field(default=24.0, gt=0)
    dispatch_mode: Literal["in_process", "http"] = "in_process"
    worker_url: Optional[str] = None
    worker_token: Optional[str] = None
    handoff_timeout_seconds: float = Field(default=10.0, gt=0)

    @property
    def execution_timeout(self) -> timedelta:
        return timedelta(seconds=self.execution_timeout_seconds)

    @property
    def job_log_retention(self) -> timedelta:
        return timedelta(hours=self.job_log_retention_hours)


class EngineConfig(BaseModel):
    """Limits and models for the agent loop."""

    model: str = DEFAULT_AGENT_MODEL
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1200, gt=0)
    max_steps: int = Field(default=12, ge=1, description="Hard ceiling on recorded steps")
    stale_step_limit: int = Field(
        default=3, ge=1,
        description="Consecutive search/read actions without a new source before stopping",
    )
    step_timeout_seconds: float = Field(default=60.0, gt=0)
    max_run_seconds: float = Field(default=210.0, gt=0)
    results_per_query: int = Field(default=5, ge=1, le=20)
    max_content_chars: int = Field(default=6000, ge=500)
    embedding_model: str = DEFAULT_EMBEDDING_MODEL


class Settings(BaseModel):
    """Everything a scheduler or worker process needs at startup."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    database_path: Path = Path("data/scouts.db")
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    firecrawl_api_key: Optional[str] = None
    worker_id: str = "worker-local"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @model_validator(mode="after")
    def _runs_finish_before_reaper(self) -> "Settings":
        # The final embedding call may take one more step after the run budget
        worst_case = self.engine.max_run_seconds + self.engine.step_timeout_seconds
        if worst_case >= self.scheduler.execution_timeout_seconds:
            raise ValueError(
                f"max_run_seconds + step_timeout_seconds ({worst_case:g}s) must be below "
                f"execution_timeout_seconds ({self.scheduler.execution_timeout_seconds:g}s)"
            )
        return self

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            env_file: Optional path to a dotenv file (defaults to `.env`)

        Returns:
            Settings populated from the environment with defaults
        """
        load_dotenv(env_file)

        scheduler = SchedulerConfig(
            dispatch_interval_seconds=float(os.getenv("SCOUT_DISPATCH_INTERVAL", "60")),
            batch_size=int(os.getenv("SCOUT_BATCH_SIZE", "20")),
            reap_interval_seconds=float(os.getenv("SCOUT_REAP_INTERVAL", "300")),
            execution_timeout_seconds=float(os.getenv("SCOUT_EXECUTION_TIMEOUT", "300")),
            job_log_retention_hours=float(os.getenv("SCOUT_JOB_LOG_RETENTION_HOURS", "24")),
            dispatch_mode=os.getenv("SCOUT_DISPATCH_MODE", "in_process"),
            worker_url=os.getenv("SCOUT_WORKER_URL"),
            worker_token=os.getenv("SCOUT_WORKER_TOKEN"),
        )
        engine = EngineConfig(
            model=os.getenv("SCOUT_AGENT_MODEL", DEFAULT_AGENT_MODEL),
            max_steps=int(os.getenv("SCOUT_MAX_STEPS", "12")),
            stale_step_limit=int(os.getenv("SCOUT_STALE_STEP_LIMIT", "3")),
            step_timeout_seconds=float(os.getenv("SCOUT_STEP_TIMEOUT", "60")),
            max_run_seconds=float(os.getenv("SCOUT_MAX_RUN_SECONDS", "210")),
            embedding_model=os.getenv("SCOUT_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
        )

        return cls(
            scheduler=scheduler,
            engine=engine,
            database_path=Path(os.getenv("SCOUT_DATABASE_PATH", "data/scouts.db")),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            firecrawl_api_key=os.getenv("FIRECRAWL_API_KEY"),
            worker_id=os.getenv("SCOUT_WORKER_ID", "worker-local"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE"),
        )
