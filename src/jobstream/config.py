"""Server configuration.

Settings are read from the environment (``JOBSTREAM_`` prefix) or a local
``.env`` file, so deployments adjust routes and timings without code changes.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JOBSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    assessment_path: str = "/api/assessments/new"
    chat_path: str = "/api/assessments/chat"

    # Upper bound on a single job's handler, in seconds.
    job_timeout_s: float = 300.0

    # Comment-ping interval that keeps idle streams alive through proxies.
    heartbeat_interval_s: int = 15

    log_level: str = "INFO"
