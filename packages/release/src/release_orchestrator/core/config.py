from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RELEASE_ORCHESTRATOR_",
        env_file=".env",
        extra="ignore",
    )

    run_root: Path = Field(default=Path("_runs"))
    work_root: Path = Field(default=Path("_work"))
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")

    # hosting platform
    api_url: str = Field(default="https://api.github.com")
    repository: str | None = Field(default=None, examples=["wascc/wascc-host"])
    token: str | None = Field(default=None)

    # crate registry
    registry_token: str | None = Field(default=None)

    # RemoteError retry bound
    max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=0.5, ge=0.0)
    backoff_cap: float = Field(default=4.0, ge=0.0)

    # external call timeouts (seconds)
    http_connect_timeout: float = Field(default=5.0, gt=0)
    http_read_timeout: float = Field(default=120.0, gt=0)
    build_timeout: float = Field(default=3600.0, gt=0)
    setup_timeout: float = Field(default=900.0, gt=0)
    package_timeout: float = Field(default=300.0, gt=0)
    registry_timeout: float = Field(default=900.0, gt=0)

    max_parallel_cells: int = Field(default=6, ge=1)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
