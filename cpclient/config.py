# cpclient/config.py

"""
Environment configuration for cpclient.
Uses pydantic-settings so every value can be overridden with a ``CPCLIENT_``
environment variable (or a ``.env`` file in the working directory).
"""

import logging
import shlex
import sys
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.parameters import Parameters, copy_parameters


class EngineSettings(BaseSettings):
    """Client settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="CPCLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Engine process
    SOLVER: Optional[str] = Field(default=None, description="Engine executable")
    SOLVER_ARGS: str = Field(default="", description="Extra engine arguments")

    # Worker count used when the parameters leave it to auto detection
    NB_WORKERS: Optional[int] = Field(default=None, ge=1)

    # Logging settings
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    def solver_args(self) -> List[str]:
        return shlex.split(self.SOLVER_ARGS)


@lru_cache()
def get_settings() -> EngineSettings:
    """Get cached settings instance."""
    return EngineSettings()


def resolve_nb_workers(
    params: Optional[Parameters], settings: Optional[EngineSettings] = None
) -> Parameters:
    """Return a copy of ``params`` with the worker count sentinel resolved.

    ``nb_workers`` left unset or set to 0 takes ``CPCLIENT_NB_WORKERS`` when
    that variable is defined; otherwise 0 stays and the engine detects the
    number of cores itself.
    """
    settings = settings or get_settings()
    resolved = copy_parameters(params) if params is not None else Parameters()
    if not resolved.nb_workers and settings.NB_WORKERS is not None:
        resolved.nb_workers = settings.NB_WORKERS
    return resolved


def setup_logging(log_level: Optional[str] = None) -> logging.Logger:
    """Configure root logging for command line use."""
    settings = get_settings()
    level = (log_level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level),
        format=settings.LOG_FORMAT,
        handlers=[logging.StreamHandler(stream=sys.stderr)],
        force=True,
    )
    # Engine log lines are forwarded at DEBUG and are noisy
    logging.getLogger("cpclient.engine").setLevel(max(logging.INFO, getattr(logging, level)))
    return logging.getLogger("cpclient")
