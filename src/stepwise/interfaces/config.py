"""Configuration assembly from environment variables."""

from __future__ import annotations

import os

from dataclasses import dataclass

from stepwise.shared.constants import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_WORKER_CONCURRENCY,
    JOB_LEASE_SECONDS,
)
from stepwise.shared.exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///stepwise.db"
DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 4_096


def _require_env(name: str) -> str:
    """Read a required environment variable or raise."""
    value = os.environ.get(name)
    if not value:
        msg = f"Missing required environment variable: {name}"
        raise ConfigurationError(msg)
    return value


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        msg = f"Invalid integer for {name}: {raw!r}"
        raise ConfigurationError(msg) from None


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        msg = f"Invalid float for {name}: {raw!r}"
        raise ConfigurationError(msg) from None


@dataclass(frozen=True)
class AppConfig:
    """Typed configuration shared by the API and the worker."""

    github_token: str
    database_url: str = DEFAULT_DATABASE_URL
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = 0.0
    chat_temperature: float = 0.7
    webhook_secret: str | None = None
    worker_concurrency: int = DEFAULT_WORKER_CONCURRENCY
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    job_lease_seconds: float = JOB_LEASE_SECONDS
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    def __post_init__(self) -> None:
        if self.worker_concurrency < 1:
            msg = f"WORKER_CONCURRENCY must be at least 1, got {self.worker_concurrency}"
            raise ConfigurationError(msg)
        if self.job_lease_seconds <= 0:
            msg = f"JOB_LEASE_SECONDS must be positive, got {self.job_lease_seconds}"
            raise ConfigurationError(msg)
        if self.max_tokens <= 0:
            msg = f"LLM_MAX_TOKENS must be positive, got {self.max_tokens}"
            raise ConfigurationError(msg)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Build config from environment variables.

        Required:
            GITHUB_TOKEN

        Optional (with defaults):
            DATABASE_URL, LLM_MODEL, LLM_MAX_TOKENS, LLM_TEMPERATURE,
            LLM_CHAT_TEMPERATURE, GITHUB_WEBHOOK_SECRET, WORKER_CONCURRENCY,
            WORKER_POLL_INTERVAL, JOB_LEASE_SECONDS, API_HOST, API_PORT
        """
        return cls(
            github_token=_require_env("GITHUB_TOKEN"),
            database_url=os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL),
            model=os.environ.get("LLM_MODEL", DEFAULT_MODEL),
            max_tokens=_parse_int(
                "LLM_MAX_TOKENS",
                os.environ.get("LLM_MAX_TOKENS", str(DEFAULT_MAX_TOKENS)),
            ),
            temperature=_parse_float(
                "LLM_TEMPERATURE", os.environ.get("LLM_TEMPERATURE", "0.0")
            ),
            chat_temperature=_parse_float(
                "LLM_CHAT_TEMPERATURE", os.environ.get("LLM_CHAT_TEMPERATURE", "0.7")
            ),
            webhook_secret=os.environ.get("GITHUB_WEBHOOK_SECRET") or None,
            worker_concurrency=_parse_int(
                "WORKER_CONCURRENCY",
                os.environ.get("WORKER_CONCURRENCY", str(DEFAULT_WORKER_CONCURRENCY)),
            ),
            poll_interval=_parse_float(
                "WORKER_POLL_INTERVAL",
                os.environ.get(
                    "WORKER_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL_SECONDS)
                ),
            ),
            job_lease_seconds=_parse_float(
                "JOB_LEASE_SECONDS",
                os.environ.get("JOB_LEASE_SECONDS", str(JOB_LEASE_SECONDS)),
            ),
            api_host=os.environ.get("API_HOST", "127.0.0.1"),
            api_port=_parse_int("API_PORT", os.environ.get("API_PORT", "8000")),
        )
