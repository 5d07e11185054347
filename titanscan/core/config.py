"""Run configuration, read once from the environment and CLI flags.

The action wrapper passes its inputs as environment variables (``API_BASE_URL``,
``REPORT_FORMAT``, ``BLOCKING`` ...). ``load_config`` turns them into one frozen
``ReportConfig`` that every component receives explicitly.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from titanscan.core.errors import ConfigurationError

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

REPORT_FORMATS = ("md", "pdf", "xml")
TRANSPORTS = ("poll", "stream")

DEFAULT_TIMEOUT_SECONDS = 300
DEFAULT_BLOCK_PERCENTAGE = 50
DEFAULT_POLL_INTERVAL = 10

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


class ReportConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_base_url: str
    repository_url: str | None = None
    format: str = "md"
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    exclude_patterns: List[str] = []
    blocking: bool = True
    block_percentage: int = DEFAULT_BLOCK_PERCENTAGE
    transport: str = "poll"
    output_dir: Path = Path(".")
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL

    @field_validator("api_base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        value = value.strip()
        if not URL_PATTERN.match(value):
            raise ValueError(f"must be a valid HTTP/HTTPS URL. Got: {value!r}")
        return value.rstrip("/")

    @field_validator("repository_url")
    @classmethod
    def _check_repository_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not URL_PATTERN.match(value):
            raise ValueError(f"must be a valid HTTP/HTTPS URL. Got: {value!r}")
        return value

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in REPORT_FORMATS:
            raise ValueError(f"unsupported report format {value!r}. Supported formats: {', '.join(REPORT_FORMATS)}")
        return value

    @field_validator("transport")
    @classmethod
    def _check_transport(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in TRANSPORTS:
            raise ValueError(f"unsupported transport {value!r}. Supported transports: {', '.join(TRANSPORTS)}")
        return value

    @field_validator("timeout_seconds")
    @classmethod
    def _check_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive number of seconds")
        return value

    @field_validator("block_percentage")
    @classmethod
    def _check_block_percentage(cls, value: int) -> int:
        if not 0 <= value <= 100:
            raise ValueError("must be between 0 and 100")
        return value

    @field_validator("poll_interval_seconds")
    @classmethod
    def _check_poll_interval(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    def require_repository_url(self) -> str:
        if not self.repository_url:
            raise ConfigurationError(
                "A repository URL is required. Set REPOSITORY_URL or GITHUB_REPOSITORY, or pass --repository-url."
            )
        return self.repository_url


def parse_bool(value: str | bool, name: str) -> bool:
    if isinstance(value, bool):
        return value
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be true or false. Got: {value!r}")


def parse_int(value: str | int, name: str) -> int:
    if isinstance(value, int):
        return value
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer. Got: {value!r}") from exc


def split_patterns(value: str | None) -> List[str]:
    if not value:
        return []
    parts = re.split(r"[,\n]", value)
    return [p.strip() for p in parts if p.strip()]


def repository_url_from_env(environ: Mapping[str, str]) -> str | None:
    explicit = environ.get("REPOSITORY_URL", "").strip()
    if explicit:
        return explicit
    repo = environ.get("GITHUB_REPOSITORY", "").strip()
    if not repo:
        return None
    server = environ.get("GITHUB_SERVER_URL", "").strip() or "https://github.com"
    return f"{server.rstrip('/')}/{repo}"


def _env(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name)
    if value is None or not value.strip():
        return None
    return value


def load_config(environ: Mapping[str, str] | None = None, **overrides) -> ReportConfig:
    """Build the run configuration from ``environ`` plus non-None ``overrides``."""
    environ = os.environ if environ is None else environ

    raw: dict = {}
    base_url = _env(environ, "API_BASE_URL")
    if base_url is not None:
        raw["api_base_url"] = base_url
    repository_url = repository_url_from_env(environ)
    if repository_url is not None:
        raw["repository_url"] = repository_url
    if _env(environ, "REPORT_FORMAT") is not None:
        raw["format"] = environ["REPORT_FORMAT"]
    if _env(environ, "TIMEOUT_SECONDS") is not None:
        raw["timeout_seconds"] = parse_int(environ["TIMEOUT_SECONDS"], "TIMEOUT_SECONDS")
    if _env(environ, "EXCLUDE_FILES") is not None:
        raw["exclude_patterns"] = split_patterns(environ["EXCLUDE_FILES"])
    if _env(environ, "BLOCKING") is not None:
        raw["blocking"] = parse_bool(environ["BLOCKING"], "BLOCKING")
    if _env(environ, "BLOCK_PERCENTAGE") is not None:
        raw["block_percentage"] = parse_int(environ["BLOCK_PERCENTAGE"], "BLOCK_PERCENTAGE")
    if _env(environ, "SCAN_TRANSPORT") is not None:
        raw["transport"] = environ["SCAN_TRANSPORT"]
    if _env(environ, "OUTPUT_DIR") is not None:
        raw["output_dir"] = environ["OUTPUT_DIR"]

    raw.update({k: v for k, v in overrides.items() if v is not None})

    if not raw.get("api_base_url"):
        raise ConfigurationError("API_BASE_URL environment variable is required.")

    try:
        return ReportConfig(**raw)
    except ValidationError as exc:
        problems = []
        for err in exc.errors():
            field = ".".join(str(p) for p in err["loc"]) or "config"
            problems.append(f"{field}: {err['msg']}")
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems)) from exc
