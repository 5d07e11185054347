from __future__ import annotations

import json
from pathlib import Path
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import ValidationError

from titanscan.core.errors import ConfigurationError
from titanscan.core.models import ScanResult
from titanscan.core.utils import ensure_dir, write_json


def create_scan_id() -> str:
    return _make_id("scan")


def _make_id(prefix: str) -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{ts}-{uuid4().hex[:8]}"


def result_path(result: ScanResult, directory: Path) -> Path:
    return directory / f"{result.scan_id}.json"


def store_result(result: ScanResult, directory: Path) -> Path:
    ensure_dir(directory)
    path = result_path(result, directory)
    write_json(path, result.model_dump(mode="json"))
    return path


def load_result(path: Path) -> ScanResult:
    if not path.exists():
        raise ConfigurationError(f"Scan result file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ScanResult.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigurationError(f"Scan result file {path} is not a valid scan result: {exc}") from exc
