from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path
from datetime import datetime, timezone
from typing import Iterable, Mapping

LOGGER = logging.getLogger("titanscan")


class CommandError(RuntimeError):
    pass


def setup_logging(level: str = "INFO") -> None:
    """Initialise console logging for the current execution."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    LOGGER.handlers.clear()
    LOGGER.setLevel(numeric_level)
    LOGGER.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    LOGGER.addHandler(console_handler)


def utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def write_json(path: Path, data: dict) -> None:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def truncate(text: str, limit: int, marker: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def append_github_output(values: Mapping[str, object], environ: Mapping[str, str] | None = None) -> bool:
    """Append ``key=value`` lines to the file named by ``GITHUB_OUTPUT``.

    Returns False when not running under GitHub Actions.
    """
    environ = os.environ if environ is None else environ
    target = environ.get("GITHUB_OUTPUT")
    if not target:
        return False
    with open(target, "a", encoding="utf-8") as f:
        for key, value in values.items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            f.write(f"{key}={value}\n")
    return True


def run_cmd(cmd: Iterable[str], timeout: int = 120, cwd: str | None = None) -> subprocess.CompletedProcess:
    cmd = list(cmd)
    try:
        cp = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise CommandError(f"Command not found: {cmd[0]}") from exc
    except subprocess.TimeoutExpired as exc:
        raise CommandError(f"Command timed out: {' '.join(cmd)}") from exc

    if cp.returncode != 0:
        raise CommandError(f"Command failed ({cp.returncode}): {' '.join(cmd)}\n{cp.stdout}")
    return cp
