"""Minimal line-oriented reader for ``text/event-stream`` bodies."""

from __future__ import annotations

from typing import Iterable, Iterator, Optional


def parse_data_line(raw: str | bytes | None) -> Optional[str]:
    """Return the payload of a ``data:`` line, or None for any other line.

    Blank keep-alive lines, ``:`` comments and the ``event:``/``id:``/``retry:``
    fields carry no event.
    """
    if raw is None:
        return None
    line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    line = line.rstrip("\r\n")
    if not line.startswith("data:"):
        return None
    payload = line[5:]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload if payload.strip() else None


def iter_data_payloads(lines: Iterable[str | bytes | None]) -> Iterator[str]:
    """Yield the payload of every ``data:`` line; each data line is one event."""
    for raw in lines:
        payload = parse_data_line(raw)
        if payload is not None:
            yield payload
