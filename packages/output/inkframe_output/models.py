"""Typed output sink models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SinkResult:
    sink: str
    target: str
    bytes_written: int
    duration_s: float = 0.0
    status: int | None = None
