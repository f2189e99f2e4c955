"""Output sink errors."""

from __future__ import annotations


class SinkError(Exception):
    def __init__(self, message: str, target: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.target = target
        self.status = status
