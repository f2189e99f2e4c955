"""Render errors. Any of these aborts the current render cycle."""

from __future__ import annotations


class RenderError(Exception):
    pass


class CanvasError(RenderError, ValueError):
    pass


class FontError(RenderError):
    pass


class LayoutError(RenderError):
    pass


class EncodeError(RenderError):
    pass
