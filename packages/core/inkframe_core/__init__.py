"""Core app services: settings, the render cycle and loop, diagnostics."""

from .config import AppConfig, find_tag, load_config, save_config
from .diagnostics import DiagnosticsExporter, build_doctor_payload
from .performance import BudgetStatus, PerformanceTargets, RenderBudget
from .pipeline import (
    CanvasSpec,
    CycleOutcome,
    RenderContext,
    RenderHistory,
    RenderResult,
    build_context,
    build_sink,
    render_entries,
    run_cycle,
)
from .scheduler import LoopState, LoopStatus, RenderLoop

__all__ = [
    "AppConfig",
    "BudgetStatus",
    "CanvasSpec",
    "CycleOutcome",
    "DiagnosticsExporter",
    "LoopState",
    "LoopStatus",
    "PerformanceTargets",
    "RenderBudget",
    "RenderContext",
    "RenderHistory",
    "RenderLoop",
    "RenderResult",
    "build_context",
    "build_doctor_payload",
    "build_sink",
    "find_tag",
    "load_config",
    "run_cycle",
    "render_entries",
    "save_config",
]
