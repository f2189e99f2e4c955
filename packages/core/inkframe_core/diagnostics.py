"""Diagnostics export helpers for local support bundles."""

from __future__ import annotations

import json
import platform
import re
import tempfile
import zipfile
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import PIL

from inkframe_renderer import FontError, glyph_provider_for

from .config import AppConfig, config_path
from .logging_setup import log_dir


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Path):
        return str(value)
    return str(value)


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def _font_report(cfg: AppConfig) -> dict[str, Any]:
    try:
        provider = glyph_provider_for(cfg.fonts.kind, cfg.fonts.path)
        report: dict[str, Any] = dict(provider.describe())
        report["line_height"] = provider.line_height(cfg.layout.title_size)
        report["ok"] = True
    except FontError as exc:
        report = {"kind": cfg.fonts.kind, "path": cfg.fonts.path, "ok": False, "error": str(exc)}
    return report


def build_doctor_payload(cfg: AppConfig) -> dict[str, Any]:
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "pillow": PIL.__version__,
        "config_path": str(config_path()),
        "config": redact(asdict(cfg)),
        "font": _font_report(cfg),
        "sources": [{"name": s.name, "url": s.url, "logo": s.logo or None} for s in cfg.feed.sources],
        "output": {
            "kind": cfg.output.kind,
            "format": cfg.output.format,
            "target": cfg.output.tag if cfg.output.kind == "oepl" else cfg.output.path,
        },
    }


class DiagnosticsExporter:
    def __init__(self, app_name: str = "inkframe") -> None:
        self.app_name = app_name

    def bundle(
        self,
        cfg: AppConfig,
        doctor_payload: dict[str, Any],
        recent_loop_events: list[dict[str, Any]] | None = None,
        output_dir: Path | None = None,
        logs_dir: Path | None = None,
    ) -> Path:
        output_base = output_dir or Path(tempfile.gettempdir())
        output_base.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        zip_path = output_base / f"inkframe-diagnostics-{stamp}.zip"

        logs_base = logs_dir or log_dir()
        logs = sorted(logs_base.glob("*.log*"))

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            manifest = {
                "app": self.app_name,
                "created_utc": datetime.now(timezone.utc).isoformat(),
                "host": platform.platform(),
                "python": platform.python_version(),
                "config_path": str(config_path()),
                "log_dir": str(logs_base),
            }
            zf.writestr("manifest.json", json.dumps(manifest, indent=2, sort_keys=True))
            zf.writestr("doctor.json", json.dumps(redact(doctor_payload), indent=2, sort_keys=True, default=_jsonable))
            zf.writestr("config.redacted.json", json.dumps(redact(asdict(cfg)), indent=2, sort_keys=True))
            zf.writestr(
                "loop_events.json",
                json.dumps(redact(recent_loop_events or []), indent=2, sort_keys=True, default=_jsonable),
            )

            for item in logs:
                zf.write(item, arcname=f"logs/{item.name}")

        return zip_path
