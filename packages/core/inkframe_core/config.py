"""Persistent settings schema and load/save helpers."""

from __future__ import annotations

import json
import logging
import os
import platform
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from inkframe_feeds import NEWS_HEADLINE_SOURCES, SELECTION_STRATEGIES
from inkframe_feeds.fetcher import USER_AGENT
from inkframe_output import SINK_KINDS
from inkframe_renderer import GLYPH_PROVIDER_KINDS, LAYOUT_MODULES, MISSING_GLYPH_MODES, QUANTIZE_MODES, OutputFormat

logger = logging.getLogger("inkframe.config")

CONFIG_VERSION = 2


@dataclass
class CanvasConfig:
    width: int = 296
    height: int = 128
    bit_depth: int = 1
    quantize: str = "threshold"
    threshold: int = 30


@dataclass
class FontConfig:
    kind: str = "builtin"
    path: str | None = None
    missing_glyph: str = "box"


@dataclass
class FeedSourceConfig:
    name: str = ""
    url: str = ""
    logo: str = ""


def _default_sources() -> list[FeedSourceConfig]:
    return [FeedSourceConfig(name=s.name, url=s.url) for s in NEWS_HEADLINE_SOURCES]


@dataclass
class FeedConfig:
    sources: list[FeedSourceConfig] = field(default_factory=_default_sources)
    selection: str = "first"
    timeout_s: float = 20.0
    max_entries: int = 20
    user_agent: str = USER_AGENT


@dataclass
class LayoutConfig:
    module: str = "feed-list"
    padding: int = 6
    spacing: int = 4
    line_spacing: int = 0
    title_size: int = 13
    summary_size: int = 11
    summary_lines: int = 2
    show_summary: bool = True
    show_footer: bool = True
    footer_size: int = 10
    timestamp_format: str = "%m-%d %H:%M"
    headline_max_size: int = 40
    headline_min_size: int = 10


@dataclass
class OutputConfig:
    kind: str = "file"
    path: str = "inkframe.png"
    format: str = "png"
    tag: str | None = None


@dataclass
class TagConfig:
    mac: str = ""
    width: int = 296
    height: int = 128


@dataclass
class OpenEPaperLinkConfig:
    host: str = ""
    tags: list[TagConfig] = field(default_factory=list)
    dither: bool = False
    ttl_minutes: int | None = None
    timeout_s: float = 30.0


@dataclass
class ScheduleConfig:
    interval_s: int = 900


@dataclass
class DiagnosticsConfig:
    keep_log_files: int = 7


@dataclass
class PerformanceConfig:
    cpu_percent_max: float = 50.0
    rss_mb_max: float = 200.0
    cycle_ratio_max: float = 0.5


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    canvas: CanvasConfig = field(default_factory=CanvasConfig)
    fonts: FontConfig = field(default_factory=FontConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    oepl: OpenEPaperLinkConfig = field(default_factory=OpenEPaperLinkConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


def config_dir() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "inkframe"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "inkframe"
    return Path.home() / ".config" / "inkframe"


def config_path() -> Path:
    return config_dir() / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    for k, v in (raw or {}).items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _sources(raw: Any) -> list[FeedSourceConfig]:
    if raw is None:
        return _default_sources()
    out = []
    for item in raw:
        if isinstance(item, str):
            item = {"name": item.split("://", 1)[-1].split("/", 1)[0], "url": item}
        source = _merge(FeedSourceConfig, item)
        if source.url:
            out.append(source)
    return out


def _tags(raw: Any) -> list[TagConfig]:
    return [_merge(TagConfig, item) for item in (raw or []) if item.get("mac")]


def _normalize_canvas(cfg: AppConfig) -> None:
    cfg.canvas.width = int(cfg.canvas.width)
    cfg.canvas.height = int(cfg.canvas.height)
    cfg.canvas.bit_depth = int(cfg.canvas.bit_depth)
    cfg.canvas.threshold = max(0, min(254, int(cfg.canvas.threshold)))
    if cfg.canvas.quantize not in QUANTIZE_MODES:
        cfg.canvas.quantize = "threshold"


def _normalize_fonts(cfg: AppConfig) -> None:
    if cfg.fonts.kind not in GLYPH_PROVIDER_KINDS:
        cfg.fonts.kind = "builtin"
    if cfg.fonts.kind == "truetype" and not cfg.fonts.path:
        cfg.fonts.kind = "builtin"
    if cfg.fonts.missing_glyph not in MISSING_GLYPH_MODES:
        cfg.fonts.missing_glyph = "box"


def _normalize_feed(cfg: AppConfig) -> None:
    if not cfg.feed.sources:
        logger.warning("no usable feed sources configured, using built-in sources", extra={"event": "config_no_sources"})
        cfg.feed.sources = _default_sources()
    if cfg.feed.selection not in SELECTION_STRATEGIES:
        cfg.feed.selection = "first"
    cfg.feed.timeout_s = float(max(1.0, min(120.0, float(cfg.feed.timeout_s))))
    cfg.feed.max_entries = max(1, min(200, int(cfg.feed.max_entries)))


def _normalize_layout(cfg: AppConfig) -> None:
    lay = cfg.layout
    if lay.module not in LAYOUT_MODULES:
        lay.module = "feed-list"
    lay.padding = max(0, int(lay.padding))
    lay.spacing = max(0, int(lay.spacing))
    lay.line_spacing = max(0, int(lay.line_spacing))
    lay.summary_lines = max(0, int(lay.summary_lines))
    for name in ("title_size", "summary_size", "footer_size", "headline_min_size"):
        setattr(lay, name, max(6, int(getattr(lay, name))))
    lay.headline_max_size = max(lay.headline_min_size, int(lay.headline_max_size))


def _normalize_output(cfg: AppConfig) -> None:
    if cfg.output.kind not in SINK_KINDS:
        cfg.output.kind = "file"
    if cfg.output.format not in {f.value for f in OutputFormat}:
        cfg.output.format = "png"
    if cfg.output.kind == "oepl":
        # Access points only ingest JPEG.
        cfg.output.format = "jpeg"


def _normalize_schedule(cfg: AppConfig) -> None:
    cfg.schedule.interval_s = max(30, min(86400, int(cfg.schedule.interval_s)))


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v1 is the flat layout: epaper_link_host plus a top-level tags array.
        oepl = dict(data.get("oepl", {}) or {})
        if "epaper_link_host" in data:
            oepl.setdefault("host", data.pop("epaper_link_host"))
        if "tags" in data:
            oepl.setdefault("tags", data.pop("tags"))
        data["oepl"] = oepl
        data["config_version"] = 2

    return data


def _read_raw(path: Path) -> dict[str, Any]:
    if path.suffix.lower() == ".toml":
        with path.open("rb") as fh:
            return tomllib.load(fh)
    return json.loads(path.read_text(encoding="utf-8"))


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = _read_raw(path)
    except (OSError, ValueError) as exc:
        logger.warning("could not read config %s, using defaults: %s", path, exc, extra={"event": "config_invalid"})
        return AppConfig()

    data = _migrate(raw)
    feed_raw = dict(data.get("feed", {}) or {})
    oepl_raw = dict(data.get("oepl", {}) or {})
    feed = _merge(FeedConfig, {k: v for k, v in feed_raw.items() if k != "sources"})
    feed.sources = _sources(feed_raw.get("sources"))
    oepl = _merge(OpenEPaperLinkConfig, {k: v for k, v in oepl_raw.items() if k != "tags"})
    oepl.tags = _tags(oepl_raw.get("tags"))

    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        canvas=_merge(CanvasConfig, data.get("canvas", {})),
        fonts=_merge(FontConfig, data.get("fonts", {})),
        feed=feed,
        layout=_merge(LayoutConfig, data.get("layout", {})),
        output=_merge(OutputConfig, data.get("output", {})),
        oepl=oepl,
        schedule=_merge(ScheduleConfig, data.get("schedule", {})),
        diagnostics=_merge(DiagnosticsConfig, data.get("diagnostics", {})),
        performance=_merge(PerformanceConfig, data.get("performance", {})),
    )

    _normalize_canvas(cfg)
    _normalize_fonts(cfg)
    _normalize_feed(cfg)
    _normalize_layout(cfg)
    _normalize_output(cfg)
    _normalize_schedule(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path


def find_tag(cfg: AppConfig, mac: str) -> TagConfig | None:
    mac_norm = mac.strip().lower()
    for tag in cfg.oepl.tags:
        if tag.mac.strip().lower() == mac_norm:
            return tag
    return None
