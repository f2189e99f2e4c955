"""CLI entrypoints for inkframe: one-shot renders, the periodic loop, and diagnostics."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from inkframe_core import (
    AppConfig,
    DiagnosticsExporter,
    PerformanceTargets,
    RenderBudget,
    RenderHistory,
    RenderLoop,
    build_context,
    build_doctor_payload,
    build_sink,
    find_tag,
    load_config,
    run_cycle,
)
from inkframe_core.config import FeedSourceConfig
from inkframe_core.logging_setup import configure_logging, install_crash_hooks
from inkframe_feeds import source_from_url
from inkframe_output import SinkError
from inkframe_renderer import LAYOUT_MODULES, OutputFormat, RenderError

logger = logging.getLogger("inkframe.cli")

_SUFFIX_FORMATS = {
    ".png": "png",
    ".bmp": "bmp",
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".bin": "packed",
}


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _load(args: argparse.Namespace) -> AppConfig:
    return load_config(Path(args.config).expanduser()) if args.config else load_config()


def _apply_render_overrides(cfg: AppConfig, args: argparse.Namespace) -> str | None:
    """Fold command line overrides into the config; returns an error message on bad input."""
    if args.module:
        cfg.layout.module = args.module
    if args.feed:
        source = source_from_url(args.feed)
        cfg.feed.sources = [FeedSourceConfig(name=source.name, url=source.url)]
        cfg.feed.selection = "first"

    if args.tag:
        tag = find_tag(cfg, args.tag)
        if tag is None:
            return f"No tag with MAC {args.tag!r} found in the config file"
        logger.info("using tag %s as target", tag.mac, extra={"event": "render_target_tag"})
        cfg.output.kind = "oepl"
        cfg.output.tag = tag.mac
        cfg.output.format = "jpeg"
        cfg.canvas.width = tag.width
        cfg.canvas.height = tag.height
        return None

    if args.out:
        if args.width is None or args.height is None:
            return "--out needs --width and --height"
        cfg.output.kind = "file"
        cfg.output.path = args.out
        cfg.output.format = args.format or _SUFFIX_FORMATS.get(Path(args.out).suffix.lower(), cfg.output.format)
        cfg.canvas.width = args.width
        cfg.canvas.height = args.height
    elif args.format:
        cfg.output.format = args.format
    return None


def cmd_render(args: argparse.Namespace, cfg: AppConfig) -> int:
    problem = _apply_render_overrides(cfg, args)
    if problem:
        _print_json({"success": False, "error": problem})
        return 2

    try:
        ctx = build_context(cfg, sink=build_sink(cfg))
        outcome = run_cycle(ctx, RenderHistory())
    except (RenderError, SinkError) as exc:
        logger.error("render failed: %s", exc, extra={"event": "render_failed"})
        _print_json({"success": False, "error": str(exc)})
        return 2

    payload: dict[str, object] = {
        "success": outcome.status == "rendered",
        "status": outcome.status,
        "error": outcome.error,
    }
    if outcome.result is not None:
        result = outcome.result
        payload.update(
            {
                "source": result.source,
                "entries": len(result.entries),
                "placed": result.layout.placed,
                "dropped": result.layout.dropped,
                "truncated": result.layout.truncated,
                "missing_glyphs": result.stats.missing_glyphs,
                "width": result.frame.width,
                "height": result.frame.height,
                "bit_depth": result.frame.bit_depth,
                "format": result.frame.format,
                "digest": result.frame.digest,
            }
        )
    if outcome.sink_result is not None:
        payload["target"] = outcome.sink_result.target
        payload["bytes_written"] = outcome.sink_result.bytes_written

    _print_json(payload)
    return 0 if outcome.status == "rendered" else 1


def cmd_run(args: argparse.Namespace, cfg: AppConfig) -> int:
    install_crash_hooks()
    try:
        ctx = build_context(cfg, sink=build_sink(cfg))
    except (RenderError, SinkError) as exc:
        _print_json({"success": False, "error": str(exc)})
        return 2

    budget = RenderBudget(
        PerformanceTargets(
            cpu_percent_max=cfg.performance.cpu_percent_max,
            rss_mb_max=cfg.performance.rss_mb_max,
            cycle_ratio_max=cfg.performance.cycle_ratio_max,
        )
    )
    loop = RenderLoop(ctx, interval_s=cfg.schedule.interval_s, budget=budget)
    try:
        status = loop.run(max_cycles=args.max_cycles)
    except KeyboardInterrupt:
        loop.stop()
        status = loop.status

    _print_json(
        {
            "state": status.state.value,
            "cycles": status.cycles,
            "failures": status.failures,
            "last_outcome": status.last_outcome,
            "last_error": status.last_error,
            "last_success_utc": status.last_success_utc,
        }
    )
    return 0 if status.failures < status.cycles or status.cycles == 0 else 2


def cmd_doctor(args: argparse.Namespace, cfg: AppConfig) -> int:
    payload = build_doctor_payload(cfg)

    if args.export:
        exporter = DiagnosticsExporter()
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = exporter.bundle(cfg=cfg, doctor_payload=payload, recent_loop_events=[], output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload)
    return 0


def cmd_sources(args: argparse.Namespace, cfg: AppConfig) -> int:
    _print_json(
        {
            "selection": cfg.feed.selection,
            "sources": [{"name": s.name, "url": s.url, "logo": s.logo or None} for s in cfg.feed.sources],
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inkframe", description="Render RSS/Atom feeds for e-paper displays")
    sub = parser.add_subparsers(dest="command", required=True)

    render_cmd = sub.add_parser("render", help="Render one frame and write it out")
    render_cmd.add_argument("--config", default=None, help="Config file (.json or .toml)")
    render_cmd.add_argument("--module", choices=list(LAYOUT_MODULES), default=None)
    render_cmd.add_argument("--feed", default=None, help="Render this feed URL instead of the configured sources")
    render_cmd.add_argument("--format", choices=[f.value for f in OutputFormat], default=None)
    target = render_cmd.add_mutually_exclusive_group()
    target.add_argument("--out", default=None, help="Output file path; needs --width and --height")
    target.add_argument("--tag", default=None, help="MAC of a registered Open ePaper Link tag")
    render_cmd.add_argument("--width", type=int, default=None)
    render_cmd.add_argument("--height", type=int, default=None)
    render_cmd.set_defaults(func=cmd_render)

    run_cmd = sub.add_parser("run", help="Render periodically on the configured schedule")
    run_cmd.add_argument("--config", default=None)
    run_cmd.add_argument("--max-cycles", type=int, default=None)
    run_cmd.set_defaults(func=cmd_run)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics")
    doctor_cmd.add_argument("--config", default=None)
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    sources_cmd = sub.add_parser("sources", help="List configured feed sources")
    sources_cmd.add_argument("--config", default=None)
    sources_cmd.set_defaults(func=cmd_sources)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = _load(args)
    configure_logging(keep_files=cfg.diagnostics.keep_log_files, console=False)
    return int(args.func(args, cfg))


if __name__ == "__main__":
    raise SystemExit(main())
