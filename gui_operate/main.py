"""Command line entrypoint for inspecting displays, history and locating elements."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any

from loguru import logger

from .config import AppConfig, load_config
from .errors import GuiOperateError
from .logging_utils import configure_logging, default_log_dir
from .service import GuiOperateService


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="gui_operate")
    p.add_argument(
        "--config",
        default=os.environ.get("GUI_OPERATE_CONFIG"),
        help="Path to config YAML (default: GUI_OPERATE_CONFIG, else built-in defaults).",
    )
    p.add_argument("--log-level", default=None, help="Override the configured log level.")
    sub = p.add_subparsers(dest="cmd", required=True)

    topo = sub.add_parser("topology", help="Print the normalized display topology.")
    topo.add_argument("--refresh", action="store_true", help="Bypass the topology cache.")

    resolve = sub.add_parser("resolve", help="Resolve click coordinates on a display.")
    resolve.add_argument("x", type=float)
    resolve.add_argument("y", type=float)
    resolve.add_argument("--display", type=int, default=0)
    resolve.add_argument("--mode", choices=["auto", "absolute", "normalized"], default="auto")

    locate = sub.add_parser("locate", help="Locate an element by description.")
    locate.add_argument("description")
    locate.add_argument("--display", type=int, default=None)
    locate.add_argument("--app", default=None, help="Use this app's click history markers.")

    verify = sub.add_parser("verify", help="Ask the vision model about the current screen.")
    verify.add_argument("question")
    verify.add_argument("--display", type=int, default=None)
    verify.add_argument("--app", default=None, help="Record a verified success for this app.")

    history = sub.add_parser("history", help="Inspect or clear per-app click history.")
    history_sub = history.add_subparsers(dest="history_cmd", required=True)
    show = history_sub.add_parser("show", help="Print an app's click history.")
    show.add_argument("app")
    clear = history_sub.add_parser("clear", help="Delete an app's click history.")
    clear.add_argument("app")
    history_sub.add_parser("apps", help="List apps with stored history.")

    return p.parse_args(argv)


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def _configure(config: AppConfig, level_override: str | None) -> None:
    settings = config.logging
    log_dir = settings.log_dir
    if log_dir is None and settings.file_logging:
        log_dir = default_log_dir()
    configure_logging(log_dir, level=(level_override or settings.level).upper())


def _resolve(service: GuiOperateService, args: argparse.Namespace) -> int:
    resolved = service.transformer.resolve_click_coordinates(args.x, args.y, args.display, args.mode)
    global_point = service.transformer.to_global(resolved.point, resolved.display_index)
    normalized = service.transformer.local_to_normalized(resolved.point, resolved.display_index)
    _emit(
        {
            "display_index": resolved.display_index,
            "interpreted_as": resolved.interpreted_as,
            "clamped": resolved.clamped,
            "local": [resolved.point.x, resolved.point.y],
            "global": [global_point.x, global_point.y],
            "normalized": [normalized.xn, normalized.yn],
        }
    )
    return 0


def _history(service: GuiOperateService, args: argparse.Namespace) -> int:
    if args.history_cmd == "apps":
        _emit({"apps": service.history.list_apps()})
        return 0
    result = service.init_app(args.app)
    if args.history_cmd == "clear":
        removed = service.clear_history()
        _emit({"app": args.app, "cleared": True, "file_removed": removed})
        return 0
    context = service.context
    _emit(
        {
            **result.as_dict(),
            "clicks": [entry.as_dict() for entry in context.clicks] if context else [],
        }
    )
    return 0


async def _locate(service: GuiOperateService, args: argparse.Namespace) -> int:
    if args.app:
        service.init_app(args.app)
    result = await service.locate(args.description, args.display)
    _emit(result.as_dict())
    return 0 if result.located else 1


async def _verify(service: GuiOperateService, args: argparse.Namespace) -> int:
    if args.app:
        service.init_app(args.app)
    result = await service.verify(args.question, args.display)
    _emit(result.as_dict())
    return 0


def run(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    args = _parse_args(argv)
    try:
        config = load_config(args.config)
    except GuiOperateError as exc:
        sys.stderr.write(f"gui_operate: {exc}\n")
        return 2
    _configure(config, args.log_level)
    service = GuiOperateService(config)

    try:
        if args.cmd == "topology":
            _emit(service.topology.get(force_refresh=args.refresh).as_dict())
            return 0
        if args.cmd == "resolve":
            return _resolve(service, args)
        if args.cmd == "history":
            return _history(service, args)
        if args.cmd == "locate":
            return asyncio.run(_locate(service, args))
        if args.cmd == "verify":
            return asyncio.run(_verify(service, args))
    except GuiOperateError as exc:
        logger.error("{} failed: {}", args.cmd, exc)
        return 2
    return 1


def main(argv: list[str] | None = None) -> None:
    raise SystemExit(run(argv))


if __name__ == "__main__":
    main()
