from __future__ import annotations

import argparse
import asyncio
import json
import logging
import platform
from dataclasses import asdict
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from usagebar.app import Services, build_services
from usagebar.config import CONFIG_PATH, Config, load_config, save_config, set_config_value
from usagebar.models import UsageData, UsageWindow
from usagebar.providers import ALLOWED_PROVIDERS
from usagebar.snapshot import build_snapshot, snapshot_to_json, summary_line, write_snapshot_files

logger = logging.getLogger(__name__)


def _bar_color(pct: float) -> str:
    if pct >= 80.0:
        return "red"
    if pct >= 50.0:
        return "yellow"
    return "green"


def _cli_bar(window: UsageWindow | None, width: int = 30) -> Text:
    if window is None:
        return Text("── no data ──", style="dim")
    shown = max(0.0, window.percent)
    bar_pct = min(100.0, shown)
    filled = int(round((bar_pct / 100.0) * width))
    empty = width - filled
    color = _bar_color(shown)
    bar = Text()
    bar.append("━" * filled, style=f"bold {color}")
    bar.append("╌" * empty, style="bright_black")
    bar.append(f"  {window.percent_text:>4}", style=f"bold {color}")
    return bar


def _fmt_reset(window: UsageWindow | None) -> str:
    if window is None:
        return "-"
    if window.reset_in:
        return window.reset_in
    remaining = window.time_until_reset
    if remaining is None:
        return "-"
    when = window.reset_at.astimezone().strftime("%b %d  %H:%M")
    if remaining.total_seconds() <= 0:
        return when
    hours, rest = divmod(int(remaining.total_seconds()), 3600)
    return f"in {hours}h {rest // 60:02d}m  ({when})"


def _render_panel(data: UsageData) -> Panel:
    table = Table.grid(padding=(0, 1), expand=True)
    table.add_column("label", no_wrap=True, style="bold bright_white", ratio=1)
    table.add_column("value", ratio=4)

    if data.has_error:
        table.add_row(Text("Error", style="bold red"), Text(data.error or "", style="red"))
    else:
        plan = Text()
        plan.append(data.plan or "unknown plan", style="bright_white")
        if data.status:
            plan.append(f"    source: {data.status}", style="dim")
        table.add_row("Plan", plan)

        rows = [
            (data.session_label, "bold cyan", data.session),
            (data.weekly_label, "bold magenta", data.weekly),
        ]
        if data.has_tertiary:
            rows.append((data.tertiary_label, "bold blue", data.tertiary))
        for label, style, window in rows:
            table.add_row("", Text())
            table.add_row(Text(label, style=style), _cli_bar(window))
            table.add_row(Text("  resets", style="dim"), Text(_fmt_reset(window), style="bright_white"))

    border = "#ff5e6c" if data.has_error else "#2be38f"
    if not data.has_error and data.is_stale():
        border = "#f2c94c"
    return Panel(
        table,
        title=f"[bold bright_white] {data.provider.upper()} [/]",
        subtitle=f"[dim]updated {data.fetched_at.astimezone().strftime('%H:%M:%S')}[/]",
        border_style=border,
        padding=(1, 2),
    )


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


async def _panel(services: Services, cfg: Config, provider: str, console: Console) -> None:
    if provider != "all":
        data = await services.usage.get_usage(provider)
        if data is None:
            console.print(Text(f"no usage available for {provider}", style="dim"))
            return
        console.print(_render_panel(data))
        return

    snapshot = await build_snapshot(services.usage)
    write_snapshot_files(cfg, snapshot)
    for data in snapshot.providers:
        console.print(_render_panel(data))


async def _watch(services: Services, cfg: Config, console: Console, passes: int | None = None) -> None:
    """Stream every enabled provider, then repeat each refresh interval until interrupted."""
    interval = max(1, cfg.general.refresh_seconds)
    done = 0
    while True:
        async for data in services.usage.get_all_usage_stream():
            console.print(_render_panel(data))
        services.cache.save()
        done += 1
        if passes is not None and done >= passes:
            return
        logger.debug("Next refresh in %ss", interval)
        await asyncio.sleep(interval)


async def _snapshot(services: Services, cfg: Config) -> str:
    snapshot = await build_snapshot(services.usage)
    write_snapshot_files(cfg, snapshot)
    return snapshot_to_json(snapshot)


async def _version(services: Services) -> str:
    version = await services.usage.get_version()
    return version or "codexbar not available"


async def _health(services: Services, config_path: Path) -> dict[str, object]:
    status = await services.setup.check()
    return {
        "config": str(config_path),
        "platform": platform.platform(),
        "wsl_installed": status.wsl_installed,
        "wsl_running": status.wsl_running,
        "wsl_error": status.wsl_error.value if status.wsl_error else None,
        "distros": status.distros,
        "codexbar_installed": status.codexbar_installed,
        "codexbar_version": status.codexbar_version,
        "ready": status.is_ready,
        "next_step": status.current_step.value,
    }


def main() -> None:
    parser = argparse.ArgumentParser(prog="usagebar")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH)
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd")

    panel = sub.add_parser("panel")
    panel.add_argument("--provider", choices=["all", *sorted(ALLOWED_PROVIDERS)], default="all")

    sub.add_parser("watch")

    snap_cmd = sub.add_parser("snapshot")
    snap_cmd.add_argument("--format", choices=["json"], default="json")

    sub.add_parser("summary")
    sub.add_parser("health")
    sub.add_parser("version")

    config = sub.add_parser("config")
    config_sub = config.add_subparsers(dest="config_cmd")
    config_sub.add_parser("show")
    config_set = config_sub.add_parser("set")
    config_set.add_argument("key")
    config_set.add_argument("value")

    args = parser.parse_args()
    _configure_logging(args.verbose)
    cfg = load_config(args.config)

    cmd = args.cmd or "panel"
    console = Console()

    if cmd == "config":
        if args.config_cmd == "show":
            print(json.dumps(asdict(cfg), indent=2, default=str))
            return
        if args.config_cmd == "set":
            try:
                set_config_value(cfg, args.key, args.value)
            except ValueError as exc:
                parser.error(str(exc))
            save_config(cfg, args.config)
            print(f"updated {args.key}")
            return
        parser.error("config requires show or set")

    if cmd == "summary":
        print(summary_line(cfg.general.state_file))
        return

    services = build_services(cfg)
    try:
        if cmd == "panel":
            asyncio.run(_panel(services, cfg, getattr(args, "provider", "all"), console))
            return

        if cmd == "watch":
            try:
                asyncio.run(_watch(services, cfg, console))
            except KeyboardInterrupt:
                logger.debug("watch interrupted")
            return

        if cmd == "snapshot":
            print(asyncio.run(_snapshot(services, cfg)))
            return

        if cmd == "health":
            print(json.dumps(asyncio.run(_health(services, args.config)), indent=2))
            return

        if cmd == "version":
            print(asyncio.run(_version(services)))
            return
    finally:
        services.cache.save()

    parser.error("unknown command")


if __name__ == "__main__":
    main()
