from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import click
from rich import console as rich_console
from rich import syntax as rich_syntax
from rich import text as rich_text

from patchwise.host import FileSystemContentAccessor, ReviewSurface
from patchwise.logger import configure_logging, get_log_manager, init_log_manager
from patchwise.patch import get_supported_formats
from patchwise.review import (
    Direction,
    ReviewState,
    TerminalEvent,
    accept,
    accept_all,
    cancel,
    close,
    hint_line,
    hunk_at,
    navigate,
    revert,
)
from patchwise.settings import Settings, find_config, load_settings
from patchwise.tools import ToolContext, get_tool


class TerminalReviewSurface(ReviewSurface):
    """Prints the focused hunk as a small colored diff."""

    def __init__(self, console: rich_console.Console, settings: Settings) -> None:
        self.console = console
        self.settings = settings
        self.state: Optional[ReviewState] = None

    def render(self, state: ReviewState) -> None:
        self.state = state

    def focus(self, line: int) -> None:
        state = self.state
        if state is None:
            return
        hunk = hunk_at(state, line)
        if hunk is None:
            return
        pos = state.pending_hunks.index(hunk) + 1
        keys = self.settings.review.keys
        self.console.rule(
            f"{state.path}:{line} (change {pos} of {len(state.pending_hunks)})",
            style="cyan",
        )
        out = rich_text.Text()
        for old in hunk.old_lines:
            out.append(f"- {old}\n", style="red")
        for new in hunk.new_lines:
            out.append(f"+ {new}\n", style="green")
        self.console.print(out, end="")
        self.console.print(
            rich_text.Text(
                f"line {hint_line(state, hunk)}: [{keys.ours}] ours  [{keys.theirs}] theirs  "
                f"[{keys.all}] all  [{keys.prev}]/[{keys.next}] prev/next  [{keys.cancel}] cancel",
                style="dim",
            )
        )

    def clear(self) -> None:
        self.state = None
        self.console.rule(style="cyan")


def _print_result(console: rich_console.Console, text: str) -> None:
    head, sep, rest = text.partition("```diff\n")
    console.print(rich_text.Text(head.rstrip()))
    if not sep:
        return
    diff_text, _, tail = rest.partition("\n```")
    console.print(rich_syntax.Syntax(diff_text, "diff", theme="ansi_dark"))
    if tail.strip():
        console.print(rich_text.Text(tail.strip()))


def _print_event(console: rich_console.Console, event: TerminalEvent) -> None:
    console.print(
        rich_text.Text(f"Review of {event.path} {event.action.value}.", style="bold")
    )
    console.print(rich_syntax.Syntax(event.diff, "diff", theme="ansi_dark"))
    console.print(rich_text.Text(f"Diagnostics: {event.diagnostics_count}"))


def _print_log(console: rich_console.Console) -> None:
    manager = get_log_manager()
    if manager is None:
        return
    for record in manager.get_records(min_level=logging.INFO):
        line = f"{record.level_name.lower()}: {record.message}"
        console.print(rich_text.Text(line, style="dim"))


def _build_args(fmt: str, path: str, raw: str) -> Any:
    if fmt == "search_replace":
        return {"text": raw}
    data = json.loads(raw)
    if isinstance(data, list):
        return {"file_path": path, "edits": data}
    if isinstance(data, dict):
        data.setdefault("file_path", path)
    return data


async def _review_loop(
    console: rich_console.Console, state: ReviewState, settings: Settings
) -> TerminalEvent:
    keys = settings.review.keys
    choices = [keys.ours, keys.theirs, keys.all, keys.prev, keys.next, keys.cancel]
    try:
        while state.is_active:
            choice = click.prompt("action", type=click.Choice(choices), show_choices=False)
            if choice == keys.ours:
                await revert(state)
            elif choice == keys.theirs:
                await accept(state)
            elif choice == keys.all:
                await accept_all(state)
            elif choice == keys.prev:
                navigate(state, Direction.PREV)
            elif choice == keys.next:
                navigate(state, Direction.NEXT)
            else:
                await cancel(state)
    except click.Abort:
        console.print()
        await close(state)
    if state.event is None:
        raise RuntimeError(f"Review of {state.path} ended without a terminal event")
    return state.event


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: nearest .patchwise/config.yaml).",
)
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path]) -> None:
    """Apply AI-proposed block edits to files."""
    if config_path is None:
        config_path = find_config(Path.cwd())
    settings = load_settings(config_path) if config_path else Settings()
    init_log_manager(max_entries=1000)
    configure_logging(settings.logging)
    ctx.obj = settings


@main.command("apply")
@click.argument("path")
@click.argument("edits_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--yes", is_flag=True, help="Write the result without reviewing it.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(list(get_supported_formats())),
    default=None,
    help="Edit format of EDITS_FILE.",
)
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Project root that PATH is relative to.",
)
@click.option("--show-log", is_flag=True, help="Print captured log records afterwards.")
@click.pass_obj
def apply_cmd(
    settings: Settings,
    path: str,
    edits_file: Path,
    yes: bool,
    fmt: Optional[str],
    root: Path,
    show_log: bool,
) -> None:
    """Apply the edits in EDITS_FILE to PATH."""
    console = rich_console.Console()
    fmt = fmt or settings.patch.default_format
    try:
        args = _build_args(fmt, path, edits_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {edits_file}: {e}")

    tool_ctx = ToolContext(
        accessor=FileSystemContentAccessor(root),
        settings=settings,
        surface_factory=None if yes else (lambda _p: TerminalReviewSurface(console, settings)),
    )
    tool_cls = get_tool("edit")
    if tool_cls is None:
        raise RuntimeError("edit tool is not registered")
    tool = tool_cls(tool_ctx)
    spec = settings.tool_spec("edit").model_copy(update={"config": {"format": fmt}})

    async def _run() -> None:
        resp = await tool.run(spec, args)
        _print_result(console, (resp.text if resp else "") or "")
        for pending in tool_ctx.registry.pending_paths():
            state = tool_ctx.registry.get(pending)
            if state is None:
                continue
            event = await _review_loop(console, state, settings)
            _print_event(console, event)

    try:
        asyncio.run(_run())
    except ValueError as e:
        raise click.ClickException(str(e))
    finally:
        if show_log:
            _print_log(console)


if __name__ == "__main__":
    main()
