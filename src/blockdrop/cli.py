"""Command line interface for blockdrop."""

from __future__ import annotations

import difflib
from pathlib import Path
from typing import Any, List, NoReturn

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from blockdrop.config import (
    BlockdropConfig,
    ConfigError,
    ConfigManager,
    parse_retention,
    resolve_with_precedence,
)
from blockdrop.errors import (
    BlockdropError,
    NoBlocksFoundError,
    NoInputError,
    WatchSourceUnavailableError,
)
from blockdrop.log import configure_logging
from blockdrop.materialize import BackupManager, PipelineOutcome, PlannedAction
from blockdrop.pipeline import ImportPipeline
from blockdrop.sources import ClipboardSource, FileSource, InputSource, resolve_source
from blockdrop.watch import WatchCycle, WatchLoop

console = Console()

_STATUS_STYLES = {
    "created": "[green]+[/green]",
    "updated": "[cyan]~[/cyan]",
    "failed": "[red]x[/red]",
    "skipped": "[yellow]-[/yellow]",
}


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> NoReturn:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Whether JSON mode is active.
        details: Optional structured details included in the JSON payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output.
        click.ClickException: For non-JSON flows.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Print according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: One of ``detail``, ``summary``, ``warning`` or ``error``.
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if quiet and mode != "error":
        return
    if summary_only and mode not in {"summary", "warning", "error"}:
        return
    console.print(message)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands."""

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {root}: {parts}.[/green]"


def _load_config(json_output: bool, *, verbose: bool = False) -> BlockdropConfig:
    """Load the effective configuration and configure logging from it."""

    try:
        config = ConfigManager().load()
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    configure_logging(config.logging, verbose=verbose)
    return config


def _resolve_output_modes(
    ctx: click.Context,
    config: BlockdropConfig,
    *,
    quiet: bool,
    summary_mode: bool,
    json_output: bool,
) -> tuple[bool, bool]:
    """Combine explicit flags with configured defaults and reject conflicts."""

    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE

    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if quiet_enabled and explicit_quiet:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if summary_only and explicit_summary:
            raise click.ClickException("--json cannot be combined with --summary.")
        return False, False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return quiet_enabled, summary_only


def _outcome_payload(outcome: PipelineOutcome, root: Path) -> dict[str, Any]:
    return {
        "root": root.as_posix(),
        "counts": {
            "files": len(outcome.outcomes),
            "succeeded": len(outcome.succeeded),
            "failed": len(outcome.failed),
            "skipped": len(outcome.skipped),
            "backups": len(outcome.backups),
        },
        "files": [item.model_dump(mode="json") for item in outcome.outcomes],
        "stats": outcome.stats.model_dump(mode="json"),
        "committed": outcome.committed,
        "commit_error": outcome.commit_error,
    }


def _stats_table(outcome: PipelineOutcome) -> Table:
    table = Table(title="Statistics", show_header=True, header_style="bold")
    table.add_column("Extension")
    table.add_column("Files", justify="right")
    for extension, count in sorted(outcome.stats.extensions.items()):
        table.add_row(extension, str(count))
    table.caption = f"{outcome.stats.total_files} file(s), {outcome.stats.total_bytes} byte(s)"
    return table


def _plan_table(actions: List[PlannedAction]) -> Table:
    table = Table(title="Dry run", show_header=True, header_style="bold")
    table.add_column("Action")
    table.add_column("Path")
    table.add_column("Bytes", justify="right")
    for action in actions:
        label = action.action if action.reason is None else f"{action.action} ({action.reason})"
        table.add_row(label, action.path, str(action.size_bytes))
    return table


def _emit_outcome(
    outcome: PipelineOutcome,
    *,
    command: str,
    root: Path,
    quiet: bool,
    summary_only: bool,
) -> None:
    """Render per-file results, warnings, stats, and a summary line."""

    for item in outcome.outcomes:
        marker = _STATUS_STYLES[item.status]
        suffix = f" ({item.bytes_written} bytes)" if item.succeeded else f": {item.reason}"
        mode = "error" if item.status == "failed" else "detail"
        _emit_message(
            f"  {marker} {item.path}{suffix}", mode=mode, quiet=quiet, summary_only=summary_only
        )
        for warning in item.warnings:
            _emit_message(
                f"    [yellow]warning:[/yellow] {warning}",
                mode="warning",
                quiet=quiet,
                summary_only=summary_only,
            )

    if outcome.succeeded:
        _emit_message(_stats_table(outcome), mode="detail", quiet=quiet, summary_only=summary_only)

    if outcome.commit_error:
        _emit_message(
            f"[yellow]Commit skipped: {outcome.commit_error}[/yellow]",
            mode="warning",
            quiet=quiet,
            summary_only=summary_only,
        )
    elif outcome.committed:
        _emit_message(
            "[cyan]Committed written files to git.[/cyan]",
            mode="detail",
            quiet=quiet,
            summary_only=summary_only,
        )

    _emit_message(
        _format_summary_line(
            command,
            root,
            {
                "written": len(outcome.succeeded),
                "failed": len(outcome.failed),
                "skipped": len(outcome.skipped),
                "backups": len(outcome.backups),
                "bytes": outcome.stats.total_bytes,
            },
        ),
        mode="summary",
        quiet=quiet,
        summary_only=summary_only,
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="blockdrop")
def cli() -> None:
    """blockdrop turns path-tagged code blocks from AI chats into files."""


@cli.command("import")
@click.option("-c", "--clipboard", is_flag=True, help="Read input from the clipboard.")
@click.option("-i", "--input", "input_path", type=str, help="Input file (- for stdin).")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=str),
    default=".",
    show_default=True,
    help="Directory that extracted paths are written under.",
)
@click.option("-d", "--dry-run", is_flag=True, help="Preview without writing files.")
@click.option("-g", "--git-commit", is_flag=True, default=None, help="Commit written files to git.")
@click.option(
    "--backup/--no-backup", default=None, help="Move existing files aside before overwrite."
)
@click.option("--no-validate", is_flag=True, help="Skip configured syntax validators.")
@click.option(
    "-j", "--concurrency", type=click.IntRange(min=1), help="Files processed in parallel."
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the import.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def import_command(
    ctx: click.Context,
    clipboard: bool,
    input_path: str | None,
    root: str,
    dry_run: bool,
    git_commit: bool | None,
    backup: bool | None,
    no_validate: bool,
    concurrency: int | None,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Extract code blocks from chat text and write them as files.

    Input priority: --clipboard, then --input, then the clipboard if it holds text.
    """

    config = _load_config(json_output, verbose=verbose)
    quiet_enabled, summary_only = _resolve_output_modes(
        ctx, config, quiet=quiet, summary_mode=summary_mode, json_output=json_output
    )

    root_path = Path(root).expanduser().resolve()
    pipeline = ImportPipeline.from_config(
        config,
        root=root_path,
        backup=backup,
        validate_files=False if no_validate else None,
        commit=git_commit or None,
        concurrency=concurrency,
    )

    try:
        source = resolve_source(clipboard=clipboard, input_path=input_path)
        text = source.read()
        if dry_run:
            actions = pipeline.preview(text)
        else:
            specs = pipeline.extract(text)
            _emit_message(
                f"[cyan]Found {len(specs)} file(s) in {source.name}.[/cyan]",
                mode="detail",
                quiet=quiet_enabled or json_output,
                summary_only=summary_only,
            )
            outcome = pipeline.engine.process(specs, pipeline.options)
    except NoInputError as exc:
        _handle_cli_error(str(exc), code="no_input", json_output=json_output, original=exc)
    except NoBlocksFoundError as exc:
        _handle_cli_error(str(exc), code="no_blocks", json_output=json_output, original=exc)

    if dry_run:
        if json_output:
            console.print_json(
                data={
                    "dry_run": True,
                    "root": root_path.as_posix(),
                    "actions": [action.model_dump(mode="json") for action in actions],
                }
            )
            return
        _emit_message(
            _plan_table(actions), mode="detail", quiet=quiet_enabled, summary_only=summary_only
        )
        _emit_message(
            _format_summary_line("Dry run", root_path, {"files": len(actions)}),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
        return

    if json_output:
        console.print_json(data=_outcome_payload(outcome, root_path))
        if not outcome.ok:
            raise SystemExit(1)
        return

    _emit_outcome(
        outcome, command="Import", root=root_path, quiet=quiet_enabled, summary_only=summary_only
    )
    error = outcome.error()
    if error is not None:
        _handle_cli_error(str(error), code="write_failed", json_output=False, original=error)


def _emit_watch_cycle(
    cycle: WatchCycle,
    *,
    root: Path,
    json_output: bool,
    quiet: bool,
    summary_only: bool,
) -> None:
    """Render output for one triggered watch cycle."""

    if json_output:
        payload: dict[str, Any] = {
            "cycle": cycle.number,
            "source": cycle.source,
            "triggered_at": cycle.triggered_at.isoformat(),
            "error": str(cycle.error) if cycle.error else None,
        }
        if cycle.outcome is not None:
            payload.update(_outcome_payload(cycle.outcome, root))
        console.print_json(data=payload)
        return

    _emit_message(
        f"[cyan]Change {cycle.number} detected in {cycle.source}.[/cyan]",
        mode="detail",
        quiet=quiet,
        summary_only=summary_only,
    )
    if cycle.outcome is None:
        _emit_message(
            f"[yellow]{cycle.error}[/yellow]",
            mode="warning",
            quiet=quiet,
            summary_only=summary_only,
        )
        return
    _emit_outcome(cycle.outcome, command="Watch", root=root, quiet=quiet, summary_only=summary_only)


@cli.command()
@click.option("-c", "--clipboard", is_flag=True, help="Watch the clipboard.")
@click.option(
    "-i",
    "--input",
    "input_path",
    type=click.Path(dir_okay=False, path_type=str),
    help="Watch a file.",
)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=str),
    default=".",
    show_default=True,
    help="Directory that extracted paths are written under.",
)
@click.option("--interval", type=float, help="Override the poll interval in seconds.")
@click.option("--skip-existing", is_flag=True, help="Ignore content present when watching starts.")
@click.option("-g", "--git-commit", is_flag=True, default=None, help="Commit written files to git.")
@click.option(
    "--backup/--no-backup", default=None, help="Move existing files aside before overwrite."
)
@click.option("--once", is_flag=True, help="Run a single poll cycle and exit.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON for each cycle.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def watch(
    ctx: click.Context,
    clipboard: bool,
    input_path: str | None,
    root: str,
    interval: float | None,
    skip_existing: bool,
    git_commit: bool | None,
    backup: bool | None,
    once: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Re-import whenever the clipboard or an input file changes."""

    if clipboard == bool(input_path):
        raise click.ClickException("Provide exactly one of --clipboard or --input.")
    if input_path == "-":
        raise click.ClickException("stdin cannot be watched; pass a file path.")
    if interval is not None and interval <= 0:
        raise click.ClickException("--interval must be greater than zero.")

    config = _load_config(json_output, verbose=verbose)
    quiet_enabled, summary_only = _resolve_output_modes(
        ctx, config, quiet=quiet, summary_mode=summary_mode, json_output=json_output
    )

    root_path = Path(root).expanduser().resolve()
    pipeline = ImportPipeline.from_config(
        config, root=root_path, backup=backup, commit=git_commit or None
    )
    source: InputSource = ClipboardSource() if clipboard else FileSource(Path(input_path or ""))

    loop = WatchLoop(
        source,
        lambda text: pipeline.run(text, cancel=loop.stop_event),
        interval=interval or config.watch.interval_seconds,
        use_events=config.watch.use_events,
        trigger_on_start=not skip_existing,
    )

    def _render(cycle: WatchCycle) -> None:
        _emit_watch_cycle(
            cycle,
            root=root_path,
            json_output=json_output,
            quiet=quiet_enabled,
            summary_only=summary_only,
        )

    try:
        if once:
            cycle = loop.poll_once()
            if cycle is None:
                _emit_message(
                    "[yellow]No new content in the watched source.[/yellow]",
                    mode="warning",
                    quiet=quiet_enabled,
                    summary_only=summary_only,
                )
                return
            _render(cycle)
            return

        _emit_message(
            f"[cyan]Watching {source.name} every {interval or config.watch.interval_seconds:g}s. "
            "Press Ctrl+C to stop.[/cyan]",
            mode="detail",
            quiet=quiet_enabled or json_output,
            summary_only=summary_only,
        )
        loop.run(_render)
    except KeyboardInterrupt:
        loop.stop()
        _emit_message(
            "[yellow]Watch stopped by user request.[/yellow]",
            mode="summary",
            quiet=quiet_enabled or json_output,
            summary_only=summary_only,
        )
    except WatchSourceUnavailableError as exc:
        _handle_cli_error(
            str(exc), code="watch_source_unavailable", json_output=json_output, original=exc
        )


@cli.group()
def backups() -> None:
    """Inspect and prune backups of overwritten files."""


def _backup_manager(config: BlockdropConfig, root: str) -> BackupManager:
    return BackupManager(Path(root).expanduser().resolve(), config.backup.directory)


_ROOT_OPTION = click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=str),
    default=".",
    show_default=True,
    help="Directory the backups belong to.",
)


@backups.command("list")
@_ROOT_OPTION
@click.option("--json", "json_output", is_flag=True, help="Emit JSON.")
def backups_list(root: str, json_output: bool) -> None:
    """List backups under the backup directory."""

    config = _load_config(json_output)
    records = _backup_manager(config, root).list_backups()
    if json_output:
        console.print_json(data={"backups": [record.model_dump(mode="json") for record in records]})
        return
    if not records:
        console.print("[yellow]No backups found.[/yellow]")
        return
    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("Taken (UTC)")
    table.add_column("Original")
    table.add_column("Backup")
    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            str(record.original_path),
            str(record.backup_path),
        )
    console.print(table)


@backups.command("prune")
@_ROOT_OPTION
@click.option("--retention", type=str, help="Keep backups newer than this (e.g. 7d, 12h).")
@click.option("--dry-run", is_flag=True, help="Show what would be removed.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON.")
def backups_prune(root: str, retention: str | None, dry_run: bool, json_output: bool) -> None:
    """Delete backups older than the retention window."""

    config = _load_config(json_output)
    try:
        window = parse_retention(retention) if retention else config.backup.retention_window
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    removed = _backup_manager(config, root).prune(window, dry_run=dry_run)
    if json_output:
        console.print_json(
            data={
                "dry_run": dry_run,
                "removed": [record.model_dump(mode="json") for record in removed],
            }
        )
        return
    verb = "Would remove" if dry_run else "Removed"
    for record in removed:
        console.print(f"  {verb.lower()} {record.backup_path}")
    console.print(f"[green]{verb} {len(removed)} backup(s).[/green]")


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(f"Cannot assign into non-mapping key {segment!r}.")
        node = child
    node[path[-1]] = value


@cli.group()
def config() -> None:
    """Manage blockdrop configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""

    manager = ConfigManager()
    try:
        manager.ensure_exists()
        effective = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(effective.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY."""

    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must be a dotted path such as 'backup.enabled'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    file_data = manager.load_file_overrides()
    try:
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=BlockdropConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()
    diff = [
        line
        for line in difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
        if "Last updated:" not in line
    ]
    if len(diff) > 2:
        console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an editor and validate the result."""

    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")
    if edited is None or edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc
    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    try:
        resolve_with_precedence(defaults=BlockdropConfig(), file_overrides=parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(parsed)
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    try:
        cli()
    except BlockdropError as exc:  # pragma: no cover - last-resort reporting
        console.print(f"[red]Error: {exc}[/red]")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
