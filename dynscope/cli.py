"""Command line interface for dynscope."""

from __future__ import annotations

import json
import time
from enum import Enum
from pathlib import Path
from typing import NoReturn, Sequence

import typer
from rich.console import Console
from rich.table import Table

from . import __version__, config as config_module
from .api import DynscopeClient
from .config import Config, debug_enabled, load_config
from .errors import DynscopeError
from .log import configure_logging
from .output import render_check_results
from .queries import parse_query_kind
from .services.config_service import apply_config_updates, get_config_snapshot
from .services.discovery_service import FileFilter, discover_files, select_scanner
from .services.index_service import OperationResult, QueryResponse
from .services.process_service import format_command
from .services.system_service import DoctorCheckResult, run_all_doctor_checks
from .text import Messages, Styles
from .utils import find_project_root, format_path, resolve_directory

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help=Messages.APP_HELP,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


class FindOutputFormat(str, Enum):
    rich = "rich"
    porcelain = "porcelain"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"dynscope v{__version__}")
        raise typer.Exit()


def _load_config_safe() -> Config:
    try:
        return load_config()
    except (json.JSONDecodeError, OSError, UnicodeDecodeError):
        return Config()


def _client() -> DynscopeClient:
    return DynscopeClient()


def _fail(message: str) -> NoReturn:
    err_console.print(_styled(message, Styles.ERROR))
    raise typer.Exit(code=1)


def _report(result: OperationResult) -> bool:
    if result.success:
        console.print(_styled(result.message, Styles.SUCCESS))
        return True
    err_console.print(_styled(result.message, Styles.ERROR))
    return False


def _root_option() -> Path | None:
    return typer.Option(
        None,
        "--root",
        "-r",
        help=Messages.HELP_ROOT,
    )


def _path_option() -> Path | None:
    return typer.Option(
        None,
        "--path",
        "-p",
        help=Messages.HELP_PATH,
    )


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help=Messages.HELP_DEBUG,
    ),
) -> None:
    """Global Typer callback for shared options."""
    configure_logging(debug or debug_enabled(_load_config_safe()))


@app.command()
def init(
    path: Path | None = _path_option(),
    root: Path | None = _root_option(),
) -> None:
    """Load the project database, building it when it does not exist yet."""
    with _client() as client:
        try:
            manager = client.manager(path, root=root)
            if not manager.paths.big.exists():
                console.print(
                    _styled(Messages.INFO_INIT_RUNNING.format(root=manager.root), Styles.INFO)
                )
            result = manager.initialize().result()
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise typer.BadParameter(str(exc), param_hint="--root") from exc
    if not _report(result):
        raise typer.Exit(code=1)


@app.command()
def update(
    files: list[Path] = typer.Argument(..., help=Messages.HELP_UPDATE_FILES),
    root: Path | None = _root_option(),
) -> None:
    """Move changed files into the small database and rebuild it."""
    with _client() as client:
        try:
            results = client.update_files(files, root=root)
        except DynscopeError as exc:
            _fail(str(exc))
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise typer.BadParameter(str(exc), param_hint="--root") from exc
    outcomes = [_report(result) for result in results]
    if not all(outcomes):
        raise typer.Exit(code=1)


@app.command()
def merge(
    path: Path | None = _path_option(),
    root: Path | None = _root_option(),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help=Messages.HELP_MERGE_FORCE,
    ),
) -> None:
    """Fold the small database back into the big one."""
    with _client() as client:
        try:
            result = client.merge_back(path, root=root, force=force)
        except DynscopeError as exc:
            _fail(str(exc))
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise typer.BadParameter(str(exc), param_hint="--root") from exc
    if not _report(result):
        raise typer.Exit(code=1)


@app.command()
def rebuild(
    path: Path | None = _path_option(),
    root: Path | None = _root_option(),
) -> None:
    """Delete every database file and build the big database from scratch."""
    with _client() as client:
        try:
            result = client.rebuild(path, root=root)
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise typer.BadParameter(str(exc), param_hint="--root") from exc
    if not _report(result):
        raise typer.Exit(code=1)


@app.command()
def remove(
    path: Path | None = _path_option(),
    root: Path | None = _root_option(),
) -> None:
    """Delete the database files of the project."""
    with _client() as client:
        try:
            result = client.remove(path, root=root)
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise typer.BadParameter(str(exc), param_hint="--root") from exc
    if not _report(result):
        raise typer.Exit(code=1)


@app.command()
def find(
    kind: str = typer.Argument(..., help=Messages.HELP_FIND_KIND),
    term: str = typer.Argument(..., help=Messages.HELP_FIND_TERM),
    path: Path | None = _path_option(),
    root: Path | None = _root_option(),
    output_format: FindOutputFormat = typer.Option(
        FindOutputFormat.rich,
        "--format",
        help=Messages.HELP_FIND_FORMAT,
    ),
) -> None:
    """Query both databases and print merged, de-duplicated matches."""
    try:
        query_kind = parse_query_kind(kind)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="KIND") from exc
    if not term.strip():
        raise typer.BadParameter(Messages.ERROR_EMPTY_TERM, param_hint="TERM")
    with _client() as client:
        try:
            response = client.query(query_kind, term, path, root=root)
        except DynscopeError as exc:
            _fail(str(exc))
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise typer.BadParameter(str(exc), param_hint="--root") from exc
    for partition, detail in response.failures.items():
        err_console.print(
            _styled(
                Messages.INFO_PARTITION_FAILED.format(partition=partition.value, detail=detail),
                Styles.WARNING,
            )
        )
    if output_format is FindOutputFormat.porcelain:
        _render_results_porcelain(response)
    elif response.results:
        _render_results(response)
    elif not response.failures:
        console.print(_styled(Messages.INFO_NO_RESULTS.format(term=term), Styles.INFO))
    if response.failures and not response.results:
        raise typer.Exit(code=1)


@app.command()
def status(
    path: Path | None = _path_option(),
    root: Path | None = _root_option(),
) -> None:
    """Show the state of the project database."""
    with _client() as client:
        try:
            snapshot = client.status(path, root=root)
        except DynscopeError as exc:
            _fail(str(exc))
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise typer.BadParameter(str(exc), param_hint="--root") from exc
    console.print(_styled(Messages.STATUS_TITLE, Styles.TITLE))
    console.print(
        Messages.STATUS_SUMMARY.format(
            initialized=_yes_no(snapshot.initialized),
            updating=_yes_no(snapshot.updating),
            root=snapshot.project_root,
            big_exists=_yes_no(snapshot.big_partition_exists),
            small_exists=_yes_no(snapshot.small_partition_exists),
            big_count=snapshot.big_files_count,
            small_count=snapshot.small_files_count,
        ),
        markup=False,
    )
    if snapshot.last_big_rebuild > 0:
        ago = int(time.time() - snapshot.last_big_rebuild)
        console.print(Messages.STATUS_LAST_UPDATE.format(ago=ago), markup=False)


@app.command()
def scan(
    path: Path | None = _path_option(),
    root: Path | None = _root_option(),
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        min=0,
        help=Messages.HELP_SCAN_LIMIT,
    ),
) -> None:
    """Show which file finder is used and what it discovers."""
    client = _client()
    config = client.config
    try:
        project_root = client.resolve_root(path, root=root)
        scanner = select_scanner(config.file_finder)
        file_filter = FileFilter.from_config(config)
        command = scanner.command(project_root, file_filter)
        console.print(
            _styled(
                Messages.INFO_SCAN_HEADER.format(root=project_root, finder=scanner.name),
                Styles.TITLE,
            )
        )
        if command:
            console.print(
                Messages.INFO_SCAN_COMMAND.format(command=format_command(command)), markup=False
            )
        discovery = discover_files(project_root, config, scanner=scanner)
    except DynscopeError as exc:
        _fail(str(exc))
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--root") from exc
    console.print(Messages.INFO_SCAN_FOUND.format(count=len(discovery.files)))
    for file_path in discovery.files[:limit]:
        console.print(f"  {format_path(file_path, project_root)}", markup=False)
    remaining = len(discovery.files) - limit
    if remaining > 0:
        console.print(Messages.INFO_SCAN_MORE.format(count=remaining))


@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help=Messages.HELP_SHOW_CONFIG,
    ),
    set_exec_option: str | None = typer.Option(
        None,
        "--set-exec",
        help=Messages.HELP_SET_EXEC,
    ),
    set_finder_option: str | None = typer.Option(
        None,
        "--set-finder",
        help=Messages.HELP_SET_FINDER,
    ),
    set_timeout_option: float | None = typer.Option(
        None,
        "--set-timeout",
        help=Messages.HELP_SET_TIMEOUT,
    ),
    set_interval_option: int | None = typer.Option(
        None,
        "--set-interval",
        help=Messages.HELP_SET_INTERVAL,
    ),
    add_pattern_option: str | None = typer.Option(
        None,
        "--add-pattern",
        help=Messages.HELP_ADD_PATTERN,
    ),
    add_exclude_option: str | None = typer.Option(
        None,
        "--add-exclude",
        help=Messages.HELP_ADD_EXCLUDE,
    ),
    resolve_links_option: bool | None = typer.Option(
        None,
        "--resolve-links/--no-resolve-links",
        help=Messages.HELP_RESOLVE_LINKS,
    ),
    reset: bool = typer.Option(
        False,
        "--reset",
        help=Messages.HELP_RESET_CONFIG,
    ),
) -> None:
    """Manage the global dynscope configuration."""
    if set_timeout_option is not None and set_timeout_option <= 0:
        raise typer.BadParameter(Messages.ERROR_TIMEOUT_INVALID, param_hint="--set-timeout")
    if set_interval_option is not None and set_interval_option < 0:
        raise typer.BadParameter(Messages.ERROR_INTERVAL_INVALID, param_hint="--set-interval")
    if set_finder_option is not None:
        try:
            set_finder_option = config_module.normalize_file_finder(set_finder_option)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--set-finder") from exc

    try:
        updates = apply_config_updates(
            exec_name=set_exec_option,
            file_finder=set_finder_option,
            query_timeout=set_timeout_option,
            big_update_interval=set_interval_option,
            add_pattern=add_pattern_option,
            add_exclude=add_exclude_option,
            resolve_links=resolve_links_option,
            reset=reset,
        )
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        _fail(
            Messages.DOCTOR_CONFIG_INVALID.format(path=config_module.config_file_path())
            + f" {exc}"
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if updates.reset:
        console.print(_styled(Messages.INFO_CONFIG_RESET, Styles.SUCCESS))
    elif updates.changed:
        console.print(_styled(Messages.INFO_CONFIG_UPDATED, Styles.SUCCESS))

    if show or not updates.changed:
        cfg = _load_config_safe() if not updates.changed else get_config_snapshot()
        console.print(
            Messages.INFO_CONFIG_SUMMARY.format(
                exec=cfg.exec,
                args=" ".join(cfg.indexer_args),
                big=cfg.db_big,
                small=cfg.db_small,
                files=cfg.db_files_list,
                patterns=" ".join(cfg.file_patterns),
                excludes=" ".join(cfg.exclude_dirs) or "none",
                finder=cfg.file_finder,
                links="yes" if cfg.resolve_links else "no",
                timeout=f"{cfg.query_timeout:g}",
                interval=cfg.big_update_interval,
                markers=" ".join(cfg.root_markers),
                debug="yes" if cfg.debug else "no",
            ),
            markup=False,
        )


@app.command(help=Messages.HELP_DOCTOR)
def doctor(
    path: Path | None = _path_option(),
    root: Path | None = _root_option(),
) -> None:
    """Run diagnostic checks for the indexer, file finder and configuration."""
    console.print(_styled(Messages.DOCTOR_TITLE.format(version=__version__), Styles.TITLE))
    console.print()

    config_load_error: DoctorCheckResult | None = None
    try:
        config = load_config()
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
        config = Config()
        config_load_error = DoctorCheckResult(
            name="Config JSON",
            passed=False,
            message=Messages.DOCTOR_CONFIG_INVALID.format(
                path=config_module.config_file_path()
            ),
            detail=str(exc),
        )

    try:
        if root is not None:
            project_root = resolve_directory(root)
        else:
            project_root = find_project_root(path or Path.cwd(), config.root_markers)
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--root") from exc

    results: list[DoctorCheckResult] = []
    if config_load_error is not None:
        results.append(config_load_error)
    results.extend(run_all_doctor_checks(config, project_root))

    all_passed = render_check_results(results, console)

    console.print()
    if not all_passed:
        console.print(_styled(Messages.DOCTOR_SOME_FAILED, Styles.WARNING))
        raise typer.Exit(code=1)
    console.print(_styled(Messages.DOCTOR_ALL_PASSED, Styles.SUCCESS))


def _render_results(response: QueryResponse) -> None:
    table = Table(show_header=True, header_style=Styles.TABLE_HEADER)
    table.add_column(Messages.TABLE_HEADER_INDEX, justify="right")
    table.add_column(Messages.TABLE_HEADER_PATH, overflow="fold")
    table.add_column(Messages.TABLE_HEADER_LINE, justify="right")
    table.add_column(Messages.TABLE_HEADER_SYMBOL)
    table.add_column(Messages.TABLE_HEADER_TEXT, overflow="fold")
    for idx, result in enumerate(response.results, start=1):
        table.add_row(
            str(idx),
            result.display_path,
            str(result.line_number),
            result.enclosing_symbol or "-",
            _format_preview(result.matched_text),
        )
    console.print(table)


def _escape_porcelain_field(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace("\t", "\\t")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def _render_results_porcelain(response: QueryResponse) -> None:
    for result in response.results:
        fields = (
            _escape_porcelain_field(result.display_path),
            str(result.line_number),
            _escape_porcelain_field(result.enclosing_symbol or "-"),
            _escape_porcelain_field(result.matched_text),
        )
        typer.echo("\t".join(fields))


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def _format_preview(text: str | None, limit: int = 100) -> str:
    if not text:
        return "-"
    snippet = text.strip()
    if len(snippet) <= limit:
        return snippet
    return snippet[: limit - 1].rstrip() + "…"


def run(argv: Sequence[str] | None = None) -> None:
    """Entry point wrapper allowing optional argument override."""
    if argv is None:
        app()
    else:
        app(args=list(argv))
