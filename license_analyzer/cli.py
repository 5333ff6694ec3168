"""Command line interface for the license analyzer."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path
from typing import Any, Callable, NoReturn, Optional, TypeVar

import click

from .config import AppConfig
from .ingestion import IngestionError, load_installations, load_sessions
from .pipeline import AllClassificationsFailed, run_concurrency_analysis, run_entitlement_analysis
from .reporting import (
    DAILY_PEAK_HEADERS,
    ENTITLEMENT_HEADERS,
    SOFTWARE_PEAK_HEADERS,
    daily_peak_rows,
    entitlement_rows,
    render_table,
    software_peak_rows,
    write_concurrency_csv,
    write_entitlement_csv,
    write_xlsx,
)
from .services import LlmClassifier, NormalizationDispatcher, configure_http, configure_logging
from .services.classifier import ClassificationError, Classifier
from .services.http import get_http_session

T = TypeVar("T")

_LOGGER = logging.getLogger("license_analyzer.cli")
_STATUS_WIDTH = 110


def build_classifier(config: AppConfig) -> Classifier:
    return LlmClassifier(config.classifier_settings(), session=get_http_session())


def _console_status(message: str) -> None:
    if not sys.stderr.isatty():
        return
    line = message if len(message) <= _STATUS_WIDTH else message[: _STATUS_WIDTH - 3] + "..."
    click.echo("\r" + line.ljust(_STATUS_WIDTH), err=True, nl=False)


def _end_status() -> None:
    if sys.stderr.isatty():
        click.echo("", err=True)


def _fail(message: str) -> NoReturn:
    raise click.ClickException(message)


def _run_cancellable(dispatcher: NormalizationDispatcher, func: Callable[[], T]) -> T:
    """Run ``func`` in a helper thread so Ctrl-C can cancel the dispatcher cooperatively."""
    outcome: dict[str, Any] = {}

    def _target() -> None:
        try:
            outcome["value"] = func()
        except BaseException as exc:  # noqa: BLE001 - re-raised in the caller thread
            outcome["error"] = exc

    worker = threading.Thread(target=_target, name="entitlement-run", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            click.secho("\nCancelling: waiting for running requests to finish...", fg="yellow", err=True)
            dispatcher.cancel()
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


@click.group()
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding .env, appsettings.json and the input files (defaults to the current directory).",
)
@click.option("--log-level", default=None, help="Override LOG_LEVEL.")
@click.pass_context
def cli(ctx: click.Context, base_dir: Optional[Path], log_level: Optional[str]) -> None:
    """Software license usage analysis."""
    config = AppConfig.load(base_dir)
    configure_logging(
        config.log_file_path,
        level=log_level or config.log_level,
        sentry_dsn=config.sentry_dsn,
        sentry_environment=config.sentry_environment,
    )
    configure_http(config.http_settings())
    ctx.obj = config


@cli.command("entitlements")
@click.option("--input", "input_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Installation export (.xlsx or .csv).")
@click.option("--output", "output_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="CSV report path.")
@click.option("--xlsx", "xlsx_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Also write the report as an Excel workbook.")
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Max in-flight classifier calls.")
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Jobs admitted per batch.")
@click.pass_obj
def entitlements_command(
    config: AppConfig,
    input_path: Optional[Path],
    output_path: Optional[Path],
    xlsx_path: Optional[Path],
    concurrency: Optional[int],
    batch_size: Optional[int],
) -> None:
    """Normalize software names and count consumed entitlements per user."""
    source = input_path or config.installations_path
    try:
        rows = load_installations(source)
    except IngestionError as exc:
        _fail(str(exc))

    if concurrency and concurrency != config.dispatcher_concurrency:
        configure_http(config.http_settings(concurrency))
    dispatcher = NormalizationDispatcher(
        build_classifier(config),
        concurrency=concurrency or config.dispatcher_concurrency,
        batch_size=batch_size or config.dispatcher_batch_size,
    )
    try:
        report = _run_cancellable(
            dispatcher,
            lambda: run_entitlement_analysis(rows, dispatcher, status=_console_status),
        )
    except (AllClassificationsFailed, ClassificationError) as exc:
        _end_status()
        _fail(str(exc))
    _end_status()

    click.echo(render_table("Raw Software Installations by Query", ENTITLEMENT_HEADERS,
                            entitlement_rows(report.raw_groups)))
    click.echo()
    click.echo(render_table("Software Installations by Query and AI", ENTITLEMENT_HEADERS,
                            entitlement_rows(report.groups)))

    if report.anomalies:
        click.echo()
        click.secho("Warning: Multiple Entitlements Found:", fg="red")
        for group in report.anomalies:
            click.secho(
                f"  - {group.software_name} ({group.publisher}) - User: {group.username} "
                f"- Entitlements: {group.machine_count}",
                fg="red",
            )

    target = output_path or config.entitlement_report_path
    write_entitlement_csv(report.groups, target)
    if xlsx_path:
        write_xlsx(xlsx_path, "Entitlements", ENTITLEMENT_HEADERS, entitlement_rows(report.groups))

    click.echo()
    if report.errors:
        click.secho(f"{len(report.errors)} of {len(rows)} rows could not be classified:", fg="yellow")
        for error in report.errors:
            click.secho(f"  row {error.index + 1}: {error.raw_software_name}: {error.cause}", fg="yellow")
    if report.cancelled:
        click.secho(f"Run cancelled; {len(report.skipped)} rows were not processed.", fg="yellow")
    click.secho(f"Results exported to {target}", fg="green")


@cli.command("concurrency")
@click.option("--input", "input_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Session export (.xlsx or .csv).")
@click.option("--output", "output_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="CSV report path.")
@click.option("--xlsx", "xlsx_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Also write the daily peaks as an Excel workbook.")
@click.pass_obj
def concurrency_command(
    config: AppConfig,
    input_path: Optional[Path],
    output_path: Optional[Path],
    xlsx_path: Optional[Path],
) -> None:
    """Compute daily peak concurrent users per software title."""
    source = input_path or config.sessions_path
    try:
        sessions = load_sessions(source)
    except IngestionError as exc:
        _fail(str(exc))

    report = run_concurrency_analysis(sessions, status=_console_status)
    _end_status()

    click.echo(render_table("Peak Concurrent Users by Software", SOFTWARE_PEAK_HEADERS,
                            software_peak_rows(report.software_peaks)))
    click.echo()
    click.echo(render_table("Daily Peak Concurrent Users", DAILY_PEAK_HEADERS,
                            daily_peak_rows(report.daily_peaks)))

    target = output_path or config.concurrency_report_path
    write_concurrency_csv(report.daily_peaks, target)
    if xlsx_path:
        write_xlsx(xlsx_path, "Daily Peaks", DAILY_PEAK_HEADERS, daily_peak_rows(report.daily_peaks))

    click.echo()
    if report.dropped:
        click.secho(f"{report.dropped} sessions without a readable login time were skipped.", fg="yellow")
    click.secho(f"Results exported to {target}", fg="green")


def main() -> None:
    cli(prog_name="license-analyzer")


if __name__ == "__main__":
    main()
