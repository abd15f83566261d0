"""
Command-line interface for the TAVI registry toolkit.
Loads a registry export (Excel or CSV), validates the records, and computes
filtered views and statistics.
"""

import json
import logging
import sys
import typing

import click
from stairval.notepad import create_notepad

from .export import procedures_to_frame, statistics_to_frames, write_workbook
from .filters import FilterState
from .loader import load_registry_table, records_from_frame
from .procedure import ProcedureRecord
from .ranges import (
    FILTER_PERIODS,
    VALVE_TYPE_FILTERS,
    configuration_tables,
    default_range_table,
    load_range_table,
)
from .statistics import DEFAULT_TOP_N, Statistics
from .validators import audit_procedures
from .view import RegistryState, recompute

logger = logging.getLogger(__name__)


def _filter_options(command):
    # shared by `stats` and `export`
    command = click.option("--search", "search_query", default="", help="Text matched against name, surname and valve model")(command)
    command = click.option("--valve-type", "tipo_valvola", default="all", type=click.Choice(VALVE_TYPE_FILTERS), help="Valve type to keep (default: all)")(command)
    command = click.option("--period", default="all", type=click.Choice(FILTER_PERIODS), help="Only procedures in the last 1m/3m/6m/1y (default: all)")(command)
    command = click.option("--top-n", default=DEFAULT_TOP_N, show_default=True, type=click.IntRange(min=1), help="Number of valve models to rank")(command)
    return command


@click.group()
@click.option("--verbose-logging", is_flag=True, help="Also emit debug logs to stderr")
@click.option(
    "--log-file-path",
    type=click.Path(dir_okay=False, writable=True),
    help="Append timestamped logs to this file",
)
def main(verbose_logging: bool, log_file_path: typing.Optional[str]):
    """TAVI registry: validation, filtering and statistics for valve implantation records."""
    _configure_logging(verbose_logging, log_file_path)


@main.command(name="validate")
@click.option(
    "-e",
    "--excel-path",
    "table_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="path to the registry workbook (.xlsx) or .csv export",
)
@click.option(
    "--ranges",
    "ranges_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file overriding the default numeric ranges",
)
def validate(table_path: str, ranges_path: typing.Optional[str]):
    """
    Validate every record of a registry export, report field errors and
    unknown valve models, and exit with status 1 if any record is invalid.
    """
    try:
        ranges = load_range_table(ranges_path) if ranges_path else default_range_table()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    records = _load_records(table_path)
    notepad = create_notepad("registry")
    valid = audit_procedures(records, notepad, ranges=ranges)

    _report_issues(notepad)
    click.echo(f"Validated {len(records)} records: {len(valid)} valid, {len(records) - len(valid)} invalid")
    if notepad.has_errors(include_subsections=True):
        sys.exit(1)


@main.command(name="stats")
@click.option(
    "-e",
    "--excel-path",
    "table_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="path to the registry workbook (.xlsx) or .csv export",
)
@_filter_options
@click.option("-r", "--raw", "as_json", is_flag=True, help="Print the statistics as JSON")
def stats(table_path: str, search_query: str, tipo_valvola: str, period: str, top_n: int, as_json: bool):
    """Compute statistics over the records that pass the given filters."""
    records = _load_records(table_path)
    state = RegistryState(tuple(records), FilterState(search_query, tipo_valvola, period), top_n)
    snapshot = recompute(state)

    if as_json:
        payload = snapshot.statistics.to_dict()
        payload["filtered_count"] = snapshot.filtered_count
        payload["procedure_count"] = snapshot.procedure_count
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    click.echo(f"Showing {snapshot.filtered_count} of {snapshot.procedure_count} procedures")
    for line in _format_statistics(snapshot.statistics):
        click.echo(line)


@main.command(name="export")
@click.option(
    "-e",
    "--excel-path",
    "table_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="path to the registry workbook (.xlsx) or .csv export",
)
@click.option(
    "-o",
    "--output",
    "output_path",
    required=True,
    type=click.Path(dir_okay=False, writable=True),
    help="where to write the .xlsx workbook",
)
@click.option("--statistics", "with_statistics", is_flag=True, help="Export the statistics sheets instead of the records")
@_filter_options
def export(table_path: str, output_path: str, with_statistics: bool, search_query: str, tipo_valvola: str, period: str, top_n: int):
    """Write the filtered records (or their statistics) to an Excel workbook."""
    records = _load_records(table_path)
    state = RegistryState(tuple(records), FilterState(search_query, tipo_valvola, period), top_n)
    snapshot = recompute(state)

    if with_statistics:
        frames = statistics_to_frames(snapshot.statistics)
    else:
        frames = {"Procedure TAVI": procedures_to_frame(snapshot.filtered)}
    write_workbook(frames, output_path)
    click.echo(f"Wrote {snapshot.filtered_count} procedures to {output_path}")


@main.command(name="config")
@click.option(
    "--ranges",
    "ranges_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file overriding the default numeric ranges",
)
def config(ranges_path: typing.Optional[str]):
    """Print the range table and the lookup lists used for data entry as JSON."""
    try:
        ranges = load_range_table(ranges_path) if ranges_path else default_range_table()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(json.dumps(configuration_tables(ranges), indent=2, ensure_ascii=False))


def _configure_logging(verbose_logging: bool, log_file_path: typing.Optional[str]) -> None:
    handlers: list[logging.Handler] = []
    if log_file_path:
        handlers.append(logging.FileHandler(log_file_path, mode="a", encoding="utf-8"))
    if verbose_logging:
        handlers.append(logging.StreamHandler(sys.stderr))
    if handlers:
        logging.basicConfig(
            level=logging.DEBUG if verbose_logging else logging.INFO,
            format="%(asctime)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=handlers,
        )


def _load_records(table_path: str) -> list[ProcedureRecord]:
    logger.info(f"Beginning load of '{table_path}'")
    try:
        table = load_registry_table(table_path)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read '{table_path}': {e}")
        click.echo(f"Error: cannot read {table_path}: {e}", err=True)
        sys.exit(1)

    notepad = create_notepad("loader")
    records = records_from_frame(table, notepad)
    if notepad.has_errors(include_subsections=True):
        _report_issues(notepad)
        sys.exit(1)
    logger.debug(f"Loaded {len(records)} records")
    return records


def _report_issues(notepad):
    # if there were errors, show them
    if notepad.has_errors(include_subsections=True):
        click.echo("Errors found in registry:")
        for err in notepad.errors():
            click.echo(f"- {err}")
    # show any warnings but keep going
    if notepad.has_warnings(include_subsections=True):
        click.echo("Warnings found in registry:")
        for w in notepad.warnings():
            click.echo(f"- {w}")


def _format_number(value: typing.Optional[float], decimals: int = 1) -> str:
    return "-" if value is None else f"{value:.{decimals}f}"


def _format_statistics(statistics: Statistics) -> list[str]:
    lines = [
        f"{'Total procedures':28} {statistics.total_procedures}",
        f"{'Average duration (min)':28} {_format_number(statistics.average_duration_minutes)}",
        f"{'Pre-dilatation (%)':28} {_format_number(statistics.pre_dilatazione_percentage)}",
        f"{'Post-dilatation (%)':28} {_format_number(statistics.post_dilatazione_percentage)}",
        f"{'Balloon Expandable':28} {statistics.balloon_expandable_count}",
        f"{'Self Expandable':28} {statistics.self_expandable_count}",
        f"{'Average FE (%)':28} {_format_number(statistics.average_fe)}",
        f"{'Average Vmax (m/s)':28} {_format_number(statistics.average_vmax, 2)}",
        f"{'Average Gmax (mmHg)':28} {_format_number(statistics.average_gmax)}",
        f"{'Average Gmed (mmHg)':28} {_format_number(statistics.average_gmed)}",
        f"{'Average AVA (cm²)':28} {_format_number(statistics.average_ava, 2)}",
        "Top valve models:",
    ]
    lines.extend(f"  {count:4}  {model}" for model, count in statistics.top_valve_models)
    return lines


if __name__ == "__main__":
    main()
