"""CLI entry point for the staged-concurrency load generator."""

import logging
import sys

import click

from rampload.evidence import append_event, create_event
from rampload.loader import ConfigurationError, load_config
from rampload.report import failed_thresholds, render_summary, report_to_json
from rampload.runner import run_load_test


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _load_or_exit(path, base_url=None):
    try:
        return load_config(path, base_url=base_url)
    except ConfigurationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


@click.group()
@click.option("-v", "--verbose", count=True, help="Log progress (-v) or debug detail (-vv) to stderr.")
def main(verbose):
    """rampload -- generate staged HTTP load and check the results against thresholds."""
    _configure_logging(verbose)


@main.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a run configuration file (YAML or JSON).",
)
@click.option(
    "--base-url",
    default=None,
    help="Override the target base URL from the configuration.",
)
@click.option(
    "--out",
    default=None,
    type=click.Path(),
    help="Optional output path for the JSON report.",
)
@click.option(
    "--log",
    "log_path",
    default=None,
    type=click.Path(),
    help="Optional path to the evidence log (JSONL). Appends an entry when provided.",
)
@click.option("--json", "as_json", is_flag=True, help="Print the JSON report instead of the summary.")
def run(config_path, base_url, out, log_path, as_json):
    """Run a load test and exit non-zero when any threshold fails."""
    config = _load_or_exit(config_path, base_url)

    report = run_load_test(config)
    report_json = report_to_json(report)

    if as_json:
        click.echo(report_json)
    else:
        click.echo(render_summary(report))

    if out:
        with open(out, "w") as f:
            f.write(report_json + "\n")
        click.echo(f"Report written to {out}", err=True)

    if log_path:
        append_event(create_event(report, config_path, config.base_url), log_path)
        click.echo(f"Evidence logged to {log_path}", err=True)

    if not report.passed:
        failed = failed_thresholds(report)
        click.echo(f"{len(failed)} threshold(s) failed", err=True)
        sys.exit(1)


@main.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a run configuration file (YAML or JSON).",
)
def validate(config_path):
    """Validate a run configuration without sending any load."""
    config = _load_or_exit(config_path)
    click.echo(f"Config OK: {config_path}")
    click.echo(
        f"Stages: {len(config.stages)} ({config.total_duration_s:g}s total, "
        f"peak {max(s.target for s in config.stages)} users, {config.transition} transition)"
    )
    click.echo(f"Steps: {len(config.scenario.steps)} in groups {', '.join(config.scenario.groups)}")
    click.echo(f"Thresholds: {len(config.thresholds)}")
    for spec in config.thresholds:
        click.echo(f"  - {spec.describe()}")


if __name__ == "__main__":
    main()
