"""Command line entry point: ``jobs-etl run`` and ``jobs-etl serve``."""

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

import click
import structlog
from pydantic import TypeAdapter, ValidationError

from jobs_etl.config import get_settings
from jobs_etl.models.enums import PipelineMode
from jobs_etl.models.job import JobDetails
from jobs_etl.models.pipeline import PipelineOptions, PipelineResult
from jobs_etl.pipeline.orchestrator import build_orchestrator
from jobs_etl.pipeline.validation import PipelineValidationError
from jobs_etl.utils.log_config import configure_logging

logger = structlog.get_logger()


def load_jobs(path: str) -> list[JobDetails]:
    """Load pre-scraped jobs from a JSON file (a list, or a result's ``jobs.scraped``)."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        jobs = data.get("jobs")
        if not isinstance(jobs, dict):
            raise ValueError("expected a list of jobs or a result with jobs.scraped")
        data = jobs.get("scraped", [])
    return TypeAdapter(list[JobDetails]).validate_python(data)


def print_summary(result: PipelineResult) -> None:
    metrics = result.metrics
    click.echo("=" * 60)
    click.echo("PIPELINE SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Status:              {result.status.value}")
    click.echo(f"Jobs scraped:        {metrics.jobs_scraped} (failed {metrics.failed_scrapes}, skipped {metrics.skipped_scrapes})")
    click.echo(f"Jobs processed:      {metrics.jobs_processed} (failed {metrics.failed_processes}, skipped {metrics.skipped_processes})")
    click.echo(f"Jobs stored:         {metrics.jobs_stored} (failed {metrics.failed_storage})")
    if metrics.storage and metrics.storage.migrated_to_live:
        click.echo(f"Migrated to live:    {metrics.storage.migrated_to_live}")
    click.echo(f"Errors:              {len(metrics.errors)}")
    click.echo(f"Duration:            {(metrics.total_duration or 0) / 1000:.2f}s")
    click.echo("=" * 60)


@click.group()
@click.option("--log-level", default=None, help="Log level (defaults to LOG_LEVEL)")
@click.pass_context
def main(ctx: click.Context, log_level: str | None):
    """Job listings ETL pipeline."""
    ctx.ensure_object(dict)
    configure_logging(log_level or get_settings().log_level)


@main.command()
@click.option(
    "--mode",
    type=click.Choice([m.value for m in PipelineMode]),
    default=PipelineMode.ALL.value,
    show_default=True,
    help="Pipeline mode",
)
@click.option("--max-records", type=int, default=None, help="Cap on records per phase (0 for all)")
@click.option("--skip-processing", is_flag=True, help="Skip the processing phase")
@click.option("--skip-storage", is_flag=True, help="Skip the storage phase")
@click.option("--migrate-to-live", is_flag=True, help="Copy stored jobs to the live tables")
@click.option("--agency", "agencies", multiple=True, help="Only this agency (repeatable)")
@click.option("--location", "locations", multiple=True, help="Only this location (repeatable)")
@click.option("--start-date", type=click.DateTime(["%Y-%m-%d"]), default=None, help="Earliest posted date")
@click.option("--end-date", type=click.DateTime(["%Y-%m-%d"]), default=None, help="Latest posted date")
@click.option(
    "--input",
    "input_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON file of pre-scraped jobs for process_only mode",
)
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the result as JSON",
)
@click.pass_context
def run(
    ctx: click.Context,
    mode: str,
    max_records: int | None,
    skip_processing: bool,
    skip_storage: bool,
    migrate_to_live: bool,
    agencies: tuple[str, ...],
    locations: tuple[str, ...],
    start_date: datetime | None,
    end_date: datetime | None,
    input_path: str | None,
    output_path: str | None,
):
    """Run the pipeline once."""
    try:
        jobs = load_jobs(input_path) if input_path else None
    except (OSError, ValueError, ValidationError) as e:
        click.echo(f"Cannot read {input_path}: {e}", err=True)
        sys.exit(1)

    options = PipelineOptions(
        pipeline_mode=PipelineMode(mode),
        max_records=max_records,
        skip_processing=skip_processing,
        skip_storage=skip_storage,
        migrate_to_live=migrate_to_live,
        agencies=list(agencies),
        locations=list(locations),
        start_date=start_date.date() if start_date else None,
        end_date=end_date.date() if end_date else None,
        jobs=jobs,
    )

    factory = ctx.obj.get("orchestrator_factory", build_orchestrator)
    orchestrator = factory(get_settings())

    try:
        result = asyncio.run(orchestrator.run_pipeline(options))
    except PipelineValidationError as e:
        click.echo(f"Invalid options: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.error("pipeline_run_failed", error=str(e), error_type=type(e).__name__)
        click.echo(f"Pipeline failed: {e}", err=True)
        sys.exit(1)

    print_summary(result)

    if output_path:
        Path(output_path).write_text(result.model_dump_json(indent=2), encoding="utf-8")
        click.echo(f"Result saved to:     {output_path}")


@main.command()
def serve():
    """Serve the HTTP API."""
    from jobs_etl.main import run as run_server

    run_server()


if __name__ == "__main__":
    main()
