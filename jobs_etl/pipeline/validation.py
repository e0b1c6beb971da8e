"""Run option validation."""

from jobs_etl.models.pipeline import PipelineOptions


class PipelineValidationError(ValueError):
    """Invalid combination of pipeline options."""


def validate_options(options: PipelineOptions | None) -> None:
    """Reject invalid option combinations before any stage runs.

    ``max_records=0`` is accepted and means unlimited; only negative
    values are rejected.

    Raises:
        PipelineValidationError: on the first violated rule
    """
    if options is None:
        return

    if options.max_records is not None and options.max_records < 0:
        raise PipelineValidationError(
            f"max_records must be a positive number, got {options.max_records}"
        )

    if options.skip_processing and not options.skip_storage:
        raise PipelineValidationError(
            "skip_processing requires skip_storage: unprocessed jobs cannot be stored"
        )

    if options.migrate_to_live and (options.skip_processing or options.skip_storage):
        raise PipelineValidationError(
            "migrate_to_live cannot be combined with skip_processing or skip_storage"
        )

    if options.start_date and options.end_date and options.start_date > options.end_date:
        raise PipelineValidationError("start_date must not be after end_date")
