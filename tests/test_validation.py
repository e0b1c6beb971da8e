from datetime import date

import pytest

from jobs_etl.models.enums import PipelineMode
from jobs_etl.models.pipeline import PipelineOptions
from jobs_etl.pipeline.validation import PipelineValidationError, validate_options


@pytest.mark.parametrize(
    "options",
    [
        None,
        PipelineOptions(),
        PipelineOptions(max_records=0),
        PipelineOptions(max_records=50),
        PipelineOptions(skip_storage=True),
        PipelineOptions(skip_processing=True, skip_storage=True),
        PipelineOptions(migrate_to_live=True),
        PipelineOptions(pipeline_mode=PipelineMode.SCRAPE_ONLY),
        PipelineOptions(start_date=date(2024, 1, 1), end_date=date(2024, 1, 1)),
    ],
)
def test_valid_options_pass(options):
    validate_options(options)


@pytest.mark.parametrize(
    "options, message",
    [
        (PipelineOptions(max_records=-5), "max_records"),
        (PipelineOptions(skip_processing=True), "skip_storage"),
        (PipelineOptions(migrate_to_live=True, skip_storage=True), "migrate_to_live"),
        (
            PipelineOptions(migrate_to_live=True, skip_processing=True, skip_storage=True),
            "migrate_to_live",
        ),
        (
            PipelineOptions(start_date=date(2024, 2, 1), end_date=date(2024, 1, 1)),
            "start_date",
        ),
    ],
)
def test_invalid_options_raise(options, message):
    with pytest.raises(PipelineValidationError, match=message):
        validate_options(options)


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        validate_options(PipelineOptions(max_records=-1))
