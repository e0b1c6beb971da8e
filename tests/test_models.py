import pytest
from pydantic import ValidationError

from conftest import make_details, make_listing
from jobs_etl.models.enums import PipelineStage, PipelineStatus
from jobs_etl.models.job import JobDetails
from jobs_etl.models.pipeline import PipelineError, PipelineMetrics, PipelineState


def test_failed_from_keeps_listing_fields_and_empties_details():
    listing = make_listing(3, salary="$100k")

    failed = JobDetails.failed_from(listing, "HTTP 500")

    assert failed.id == "job-3"
    assert failed.salary == "$100k"
    assert failed.url == listing.url
    assert failed.description == ""
    assert failed.responsibilities == []
    assert failed.contact_details.email == ""
    assert failed.error == "HTTP 500"


def test_failed_from_accepts_details_without_carrying_them():
    failed = JobDetails.failed_from(make_details(1), "boom")

    assert failed.description == ""
    assert failed.error == "boom"


def test_listing_defaults():
    details = JobDetails(id="1", title="Analyst")

    assert details.agency == "NSW Government"
    assert details.location == "NSW"
    assert details.salary == "Not specified"


def test_pipeline_error_is_frozen():
    error = PipelineError(stage=PipelineStage.SCRAPING, error="x")

    with pytest.raises(ValidationError):
        error.error = "y"
    assert error.timestamp.tzinfo is not None


def test_finalize_sets_end_time_before_duration():
    metrics = PipelineMetrics()
    assert metrics.end_time is None
    assert metrics.total_duration is None

    metrics.finalize()

    assert metrics.end_time >= metrics.start_time
    assert metrics.total_duration >= 0


def test_status_dict_leaves_out_the_error_list():
    state = PipelineState(status=PipelineStatus.RUNNING)
    state.metrics.errors.append(PipelineError(stage=PipelineStage.STORAGE, error="x"))

    status = state.to_status_dict()

    assert status["status"] == "running"
    assert status["error_count"] == 1
    assert "errors" not in status["metrics"]
