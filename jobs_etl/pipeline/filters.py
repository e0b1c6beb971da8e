"""Listing filters applied after the source returns its listings."""

from datetime import date, datetime

from jobs_etl.models.job import JobListing
from jobs_etl.models.pipeline import PipelineOptions

# Date formats seen on job boards ("12 Feb 2024", "12-Feb-2024", ...)
POSTED_DATE_FORMATS = (
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%d/%m/%Y",
    "%Y-%m-%d",
)


def parse_posted_date(value: str) -> date | None:
    """Parse a listing date, or None when it matches no known format."""
    value = value.strip()
    for fmt in POSTED_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def filter_listings(listings: list[JobListing], options: PipelineOptions) -> list[JobListing]:
    """Keep listings matching the date range, agencies and locations.

    Listings with an unparseable posted date are dropped whenever a date
    bound is set.
    """
    if not (options.start_date or options.end_date or options.agencies or options.locations):
        return listings

    def matches(listing: JobListing) -> bool:
        if options.start_date or options.end_date:
            posted = parse_posted_date(listing.posted_date)
            if posted is None:
                return False
            if options.start_date and posted < options.start_date:
                return False
            if options.end_date and posted > options.end_date:
                return False

        if options.agencies and listing.agency not in options.agencies:
            return False
        if options.locations and listing.location not in options.locations:
            return False
        return True

    return [listing for listing in listings if matches(listing)]
