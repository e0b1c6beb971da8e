"""Job listings ETL pipeline: scrape -> process -> store."""

__version__ = "0.1.0"
