"""Pipeline stages: spider (source), processor (transform), storage (sink)."""

from jobs_etl.stages.base import SinkStage, SourceStage, TransformStage
from jobs_etl.stages.processor import ProcessorService
from jobs_etl.stages.spider import HttpSpider
from jobs_etl.stages.storage import PostgresStorage

__all__ = [
    "SourceStage",
    "TransformStage",
    "SinkStage",
    "HttpSpider",
    "ProcessorService",
    "PostgresStorage",
]
