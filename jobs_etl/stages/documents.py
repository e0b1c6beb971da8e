"""Role description documents - download and text extraction.

Adverts link PDF and Word role descriptions. Each document is fetched
with the spider's HTTP client and parsed to plain text:

- PDF: pypdf, one structure entry per page
- DOCX: python-docx, one structure entry per paragraph

A document that cannot be fetched or parsed is logged and dropped; it
never fails the job it belongs to.
"""

import asyncio
import io
import re
from urllib.parse import unquote

import docx
import httpx
import structlog
from pypdf import PdfReader

from jobs_etl.config import get_settings
from jobs_etl.models.job import JobDocument
from jobs_etl.utils.retry import RetryConfig, retry_with_callback

logger = structlog.get_logger()

ACCEPT_HEADER = (
    "application/pdf, "
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document, */*"
)

FILENAME_UTF8_RE = re.compile(r"filename\*=UTF-8''([^;]+)", re.I)
FILENAME_RE = re.compile(r"filename=[\"']?([^\"';]+)", re.I)
WHITESPACE_RE = re.compile(r"\s+")


class DocumentError(Exception):
    """A document could not be downloaded or parsed."""


def _clean(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


def filename_from_header(content_disposition: str | None) -> str | None:
    """Filename from a Content-Disposition header (RFC 5987 form first)."""
    if not content_disposition:
        return None
    if match := FILENAME_UTF8_RE.search(content_disposition):
        return unquote(match.group(1))
    if match := FILENAME_RE.search(content_disposition):
        return match.group(1)
    return None


def _type_from_name(name: str) -> str | None:
    name = name.lower()
    if name.endswith(".pdf"):
        return "pdf"
    if name.endswith((".docx", ".doc")):
        return "docx"
    return None


def document_type(
    url: str,
    declared: str | None = None,
    content_type: str | None = None,
    filename: str | None = None,
    data: bytes = b"",
) -> str:
    """Resolve ``pdf``/``docx``/``unknown``.

    Checked in order: declared type, served filename, URL extension,
    content type, then the leading bytes of the payload.
    """
    if declared and declared.lower() in ("pdf", "docx"):
        return declared.lower()

    for name in (filename, url):
        if name and (found := _type_from_name(name)):
            return found

    if content_type:
        content_type = content_type.lower()
        if "pdf" in content_type:
            return "pdf"
        if "word" in content_type or "docx" in content_type:
            return "docx"

    if data.startswith(b"%PDF"):
        return "pdf"
    # DOCX files are zip containers
    if data.startswith(b"PK"):
        return "docx"
    return "unknown"


def parse_pdf(data: bytes) -> tuple[str, list[str]]:
    """Extract text from a PDF. Returns (text, per-page text)."""
    reader = PdfReader(io.BytesIO(data))
    pages = [_clean(page.extract_text() or "") for page in reader.pages]
    if not pages:
        raise DocumentError("Invalid PDF structure: no pages found")
    return " ".join(page for page in pages if page), pages


def parse_docx(data: bytes) -> tuple[str, list[str]]:
    """Extract text from a DOCX. Returns (text, paragraphs)."""
    document = docx.Document(io.BytesIO(data))
    paragraphs = [_clean(p.text) for p in document.paragraphs]
    paragraphs = [p for p in paragraphs if p]
    if not paragraphs:
        raise DocumentError("Invalid DOCX structure: no paragraphs found")
    return " ".join(paragraphs), paragraphs


def parse_document(data: bytes, doc_type: str) -> tuple[str, list[str]]:
    if doc_type == "pdf":
        return parse_pdf(data)
    if doc_type == "docx":
        return parse_docx(data)
    raise DocumentError(f"Unsupported document type: {doc_type}")


class DocumentFetcher:
    """Downloads and parses the documents linked from an advert."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self._retry = RetryConfig(
            max_retries=self.settings.retry_attempts,
            base_delay=self.settings.retry_delay,
            backoff_factor=self.settings.retry_backoff,
            retryable_exceptions=(httpx.TransportError,),
        )

    async def fetch(self, client: httpx.AsyncClient, document: JobDocument) -> JobDocument:
        """Download one document and attach its text.

        Raises:
            httpx.HTTPError: download failed
            DocumentError: too large, unknown type or no content
        """

        async def _download() -> httpx.Response:
            response = await client.get(document.url, headers={"Accept": ACCEPT_HEADER})
            response.raise_for_status()
            return response

        response = await retry_with_callback(_download, config=self._retry)

        data = response.content
        if len(data) > self.settings.document_max_bytes:
            raise DocumentError(f"Document is {len(data)} bytes, limit {self.settings.document_max_bytes}")

        doc_type = document_type(
            document.url,
            declared=document.type,
            content_type=response.headers.get("Content-Type"),
            filename=filename_from_header(response.headers.get("Content-Disposition")),
            data=data,
        )
        if doc_type == "unknown":
            raise DocumentError("Could not determine document type")

        try:
            text, structure = parse_document(data, doc_type)
        except DocumentError:
            raise
        except Exception as e:
            raise DocumentError(f"Cannot parse {doc_type}: {e}") from e

        logger.debug(
            "document_parsed",
            url=document.url,
            type=doc_type,
            text_length=len(text),
            sections=len(structure),
        )
        return document.model_copy(update={"type": doc_type, "content": text, "structure": structure})

    async def fetch_all(
        self,
        client: httpx.AsyncClient,
        documents: list[JobDocument],
    ) -> list[JobDocument]:
        """Fetch every document concurrently, keeping only the parsed ones."""
        if not documents:
            return []

        outcomes = await asyncio.gather(
            *(self.fetch(client, document) for document in documents),
            return_exceptions=True,
        )

        parsed = []
        for document, outcome in zip(documents, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(
                    "document_processing_failed",
                    url=document.url,
                    error=str(outcome) or type(outcome).__name__,
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                parsed.append(outcome)

        logger.info(
            "documents_processed",
            total=len(documents),
            successful=len(parsed),
            failed=len(documents) - len(parsed),
        )
        return parsed
