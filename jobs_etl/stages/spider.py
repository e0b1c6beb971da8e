"""HTTP spider for the NSW Government jobs board.

Listing pages are parsed into JobListing summaries; each listing's advert
page is then parsed into JobDetails, with linked role documents fetched
and parsed to text. Parsing is split from fetching so the
HTML rules can be exercised without a network.
"""

import re
from urllib.parse import urljoin

import httpx
import structlog
from bs4 import BeautifulSoup, Tag

from jobs_etl.config import get_settings
from jobs_etl.models.job import ContactDetails, JobDetails, JobDocument, JobListing
from jobs_etl.stages.base import SourceStage
from jobs_etl.stages.documents import DocumentFetcher
from jobs_etl.utils.retry import RetryConfig, retry_with_callback

logger = structlog.get_logger()

JOB_CARD_SELECTOR = ".job-card, .search-result-card"

# Documents whose link text names the role itself
PRIMARY_DOCUMENT_KEYWORDS = (
    "role description",
    "position description",
    "job description",
    "duty statement",
    "statement of duties",
)
# Packs only count when the link text also mentions the role
SECONDARY_DOCUMENT_KEYWORDS = ("information pack", "candidate pack", "application pack")
ROLE_CONTEXT_TERMS = ("role", "position", "job", "candidate", "firefighter", "officer")

CONTACT_SECTION_RE = re.compile(r"(?:enquiries|contact|email|phone|tel).*?(?=\n\n|\Z)", re.I | re.S)
EMAIL_RE = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
PHONE_RE = re.compile(r"(?:phone|tel|mob)[.: ]*([0-9 ]+)", re.I)
NAME_RE = re.compile(r"(?:contact|attention)[.: ]*([A-Za-z ]+)", re.I)


def _select_text(element: Tag, *selectors: str) -> str:
    """Text of the first selector that matches with non-empty text."""
    for selector in selectors:
        found = element.select_one(selector)
        if found:
            text = found.get_text(" ", strip=True)
            if text:
                return text
    return ""


def _split_dates(date_text: str) -> tuple[str, str]:
    """Split 'Job posting: X - Closing date: Y' into (posted, closing)."""
    if not date_text:
        return "", ""
    parts = [part.strip() for part in date_text.split(" - ")]
    posted = re.sub(r"^(Job posting:|Posted:)", "", parts[0]).strip()
    closing = ""
    if len(parts) > 1:
        closing = re.sub(r"^(Closing date:|Closes:)", "", parts[1]).strip()
    return posted, closing


def parse_listings(html: str, base_url: str) -> list[JobListing]:
    """Parse a search results page into listings.

    Cards without a title or reference number are dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    listings = []

    for card in soup.select(JOB_CARD_SELECTOR):
        link = (
            card.select_one(".card-header a")
            or card.select_one("[class*=title] a")
            or card.select_one("h2 a")
            or card.select_one("a")
        )
        title = ""
        url = ""
        if link:
            span = link.find("span")
            title = (span or link).get_text(" ", strip=True)
            url = urljoin(base_url, link.get("href", ""))

        job_id = _select_text(card, ".job-search-result-ref-no", "[class*=reference]", "[class*=job-id]")
        if not title or not job_id:
            continue

        posted, closing = _split_dates(_select_text(card, ".card-body p", "[class*=date]"))

        listings.append(
            JobListing(
                id=job_id,
                title=title,
                agency=_select_text(
                    card, ".job-search-result-right h2", "[class*=department]", "[class*=agency]"
                )
                or "NSW Government",
                location=_select_text(card, ".nsw-col p:nth-child(3) span", "[class*=location]")
                or "NSW",
                salary=_select_text(card, ".salary", "[class*=remuneration]", "[class*=salary]")
                or "Not specified",
                closing_date=closing,
                posted_date=posted,
                url=url,
                job_reference=job_id,
            )
        )

    return listings


def _table_value(soup: BeautifulSoup, label: str) -> str:
    for row in soup.select("table.job-summary tr"):
        cells = row.find_all("td")
        if len(cells) >= 2 and label in cells[0].get_text(strip=True).lower():
            return cells[-1].get_text(" ", strip=True)
    return ""


def _is_role_document(text: str) -> bool:
    text = text.lower()
    if any(keyword in text for keyword in PRIMARY_DOCUMENT_KEYWORDS):
        return True
    if any(keyword in text for keyword in SECONDARY_DOCUMENT_KEYWORDS):
        return any(term in text for term in ROLE_CONTEXT_TERMS)
    return False


def _document_type(url: str) -> str:
    url = url.lower()
    for ext in ("pdf", "docx", "doc"):
        if url.endswith(f".{ext}"):
            return ext
    if "transferrichtextfile.ashx" in url:
        return "doc"
    return "unknown"


def _description_text(soup: BeautifulSoup) -> str:
    """Description body with one blank line between blocks."""
    container = soup.select_one(".job-detail-des")
    if container is None:
        return ""

    blocks = [
        block.get_text(" ", strip=True)
        for block in container.find_all(["p", "li", "h2", "h3", "h4"])
    ]
    blocks = [block for block in blocks if block]
    if not blocks:
        return container.get_text(" ", strip=True)
    return "\n\n".join(blocks)


def _parse_contact(description: str) -> ContactDetails:
    contact = ContactDetails()
    match = CONTACT_SECTION_RE.search(description)
    if not match:
        return contact

    section = match.group(0)
    if email := EMAIL_RE.search(section):
        contact.email = email.group(0)
    if phone := PHONE_RE.search(section):
        contact.phone = phone.group(1).strip()
    if name := NAME_RE.search(section):
        contact.name = name.group(1).strip()
    return contact


def parse_job_details(html: str, listing: JobListing) -> JobDetails:
    """Parse an advert page, keeping listing values where the page has none."""
    soup = BeautifulSoup(html, "html.parser")
    description = _description_text(soup)

    responsibilities: list[str] = []
    requirements: list[str] = []
    notes: list[str] = []
    about_us = ""

    for section in (s.strip() for s in description.split("\n\n")):
        if not section:
            continue
        lower = section.lower()
        if "key selection criteria" in lower or "essential" in lower:
            requirements.extend(p.strip() for p in re.split(r"\d+\.", section) if p.strip())
        elif "summary role" in lower or "role description" in lower or "responsibilities" in lower:
            responsibilities.append(section)
        elif "about us" in lower or "about the organisation" in lower:
            about_us = section
        elif "note" in lower or "additional information" in lower:
            notes.append(section)

    documents = []
    for link in soup.find_all("a", href=True):
        text = link.get_text(" ", strip=True)
        if _is_role_document(text):
            url = urljoin(listing.url, link["href"])
            documents.append(JobDocument(url=url, title=text or None, type=_document_type(url)))

    fields = listing.model_dump(include=set(JobListing.model_fields))
    fields.update(
        agency=_table_value(soup, "organisation") or listing.agency,
        location=_table_value(soup, "job location") or listing.location,
        job_reference=_table_value(soup, "reference number") or listing.job_reference,
    )

    return JobDetails(
        **fields,
        job_type=_table_value(soup, "work type"),
        description=description,
        responsibilities=responsibilities,
        requirements=requirements,
        notes=notes,
        about_us=about_us,
        contact_details=_parse_contact(description),
        documents=documents,
    )


class HttpSpider(SourceStage):
    """Fetches listings and adverts over HTTP."""

    name = "spider"

    def __init__(self, settings=None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or get_settings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._retry = RetryConfig(
            max_retries=self.settings.retry_attempts,
            base_delay=self.settings.retry_delay,
            backoff_factor=self.settings.retry_backoff,
            retryable_exceptions=(httpx.TransportError,),
        )
        self.documents = DocumentFetcher(self.settings)

    @property
    def client(self) -> httpx.AsyncClient:
        """HTTP client, created on first use after each cleanup."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.settings.user_agent},
                timeout=httpx.Timeout(
                    connect=self.settings.connect_timeout,
                    read=self.settings.read_timeout,
                    write=30.0,
                    pool=30.0,
                ),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def _fetch(self, url: str) -> str:
        async def _do_fetch() -> str:
            response = await self.client.get(url)
            response.raise_for_status()
            return response.text

        return await retry_with_callback(_do_fetch, config=self._retry)

    async def get_job_listings(self, max_records: int = 0) -> list[JobListing]:
        url = self.settings.jobs_source_url
        logger.info("fetching_job_listings", url=url, max_records=max_records)

        listings = parse_listings(await self._fetch(url), url)
        if max_records > 0:
            listings = listings[:max_records]

        logger.info("job_listings_fetched", count=len(listings))
        return listings

    async def get_job_details(self, listing: JobListing) -> JobDetails:
        if not listing.url:
            raise ValueError(f"Listing {listing.id} has no URL")

        html = await self._fetch(listing.url)
        details = parse_job_details(html, listing)
        if self.settings.fetch_documents and details.documents:
            details.documents = await self.documents.fetch_all(self.client, details.documents)
        logger.debug(
            "job_details_fetched",
            job_id=listing.id,
            documents=len(details.documents),
            requirements=len(details.requirements),
        )
        return details

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
