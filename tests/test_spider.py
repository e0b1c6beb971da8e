import asyncio

import httpx
import pytest

from conftest import make_listing, make_pdf
from jobs_etl.stages.spider import HttpSpider, parse_job_details, parse_listings

LISTING_HTML = """
<html><body>
<div class="job-card">
  <div class="card-header"><a href="/job/view/123"><span>Senior Policy Officer</span></a></div>
  <div class="card-body"><p>Job posting: 12 Feb 2024 - Closing date: 26 Feb 2024</p></div>
  <div class="job-search-result-right"><h2>Department of Education</h2></div>
  <div class="nsw-col"><p>Grade 9/10</p><p>Full-Time</p><p><span>Parramatta</span></p></div>
  <div class="salary">$120,000 - $130,000</div>
  <div class="job-search-result-ref-no">REQ-123</div>
</div>
<div class="search-result-card">
  <h2><a href="https://jobs.example/job/view/456">Project Officer</a></h2>
  <span class="job-reference">REQ-456</span>
</div>
<div class="job-card">
  <div class="card-header"><a href="/job/view/789"><span>No reference</span></a></div>
</div>
</body></html>
"""

DETAIL_HTML = """
<html><body>
<table class="job-summary">
  <tr><td>Organisation/Entity:</td><td>Department of Education</td></tr>
  <tr><td>Work Type:</td><td>Full-Time Ongoing</td></tr>
  <tr><td>Job Location:</td><td>Sydney Region - Parramatta</td></tr>
  <tr><td>Job Reference Number:</td><td>00009ABC</td></tr>
</table>
<div class="job-detail-des">
  <p>Summary role: lead policy reviews across the portfolio.</p>
  <p>Key selection criteria 1. Strong writing 2. Stakeholder engagement</p>
  <p>About us: we run public schools.</p>
  <p>Note: a talent pool may be created.</p>
  <p>Enquiries: contact Jane Smith, phone 02 9999 1234 or jane.smith@det.nsw.edu.au</p>
</div>
<a href="/docs/role-description.pdf">Role Description - Senior Policy Officer</a>
<a href="/docs/pack.docx">Candidate information pack</a>
<a href="/docs/brochure.pdf">Our brochure</a>
</body></html>
"""


def test_parse_listings_reads_cards_and_drops_incomplete_ones():
    listings = parse_listings(LISTING_HTML, "https://jobs.example/search")

    assert [l.id for l in listings] == ["REQ-123", "REQ-456"]

    first = listings[0]
    assert first.title == "Senior Policy Officer"
    assert first.url == "https://jobs.example/job/view/123"
    assert first.agency == "Department of Education"
    assert first.location == "Parramatta"
    assert first.salary == "$120,000 - $130,000"
    assert first.posted_date == "12 Feb 2024"
    assert first.closing_date == "26 Feb 2024"
    assert first.job_reference == "REQ-123"

    second = listings[1]
    assert second.title == "Project Officer"
    assert second.agency == "NSW Government"
    assert second.location == "NSW"
    assert second.salary == "Not specified"


def test_parse_job_details_extracts_sections():
    listing = make_listing(1, url="https://jobs.example/job/view/123")

    details = parse_job_details(DETAIL_HTML, listing)

    assert details.id == "job-1"
    assert details.title == listing.title
    assert details.job_type == "Full-Time Ongoing"
    assert details.location == "Sydney Region - Parramatta"
    assert details.job_reference == "00009ABC"
    assert details.responsibilities == ["Summary role: lead policy reviews across the portfolio."]
    assert details.requirements == ["Key selection criteria", "Strong writing", "Stakeholder engagement"]
    assert details.about_us == "About us: we run public schools."
    assert details.notes == ["Note: a talent pool may be created."]
    assert details.contact_details.email == "jane.smith@det.nsw.edu.au"
    assert details.contact_details.phone == "02 9999 1234"
    assert details.error is None

    assert [(d.url, d.type) for d in details.documents] == [
        ("https://jobs.example/docs/role-description.pdf", "pdf"),
        ("https://jobs.example/docs/pack.docx", "docx"),
    ]


def test_parse_job_details_falls_back_to_listing_values():
    listing = make_listing(1)

    details = parse_job_details("<html><body></body></html>", listing)

    assert details.agency == listing.agency
    assert details.location == listing.location
    assert details.description == ""
    assert details.documents == []


def spider_for(settings, handler) -> HttpSpider:
    return HttpSpider(settings, transport=httpx.MockTransport(handler))


def test_get_job_listings_caps_results(settings):
    def handler(request):
        assert request.headers["User-Agent"] == settings.user_agent
        return httpx.Response(200, text=LISTING_HTML)

    spider = spider_for(settings, handler)

    listings = asyncio.run(spider.get_job_listings(max_records=1))

    assert [l.id for l in listings] == ["REQ-123"]


def test_get_job_details_raises_on_http_errors(settings):
    def handler(request):
        return httpx.Response(404, text="gone")

    spider = spider_for(settings, handler)

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(spider.get_job_details(make_listing(1)))


def test_get_job_details_requires_a_url(settings):
    spider = spider_for(settings, lambda request: httpx.Response(200))

    with pytest.raises(ValueError):
        asyncio.run(spider.get_job_details(make_listing(1, url="")))


def test_transport_errors_are_retried(settings):
    settings = settings.model_copy(
        update={"retry_attempts": 1, "retry_delay": 0.0, "fetch_documents": False}
    )
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text=DETAIL_HTML)

    spider = spider_for(settings, handler)
    details = asyncio.run(spider.get_job_details(make_listing(1)))

    assert len(calls) == 2
    assert details.job_type == "Full-Time Ongoing"


def test_cleanup_closes_and_recreates_the_client(settings):
    spider = spider_for(settings, lambda request: httpx.Response(200, text=LISTING_HTML))

    async def scenario():
        first = spider.client
        await spider.cleanup()
        assert first.is_closed
        await spider.cleanup()
        listings = await spider.get_job_listings()
        return first, spider.client, listings

    first, second, listings = asyncio.run(scenario())

    assert first is not second
    assert len(listings) == 2


def test_get_job_details_attaches_document_text(settings):
    def handler(request):
        if request.url.path.endswith(".pdf"):
            assert "application/pdf" in request.headers["Accept"]
            return httpx.Response(200, content=make_pdf("Role purpose and key accountabilities"))
        if request.url.path.endswith(".docx"):
            return httpx.Response(404)
        return httpx.Response(200, text=DETAIL_HTML)

    spider = spider_for(settings, handler)
    listing = make_listing(1, url="https://jobs.example/job/view/123")

    details = asyncio.run(spider.get_job_details(listing))

    # The unreachable pack is dropped; the job itself still succeeds
    assert [(d.url, d.type) for d in details.documents] == [
        ("https://jobs.example/docs/role-description.pdf", "pdf"),
    ]
    assert "Role purpose and key accountabilities" in details.documents[0].content
    assert details.error is None


def test_document_fetching_can_be_disabled(settings):
    settings = settings.model_copy(update={"fetch_documents": False})
    paths = []

    def handler(request):
        paths.append(request.url.path)
        return httpx.Response(200, text=DETAIL_HTML)

    spider = spider_for(settings, handler)
    details = asyncio.run(spider.get_job_details(make_listing(1, url="https://jobs.example/job/view/123")))

    assert paths == ["/job/view/123"]
    assert details.documents[0].content is None
