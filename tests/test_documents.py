import asyncio

import httpx
import pytest

from conftest import make_docx, make_pdf
from jobs_etl.models.job import JobDocument
from jobs_etl.stages.documents import (
    DocumentError,
    DocumentFetcher,
    document_type,
    filename_from_header,
    parse_docx,
    parse_pdf,
)

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        ({"url": "https://x/a", "declared": "PDF"}, "pdf"),
        ({"url": "https://x/a.doc", "declared": "doc"}, "docx"),
        ({"url": "https://x/a", "filename": "Role Description.docx"}, "docx"),
        ({"url": "https://x/a", "content_type": "application/pdf"}, "pdf"),
        ({"url": "https://x/a", "content_type": DOCX_CONTENT_TYPE}, "docx"),
        ({"url": "https://x/a", "data": b"%PDF-1.7 ..."}, "pdf"),
        ({"url": "https://x/a", "data": b"PK\x03\x04"}, "docx"),
        ({"url": "https://x/a", "data": b"<html>"}, "unknown"),
    ],
)
def test_document_type_resolution(kwargs, expected):
    assert document_type(**kwargs) == expected


def test_filename_from_header():
    assert filename_from_header("attachment; filename*=UTF-8''Role%20Description.pdf") == "Role Description.pdf"
    assert filename_from_header('attachment; filename="pack.docx"') == "pack.docx"
    assert filename_from_header("inline") is None
    assert filename_from_header(None) is None


def test_parse_pdf_extracts_page_text():
    text, pages = parse_pdf(make_pdf("Role purpose: lead policy reviews"))

    assert "Role purpose: lead policy reviews" in text
    assert len(pages) == 1


def test_parse_docx_keeps_non_empty_paragraphs():
    text, paragraphs = parse_docx(make_docx("Key accountabilities", "", "Manage   budgets"))

    assert paragraphs == ["Key accountabilities", "Manage budgets"]
    assert text == "Key accountabilities Manage budgets"


def test_parse_docx_without_paragraphs_is_rejected():
    with pytest.raises(DocumentError):
        parse_docx(make_docx())


def document_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/role.pdf":
        return httpx.Response(200, content=make_pdf("Role purpose"))
    if path == "/broken.docx":
        return httpx.Response(500, text="server error")
    if path == "/not-really.pdf":
        return httpx.Response(200, text="<html>moved</html>")
    if path == "/download":
        return httpx.Response(
            200,
            headers={"Content-Type": DOCX_CONTENT_TYPE},
            content=make_docx("Capabilities for the role"),
        )
    return httpx.Response(404)


def test_fetch_all_keeps_parsed_documents_and_drops_failures(settings):
    fetcher = DocumentFetcher(settings)
    documents = [
        JobDocument(url="https://docs.example/role.pdf", title="Role Description", type="pdf"),
        JobDocument(url="https://docs.example/broken.docx", type="docx"),
        JobDocument(url="https://docs.example/not-really.pdf", type="pdf"),
        JobDocument(url="https://docs.example/download", title="Information pack"),
    ]

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(document_handler)) as client:
            return await fetcher.fetch_all(client, documents)

    parsed = asyncio.run(scenario())

    assert [(d.url, d.type) for d in parsed] == [
        ("https://docs.example/role.pdf", "pdf"),
        ("https://docs.example/download", "docx"),
    ]
    assert "Role purpose" in parsed[0].content
    assert parsed[1].structure == ["Capabilities for the role"]


def test_oversized_documents_are_rejected(settings):
    fetcher = DocumentFetcher(settings.model_copy(update={"document_max_bytes": 16}))
    document = JobDocument(url="https://docs.example/role.pdf", type="pdf")

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(document_handler)) as client:
            return await fetcher.fetch(client, document)

    with pytest.raises(DocumentError):
        asyncio.run(scenario())
