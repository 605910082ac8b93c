import httpx
import pytest

from schema_query_server.ingest.attachments import AttachmentError, load_attachment_bytes
from schema_query_server.ingest.csv_ingestor import PayloadTooLargeError


@pytest.mark.asyncio
async def test_raw_bytes_pass_through():
    assert await load_attachment_bytes(b"a,b\n1,2") == b"a,b\n1,2"


@pytest.mark.asyncio
async def test_base64_data_url():
    raw = await load_attachment_bytes("data:text/csv;base64,YSxiCjEsMg==")
    assert raw == b"a,b\n1,2"


@pytest.mark.asyncio
async def test_percent_encoded_data_url():
    raw = await load_attachment_bytes("data:text/csv,a%2Cb%0A1%2C2")
    assert raw == b"a,b\n1,2"


@pytest.mark.asyncio
async def test_malformed_data_url():
    with pytest.raises(AttachmentError):
        await load_attachment_bytes("data:text/csv;base64")


@pytest.mark.asyncio
async def test_inline_base64_text():
    assert await load_attachment_bytes("bmFtZSxhZ2UKYWxpY2UsMzAK") == b"name,age\nalice,30\n"


@pytest.mark.asyncio
async def test_plain_text_is_encoded_as_is():
    assert await load_attachment_bytes("name,age\nalice,30\n") == b"name,age\nalice,30\n"


@pytest.mark.asyncio
async def test_url_is_downloaded():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/files/contacts.csv"
        return httpx.Response(200, content=b"Email\na@example.com\n")

    raw = await load_attachment_bytes(
        "https://files.test/files/contacts.csv",
        transport=httpx.MockTransport(handler),
    )
    assert raw == b"Email\na@example.com\n"


@pytest.mark.asyncio
async def test_download_failure():
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    with pytest.raises(AttachmentError):
        await load_attachment_bytes("https://files.test/missing.csv", transport=transport)


@pytest.mark.asyncio
async def test_download_over_limit():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"x" * 64))
    with pytest.raises(PayloadTooLargeError):
        await load_attachment_bytes(
            "https://files.test/big.csv", max_bytes=16, transport=transport
        )


@pytest.mark.asyncio
async def test_inline_payload_over_limit():
    with pytest.raises(PayloadTooLargeError):
        await load_attachment_bytes(b"x" * 11, max_bytes=10)


@pytest.mark.asyncio
async def test_unsupported_type():
    with pytest.raises(AttachmentError):
        await load_attachment_bytes(12345)
