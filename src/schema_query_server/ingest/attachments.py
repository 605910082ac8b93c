"""
Attachment Loading

Resolves a CSV attachment to raw bytes. Supported forms:

- raw ``bytes``
- ``data:`` URLs (base64 or percent-encoded)
- ``http://`` / ``https://`` URLs, fetched with httpx
- base64 text
- anything else is taken as literal UTF-8 text

The byte cap is enforced here, before any parsing happens. Remote downloads
are streamed and aborted as soon as the cap is crossed.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Optional, Union
from urllib.parse import unquote_to_bytes

import httpx

from ..config import settings
from .csv_ingestor import ensure_within_limit

logger = logging.getLogger("sqs.attachments")


_BASE64_RE = re.compile(r"^[A-Za-z0-9+/\s]+={0,2}\s*$")


class AttachmentError(RuntimeError):
    """Raised when an attachment cannot be resolved to bytes."""


def _decode_data_url(value: str) -> bytes:
    header, sep, payload = value.partition(",")
    if not sep:
        raise AttachmentError("Malformed data URL: missing ',' separator.")

    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except binascii.Error as exc:
            raise AttachmentError("Malformed data URL: invalid base64 payload.") from exc

    return unquote_to_bytes(payload)


def _maybe_base64(value: str) -> Optional[bytes]:
    stripped = value.strip()
    if not stripped or len(re.sub(r"\s", "", stripped)) % 4 != 0:
        return None
    if not _BASE64_RE.match(stripped):
        return None
    try:
        decoded = base64.b64decode(stripped, validate=False)
        decoded.decode("utf-8")
        return decoded
    except (binascii.Error, UnicodeDecodeError):
        return None


async def _fetch(
    url: str,
    limit: int,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport],
) -> bytes:
    async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()

                declared = response.headers.get("content-length")
                if declared and declared.isdigit():
                    ensure_within_limit(int(declared), limit)

                chunks = bytearray()
                async for chunk in response.aiter_bytes():
                    chunks.extend(chunk)
                    ensure_within_limit(len(chunks), limit)
                return bytes(chunks)

        except httpx.HTTPError as exc:
            logger.error("Attachment download failed (%s)", type(exc).__name__)
            raise AttachmentError(
                f"Failed to download attachment: {type(exc).__name__}"
            ) from exc


async def load_attachment_bytes(
    data: Union[bytes, bytearray, str],
    max_bytes: Optional[int] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bytes:
    """
    Resolve `data` to raw bytes no larger than `max_bytes`.

    Raises
    ------
    PayloadTooLargeError
        If the resolved payload exceeds the cap.
    AttachmentError
        If a URL cannot be fetched or a data URL is malformed.
    """
    limit = max_bytes if max_bytes is not None else settings.max_csv_bytes

    if isinstance(data, (bytes, bytearray)):
        raw = bytes(data)
    elif not isinstance(data, str):
        raise AttachmentError(f"Unsupported attachment type: {type(data).__name__}")
    elif data.startswith("data:"):
        raw = _decode_data_url(data)
    elif data.startswith(("http://", "https://")):
        raw = await _fetch(data, limit, timeout, transport)
    else:
        raw = _maybe_base64(data)
        if raw is None:
            raw = data.encode("utf-8")

    ensure_within_limit(len(raw), limit)
    return raw
