"""HTTP transport used to download feed payloads."""

from __future__ import annotations

import concurrent.futures
import logging
import re
import time
from typing import Mapping, Optional, Protocol

import requests

from .models import FetchResponse

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096
XML_ENCODING_RE = re.compile(
    rb"""^\s*<\?xml[^>]*?\bencoding\s*=\s*["']([A-Za-z0-9._\-]+)["']"""
)


class Transport(Protocol):
    """Anything able to GET a URL and report whether it worked."""

    def fetch(
        self, url: str, headers: Mapping[str, str], timeout: float
    ) -> FetchResponse:
        ...


class DeadlineExceeded(Exception):
    pass


def _declared_encoding(content: bytes) -> Optional[str]:
    match = XML_ENCODING_RE.match(content.lstrip(b"\xef\xbb\xbf")[:512])
    if match is None:
        return None
    return match.group(1).decode("ascii")


def decode_body(content: bytes, content_type: str, header_encoding: Optional[str]) -> str:
    """Decode a feed body.

    A charset in the Content-Type header wins, then the encoding named in the
    XML declaration, then UTF-8 (the XML default).
    """
    candidates = []
    if header_encoding and "charset" in content_type.lower():
        candidates.append(header_encoding)
    declared = _declared_encoding(content)
    if declared:
        candidates.append(declared)
    for encoding in candidates:
        try:
            return content.decode(encoding, errors="replace")
        except LookupError:
            logger.debug("Unknown encoding %r, trying the next one", encoding)
    return content.decode("utf-8", errors="replace")


def _read_body(response: requests.Response, deadline: float) -> bytes:
    chunks = []
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        if time.monotonic() > deadline:
            raise DeadlineExceeded()
        chunks.append(chunk)
    return b"".join(chunks)


def _download(
    url: str, headers: Mapping[str, str], timeout: float, deadline: float
) -> FetchResponse:
    try:
        response = requests.get(
            url,
            headers=dict(headers),
            timeout=timeout,
            allow_redirects=True,
            stream=True,
        )
    except requests.RequestException as exc:
        logger.warning("Failed to fetch %s: %s", url, exc)
        return FetchResponse(body="", ok=False)

    try:
        status = response.status_code
        if not 200 <= status < 300:
            logger.warning("Fetching %s returned HTTP %s", url, status)
            return FetchResponse(body="", ok=False, status=status)

        try:
            content = _read_body(response, deadline)
        except DeadlineExceeded:
            logger.warning("Fetching %s took longer than %.1fs", url, timeout)
            return FetchResponse(body="", ok=False, status=status)
        except requests.RequestException as exc:
            logger.warning("Failed to read %s: %s", url, exc)
            return FetchResponse(body="", ok=False, status=status)

        body = decode_body(
            content, response.headers.get("Content-Type", ""), response.encoding
        )
        return FetchResponse(body=body, ok=True, status=status)
    finally:
        response.close()


class RequestsTransport:
    """Transport that issues one independent ``requests.get`` per fetch.

    ``timeout`` bounds the whole fetch, body included. The download runs on a
    worker thread; when the deadline passes the caller gets ``ok=False`` and
    the worker drops the connection at its next chunk. Network failures and
    non-2xx responses are reported as ``ok=False``; ``fetch`` does not raise
    for them.
    """

    def fetch(
        self, url: str, headers: Mapping[str, str], timeout: float
    ) -> FetchResponse:
        deadline = time.monotonic() + timeout
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(_download, url, headers, timeout, deadline)
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            logger.warning("Fetching %s took longer than %.1fs", url, timeout)
            return FetchResponse(body="", ok=False)
        finally:
            executor.shutdown(wait=False)
