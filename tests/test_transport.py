import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock

import pytest
import requests

from frequency import transport
from frequency.transport import RequestsTransport, decode_body


def _response(
    status=200,
    chunks=(b"<rss/>",),
    content_type="application/rss+xml",
    encoding=None,
    delay=0.0,
):
    response = MagicMock()
    response.status_code = status
    response.headers = {"Content-Type": content_type}
    response.encoding = encoding

    def iter_content(chunk_size):
        for chunk in chunks:
            if delay:
                time.sleep(delay)
            yield chunk

    response.iter_content.side_effect = iter_content
    return response


@pytest.fixture
def fake_get(monkeypatch):
    get = MagicMock()
    monkeypatch.setattr(transport.requests, "get", get)
    return get


def test_fetch_passes_headers_and_timeout(fake_get):
    response = _response()
    fake_get.return_value = response

    result = RequestsTransport().fetch("https://feed.test/rss", {"User-Agent": "UA/1"}, 8.0)

    assert result.ok
    assert result.status == 200
    assert result.body == "<rss/>"
    fake_get.assert_called_once_with(
        "https://feed.test/rss",
        headers={"User-Agent": "UA/1"},
        timeout=8.0,
        allow_redirects=True,
        stream=True,
    )
    response.close.assert_called_once_with()


def test_fetch_decodes_utf8_when_charset_missing(fake_get):
    fake_get.return_value = _response(chunks=("<title>Café</title>".encode("utf-8"),))

    result = RequestsTransport().fetch("https://feed.test", {}, 8.0)

    assert result.body == "<title>Café</title>"


def test_fetch_non_2xx_is_failure(fake_get):
    response = _response(status=404)
    fake_get.return_value = response

    result = RequestsTransport().fetch("https://feed.test", {}, 8.0)

    assert not result.ok
    assert result.status == 404
    assert result.body == ""
    response.iter_content.assert_not_called()


def test_fetch_timeout_is_failure(fake_get):
    fake_get.side_effect = requests.Timeout("read timed out")

    result = RequestsTransport().fetch("https://feed.test", {}, 8.0)

    assert not result.ok
    assert result.status is None


def test_fetch_connection_error_is_failure(fake_get):
    fake_get.side_effect = requests.ConnectionError("name resolution failed")

    assert not RequestsTransport().fetch("https://feed.test", {}, 8.0).ok


def test_fetch_error_while_reading_body_is_failure(fake_get):
    response = _response()
    response.iter_content.side_effect = requests.ConnectionError("reset by peer")
    fake_get.return_value = response

    result = RequestsTransport().fetch("https://feed.test", {}, 8.0)

    assert not result.ok
    response.close.assert_called_once_with()


def test_fetch_slow_body_is_cut_off_at_deadline(fake_get):
    fake_get.return_value = _response(chunks=[b"<rss>"] * 20, delay=0.1)

    start = time.monotonic()
    result = RequestsTransport().fetch("https://slow.test", {}, 0.3)
    elapsed = time.monotonic() - start

    assert not result.ok
    assert elapsed < 0.8


def test_download_stops_reading_after_deadline(fake_get):
    response = _response(chunks=[b"<rss>", b"</rss>"])
    fake_get.return_value = response

    result = transport._download("https://slow.test", {}, 5.0, deadline=time.monotonic() - 1)

    assert not result.ok
    assert result.status == 200
    response.close.assert_called_once_with()


def test_decode_body_prefers_header_charset():
    content = "<?xml version='1.0' encoding='utf-8'?><title>Ünï</title>".encode("latin-1")

    assert decode_body(content, "text/xml; charset=ISO-8859-1", "ISO-8859-1").endswith(
        "<title>Ünï</title>"
    )


def test_decode_body_uses_xml_declaration():
    content = '<?xml version="1.0" encoding="ISO-8859-1"?><title>Café</title>'.encode(
        "latin-1"
    )

    assert decode_body(content, "application/rss+xml", None).endswith("<title>Café</title>")


def test_decode_body_ignores_default_text_encoding_without_charset():
    content = "<title>Café</title>".encode("utf-8")

    assert decode_body(content, "text/xml", "ISO-8859-1") == "<title>Café</title>"


def test_decode_body_falls_back_on_unknown_encoding():
    content = '<?xml version="1.0" encoding="x-nonsense"?><t>Café</t>'.encode("utf-8")

    assert decode_body(content, "", None).endswith("<t>Café</t>")


class _FeedHandler(BaseHTTPRequestHandler):
    cookies_seen = []

    def log_message(self, format, *args):
        pass

    def do_GET(self):
        if self.path == "/cookie":
            type(self).cookies_seen.append(self.headers.get("Cookie"))
            body = b"<rss><item><title>Cookie feed</title></item></rss>"
            self.send_response(200)
            self.send_header("Set-Cookie", "tracker=abc; Path=/")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return

        body = b"<rss><item><title>Drip</title></item></rss>" + b" " * 36
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        try:
            for offset in range(0, len(body), 8):
                self.wfile.write(body[offset : offset + 8])
                self.wfile.flush()
                time.sleep(0.2)
        except (BrokenPipeError, ConnectionResetError):
            pass


@pytest.fixture
def feed_server(monkeypatch):
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")

    _FeedHandler.cookies_seen = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), _FeedHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


def test_cookies_do_not_leak_between_fetches(feed_server):
    fetcher = RequestsTransport()

    first = fetcher.fetch(f"{feed_server}/cookie", {}, 5.0)
    second = fetcher.fetch(f"{feed_server}/cookie", {}, 5.0)

    assert first.ok and second.ok
    assert _FeedHandler.cookies_seen == [None, None]


def test_dripping_server_is_bounded_by_timeout(feed_server):
    start = time.monotonic()
    result = RequestsTransport().fetch(f"{feed_server}/drip", {}, 0.5)
    elapsed = time.monotonic() - start

    assert not result.ok
    assert elapsed < 1.0
