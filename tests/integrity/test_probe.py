from __future__ import annotations

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Iterator, List, Optional, Tuple

import pytest

from ditaflow.integrity import ExternalProbe
from ditaflow.integrity.probe import is_excluded


class _Handler(BaseHTTPRequestHandler):
    requests: List[Tuple[str, str]] = []

    def do_HEAD(self) -> None:  # noqa: N802 - http.server naming
        self._respond("HEAD")

    def do_GET(self) -> None:  # noqa: N802 - http.server naming
        self._respond("GET")

    def _respond(self, method: str) -> None:
        type(self).requests.append((method, self.path))
        if self.path == "/ok":
            self._send(200)
        elif self.path == "/missing":
            self._send(404)
        elif self.path == "/get-only":
            self._send(405 if method == "HEAD" else 200)
        elif self.path == "/moved":
            self._send(301, location="/ok")
        elif self.path == "/loop":
            self._send(302, location="/loop")
        elif self.path == "/slow":
            time.sleep(2)
            self._send(200)
        else:
            self._send(500)

    def _send(self, status: int, location: Optional[str] = None) -> None:
        self.send_response(status)
        if location:
            self.send_header("Location", location)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        pass


@pytest.fixture
def server() -> Iterator[str]:
    _Handler.requests = []
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.daemon_threads = True
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.shutdown()
        httpd.server_close()


def test_reachable_url(server: str) -> None:
    result = ExternalProbe().probe(f"{server}/ok")
    assert result.ok
    assert result.status == 200
    assert _Handler.requests == [("HEAD", "/ok")]


def test_not_found_reports_status(server: str) -> None:
    result = ExternalProbe().probe(f"{server}/missing")
    assert not result.ok
    assert result.reason == "HTTP 404"


def test_head_rejected_falls_back_to_get(server: str) -> None:
    result = ExternalProbe().probe(f"{server}/get-only")
    assert result.ok
    assert _Handler.requests == [("HEAD", "/get-only"), ("GET", "/get-only")]


def test_redirects_are_followed(server: str) -> None:
    result = ExternalProbe().probe(f"{server}/moved")
    assert result.ok
    assert [path for _, path in _Handler.requests] == ["/moved", "/ok"]


def test_redirect_loop_is_bounded(server: str) -> None:
    result = ExternalProbe(max_redirects=3).probe(f"{server}/loop")
    assert not result.ok
    assert "Too many redirects" in result.reason
    assert len(_Handler.requests) == 4


def test_read_timeout_is_reported(server: str) -> None:
    result = ExternalProbe(read_timeout=0.2).probe(f"{server}/slow")
    assert not result.ok
    assert "Timed out" in result.reason


def test_connection_refused_is_broken() -> None:
    result = ExternalProbe(connect_timeout=1).probe("http://127.0.0.1:9/")
    assert not result.ok
    assert result.reason


def test_probe_all_probes_each_url_once(server: str) -> None:
    urls = [f"{server}/ok", f"{server}/missing", f"{server}/ok"]
    results = ExternalProbe(workers=4).probe_all(urls)

    assert set(results) == {f"{server}/ok", f"{server}/missing"}
    assert [path for _, path in _Handler.requests].count("/ok") == 1


def test_probe_all_skips_after_deadline(server: str) -> None:
    results = ExternalProbe(workers=1).probe_all(
        [f"{server}/slow", f"{server}/ok"], deadline=time.monotonic() + 0.3
    )
    assert all(result.skipped for result in results.values())
    assert results[f"{server}/ok"].reason == "check deadline reached"


def test_probe_all_with_injected_requester() -> None:
    calls: List[Tuple[str, str]] = []

    def requester(method: str, url: str) -> Tuple[int, Optional[str]]:
        calls.append((method, url))
        return 204, None

    results = ExternalProbe(requester=requester).probe_all(["https://a.example/", "https://b.example/"])
    assert all(result.ok for result in results.values())
    assert sorted(calls) == [("HEAD", "https://a.example/"), ("HEAD", "https://b.example/")]


def test_exclusion_is_case_insensitive() -> None:
    assert is_excluded("https://Example.COM/path", ["example.com"])
    assert not is_excluded("https://example.org/", ["example.com", ""])
