"""HTTP reachability checks for external references."""

from __future__ import annotations

import http.client
import socket
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Sequence
from urllib.parse import urljoin, urlsplit

from ..logging import get_logger

USER_AGENT = "ditaflow-link-checker/1.0"
MAX_REDIRECTS = 5
_REDIRECT_CODES = frozenset({301, 302, 303, 307, 308})
_HEAD_UNSUPPORTED = frozenset({405, 501})


@dataclass(frozen=True)
class ProbeResult:
    url: str
    ok: bool
    status: Optional[int] = None
    reason: str = ""
    skipped: bool = False


class ExternalProbe:
    """Probes URLs with HEAD, falling back to GET where servers reject HEAD.

    Connect and read timeouts are applied separately. Redirects are followed up
    to ``max_redirects`` hops; a final 200-399 response counts as reachable.
    """

    def __init__(
        self,
        *,
        connect_timeout: float = 5.0,
        read_timeout: float = 10.0,
        max_redirects: int = MAX_REDIRECTS,
        workers: int = 8,
        user_agent: str = USER_AGENT,
        requester: Callable[[str, str], tuple[int, Optional[str]]] | None = None,
    ) -> None:
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_redirects = max_redirects
        self.workers = max(1, workers)
        self.user_agent = user_agent
        self._request = requester or self._http_request
        self.logger = get_logger("probe")

    def probe(self, url: str) -> ProbeResult:
        current = url
        try:
            for _ in range(self.max_redirects + 1):
                status, location = self._request("HEAD", current)
                if status in _HEAD_UNSUPPORTED:
                    status, location = self._request("GET", current)
                if status in _REDIRECT_CODES and location:
                    current = urljoin(current, location)
                    continue
                if 200 <= status <= 399:
                    return ProbeResult(url=url, ok=True, status=status)
                return ProbeResult(url=url, ok=False, status=status, reason=f"HTTP {status}")
        except (OSError, http.client.HTTPException, ValueError) as exc:
            reason = str(exc) or type(exc).__name__
            return ProbeResult(url=url, ok=False, reason=reason)
        return ProbeResult(
            url=url, ok=False, reason=f"Too many redirects (more than {self.max_redirects})"
        )

    def probe_all(
        self, urls: Iterable[str], *, deadline: Optional[float] = None
    ) -> Dict[str, ProbeResult]:
        """Probe each unique URL once; unfinished probes past ``deadline`` are skipped.

        ``deadline`` is an absolute ``time.monotonic()`` value.
        """
        unique = list(dict.fromkeys(urls))
        results: Dict[str, ProbeResult] = {}
        if not unique:
            return results

        executor = ThreadPoolExecutor(max_workers=min(self.workers, len(unique)))
        try:
            pending: Dict[Future[ProbeResult], str] = {
                executor.submit(self.probe, url): url for url in unique
            }
            while pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    break
                done, _ = wait(list(pending), timeout=remaining, return_when=FIRST_COMPLETED)
                for future in done:
                    url = pending.pop(future)
                    results[url] = future.result()
            for future, url in pending.items():
                future.cancel()
                self.logger.warning("Link check deadline reached before probing %s", url)
                results[url] = ProbeResult(
                    url=url, ok=False, skipped=True, reason="check deadline reached"
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results

    def _http_request(self, method: str, url: str) -> tuple[int, Optional[str]]:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Unsupported URL: {url}")
        connection_cls = (
            http.client.HTTPSConnection if parts.scheme == "https" else http.client.HTTPConnection
        )
        connection = connection_cls(parts.hostname, parts.port, timeout=self.connect_timeout)
        try:
            try:
                connection.connect()
            except socket.timeout as exc:
                raise OSError(f"Connection timed out after {self.connect_timeout:g}s") from exc
            if connection.sock is not None:
                connection.sock.settimeout(self.read_timeout)
            path = parts.path or "/"
            if parts.query:
                path = f"{path}?{parts.query}"
            connection.request(method, path, headers={"User-Agent": self.user_agent})
            response = connection.getresponse()
            status = response.status
            location = response.getheader("Location")
            response.close()
            return status, location
        except socket.timeout as exc:
            raise OSError(f"Timed out after {self.read_timeout:g}s") from exc
        finally:
            connection.close()


def is_excluded(url: str, patterns: Sequence[str]) -> bool:
    lowered = url.lower()
    return any(pattern.lower() in lowered for pattern in patterns if pattern)


__all__ = ["ExternalProbe", "MAX_REDIRECTS", "ProbeResult", "is_excluded"]
