"""Endpoint health prober.

One liveness check of a single endpoint URL:
1. Validate the URL (no network call for private/loopback/garbage URLs).
2. HEAD without following redirects; 405 → retry once with GET.
3. Status must be in the allowed set (default 200, 302).
4. Deep mode: GET following redirects hop by hop (every hop must pass
   the same validation), read at most MAX_BODY_BYTES, then run the
   offer-validity classifier on the final URL and body. A redirect to a
   blocked host fails with INVALID_URL; any other deep-fetch failure
   degrades to the shallow result.

Never raises; every outcome is a ProbeResult.
"""

import asyncio
import socket
import ssl
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

import httpx
from loguru import logger

from lib.smartlink.classifier import classify_body, classify_url
from lib.smartlink.models import ERROR_MESSAGES, ErrorCode, ProbeOptions, ProbeResult
from lib.smartlink.patterns import BODY_SCAN_LIMIT
from lib.smartlink.urls import validate_probe_url

USER_AGENT = "SmartLink-HealthCheck/1.0"

# Body bytes read in deep mode; covers BODY_SCAN_LIMIT characters of UTF-8
MAX_BODY_BYTES = BODY_SCAN_LIMIT * 4

DEEP_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8",
}

_DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "no address associated", "temporary failure in name resolution")
_REFUSED_MARKERS = ("connection refused", "errno 111", "actively refused")
_SSL_MARKERS = ("ssl", "certificate", "tls")


def _exception_chain(exc: BaseException) -> List[BaseException]:
    chain = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return chain


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map a network-level exception onto the closed error-code set."""
    chain = _exception_chain(exc)

    if any(isinstance(e, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)) for e in chain):
        return ErrorCode.TIMEOUT
    if any(isinstance(e, (httpx.InvalidURL, httpx.UnsupportedProtocol)) for e in chain):
        return ErrorCode.INVALID_URL
    if any(isinstance(e, ssl.SSLError) for e in chain):
        return ErrorCode.SSL_ERROR
    if any(isinstance(e, socket.gaierror) for e in chain):
        return ErrorCode.DNS_ERROR
    if any(isinstance(e, ConnectionRefusedError) for e in chain):
        return ErrorCode.CONNECTION_REFUSED

    text = " ".join(str(e) for e in chain).lower()
    if isinstance(exc, httpx.ConnectError):
        if any(m in text for m in _SSL_MARKERS):
            return ErrorCode.SSL_ERROR
        if any(m in text for m in _DNS_MARKERS):
            return ErrorCode.DNS_ERROR
        if any(m in text for m in _REFUSED_MARKERS):
            return ErrorCode.CONNECTION_REFUSED
        return ErrorCode.NETWORK_ERROR
    if isinstance(exc, httpx.NetworkError):
        return ErrorCode.NETWORK_ERROR
    if isinstance(exc, httpx.HTTPError):
        return ErrorCode.FETCH_ERROR
    if isinstance(exc, OSError):
        return ErrorCode.NETWORK_ERROR
    return ErrorCode.UNKNOWN


class BlockedRedirect(Exception):
    """A redirect pointed at a URL that must not be fetched."""


async def _read_body_prefix(response: httpx.Response, limit: int) -> str:
    chunks = []
    size = 0
    async for chunk in response.aiter_bytes():
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    return b"".join(chunks)[:limit].decode(response.encoding or "utf-8", errors="replace")


def failure(code: ErrorCode, status: Optional[int] = None, error: Optional[str] = None) -> ProbeResult:
    return ProbeResult(ok=False, status=status, error=error or ERROR_MESSAGES[code], error_code=code)


@runtime_checkable
class IProber(Protocol):
    """Protocol for endpoint probers."""

    async def probe(self, url: str, options: Optional[ProbeOptions] = None) -> ProbeResult:
        """Run one liveness check."""
        ...


class HttpProber(IProber):
    """httpx-based prober. The client is created lazily and shared."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = client
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=False,
                verify=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def probe(self, url: str, options: Optional[ProbeOptions] = None) -> ProbeResult:
        options = options or ProbeOptions()

        invalid = validate_probe_url(url)
        if invalid:
            return failure(ErrorCode.INVALID_URL, error=f"{ERROR_MESSAGES[ErrorCode.INVALID_URL]}: {invalid}")

        try:
            status = await self._fetch_status(url, "HEAD", options.timeout)
            if status == 405:
                # Some checkouts reject HEAD
                status = await self._fetch_status(url, "GET", options.timeout)
        except Exception as e:
            code = classify_exception(e)
            logger.debug(f"Probe {url} failed: {code.value} ({type(e).__name__}: {e})")
            return failure(code)

        if status not in options.allowed_statuses:
            return failure(ErrorCode.HTTP_ERROR, status=status, error=f"HTTP {status}")

        result = ProbeResult(ok=True, status=status)
        if options.deep:
            return await self._deep_inspect(url, options.timeout, result)
        return result

    async def _fetch_status(self, url: str, method: str, timeout: float) -> int:
        """Request without following redirects or reading the body."""
        client = self._get_client()

        async def _send() -> int:
            request = client.build_request(method, url, timeout=timeout)
            response = await client.send(request, stream=True, follow_redirects=False)
            await response.aclose()
            return response.status_code

        return await asyncio.wait_for(_send(), timeout=timeout)

    async def _fetch_final(self, url: str, timeout: float) -> Tuple[str, str]:
        """GET following redirects one hop at a time; returns (final_url, body).

        Each Location is validated like the probed URL. Only the first
        MAX_BODY_BYTES of the final response are read.
        """
        client = self._get_client()

        async def _get() -> Tuple[str, str]:
            request = client.build_request("GET", url, headers=DEEP_HEADERS, timeout=timeout)
            for _ in range(client.max_redirects + 1):
                response = await client.send(request, stream=True, follow_redirects=False)
                try:
                    next_request = response.next_request
                    if next_request is None:
                        return str(response.url), await _read_body_prefix(response, MAX_BODY_BYTES)
                finally:
                    await response.aclose()

                invalid = validate_probe_url(str(next_request.url))
                if invalid:
                    raise BlockedRedirect(f"{next_request.url} ({invalid})")
                request = next_request
            raise httpx.TooManyRedirects(f"Exceeded {client.max_redirects} redirects", request=request)

        return await asyncio.wait_for(_get(), timeout=timeout)

    async def _deep_inspect(self, url: str, timeout: float, shallow: ProbeResult) -> ProbeResult:
        try:
            final_url, body = await self._fetch_final(url, timeout)
        except BlockedRedirect as e:
            logger.warning(f"Probe {url} redirected to a blocked target: {e}")
            return failure(
                ErrorCode.INVALID_URL,
                status=shallow.status,
                error=f"{ERROR_MESSAGES[ErrorCode.INVALID_URL]}: redirect to {e}",
            )
        except Exception as e:
            logger.debug(f"Deep fetch of {url} failed, keeping shallow result: {type(e).__name__}: {e}")
            return shallow

        verdict = classify_url(final_url) or classify_body(body)
        if verdict:
            return ProbeResult(
                ok=False,
                status=shallow.status,
                error=ERROR_MESSAGES[ErrorCode.INACTIVE_OFFER],
                error_code=ErrorCode.INACTIVE_OFFER,
                inactive_reason=verdict.reason,
                final_url=final_url,
            )
        return ProbeResult(ok=True, status=shallow.status, final_url=final_url)


class MockProber(IProber):
    """Mock prober for unit testing.

    Results are scripted per URL; a list is consumed one entry per call and
    its last entry repeats. Unknown URLs succeed with 200.
    """

    def __init__(self, results: Optional[Dict[str, object]] = None):
        self._results: Dict[str, List[ProbeResult]] = {}
        for url, value in (results or {}).items():
            self.set(url, value)
        self.calls: List[Tuple[str, ProbeOptions]] = []

    def set(self, url: str, value) -> None:
        self._results[url] = list(value) if isinstance(value, (list, tuple)) else [value]

    @property
    def probed_urls(self) -> List[str]:
        return [url for url, _ in self.calls]

    async def probe(self, url: str, options: Optional[ProbeOptions] = None) -> ProbeResult:
        self.calls.append((url, options or ProbeOptions()))
        queue = self._results.get(url)
        if not queue:
            return ProbeResult(ok=True, status=200)
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, BaseException):
            raise result
        return result
