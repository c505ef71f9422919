"""Unit tests for the HTTP prober.

Uses httpx.MockTransport so no real network calls are made.
"""

import socket
import ssl

import httpx
import pytest

from lib.smartlink.models import ErrorCode, ProbeOptions, ProbeResult
from lib.smartlink.prober import MAX_BODY_BYTES, HttpProber, MockProber, _read_body_prefix, classify_exception

pytestmark = pytest.mark.no_db

URL = "https://pay.hotmart.com/B104050761G"


def make_prober(handler) -> HttpProber:
    return HttpProber(transport=httpx.MockTransport(handler))


class TestShallowProbe:
    @pytest.mark.asyncio
    async def test_head_200_is_ok(self):
        seen = []

        def handler(request):
            seen.append(request.method)
            return httpx.Response(200)

        result = await make_prober(handler).probe(URL)
        assert result.ok is True
        assert result.status == 200
        assert seen == ["HEAD"]

    @pytest.mark.asyncio
    async def test_redirect_302_is_ok_and_not_followed(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(302, headers={"Location": "https://elsewhere.example.com/"})

        result = await make_prober(handler).probe(URL)
        assert result.ok is True
        assert result.status == 302
        assert seen == [URL]

    @pytest.mark.asyncio
    async def test_405_retries_with_get(self):
        seen = []

        def handler(request):
            seen.append(request.method)
            if request.method == "HEAD":
                return httpx.Response(405)
            return httpx.Response(200, text="ok")

        result = await make_prober(handler).probe(URL)
        assert result.ok is True
        assert seen == ["HEAD", "GET"]

    @pytest.mark.asyncio
    async def test_status_not_allowed(self):
        result = await make_prober(lambda request: httpx.Response(500)).probe(URL)
        assert result.ok is False
        assert result.status == 500
        assert result.error_code == ErrorCode.HTTP_ERROR
        assert result.error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_custom_allowed_statuses(self):
        prober = make_prober(lambda request: httpx.Response(301))
        result = await prober.probe(URL, ProbeOptions(allowed_statuses=frozenset({200, 301})))
        assert result.ok is True

    @pytest.mark.asyncio
    async def test_invalid_url_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        result = await make_prober(handler).probe("http://127.0.0.1/admin")
        assert result.ok is False
        assert result.error_code == ErrorCode.INVALID_URL
        assert calls == []

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await make_prober(handler).probe(URL)
        assert result.ok is False
        assert result.error_code == ErrorCode.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        result = await make_prober(handler).probe(URL)
        assert result.error_code == ErrorCode.CONNECTION_REFUSED

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_unknown(self):
        def handler(request):
            raise RuntimeError("boom")

        result = await make_prober(handler).probe(URL)
        assert result.ok is False
        assert result.error_code == ErrorCode.UNKNOWN


class TestDeepProbe:
    @pytest.mark.asyncio
    async def test_offer_ended_phrase_in_body(self):
        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(200)
            return httpx.Response(200, text="<html>Sales of this product are temporarily closed</html>")

        result = await make_prober(handler).probe(URL, ProbeOptions(deep=True))
        assert result.ok is False
        assert result.error_code == ErrorCode.INACTIVE_OFFER
        assert result.inactive_reason == "Hotmart offer ended"
        assert result.status == 200

    @pytest.mark.asyncio
    async def test_redirect_to_error_url(self):
        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(302, headers={"Location": "https://pay.hotmart.com/error?errorMessage=x"})
            if request.url.path == "/error":
                return httpx.Response(200, text="<html>" + "x" * 20000 + "</html>")
            return httpx.Response(302, headers={"Location": "https://pay.hotmart.com/error?errorMessage=x"})

        result = await make_prober(handler).probe(URL, ProbeOptions(deep=True))
        assert result.ok is False
        assert result.error_code == ErrorCode.INACTIVE_OFFER
        assert result.final_url == "https://pay.hotmart.com/error?errorMessage=x"

    @pytest.mark.asyncio
    async def test_healthy_checkout(self):
        page = "<html>pay.hotmart.com<form><input name=\"cardNumber\"></form>" + "x" * 60000 + "</html>"

        def handler(request):
            return httpx.Response(200, text=page if request.method == "GET" else "")

        result = await make_prober(handler).probe(URL, ProbeOptions(deep=True))
        assert result.ok is True
        assert result.final_url == URL

    @pytest.mark.asyncio
    async def test_deep_fetch_failure_degrades_to_shallow(self):
        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(200)
            raise httpx.ConnectError("reset", request=request)

        result = await make_prober(handler).probe(URL, ProbeOptions(deep=True))
        assert result.ok is True
        assert result.status == 200

    @pytest.mark.asyncio
    async def test_redirect_to_private_host_is_not_followed(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            if request.method == "HEAD":
                return httpx.Response(200)
            return httpx.Response(302, headers={"Location": "http://169.254.169.254/latest/meta-data/"})

        result = await make_prober(handler).probe("https://pay.example.com/X", ProbeOptions(deep=True))
        assert result.ok is False
        assert result.error_code == ErrorCode.INVALID_URL
        assert result.status == 200
        assert "169.254.169.254" in result.error
        assert seen == ["https://pay.example.com/X", "https://pay.example.com/X"]

    @pytest.mark.asyncio
    async def test_relative_redirect_is_followed(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            if request.method == "HEAD":
                return httpx.Response(200)
            if request.url.path == "/X":
                return httpx.Response(302, headers={"Location": "/offer-expired"})
            return httpx.Response(200, text="<html>gone</html>")

        result = await make_prober(handler).probe("https://shop.example.com/X", ProbeOptions(deep=True))
        assert result.ok is False
        assert result.error_code == ErrorCode.INACTIVE_OFFER
        assert result.final_url == "https://shop.example.com/offer-expired"
        assert seen == ["/X", "/X", "/offer-expired"]

    @pytest.mark.asyncio
    async def test_redirect_loop_degrades_to_shallow(self):
        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(200)
            return httpx.Response(302, headers={"Location": str(request.url)})

        result = await make_prober(handler).probe(URL, ProbeOptions(deep=True))
        assert result.ok is True
        assert result.status == 200
        assert result.final_url is None

    @pytest.mark.asyncio
    async def test_large_body_is_truncated(self):
        # Offer-ended phrase sits past the read limit, so the page counts as live
        page = "<html>" + "x" * MAX_BODY_BYTES + "oferta encerrada</html>"

        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(200)
            return httpx.Response(200, text=page)

        result = await make_prober(handler).probe(URL, ProbeOptions(deep=True))
        assert result.ok is True
        assert result.final_url == URL

    @pytest.mark.asyncio
    async def test_body_prefix_stops_at_limit(self):
        response = httpx.Response(200, content="é".encode() * 100, headers={"Content-Type": "text/html; charset=utf-8"})
        assert await _read_body_prefix(response, 10) == "é" * 5

    @pytest.mark.asyncio
    async def test_shallow_failure_skips_deep_fetch(self):
        seen = []

        def handler(request):
            seen.append(request.method)
            return httpx.Response(404)

        result = await make_prober(handler).probe(URL, ProbeOptions(deep=True))
        assert result.ok is False
        assert result.error_code == ErrorCode.HTTP_ERROR
        assert seen == ["HEAD"]


class TestClassifyException:
    def _with_cause(self, exc, cause):
        exc.__cause__ = cause
        return exc

    def test_dns(self):
        exc = self._with_cause(httpx.ConnectError("failed"), socket.gaierror(-2, "Name or service not known"))
        assert classify_exception(exc) == ErrorCode.DNS_ERROR

    def test_ssl(self):
        exc = self._with_cause(httpx.ConnectError("failed"), ssl.SSLCertVerificationError("certificate verify failed"))
        assert classify_exception(exc) == ErrorCode.SSL_ERROR

    def test_refused(self):
        exc = self._with_cause(httpx.ConnectError("failed"), ConnectionRefusedError(111, "Connection refused"))
        assert classify_exception(exc) == ErrorCode.CONNECTION_REFUSED

    def test_generic_connect_error(self):
        assert classify_exception(httpx.ConnectError("something odd")) == ErrorCode.NETWORK_ERROR

    def test_read_error(self):
        assert classify_exception(httpx.ReadError("reset")) == ErrorCode.NETWORK_ERROR

    def test_protocol_error(self):
        assert classify_exception(httpx.RemoteProtocolError("bad")) == ErrorCode.FETCH_ERROR

    def test_too_many_redirects(self):
        assert classify_exception(httpx.TooManyRedirects("loop")) == ErrorCode.FETCH_ERROR

    def test_timeout(self):
        assert classify_exception(httpx.ConnectTimeout("slow")) == ErrorCode.TIMEOUT

    def test_unknown(self):
        assert classify_exception(ValueError("x")) == ErrorCode.UNKNOWN


class TestMockProber:
    @pytest.mark.asyncio
    async def test_scripted_sequence(self):
        prober = MockProber({URL: [ProbeResult(ok=False, error="Timeout"), ProbeResult(ok=True, status=200)]})
        first = await prober.probe(URL)
        second = await prober.probe(URL)
        third = await prober.probe(URL)
        assert (first.ok, second.ok, third.ok) == (False, True, True)
        assert prober.probed_urls == [URL, URL, URL]

    @pytest.mark.asyncio
    async def test_unknown_url_succeeds(self):
        result = await MockProber().probe("https://example.com")
        assert result.ok is True
