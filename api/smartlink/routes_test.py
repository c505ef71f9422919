"""Tests for the smart-link HTTP surface using FastAPI's TestClient."""

from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from api.smartlink.app import create_app
from api.smartlink.views import render_no_offer_page
from db.models.campaign import Campaign
from db.models.endpoint import Endpoint
from db.models.link import Link
from lib.smartlink.models import ErrorCode, ProbeResult
from lib.smartlink.prober import MockProber
from services.smartlink.auto_checker import AutoChecker
from services.smartlink.config import SmartLinkConfig
from services.smartlink.notifier import MockNotifier, NotificationDispatcher
from services.smartlink.repo import MockRepo
from services.smartlink.service import SmartLinkService

pytestmark = pytest.mark.no_db

A = "https://pay.hotmart.com/AAAA1111"
B = "https://pay.hotmart.com/BBBB2222"
TIMEOUT = ProbeResult(ok=False, error="Timeout", error_code=ErrorCode.TIMEOUT)


def build(endpoints, fallback_url=None, probes=None, checker=False):
    repo = MockRepo(
        campaigns=[Campaign(id=1, name="Demo", auto_check_enabled=True)],
        endpoints=endpoints,
        links=[Link(id=1, slug="demo", campaign_id=1, fallback_url=fallback_url)],
    )
    prober = MockProber(probes or {})
    notifier = MockNotifier()
    service = SmartLinkService(
        repo=repo,
        prober=prober,
        config=SmartLinkConfig(auto_check_enabled=False, auto_check_poll_sec=60),
        notifications=NotificationDispatcher(notifier, background=False),
    )
    auto_checker = AutoChecker(service) if checker else None
    return create_app(service=service, checker=auto_checker), repo, prober


def ep(id, url, priority=0, **kw) -> Endpoint:
    return Endpoint(id=id, campaign_id=1, url=url, priority=priority, **kw)


class TestGo:
    def test_redirects_to_healthy_endpoint(self):
        app, repo, _ = build([ep(1, A), ep(2, B, priority=1)], probes={A: TIMEOUT})

        with TestClient(app) as client:
            response = client.get("/go/demo", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == B
        assert response.headers["cache-control"] == "no-store"
        assert repo.endpoints[1].consecutive_failures == 1

    def test_forwards_query_params(self):
        app, _, _ = build([ep(1, A + "?off=x")])

        with TestClient(app) as client:
            response = client.get("/go/demo?utm_source=fb&utm_source=ig&off=y", follow_redirects=False)

        query = parse_qs(urlsplit(response.headers["location"]).query)
        assert query == {"off": ["y"], "utm_source": ["fb"]}

    def test_fallback_redirect(self):
        app, _, _ = build([ep(1, A)], fallback_url="https://fallback.example.com/", probes={A: TIMEOUT})

        with TestClient(app) as client:
            response = client.get("/go/demo?src=x", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://fallback.example.com/?src=x"

    def test_no_offer_page(self):
        app, _, _ = build([ep(1, A)], probes={A: TIMEOUT})

        with TestClient(app) as client:
            response = client.get("/go/demo", follow_redirects=False)

        assert response.status_code == 503
        assert "text/html" in response.headers["content-type"]
        assert "No offer available right now." in response.text

    def test_unknown_slug(self):
        app, _, _ = build([ep(1, A)])

        with TestClient(app) as client:
            response = client.get("/go/missing", follow_redirects=False)

        assert response.status_code == 503
        assert "Link not found" in response.text


class TestCheckEndpoint:
    def test_ok(self):
        app, _, _ = build([ep(1, A)])

        with TestClient(app) as client:
            response = client.post("/api/endpoints/1/check")

        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert response.json()["status"] == 200

    def test_failure_payload(self):
        app, repo, _ = build([ep(1, A)], probes={A: TIMEOUT})

        with TestClient(app) as client:
            response = client.post("/api/endpoints/1/check")

        body = response.json()
        assert body["ok"] is False
        assert body["errorCode"] == "TIMEOUT"
        assert body["error"] == "Timeout"
        assert repo.endpoints[1].consecutive_failures == 1

    def test_not_found(self):
        app, _, _ = build([])

        with TestClient(app) as client:
            response = client.post("/api/endpoints/99/check")

        assert response.status_code == 404

    def test_repo_error(self):
        app, repo, _ = build([ep(1, A)])
        repo.fail_with = ConnectionError("db down")

        with TestClient(app) as client:
            response = client.post("/api/endpoints/1/check")

        assert response.status_code == 503


class TestApp:
    def test_health(self):
        app, _, _ = build([])
        with TestClient(app) as client:
            assert client.get("/health").json() == {"status": "ok"}

    def test_lifespan_starts_and_stops_checker(self):
        app, _, prober = build([ep(1, A)], checker=True)

        with TestClient(app):
            assert app.state.checker.running is True
        assert app.state.checker.running is False

    def test_no_checker_when_disabled(self):
        app, _, _ = build([])
        assert app.state.checker is None


def test_no_offer_page_escapes_message():
    page = render_no_offer_page("<script>alert(1)</script>")
    assert "<script>alert" not in page
    assert "&lt;script&gt;" in page
