"""HTTP tests for the FastAPI app, backed by an in-memory service."""

import pytest
from fastapi.testclient import TestClient

from shortener.main import create_app


@pytest.fixture
def client(service):
    with TestClient(create_app(service, sweep_interval_seconds=0)) as client:
        yield client


def shorten(client, **body):
    body.setdefault("originalUrl", "https://example.com/some/long/path")
    return client.post("/shorten", json=body)


def settle_clicks(client, service):
    client.portal.call(service.wait_for_clicks)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_shorten_returns_record(client):
    response = shorten(client, validityPeriod="45", preferredShortCode="Promo")

    assert response.status_code == 201
    data = response.json()
    assert data["shortCode"] == "Promo"
    assert data["shortUrl"] == "http://sho.rt/Promo"
    assert data["validityPeriod"] == 45
    assert data["clickCount"] == 0
    assert data["clicks"] == []


def test_shorten_accepts_numeric_period(client):
    assert shorten(client, validityPeriod=5).json()["validityPeriod"] == 5


@pytest.mark.parametrize("body, status, detail", [
    ({"originalUrl": "not a url"}, 400, "Please enter a valid URL (e.g., https://example.com)"),
    ({"validityPeriod": "99999"}, 400, "Validity period must be between 1 and 10080 minutes (1 week)"),
    ({"preferredShortCode": "a_b"}, 400, "Short code must be 3-10 alphanumeric characters only"),
])
def test_shorten_rejects_bad_input(client, body, status, detail):
    response = shorten(client, **body)
    assert response.status_code == status
    assert response.json() == {"detail": detail}


def test_shorten_taken_code(client):
    shorten(client, preferredShortCode="dup")
    response = shorten(client, preferredShortCode="DUP")
    assert response.status_code == 409


def test_shorten_quota(make_service):
    service = make_service(max_urls=1)
    with TestClient(create_app(service, sweep_interval_seconds=0)) as client:
        assert shorten(client).status_code == 201
        response = shorten(client)
    assert response.status_code == 429
    assert response.json() == {"detail": "Maximum of 1 URLs allowed"}


def test_list_and_get_urls(client):
    created = shorten(client, preferredShortCode="abc").json()

    listed = client.get("/urls").json()
    assert [u["id"] for u in listed] == [created["id"]]
    assert client.get("/urls/ABC").json()["id"] == created["id"]
    assert client.get("/urls/zzz").status_code == 404


def test_redirect_tracks_click(client, service, resolver):
    shorten(client, preferredShortCode="go")

    response = client.get(
        "/go",
        headers={"Referer": "https://social.example.com/post/1", "User-Agent": "agent/1.0"},
        follow_redirects=False,
    )
    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com/some/long/path"

    settle_clicks(client, service)
    record = client.get("/urls/go").json()
    assert record["clickCount"] == 1
    click = record["clicks"][0]
    assert click["source"] == "social.example.com"
    assert click["userAgent"] == "agent/1.0"
    assert click["location"] == {"country": "Testland", "city": "Testville", "region": "Test Region"}


def test_redirect_passes_shared_coordinates(client, service, resolver):
    shorten(client, preferredShortCode="geo")
    client.get("/geo", headers={"X-Geo-Latitude": "51.5", "X-Geo-Longitude": "-0.12"}, follow_redirects=False)
    settle_clicks(client, service)

    assert resolver.contexts[-1].coordinates == (51.5, -0.12)


def test_redirect_unknown_code(client):
    response = client.get("/missing", follow_redirects=False)
    assert response.status_code == 404
    assert response.json() == {"detail": "URL not found or expired"}


def test_redirect_expired_code(client, clock):
    shorten(client, preferredShortCode="brief", validityPeriod="1")
    clock.advance(minutes=1, seconds=1)
    assert client.get("/brief", follow_redirects=False).status_code == 404


def test_delete_url(client):
    created = shorten(client).json()

    assert client.delete(f"/urls/{created['id']}").status_code == 204
    assert client.get("/urls").json() == []
    assert client.delete("/urls/unknown-id").status_code == 204


def test_clear_expired(client, clock):
    shorten(client, validityPeriod="1")
    shorten(client, validityPeriod="60")
    clock.advance(minutes=2)

    assert client.post("/urls/clear-expired").json() == {"removed": 1}
    assert len(client.get("/urls").json()) == 1


def test_statistics(client, service):
    assert client.get("/statistics").json() == {
        "totalUrls": 0,
        "activeUrls": 0,
        "expiredUrls": 0,
        "totalClicks": 0,
        "averageClicksPerUrl": 0,
        "mostClickedUrl": None,
    }

    shorten(client, preferredShortCode="hot")
    shorten(client, preferredShortCode="cold")
    client.get("/hot", follow_redirects=False)
    settle_clicks(client, service)

    stats = client.get("/statistics").json()
    assert stats["totalUrls"] == 2
    assert stats["totalClicks"] == 1
    assert stats["averageClicksPerUrl"] == 0.5
    assert stats["mostClickedUrl"]["shortCode"] == "hot"


def test_shutdown_closes_resolver(service, resolver):
    with TestClient(create_app(service, sweep_interval_seconds=0)):
        pass
    assert resolver.closed
