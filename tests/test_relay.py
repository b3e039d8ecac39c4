import httpx
import pytest
from fastapi.testclient import TestClient

from app import app, get_upstream_client
from config import BROWSER_USER_AGENT, FALLBACK_GATEWAY_BASE, RELAY_ALLOW_ORIGIN, RELAY_TIMEOUT_SECONDS
from relay import fallback_gateway_url

GATEWAY_URL = "https://bafyroot.ipfs.w3s.link/42.png"
PLAIN_URL = "https://example.com/token/42.json"


@pytest.fixture
def upstream():
    """Installs an httpx.MockTransport handler as the relay's upstream and records requests."""
    seen = []

    def install(handler):
        def recording(request):
            seen.append(request)
            return handler(request)

        async def override():
            async with httpx.AsyncClient(transport=httpx.MockTransport(recording)) as client:
                yield client

        app.dependency_overrides[get_upstream_client] = override
        return seen

    return install


@pytest.fixture
def client():
    return TestClient(app)


def test_missing_url_is_rejected(client):
    response = client.get("/relay")
    assert response.status_code == 400
    assert "error" in response.json()


def test_empty_url_is_rejected(client):
    response = client.get("/relay", params={"url": "", "type": "image"})
    assert response.status_code == 400
    assert response.json() == {"error": "URL parameter is required"}


def test_image_mode_relays_bytes_with_cors_header(client, upstream, make_png):
    png = make_png()
    upstream(lambda request: httpx.Response(200, content=png, headers={"Content-Type": "image/png"}))

    response = client.get("/relay", params={"url": PLAIN_URL, "type": "image"})

    assert response.status_code == 200
    assert response.content == png
    assert response.headers["content-type"] == "image/png"
    assert response.headers["content-length"] == str(len(png))
    assert response.headers["access-control-allow-origin"] == RELAY_ALLOW_ORIGIN


@pytest.mark.parametrize("origin", [RELAY_ALLOW_ORIGIN, "http://evil.test"])
def test_image_mode_cors_header_ignores_request_origin(client, upstream, make_png, origin):
    png = make_png()
    upstream(lambda request: httpx.Response(200, content=png, headers={"Content-Type": "image/png"}))

    response = client.get("/relay", params={"url": PLAIN_URL, "type": "image"}, headers={"Origin": origin})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == RELAY_ALLOW_ORIGIN


def test_image_mode_rejects_html_with_truncated_details(client, upstream):
    body = "<html>" + "x" * 1000 + "</html>"
    upstream(lambda request: httpx.Response(200, text=body, headers={"Content-Type": "text/html"}))

    response = client.get("/relay", params={"url": PLAIN_URL, "type": "image"})

    assert response.status_code == 400
    payload = response.json()
    assert payload["error"] == "Expected image, but received non-image content"
    assert len(payload["details"]) <= 200
    assert payload["details"] == body[:200]


def test_json_mode_is_the_default(client, upstream):
    upstream(lambda request: httpx.Response(200, json={"name": "Token #42"}))

    response = client.get("/relay", params={"url": PLAIN_URL})

    assert response.status_code == 200
    assert response.json() == {"name": "Token #42"}


def test_unknown_type_is_treated_as_json(client, upstream):
    upstream(lambda request: httpx.Response(200, json=[1, 2, 3]))

    response = client.get("/relay", params={"url": PLAIN_URL, "type": "xml"})

    assert response.json() == [1, 2, 3]


def test_json_parse_failure_is_a_server_error(client, upstream):
    upstream(lambda request: httpx.Response(200, text="not json"))

    response = client.get("/relay", params={"url": PLAIN_URL, "type": "json"})

    assert response.status_code == 500
    assert response.json()["error"].startswith("Failed to parse JSON response:")


def test_json_that_cannot_be_re_encoded_is_a_parse_failure(client, upstream):
    upstream(lambda request: httpx.Response(200, text='{"price": NaN}'))

    response = client.get("/relay", params={"url": PLAIN_URL, "type": "json"})

    assert response.status_code == 500
    assert response.json()["error"].startswith("Failed to parse JSON response:")


def test_retries_without_browser_header(client, upstream):
    def handler(request):
        if request.headers.get("user-agent") == BROWSER_USER_AGENT:
            return httpx.Response(403, text="forbidden")
        return httpx.Response(200, json={"ok": True})

    seen = upstream(handler)

    response = client.get("/relay", params={"url": PLAIN_URL})

    assert response.status_code == 200
    assert len(seen) == 2
    assert seen[0].headers["user-agent"] == BROWSER_USER_AGENT
    assert seen[1].headers["user-agent"] != BROWSER_USER_AGENT


def test_terminal_failure_passes_status_through(client, upstream):
    upstream(lambda request: httpx.Response(404, text="n" * 500))

    response = client.get("/relay", params={"url": PLAIN_URL})

    assert response.status_code == 404
    payload = response.json()
    assert payload["error"] == "Failed to fetch: Not Found"
    assert payload["details"] == "n" * 200


def test_non_gateway_url_has_no_gateway_fallback(client, upstream):
    seen = upstream(lambda request: httpx.Response(503, text="down"))

    client.get("/relay", params={"url": PLAIN_URL})

    assert [str(request.url) for request in seen] == [PLAIN_URL, PLAIN_URL]


def test_gateway_failure_retries_alternate_gateway_with_same_path(client, upstream, make_png):
    png = make_png()

    def handler(request):
        if "ipfs.w3s.link" in request.url.host:
            return httpx.Response(504, text="gateway timeout")
        return httpx.Response(200, content=png, headers={"Content-Type": "image/png"})

    seen = upstream(handler)

    response = client.get("/relay", params={"url": GATEWAY_URL, "type": "image"})

    assert response.status_code == 200
    assert response.content == png
    fallback_requests = [request for request in seen if "ipfs.w3s.link" not in request.url.host]
    assert fallback_requests
    assert str(fallback_requests[0].url) == f"{FALLBACK_GATEWAY_BASE}/42.png"
    assert fallback_requests[0].url.path.endswith("/42.png")


def test_gateway_transport_error_retries_alternate_gateway(client, upstream):
    def handler(request):
        if "ipfs.w3s.link" in request.url.host:
            raise httpx.ConnectError("dns failure", request=request)
        return httpx.Response(200, json={"ok": True})

    seen = upstream(handler)

    response = client.get("/relay", params={"url": GATEWAY_URL})

    assert response.status_code == 200
    assert str(seen[-1].url) == f"{FALLBACK_GATEWAY_BASE}/42.png"


def test_transport_failure_is_a_server_error(client, upstream):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    upstream(handler)

    response = client.get("/relay", params={"url": PLAIN_URL})

    assert response.status_code == 500
    payload = response.json()
    assert payload["error"].startswith("Failed to fetch:")
    assert "cause" in payload


def test_malformed_url_is_a_server_error(client, upstream):
    seen = upstream(lambda request: httpx.Response(200, json={}))

    response = client.get("/relay", params={"url": "http://[::1/x.png"})

    assert response.status_code == 500
    payload = response.json()
    assert payload["error"].startswith("Failed to fetch:")
    assert "cause" in payload
    assert seen == []


def test_every_attempt_carries_the_relay_timeout(client, upstream):
    seen = upstream(lambda request: httpx.Response(500, text="boom"))

    client.get("/relay", params={"url": GATEWAY_URL})

    assert len(seen) == 4
    for request in seen:
        assert request.extensions["timeout"]["read"] == RELAY_TIMEOUT_SECONDS


def test_fallback_gateway_url():
    assert fallback_gateway_url(GATEWAY_URL) == f"{FALLBACK_GATEWAY_BASE}/42.png"
    assert fallback_gateway_url(PLAIN_URL) is None
