"""Tests for the marketplace HTTP client."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from marketplace_client.api_client import (
    PERMISSION_DENIED_MESSAGE,
    RATE_LIMITED_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    MarketplaceApiClient,
)
from marketplace_client.auth import AuthSession
from marketplace_client.models import AuthUser, FailureKind
from schemas.marketplace import MarketplaceServer, MarketplaceServerUpdate

BASE_URL = "http://127.0.0.1:23333/api/marketplace"

SERVER_JSON = {
    "id": "65a000000000000000000001",
    "name": "fs-server",
    "author": "alice",
    "config": {"command": "node"},
    "ownerId": "u1",
    "isPublic": True,
    "installCount": 3,
}


class Recorder:
    """MockTransport handler that replays queued responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        # Fresh copy so a queued response can be served more than once
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


def make_client(handler, session=None, clock=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MarketplaceApiClient(http, session or AuthSession(), base_url=BASE_URL, clock=clock)


@pytest.fixture
def signed_in():
    return AuthSession(AuthUser(id="u1", email="u1@example.com", name="User One"), access_token="tok")


class TestRequestShape:
    """Headers and cache busting."""

    @pytest.mark.asyncio
    async def test_identity_and_no_cache_headers(self, signed_in):
        recorder = Recorder(httpx.Response(200, json={"success": True, "data": []}))
        client = make_client(recorder, signed_in)

        await client.get_servers()

        request = recorder.requests[0]
        assert str(request.url).startswith(f"{BASE_URL}/servers?_t=")
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["X-User-Id"] == "u1"
        assert request.headers["X-User-Email"] == "u1@example.com"
        assert request.headers["X-User-Name"] == "User One"
        assert request.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
        assert request.headers["Pragma"] == "no-cache"

    @pytest.mark.asyncio
    async def test_anonymous_requests_carry_no_identity(self):
        recorder = Recorder(httpx.Response(200, json={"success": True, "data": []}))
        client = make_client(recorder)

        await client.get_servers()

        assert "Authorization" not in recorder.requests[0].headers
        assert "X-User-Id" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_cache_buster_strictly_increases(self):
        recorder = Recorder(httpx.Response(200, json={"success": True, "data": []}))
        client = make_client(recorder, clock=lambda: 1000)

        await client.get_servers()
        await client.get_servers()
        await client.get_servers()

        stamps = [int(r.url.params["_t"]) for r in recorder.requests]
        assert stamps == [1000, 1001, 1002]

    @pytest.mark.asyncio
    async def test_update_sends_only_set_fields(self, signed_in):
        recorder = Recorder(httpx.Response(200, json={"success": True, "data": SERVER_JSON}))
        client = make_client(recorder, signed_in)

        await client.update_server(SERVER_JSON["id"], MarketplaceServerUpdate(description="v2"))

        assert recorder.requests[0].method == "PUT"
        assert json.loads(recorder.requests[0].content) == {"description": "v2"}


class TestResponses:
    """Envelope handling and status mapping."""

    @pytest.mark.asyncio
    async def test_envelope_is_unwrapped_and_parsed(self):
        client = make_client(Recorder(httpx.Response(200, json={"success": True, "data": [SERVER_JSON]})))

        result = await client.get_servers()

        assert result.success
        assert isinstance(result.data[0], MarketplaceServer)
        assert result.data[0].install_count == 3

    @pytest.mark.asyncio
    async def test_unauthorized_signs_out(self, signed_in):
        client = make_client(Recorder(httpx.Response(401, json={"success": False, "error": "nope"})), signed_in)

        result = await client.get_my_servers()

        assert not result.success
        assert result.error == SESSION_EXPIRED_MESSAGE
        assert result.status_code == 401
        assert signed_in.get_current_user() is None

    @pytest.mark.asyncio
    async def test_forbidden_and_rate_limited(self, signed_in):
        client = make_client(
            Recorder(httpx.Response(403, json={}), httpx.Response(429, json={})),
            signed_in,
        )

        forbidden = await client.delete_server(SERVER_JSON["id"])
        limited = await client.delete_server(SERVER_JSON["id"])

        assert forbidden.error == PERMISSION_DENIED_MESSAGE
        assert limited.error == RATE_LIMITED_MESSAGE
        assert signed_in.get_current_user() is not None

    @pytest.mark.asyncio
    async def test_error_body_message_is_used(self):
        client = make_client(Recorder(httpx.Response(404, json={"success": False, "error": "Server not found"})))

        result = await client.get_server("65a000000000000000000009")

        assert result.error == "Server not found"
        assert result.failure == FailureKind.HTTP

    @pytest.mark.asyncio
    async def test_error_without_body(self):
        client = make_client(Recorder(httpx.Response(502, text="bad gateway")))

        result = await client.get_servers()

        assert result.error == "Request failed with status 502"

    @pytest.mark.asyncio
    async def test_not_modified_is_retried_once(self):
        recorder = Recorder(
            httpx.Response(304),
            httpx.Response(200, json={"success": True, "data": [SERVER_JSON]}),
        )
        client = make_client(recorder)

        result = await client.get_servers()

        assert result.success
        assert len(recorder.requests) == 2
        assert recorder.requests[0].url.params["_t"] != recorder.requests[1].url.params["_t"]

    @pytest.mark.asyncio
    async def test_repeated_not_modified_fails(self):
        recorder = Recorder(httpx.Response(304))
        client = make_client(recorder)

        result = await client.get_servers()

        assert not result.success
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_envelope_failure_with_200(self):
        client = make_client(Recorder(httpx.Response(200, json={"success": False, "error": "odd"})))

        result = await client.track_install(SERVER_JSON["id"])

        assert not result.success
        assert result.error == "odd"

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        client = make_client(Recorder(httpx.Response(200, json={"success": True, "data": [{"name": "no id"}]})))

        result = await client.get_servers()

        assert not result.success
        assert result.failure == FailureKind.INVALID_RESPONSE


class TestTransportFailures:
    @pytest.mark.asyncio
    async def test_connection_refused(self):
        client = make_client(Recorder(httpx.ConnectError("Connection refused")))

        result = await client.get_servers()

        assert not result.success
        assert result.failure == FailureKind.CONNECTION_REFUSED

    @pytest.mark.asyncio
    async def test_other_network_error(self):
        client = make_client(Recorder(httpx.ReadTimeout("timed out")))

        result = await client.get_servers()

        assert result.failure == FailureKind.NETWORK
        assert result.error == "timed out"


class TestAuthPort:
    """Any object satisfying the session port can be plugged in."""

    @pytest.mark.asyncio
    async def test_sign_out_is_awaited_on_401(self):
        auth = MagicMock()
        auth.get_access_token.return_value = "expired"
        auth.get_current_user.return_value = AuthUser(id="u1")
        auth.sign_out = AsyncMock()
        client = make_client(Recorder(httpx.Response(401)), auth)

        result = await client.create_server({"name": "x"})

        auth.sign_out.assert_awaited_once()
        assert result.status_code == 401

    @pytest.mark.asyncio
    async def test_non_ascii_display_name_is_not_sent(self):
        auth = MagicMock()
        auth.get_access_token.return_value = None
        auth.get_current_user.return_value = AuthUser(id="u1", name="Zoë")
        recorder = Recorder(httpx.Response(200, json={"success": True, "data": []}))
        client = make_client(recorder, auth)

        await client.get_my_servers()

        assert recorder.requests[0].headers["X-User-Id"] == "u1"
        assert "X-User-Name" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_non_ascii_email_is_not_sent(self):
        session = AuthSession(AuthUser(id="u1", email="josé@example.com"))
        recorder = Recorder(httpx.Response(200, json={"success": True, "data": []}))
        client = make_client(recorder, session)

        result = await client.get_servers()

        assert result.success
        assert recorder.requests[0].headers["X-User-Id"] == "u1"
        assert "X-User-Email" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_unencodable_user_id_fails_without_sending(self):
        session = AuthSession(AuthUser(id="usér-1"))
        recorder = Recorder(httpx.Response(200, json={"success": True, "data": []}))
        client = make_client(recorder, session)

        result = await client.get_my_servers()

        assert not result.success
        assert result.failure == FailureKind.INVALID_REQUEST
        assert recorder.requests == []
