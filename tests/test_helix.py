"""Tests for HelixStatusClient using httpx.MockTransport."""

import json
import time

import httpx
import pytest

from core.errors import ConfigError, RateLimited, SourceUnavailable
from core.ratelimits import RateLimitTracker
from services.twitch.api.helix import HelixStatusClient


def _stream(user_id, login="somestreamer", **overrides):
    item = {
        "id": f"s{user_id}",
        "user_id": user_id,
        "user_login": login,
        "type": "live",
        "title": "Hello",
        "viewer_count": 12,
        "game_id": "509658",
        "game_name": "Just Chatting",
        "started_at": "2024-05-01T18:00:00Z",
    }
    item.update(overrides)
    return item


def _client(handler, **kwargs):
    kwargs.setdefault("access_token", "tok")
    return HelixStatusClient(
        client_id="cid",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ── Construction ────────────────────────────────────────


def test_requires_credentials():
    with pytest.raises(ConfigError):
        HelixStatusClient(client_id="cid")
    with pytest.raises(ConfigError):
        HelixStatusClient(client_id="", access_token="tok")


# ── Streams ─────────────────────────────────────────────


class TestGetStatus:
    @pytest.mark.asyncio
    async def test_live_entities_only(self):
        seen = {}

        def handler(request):
            seen["ids"] = request.url.params.get_list("user_id")
            seen["auth"] = request.headers["Authorization"]
            seen["client"] = request.headers["Client-Id"]
            return httpx.Response(200, json={"data": [_stream("1"), _stream("2", type="")]})

        records = await _client(handler).get_status(["1", "2", "3"])

        assert list(records) == ["1"]
        assert records["1"].category_name == "Just Chatting"
        assert records["1"].started_at.year == 2024
        assert seen["ids"] == ["1", "2", "3"]
        assert seen["auth"] == "Bearer tok"
        assert seen["client"] == "cid"

    @pytest.mark.asyncio
    async def test_batches_of_one_hundred(self):
        calls = []

        def handler(request):
            calls.append(len(request.url.params.get_list("user_id")))
            return httpx.Response(200, json={"data": []})

        await _client(handler).get_status([str(i) for i in range(250)])

        assert calls == [100, 100, 50]

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        client = _client(lambda request: httpx.Response(503))

        with pytest.raises(SourceUnavailable):
            await client.get_status(["1"])

    @pytest.mark.asyncio
    async def test_invalid_json_is_unavailable(self):
        client = _client(lambda request: httpx.Response(200, content=b"not json"))

        with pytest.raises(SourceUnavailable):
            await client.get_status(["1"])

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SourceUnavailable):
            await _client(handler).get_status(["1"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"data": None}, {"data": {}}, {}, [1, 2]])
    async def test_malformed_payload_is_unavailable(self, payload):
        client = _client(lambda request: httpx.Response(200, json=payload))

        with pytest.raises(SourceUnavailable):
            await client.get_status(["1"])

    @pytest.mark.asyncio
    async def test_malformed_users_payload_is_unavailable(self):
        client = _client(lambda request: httpx.Response(200, json={"data": "nope"}))

        with pytest.raises(SourceUnavailable):
            await client.get_profiles(ids=["1"])


# ── Rate limits ─────────────────────────────────────────


class TestRateLimits:
    @pytest.mark.asyncio
    async def test_headers_recorded(self):
        tracker = RateLimitTracker()
        reset = int(time.time()) + 60

        def handler(request):
            return httpx.Response(
                200,
                json={"data": []},
                headers={
                    "Ratelimit-Limit": "800",
                    "Ratelimit-Remaining": "795",
                    "Ratelimit-Reset": str(reset),
                },
            )

        await _client(handler, rate_limits=tracker).get_status(["1"])

        snapshot = tracker.snapshot()
        assert snapshot.limit == 800
        assert snapshot.remaining == 795

    @pytest.mark.asyncio
    async def test_429_raises_rate_limited(self):
        tracker = RateLimitTracker()
        reset = int(time.time()) + 30

        def handler(request):
            return httpx.Response(
                429,
                headers={
                    "Ratelimit-Limit": "800",
                    "Ratelimit-Remaining": "0",
                    "Ratelimit-Reset": str(reset),
                },
            )

        with pytest.raises(RateLimited) as exc:
            await _client(handler, rate_limits=tracker).get_status(["1"])

        assert 0 <= exc.value.retry_after <= 30
        assert tracker.snapshot().remaining == 0


# ── Auth ────────────────────────────────────────────────


class TestAuth:
    @pytest.mark.asyncio
    async def test_client_credentials_token_fetched_once(self):
        token_calls = []

        def handler(request):
            if request.url.host == "id.twitch.tv":
                token_calls.append(dict(request.url.params))
                return httpx.Response(200, json={"access_token": "fresh"})
            assert request.headers["Authorization"] == "Bearer fresh"
            return httpx.Response(200, json={"data": []})

        client = _client(handler, access_token=None, client_secret="secret")
        await client.get_status(["1"])
        await client.get_status(["2"])

        assert len(token_calls) == 1
        assert token_calls[0]["grant_type"] == "client_credentials"

    @pytest.mark.asyncio
    async def test_401_refreshes_token_and_retries(self):
        state = {"issued": 0}

        def handler(request):
            if request.url.host == "id.twitch.tv":
                state["issued"] += 1
                return httpx.Response(200, json={"access_token": f"t{state['issued']}"})
            if request.headers["Authorization"] == "Bearer stale":
                return httpx.Response(401)
            return httpx.Response(200, json={"data": [_stream("1")]})

        client = _client(handler, access_token="stale", client_secret="secret")
        records = await client.get_status(["1"])

        assert "1" in records
        assert state["issued"] == 1

    @pytest.mark.asyncio
    async def test_non_object_token_payload_is_unavailable(self):
        def handler(request):
            if request.url.host == "id.twitch.tv":
                return httpx.Response(200, json=["fresh"])
            return httpx.Response(200, json={"data": []})

        client = _client(handler, access_token=None, client_secret="secret")

        with pytest.raises(SourceUnavailable):
            await client.get_status(["1"])


# ── Users and categories ────────────────────────────────


class TestMetadata:
    @pytest.mark.asyncio
    async def test_category_is_cached(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(200, json={"data": [{"id": "509658", "name": "Just Chatting"}]})

        client = _client(handler)
        first = await client.get_metadata("509658")
        second = await client.get_metadata("509658")

        assert first.name == second.name == "Just Chatting"
        assert calls == ["/helix/games"]

    @pytest.mark.asyncio
    async def test_unknown_category_raises(self):
        client = _client(lambda request: httpx.Response(200, json={"data": []}))

        with pytest.raises(SourceUnavailable):
            await client.get_metadata("0")

    @pytest.mark.asyncio
    async def test_profile_by_login(self):
        def handler(request):
            assert request.url.params["login"] == "somestreamer"
            body = {"data": [{"id": "1001", "login": "somestreamer", "display_name": "SomeStreamer"}]}
            return httpx.Response(200, content=json.dumps(body).encode())

        profile = await _client(handler).get_profile_by_login("SomeStreamer")

        assert profile.id == "1001"
        assert profile.display_name == "SomeStreamer"

    @pytest.mark.asyncio
    async def test_profile_by_login_missing(self):
        client = _client(lambda request: httpx.Response(200, json={"data": []}))

        assert await client.get_profile_by_login("ghost") is None
