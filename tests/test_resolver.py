"""
resolver.py 用户名解析单元测试

使用 httpx.MockTransport 模拟 Helix API
"""
import httpx
import pytest

from twitch_service.config import AccountConfig
from twitch_service.resolver import normalize_username, resolve_twitch_targets

USERS = {
    "alice": {"id": "101", "login": "alice", "display_name": "Alice"},
    "bob": {"id": "202", "login": "bob", "display_name": "bob"},
}


def _helix_handler(request: httpx.Request) -> httpx.Response:
    if request.url.params.get("login") == "broken":
        return httpx.Response(500, json={"error": "Internal Server Error"})
    login = request.url.params.get("login")
    user_id = request.url.params.get("id")
    users = [u for u in USERS.values() if u["login"] == login or u["id"] == user_id]
    return httpx.Response(200, json={"data": users})


def _account(**overrides) -> AccountConfig:
    data = dict(account_id="default", username="bot", token="oauth:tok", client_id="cid")
    data.update(overrides)
    return AccountConfig(**data)


def test_normalize_username():
    assert normalize_username(" @Alice ") == "alice"
    assert normalize_username("") == ""


class TestResolveTwitchTargets:
    """测试 resolve_twitch_targets"""

    @pytest.mark.asyncio
    async def test_resolve_mixed_inputs(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(_helix_handler)) as client:
            results = await resolve_twitch_targets(
                ["@Alice", "bob", "202", "nobody", "999", "  "],
                _account(),
                http_client=client,
            )

        by_input = {r.input: r for r in results}
        assert by_input["@Alice"].resolved and by_input["@Alice"].id == "101"
        assert by_input["@Alice"].note == "display: Alice"
        assert by_input["bob"].note is None
        assert by_input["202"].name == "bob"
        assert by_input["nobody"].note == "username not found"
        assert by_input["999"].note == "user ID not found"
        assert by_input["  "].note == "empty input"
        assert [r.input for r in results] == ["@Alice", "bob", "202", "nobody", "999", "  "]

    @pytest.mark.asyncio
    async def test_api_error_becomes_unresolved(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(_helix_handler)) as client:
            results = await resolve_twitch_targets(["broken", "alice"], _account(), http_client=client)

        assert results[0].resolved is False
        assert results[0].note.startswith("API error:")
        assert results[1].resolved is True

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        results = await resolve_twitch_targets(["alice"], _account(client_id=None))
        assert results[0].to_dict() == {"input": "alice", "resolved": False, "note": "missing Twitch credentials"}

    @pytest.mark.asyncio
    async def test_default_client_sends_auth_headers(self, monkeypatch):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, json={"data": [USERS["alice"]]})

        original = httpx.AsyncClient

        def client_with_mock(**kwargs):
            return original(transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr("twitch_service.resolver.httpx.AsyncClient", client_with_mock)
        results = await resolve_twitch_targets(["alice"], _account())

        assert results[0].resolved
        assert seen["client-id"] == "cid"
        assert seen["authorization"] == "Bearer tok"
