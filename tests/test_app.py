"""
HTTP 路由集成测试

不触发 lifespan，直接在 app.state 上挂测试用的网关
"""
import json

import httpx
import pytest
import pytest_asyncio

from conftest import FakeTransportFactory
from twitch_service.app import app
from twitch_service.config import ServiceConfig, config
from twitch_service.gateway import TwitchGateway
from twitch_service.services.forwarder import HttpAgentRouter

TREE = {
    "channels": {
        "twitch": {
            "accounts": {
                "default": {
                    "username": "testbot",
                    "accessToken": "oauth:abc",
                    "clientId": "cid",
                    "channel": "streamer",
                }
            }
        }
    },
    "agent": {"url": "http://agent.test"},
}


@pytest.fixture
def factory():
    return FakeTransportFactory()


@pytest.fixture
def gateway(factory, monkeypatch):
    monkeypatch.setattr("twitch_service.probe.PROBE_SETTLE_SECONDS", 0)
    service_config = ServiceConfig()
    service_config.load_dict(TREE)
    gw = TwitchGateway(service_config, agent_router=HttpAgentRouter(""), transport_factory=factory, env={})
    app.state.gateway = gw
    yield gw
    del app.state.gateway


@pytest_asyncio.fixture
async def client(gateway):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestServiceEndpoints:
    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["service"] == "twitch-dispatch"

    @pytest.mark.asyncio
    async def test_health(self, client, monkeypatch):
        monkeypatch.setattr(config, "tree", TREE)
        monkeypatch.setattr(config, "agent_url", "http://agent.test")

        data = (await client.get("/health")).json()
        assert data["status"] == "healthy"
        assert data["accounts_count"] == 1


class TestStatusRoutes:
    """测试 /twitch/status、/twitch/accounts、/twitch/probe"""

    @pytest.mark.asyncio
    async def test_status(self, client):
        data = (await client.get("/twitch/status")).json()

        assert data["success"] is True
        assert data["accounts"][0]["accountId"] == "default"
        assert data["summaries"]["default"]["running"] is False
        assert data["connections"] == 0

    @pytest.mark.asyncio
    async def test_start_and_stop(self, client, gateway, factory):
        assert (await client.post("/twitch/accounts/default/start")).json() == {"success": True}
        assert gateway.is_running("default")

        assert (await client.post("/twitch/accounts/default/stop")).json() == {"success": True}
        assert not gateway.is_running("default")

    @pytest.mark.asyncio
    async def test_unknown_account(self, client):
        data = (await client.get("/twitch/accounts/ghost")).json()
        assert data["success"] is False
        assert "ghost" in data["error"]

    @pytest.mark.asyncio
    async def test_probe(self, client):
        data = (await client.post("/twitch/probe/default", params={"timeout_ms": 1000})).json()
        assert data["success"] is True
        assert data["probe"]["connected"] is True


class TestActionRoutes:
    """测试 /twitch/actions、/twitch/resolve"""

    @pytest.mark.asyncio
    async def test_list_actions(self, client):
        assert (await client.get("/twitch/actions")).json() == {"success": True, "actions": ["send"]}

    @pytest.mark.asyncio
    async def test_send(self, client, factory):
        data = (await client.post("/twitch/actions/send", json={"to": "#streamer", "message": "hi"})).json()

        assert data["success"] is True
        assert json.loads(data["result"]["content"][0]["text"])["ok"] is True
        assert factory.created[0].sent == [("streamer", "hi")]

    @pytest.mark.asyncio
    async def test_unsupported_action(self, client):
        data = (await client.post("/twitch/actions/react", json={})).json()
        assert data["success"] is False

    @pytest.mark.asyncio
    async def test_resolve_unknown_account(self, client):
        data = (await client.post("/twitch/resolve", json={"inputs": ["alice"], "accountId": "ghost"})).json()
        assert data["success"] is False
        assert "ghost" in data["error"]
