import json

import grpc
import pytest
from httpx import AsyncClient

from eventpool import wire

from fakes import NODE, FakeStreamCall, event, rpc_error


def serve_history(network, requests: list | None = None):
    def handler(request):
        if requests is not None:
            requests.append(request)
        return wire.GetEventsResponse(data=[
            wire.EventData(block_number=100, tx_hash="0xa", data="one"),
            wire.EventData(block_number=101, tx_hash="0xb", data="two"),
        ])
    network.route(NODE, wire.GET_EVENTS, handler)


class TestEventsAPI:
    """
    Unit tests for the event pool HTTP surface.

    These tests verify:
    1. Endpoints are accessible and return the documented structure
    2. Input validation works correctly (Pydantic models)
    3. Client errors are mapped to HTTP status codes

    The node is served by a fake gRPC network, the gateway is unreachable
    so every request goes through the direct fallback.
    """

    @pytest.mark.asyncio
    async def test_root_endpoint(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Event Pool Client"
        assert data["endpoints"]["history"] == "/api/events/history"
        assert data["endpoints"]["stream"] == "/api/events/stream"

    @pytest.mark.asyncio
    async def test_health_does_not_connect(self, client: AsyncClient, network):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["connection"] == {"state": "unresolved", "target": None}
        assert network.channels == []

    @pytest.mark.asyncio
    async def test_history_uses_served_chain(self, client: AsyncClient, network):
        requests = []
        serve_history(network, requests)

        response = await client.post("/api/events/history", json={"skip": 10, "take": 5})

        assert response.status_code == 200
        data = response.json()
        assert data["chain"] == "polygon"
        assert data["chain_id"] == 137
        assert data["total_events"] == 2
        assert [e["tx_hash"] for e in data["events"]] == ["0xa", "0xb"]
        assert (requests[0].skip, requests[0].take) == (10, 5)

        health = (await client.get("/health")).json()
        assert health["connection"] == {"state": "connected", "target": NODE}

    @pytest.mark.asyncio
    async def test_history_for_other_chain(self, client: AsyncClient, network):
        requests = []
        serve_history(network, requests)

        response = await client.post("/api/events/history", json={
            "chain": "u2u-nebulas",
            "tx_hash": "0xABC",
        })

        assert response.status_code == 200
        assert response.json()["chain_id"] == 2484
        assert requests[0].chain_id == 2484
        assert requests[0].tx_hash == "0xabc"

    @pytest.mark.asyncio
    async def test_history_unknown_chain(self, client: AsyncClient, network):
        serve_history(network)

        response = await client.post("/api/events/history", json={"chain": "bitcoin"})

        assert response.status_code == 404
        data = response.json()
        assert data["status"] == "error"
        assert data["error"] == "ChainNotConfiguredException"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"take": 0},
        {"skip": -1},
        {"tx_hash": "not-a-hash"},
        {"take": 2 ** 31},
        {"skip": 2 ** 31},
    ])
    async def test_history_invalid_request(self, client: AsyncClient, payload):
        response = await client.post("/api/events/history", json=payload)

        assert response.status_code == 422
        assert "errors" in response.json()

    @pytest.mark.asyncio
    async def test_history_remote_failure(self, client: AsyncClient, network):
        network.route(NODE, wire.GET_EVENTS, lambda request: rpc_error(grpc.StatusCode.INTERNAL, "db down"))

        response = await client.post("/api/events/history", json={})

        assert response.status_code == 502
        assert response.json()["error"] == "QueryError"

    @pytest.mark.asyncio
    async def test_stream_relays_events_as_ndjson(self, client: AsyncClient, network):
        network.route(NODE, wire.STREAM_EVENTS, lambda request: FakeStreamCall([
            event(1, "0xa", "first"),
            event(2, "0xb", "second"),
        ]))

        response = await client.get("/api/events/stream")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        lines = [json.loads(line) for line in response.text.splitlines()]
        assert lines == [
            {"block_number": 1, "tx_hash": "0xa", "data": "first"},
            {"block_number": 2, "tx_hash": "0xb", "data": "second"},
        ]

    @pytest.mark.asyncio
    async def test_stream_open_failure(self, client: AsyncClient, network):
        network.route(NODE, wire.STREAM_EVENTS, lambda request: FakeStreamCall(open_error=rpc_error()))

        response = await client.get("/api/events/stream")

        assert response.status_code == 502
        assert response.json()["error"] == "SubscriptionError"

    @pytest.mark.asyncio
    async def test_history_recovers_after_failed_dial(self, client: AsyncClient, network):
        serve_history(network)
        network.refuse(NODE)

        first = await client.post("/api/events/history", json={})
        second = await client.post("/api/events/history", json={})

        assert first.status_code == 503
        assert first.json()["error"] == "DialError"
        assert second.status_code == 200
        assert second.json()["total_events"] == 2

        health = (await client.get("/health")).json()
        assert health["connection"] == {"state": "connected", "target": NODE}

    @pytest.mark.asyncio
    async def test_requests_share_one_connection(self, client: AsyncClient, network):
        serve_history(network)

        await client.post("/api/events/history", json={})
        await client.post("/api/events/history", json={})

        assert len(network.channels_to(NODE)) == 1
