import anyio
import pytest
from fastapi.testclient import TestClient

from mcpsse.app import create_app

PING = {"jsonrpc": "2.0", "id": 1, "method": "ping"}


@pytest.fixture
def server(make_server):
    return make_server()


@pytest.fixture
def client(server) -> TestClient:
    return TestClient(create_app(server))


def test_info(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "MCP SSE Server"
    assert body["version"] == "1.0.0"
    assert body["status"] == "running"
    assert set(body["endpoints"]) == {"/", "/sse", "/messages"}
    assert [tool["name"] for tool in body["tools"]] == ["add", "weather", "search"]
    assert all(tool["description"] for tool in body["tools"])


def test_cors(client: TestClient) -> None:
    response = client.get("/", headers={"Origin": "https://elsewhere.example"})
    assert response.headers["access-control-allow-origin"] == "*"
    assert "access-control-allow-credentials" not in response.headers

    preflight = client.options(
        "/messages",
        headers={"Origin": "https://elsewhere.example", "Access-Control-Request-Method": "POST"},
    )
    assert preflight.status_code == 200
    allowed = preflight.headers["access-control-allow-methods"]
    assert "POST" in allowed
    assert "DELETE" not in allowed

    rejected = client.options(
        "/messages",
        headers={"Origin": "https://elsewhere.example", "Access-Control-Request-Method": "DELETE"},
    )
    assert rejected.status_code == 400


def test_post_requires_known_session(client: TestClient, server) -> None:
    assert client.post("/messages", json=PING).status_code == 400
    assert client.post("/messages?session_id=unknown", json=PING).status_code == 404

    session = server.bridge.open_session()
    bad = client.post(f"/messages?session_id={session.session_id}", content=b"not json")
    assert bad.status_code == 400
    with pytest.raises(anyio.WouldBlock):
        session.read_stream.receive_nowait()


def test_post_routes_to_named_session(client: TestClient, server) -> None:
    first = server.bridge.open_session()
    second = server.bridge.open_session()

    response = client.post(f"/messages?session_id={second.session_id}", json=PING)
    assert response.status_code == 202
    assert response.text == "Accepted"

    delivered = second.read_stream.receive_nowait()
    assert delivered.message.root.method == "ping"
    with pytest.raises(anyio.WouldBlock):
        first.read_stream.receive_nowait()

    server.bridge.close_session(second.session_id)
    assert client.post(f"/messages?session_id={second.session_id}", json=PING).status_code == 404
