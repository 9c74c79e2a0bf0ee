import asyncio
import json
from pathlib import Path

from hlsbridge.engine.context import BridgeContext
from hlsbridge.engine.status import BridgeStatus, StatusBroadcaster

from conftest import FakeRouter, FakeSpawner, make_settings, video_producer


class FakeRedis:
    def __init__(self) -> None:
        self.values = {}
        self.expiry = {}
        self.messages = []
        self.deleted = []
        self.closed = False

    def set(self, key, value, ex=None):
        self.values[key] = value
        self.expiry[key] = ex

    def publish(self, channel, payload):
        self.messages.append((channel, payload))

    def delete(self, key):
        self.deleted.append(key)
        self.values.pop(key, None)

    def close(self):
        self.closed = True


def _broadcaster(client: FakeRedis) -> StatusBroadcaster:
    return StatusBroadcaster(
        redis_url=None,
        prefix="bridge",
        namespace="hls",
        key="status",
        channel="bridge:hls:status",
        ttl_seconds=30,
        client=client,
    )


def test_publish_sets_key_with_ttl_and_notifies_channel() -> None:
    client = FakeRedis()
    broadcaster = _broadcaster(client)
    status = BridgeStatus(sessions={"combined-stream": {"key": "combined-stream"}}, ports_in_use=2)

    assert broadcaster.publish(status)

    payload = json.loads(client.values["bridge:hls:status"])
    assert client.expiry["bridge:hls:status"] == 30
    assert payload["status"]["session_keys"] == ["combined-stream"]
    assert payload["status"]["ports_in_use"] == 2
    assert payload["status"]["origin"] == "hls-bridge"
    assert client.messages[0][0] == "bridge:hls:status"


def test_broadcaster_without_url_is_unavailable() -> None:
    broadcaster = StatusBroadcaster(
        redis_url=None,
        prefix="",
        namespace="",
        key="",
        channel=None,
        ttl_seconds=30,
    )

    assert not broadcaster.available
    assert broadcaster.last_error == "Redis URL not configured"
    assert broadcaster.redis_key == "bridge:hls:status"
    assert broadcaster.publish(BridgeStatus()) is False


def test_context_broadcasts_membership_changes_and_clears_on_shutdown(tmp_path: Path, events) -> None:
    client = FakeRedis()
    router = FakeRouter(events)

    async def scenario():
        context = BridgeContext(
            router,
            make_settings(tmp_path),
            spawner=FakeSpawner(events),
            broadcaster=_broadcaster(client),
        )
        await context.notify_producer_added("a", video_producer("v-a"))
        latest = json.loads(client.values["bridge:hls:status"])
        await context.shutdown()
        return latest

    latest = asyncio.run(scenario())

    assert latest["status"]["composite"]["state"] == "active"
    assert latest["status"]["participants"] == [
        {"client_id": "a", "video": "v-a", "audio": None, "live_key": None}
    ]
    assert client.deleted == ["bridge:hls:status"]
    assert client.closed
