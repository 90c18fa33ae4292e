"""
Tests for server-sent event formatting and the live stream generator.
"""
import asyncio
import json

from marketplace_chat.api.stream import _event_stream
from marketplace_chat.core.sse import KEEPALIVE, format_sse
from marketplace_chat.services.changefeed import ChangeEvent
from marketplace_chat.services.delivery import LiveDeliveryChannel

from conftest import BUYER_ID, LISTING_ID, SELLER_ID, auth_headers

from test_delivery import make_record


class FakeRequest:
    async def is_disconnected(self) -> bool:
        return False


def parse(payload):
    """Split one SSE payload into its event name and decoded data."""
    name = None
    data = []
    for line in payload.strip().splitlines():
        if line.startswith("event: "):
            name = line[len("event: "):]
        elif line.startswith("data: "):
            data.append(line[len("data: "):])
    return name, json.loads("\n".join(data))


def run_stream(feed, steps, keepalive=0.01):
    """
    Drive the inbox stream of SELLER_ID: before each read, call the matching
    step (or skip it when None), and return the raw payloads read.
    """
    channel = LiveDeliveryChannel(feed, max_reconnect_attempts=3)

    def open_subscription(push):
        return channel.subscribe_inbox(
            SELLER_ID,
            on_message=lambda record: push("message", record.to_dict()),
            on_status=lambda status: push("status", {"status": status}),
        )

    async def run():
        events = _event_stream(FakeRequest(), open_subscription, keepalive)
        payloads = []
        try:
            for step in steps:
                if step is not None:
                    step()
                payloads.append(await events.__anext__())
        finally:
            await events.aclose()
        return payloads

    return asyncio.run(run())


class TestFormatSSE:
    def test_named_event(self):
        assert format_sse('{"a": 1}', event="message") == 'event: message\ndata: {"a": 1}\n\n'

    def test_multiline_data_is_split(self):
        assert format_sse("one\ntwo") == "data: one\ndata: two\n\n"

    def test_empty_data(self):
        assert format_sse("") == "data: \n\n"


class TestEventStream:
    def test_starts_with_status_then_messages(self, feed):
        payloads = run_stream(feed, [
            None,
            lambda: feed.publish(ChangeEvent.insert(make_record("m-1"))),
        ])

        assert parse(payloads[0]) == ("status", {"status": "active"})
        name, data = parse(payloads[1])
        assert name == "message"
        assert data["id"] == "m-1"
        assert data["listing_id"] == LISTING_ID
        assert data["sender_id"] == BUYER_ID

    def test_idle_stream_sends_keepalive(self, feed):
        payloads = run_stream(feed, [None, None])
        assert payloads[1] == KEEPALIVE

    def test_subscription_is_closed_when_stream_ends(self, feed):
        run_stream(feed, [None])
        assert feed.subscriber_count == 0

    def test_gap_is_reported_then_resynced(self, feed):
        payloads = run_stream(feed, [None, feed.disconnect, feed.connect])

        assert parse(payloads[1]) == ("status", {"status": "reconnecting"})
        name, data = parse(payloads[2])
        assert name == "resync"
        assert data["subscription"] == f"inbox_{SELLER_ID}"

    def test_feed_down_on_open_reports_failure(self, feed):
        feed.disconnect()
        payloads = run_stream(feed, [None])
        assert parse(payloads[0]) == ("status", {"status": "failed"})


class TestStreamEndpoints:
    def test_stream_requires_authentication(self, client):
        response = client.get(f"/api/chat/stream?listing_id={LISTING_ID}&other_user_id={BUYER_ID}")
        assert response.status_code == 401

    def test_inbox_stream_requires_authentication(self, client):
        response = client.get("/api/chat/inbox/stream")
        assert response.status_code == 401

    def test_stream_rejects_malformed_ids(self, client):
        """Bad identifiers fail before any stream is opened."""
        response = client.get(
            f"/api/chat/stream?listing_id={LISTING_ID}&other_user_id=bea",
            headers=auth_headers(SELLER_ID),
        )
        assert response.status_code == 422
        assert client.app.state.change_feed.subscriber_count == 0
