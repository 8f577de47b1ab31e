"""Tests du décodage des trames WAMP et du routage des événements."""

import asyncio
import json

import pytest

from autobp.errors import LCURequestError, MalformedEventError
from autobp.events import EventSubscriber, JsonApiEvent, decode_frame, parse_frame

from helpers import FakeTransport, event_frame


class TestParseFrame:
    def test_valid_event(self):
        event = parse_frame(event_frame("/lol-gameflow/v1/gameflow-phase", "Lobby"))
        assert event == JsonApiEvent(uri="/lol-gameflow/v1/gameflow-phase", data="Lobby", event_type="Update")

    def test_accepts_bytes_and_decoded_lists(self):
        raw = event_frame("/lol-gameflow/v1/gameflow-phase", "Lobby")
        assert parse_frame(raw.encode("utf-8")).data == "Lobby"
        assert parse_frame(json.loads(raw)).data == "Lobby"

    def test_other_opcode_or_topic_is_not_ours(self):
        assert parse_frame('[0, "session-id", 1, "server"]') is None
        assert parse_frame('[8, "OtherTopic", {"uri": "/x"}]') is None
        assert parse_frame('[true, "OnJsonApiEvent", {"uri": "/x"}]') is None

    def test_missing_event_type_is_none(self):
        event = parse_frame('[8, "OnJsonApiEvent", {"uri": "/x", "data": 1}]')
        assert event.event_type is None

    @pytest.mark.parametrize("raw", [
        "",
        "not json",
        '{"uri": "/x"}',
        '[8, "OnJsonApiEvent"]',
        '[8, "OnJsonApiEvent", "payload"]',
        '[8, "OnJsonApiEvent", {"data": 1}]',
        '[8, "OnJsonApiEvent", {"uri": 42}]',
    ])
    def test_malformed_frames_raise(self, raw):
        with pytest.raises(MalformedEventError):
            parse_frame(raw)

    def test_decode_frame_swallows_malformed(self):
        assert decode_frame("not json") is None
        assert decode_frame(event_frame("/x", 1)).data == 1


class TestEventSubscriber:
    def test_subscribe_sends_wamp_frame(self):
        transport = FakeTransport()
        asyncio.run(EventSubscriber(transport, []).subscribe())
        assert transport.sent == [[5, "OnJsonApiEvent"]]

    def test_first_matching_route_wins(self):
        seen = []

        def recorder(name):
            async def handler(data):
                seen.append((name, data))
            return handler

        subscriber = EventSubscriber(FakeTransport(), [
            ("/lol-matchmaking/v1/ready-check", recorder("ready")),
            ("/lol-gameflow/v1/gameflow-phase", recorder("phase")),
            ("/lol-champ-select/v1/session", recorder("session")),
        ])

        async def scenario():
            await subscriber.dispatch(JsonApiEvent("/lol-matchmaking/v1/ready-check", {"state": "InProgress"}))
            await subscriber.dispatch(JsonApiEvent("/lol-champ-select/v1/session", {}))
            await subscriber.dispatch(JsonApiEvent("/lol-gameflow/v1/gameflow-phase", "Lobby"))
            return await subscriber.dispatch(JsonApiEvent("/lol-chat/v1/me", {}))

        assert asyncio.run(scenario()) is False
        assert [name for name, _ in seen] == ["ready", "session", "phase"]
        assert subscriber.events_dispatched == 3

    def test_handler_failure_does_not_stop_the_loop(self):
        seen = []

        async def failing(data):
            raise RuntimeError("boom")

        async def phase(data):
            seen.append(data)

        transport = FakeTransport(frames=[
            event_frame("/lol-matchmaking/v1/ready-check", {}),
            "garbage",
            event_frame("/lol-gameflow/v1/gameflow-phase", "Lobby"),
        ])
        subscriber = EventSubscriber(transport, [
            ("/lol-matchmaking/v1/ready-check", failing),
            ("/lol-gameflow/v1/gameflow-phase", phase),
        ])

        asyncio.run(subscriber.run())

        assert seen == ["Lobby"]
        assert subscriber.frames_received == 3
        assert transport.disconnect_calls == 1

    def test_stream_error_ends_run_and_disconnects(self):
        seen = []

        async def phase(data):
            seen.append(data)

        transport = FakeTransport(frames=[
            event_frame("/lol-gameflow/v1/gameflow-phase", "Lobby"),
            LCURequestError("socket closed"),
            event_frame("/lol-gameflow/v1/gameflow-phase", "Matchmaking"),
        ])
        subscriber = EventSubscriber(transport, [("/lol-gameflow/v1/gameflow-phase", phase)])

        asyncio.run(subscriber.run())

        assert seen == ["Lobby"]
        assert transport.disconnect_calls == 1
        assert not transport.is_connected
