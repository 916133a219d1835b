import pytest
from peer.channel import SignalingChannel


@pytest.fixture
def channel():
    return SignalingChannel("ws://localhost:5000/ws")


async def test_handshake_records_connection_id(channel):
    channel.dispatch('{"type": "connected", "data": "abc"}')
    assert channel.connection_id == "abc"


async def test_inbound_events_are_emitted(channel):
    seen = []
    channel.on("user-joined", lambda remote_id: seen.append(("joined", remote_id)))
    channel.on("signal", lambda remote_id, payload: seen.append(("signal", remote_id, payload)))
    channel.on("user-left", lambda remote_id: seen.append(("left", remote_id)))

    channel.dispatch('{"type": "user-joined", "data": "b"}')
    channel.dispatch('{"type": "signal", "data": {"from": "b", "signal": {"type": "offer", "sdp": "S1"}}}')
    channel.dispatch('{"type": "user-left", "data": "b"}')

    assert seen == [
        ("joined", "b"),
        ("signal", "b", {"type": "offer", "sdp": "S1"}),
        ("left", "b"),
    ]


async def test_malformed_frames_are_ignored(channel):
    seen = []
    channel.on("signal", lambda *args: seen.append(args))

    channel.dispatch("not json")
    channel.dispatch('{"type": "signal", "data": {"signal": "no sender"}}')
    channel.dispatch('{"type": "user-joined", "data": 7}')

    assert seen == []


async def test_send_after_close_is_dropped(channel):
    await channel.close()
    await channel.close()

    channel.send_signal("b", "S1")
    assert channel.closed
