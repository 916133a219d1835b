import logging
import pytest
from peer.errors import PeerNegotiationError
from peer.media import MediaHandle
from peer.sessions import PeerSessionManager, SessionState
from fakes import FakeTrack, LegacyPeer, PeerFactory


@pytest.fixture
def local_media():
    return MediaHandle([FakeTrack("video", "user"), FakeTrack("audio", "mic")])


@pytest.fixture
def sent():
    return []


@pytest.fixture
def manager(peers, presentation, local_media, sent):
    return PeerSessionManager(peers, lambda to, signal: sent.append((to, signal)), presentation, lambda: local_media)


def test_user_joined_creates_initiator_session(manager, peers, local_media):
    manager.on_user_joined("b")

    assert manager.state_of("b") is SessionState.NEGOTIATING
    (peer,) = peers.created
    assert peer.initiator is True
    assert peer.local_media is local_media


def test_unknown_signal_creates_responder_and_forwards(manager, peers):
    manager.on_signal("b", {"type": "offer", "sdp": "S1"})

    (peer,) = peers.created
    assert peer.initiator is False
    assert peer.accepted == [{"type": "offer", "sdp": "S1"}]
    assert manager.get("b").initiator is False


@pytest.mark.parametrize("order", [("joined", "signal"), ("signal", "joined")])
def test_one_session_per_remote(manager, peers, order):
    for event in order:
        if event == "joined":
            manager.on_user_joined("b")
        else:
            manager.on_signal("b", "S1")
    manager.on_user_joined("b")

    assert len(peers.created) == 1
    assert len(manager) == 1
    assert peers.created[0].accepted == ["S1"]


def test_signals_reach_the_peer_in_order(manager, peers):
    for n in range(5):
        manager.on_signal("b", {"n": n})
    assert peers.created[0].accepted == [{"n": n} for n in range(5)]


def test_outbound_signals_are_addressed_to_the_remote(manager, peers, sent):
    manager.on_user_joined("b")
    peers.created[0].emit("signal", {"type": "offer", "sdp": "S1"})

    assert sent == [("b", {"type": "offer", "sdp": "S1"})]


def test_stream_connects_and_notifies_once(manager, peers, presentation):
    manager.on_user_joined("b")
    remote = MediaHandle([FakeTrack("video", "remote")])

    peers.created[0].emit("stream", remote)
    peers.created[0].emit("stream", remote)

    assert manager.state_of("b") is SessionState.CONNECTED
    assert manager.get("b").remote_media is remote
    assert presentation.ready == [("b", remote)]


def test_user_left_closes_session(manager, peers, presentation):
    manager.on_user_joined("b")
    session = manager.get("b")
    peers.created[0].emit("stream", MediaHandle())

    manager.on_user_left("b")

    assert session.state is SessionState.CLOSED
    assert manager.state_of("b") is SessionState.ABSENT
    assert peers.created[0].destroy_calls == 1
    assert presentation.removed == ["b"]

    manager.on_user_left("b")
    assert peers.created[0].destroy_calls == 1
    assert presentation.removed == ["b"]


@pytest.mark.parametrize("event, args", [
    ("error", (PeerNegotiationError("ice failed"),)),
    ("error", (RuntimeError("boom"),)),
    ("close", ()),
])
def test_peer_failure_is_treated_as_leaving(manager, peers, presentation, event, args):
    manager.on_user_joined("b")
    peers.created[0].emit(event, *args)

    assert "b" not in manager
    assert peers.created[0].destroy_calls == 1
    assert presentation.removed == ["b"]


def test_events_from_a_closed_peer_are_ignored(manager, peers, presentation, sent):
    manager.on_user_joined("b")
    old_peer = peers.created[0]
    manager.on_user_left("b")
    manager.on_user_joined("b")

    old_peer.emit("signal", "late")
    old_peer.emit("stream", MediaHandle())
    old_peer.emit("close")

    assert sent == []
    assert presentation.ready == []
    assert manager.state_of("b") is SessionState.NEGOTIATING
    assert manager.get("b").peer is peers.created[1]


def test_hang_up_destroys_everything_once(manager, peers, presentation):
    for remote_id in ("b", "c", "d"):
        manager.on_user_joined(remote_id)

    manager.hang_up()
    manager.hang_up()

    assert [peer.destroy_calls for peer in peers.created] == [1, 1, 1]
    assert sorted(presentation.removed) == ["b", "c", "d"]
    assert len(manager) == 0


def test_triggers_after_hang_up_are_ignored(manager, peers):
    manager.hang_up()
    manager.on_user_joined("b")
    manager.on_signal("c", "S1")

    assert peers.created == []
    assert manager.torn_down


def test_replace_video_track_reaches_every_session(manager, peers):
    manager.on_user_joined("b")
    manager.on_signal("c", "S1")
    track = FakeTrack("video", "environment")

    manager.replace_video_track(track)

    assert [peer.video_tracks for peer in peers.created] == [[track], [track]]


def test_replace_video_track_falls_back_to_renegotiation(presentation, local_media, sent, caplog):
    peers = PeerFactory(LegacyPeer)
    manager = PeerSessionManager(peers, lambda to, signal: sent.append((to, signal)), presentation, lambda: local_media)
    manager.on_signal("b", "S1")

    with caplog.at_level(logging.WARNING, logger="peer.sessions"):
        manager.replace_video_track(FakeTrack("video", "environment"))

    assert "remote must close its old session" in caplog.text
    assert len(peers.created) == 2
    assert peers.created[0].destroy_calls == 1
    assert peers.created[1].initiator is True
    assert manager.get("b").peer is peers.created[1]
    assert presentation.removed == ["b"]
