from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Tuple
from logging_config import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    ABSENT = "absent"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


class Presentation(Protocol):
    """Whatever renders remote media. Notified, never queried."""

    def on_remote_media_ready(self, remote_id: str, media: Any) -> None: ...

    def on_remote_removed(self, remote_id: str) -> None: ...


# (initiator, local_media) -> peer handle emitting signal/stream/close/error
PeerFactory = Callable[[bool, Any], Any]
SendSignal = Callable[[str, Any], None]


@dataclass
class PeerSession:
    remote_id: str
    peer: Any
    initiator: bool
    state: SessionState = SessionState.NEGOTIATING
    remote_media: Any = None


class PeerSessionManager:
    """Owns one peer connection per remote participant in the current room.

    Every trigger that may create a session (user-joined, a signal from an
    unknown remote) goes through get_or_create(), so a remote can never end
    up with two peer handles. Events from a peer whose session has already
    been replaced or closed are ignored.
    """

    def __init__(self, peer_factory: PeerFactory, send_signal: SendSignal,
                 presentation: Presentation, local_media: Callable[[], Any]):
        self.peer_factory = peer_factory
        self.send_signal = send_signal
        self.presentation = presentation
        self.local_media = local_media
        self._sessions: Dict[str, PeerSession] = {}
        self._torn_down = False

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, remote_id):
        return remote_id in self._sessions

    def get(self, remote_id: str) -> Optional[PeerSession]:
        return self._sessions.get(remote_id)

    def sessions(self):
        return list(self._sessions.values())

    def state_of(self, remote_id: str) -> SessionState:
        session = self._sessions.get(remote_id)
        return session.state if session else SessionState.ABSENT

    def get_or_create(self, remote_id: str, initiator: bool) -> Tuple[Optional[PeerSession], bool]:
        if self._torn_down:
            logger.debug(f"Ignoring session request for {remote_id} after hang-up")
            return None, False

        session = self._sessions.get(remote_id)
        if session is not None:
            logger.debug(f"Session for {remote_id} already exists ({session.state.value}), reusing it")
            return session, False

        peer = self.peer_factory(initiator, self.local_media())
        session = PeerSession(remote_id=remote_id, peer=peer, initiator=initiator)
        self._sessions[remote_id] = session
        self._bind(session)
        logger.info(f"Session for {remote_id} created as {'initiator' if initiator else 'responder'}")
        return session, True

    def on_user_joined(self, remote_id: str):
        self.get_or_create(remote_id, initiator=True)

    def on_signal(self, remote_id: str, payload):
        session, _ = self.get_or_create(remote_id, initiator=False)
        if session is None:
            return
        session.peer.accept_signal(payload)

    def on_user_left(self, remote_id: str):
        logger.info(f"Remote {remote_id} left")
        self.close(remote_id)

    def close(self, remote_id: str, reason: str = "closed") -> bool:
        session = self._sessions.pop(remote_id, None)
        if session is None:
            return False
        session.state = SessionState.CLOSED
        session.peer.destroy()
        self.presentation.on_remote_removed(remote_id)
        logger.info(f"Session for {remote_id} closed ({reason})")
        return True

    def hang_up(self):
        """Close every session. Later triggers are ignored."""
        self._torn_down = True
        for remote_id in list(self._sessions):
            self.close(remote_id, reason="hang-up")

    def replace_video_track(self, track):
        for session in list(self._sessions.values()):
            try:
                session.peer.replace_video_track(track)
            except NotImplementedError:
                # the remote still holds its old session and will feed the new offer into it,
                # so this only connects once that side has dropped the old peer
                logger.warning(f"Peer for {session.remote_id} cannot replace tracks, re-offering from a new peer; "
                               f"the remote must close its old session before the new one can connect")
                self.close(session.remote_id, reason="track replacement unsupported")
                self.get_or_create(session.remote_id, initiator=True)

    def _bind(self, session: PeerSession):
        remote_id = session.remote_id
        peer = session.peer

        def is_current():
            return self._sessions.get(remote_id) is session

        def on_signal(payload):
            if is_current():
                self.send_signal(remote_id, payload)

        def on_stream(media):
            if not is_current() or session.state is not SessionState.NEGOTIATING:
                return
            session.state = SessionState.CONNECTED
            session.remote_media = media
            logger.info(f"Media received from {remote_id}")
            self.presentation.on_remote_media_ready(remote_id, media)

        def on_close():
            if is_current():
                self.close(remote_id, reason="peer closed")

        def on_error(error):
            # PeerNegotiationError or whatever the handle raised; same as the remote leaving
            logger.warning(f"Peer error for {remote_id}: {error!r}")
            if is_current():
                self.close(remote_id, reason="peer error")

        peer.on("signal", on_signal)
        peer.on("stream", on_stream)
        peer.on("close", on_close)
        peer.on("error", on_error)
