import random
from typing import Optional
from events import SIGNAL, USER_JOINED, USER_LEFT
from peer.media import LocalMediaController, MediaCapture
from peer.rtc import AiortcPeer
from peer.sessions import PeerFactory, PeerSessionManager, Presentation
from logging_config import get_logger

logger = get_logger(__name__)


def random_room_id() -> str:
    return str(random.randrange(1000))


class Call:
    """What a user-facing caller drives: join, mute, switch camera, hang up.

    Wires the signaling channel into the session manager and the local
    media controller into both.
    """

    def __init__(self, channel, capture: MediaCapture, presentation: Presentation,
                 peer_factory: Optional[PeerFactory] = None):
        self.channel = channel
        self.room_id: Optional[str] = None
        self.sessions = PeerSessionManager(
            peer_factory or AiortcPeer,
            channel.send_signal,
            presentation,
            local_media=lambda: self.media.handle,
        )
        self.media = LocalMediaController(capture, self.sessions)
        self._hung_up = False

        channel.on(USER_JOINED, self.sessions.on_user_joined)
        channel.on(SIGNAL, self.sessions.on_signal)
        channel.on(USER_LEFT, self.sessions.on_user_left)
        channel.on("disconnect", self._on_disconnect)

    @property
    def hung_up(self) -> bool:
        return self._hung_up

    async def join(self, room_id: str):
        """Start local media, connect and announce ourselves.

        A DeviceError from the camera/microphone aborts the join.
        """
        if not isinstance(room_id, str) or not room_id:
            raise ValueError("room name must be a non-empty string")
        if self.room_id is not None:
            raise RuntimeError(f"already in room {self.room_id}")

        await self.media.start()
        if self._hung_up:
            return
        await self.channel.connect()
        if self._hung_up:
            return
        self.channel.join_room(room_id)
        self.room_id = room_id
        logger.info(f"Joined room {room_id}")

    async def create_room(self) -> str:
        room_id = random_room_id()
        await self.join(room_id)
        return room_id

    def mute(self):
        self.media.mute()

    def unmute(self):
        self.media.unmute()

    def toggle_mute(self) -> bool:
        return self.media.toggle_mute()

    async def switch_camera(self, facing: str):
        return await self.media.switch_camera(facing)

    async def hang_up(self):
        if self._hung_up:
            return
        self._hung_up = True
        self.sessions.hang_up()
        self.media.release()
        await self.channel.close()
        logger.info(f"Hung up{f' from room {self.room_id}' if self.room_id else ''}")

    def _on_disconnect(self):
        # established peer links do not depend on the server
        logger.warning("Signaling server connection lost; new participants will not be discovered")
