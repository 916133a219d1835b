from typing import Any, Dict, List, Optional, Protocol
from peer.errors import DeviceError
from logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONSTRAINTS = {"video": {"facingMode": "user"}, "audio": True}


class MediaCapture(Protocol):
    async def acquire(self, constraints: dict) -> "MediaHandle":
        """Open capture devices; raises DeviceError when denied or busy."""
        ...


class MediaHandle:
    """A set of live tracks, at most one per kind for local capture."""

    def __init__(self, tracks=None):
        self._tracks: List[Any] = list(tracks or [])

    def tracks(self, kind: Optional[str] = None) -> List[Any]:
        if kind is None:
            return list(self._tracks)
        return [track for track in self._tracks if track.kind == kind]

    def add_track(self, track):
        if track not in self._tracks:
            self._tracks.append(track)

    def remove_track(self, track):
        if track in self._tracks:
            self._tracks.remove(track)

    def __repr__(self):
        return f"MediaHandle({[track.kind for track in self._tracks]})"


class LocalMediaController:
    """Sole owner of the local capture handle and its tracks.

    Camera switches are pushed to every live peer session through
    `sessions.replace_video_track`.
    """

    def __init__(self, capture: MediaCapture, sessions=None):
        self.capture = capture
        self.sessions = sessions
        self.handle: Optional[MediaHandle] = None
        self.facing = DEFAULT_CONSTRAINTS["video"]["facingMode"]
        self._pre_mute: Optional[Dict[int, bool]] = None
        self._released = False

    @property
    def muted(self) -> bool:
        return self._pre_mute is not None

    @property
    def released(self) -> bool:
        return self._released

    async def start(self, constraints: Optional[dict] = None) -> Optional[MediaHandle]:
        """Open the initial capture. Returns None if released meanwhile."""
        if self.handle is not None or self._released:
            return self.handle
        constraints = constraints or DEFAULT_CONSTRAINTS
        handle = await self.capture.acquire(constraints)
        if self._released:
            logger.info("Capture finished after release, stopping it")
            _stop_all(handle)
            return None
        video = constraints.get("video")
        if isinstance(video, dict) and video.get("facingMode"):
            self.facing = video["facingMode"]
        self.handle = handle
        logger.info(f"Local media started: {handle}")
        return handle

    def mute(self):
        if self.handle is None or self.muted:
            return
        self._pre_mute = {}
        for track in self.handle.tracks("audio"):
            self._pre_mute[id(track)] = track.enabled
            track.enabled = False
        logger.info("Microphone muted")

    def unmute(self):
        if self.handle is None or not self.muted:
            return
        for track in self.handle.tracks("audio"):
            track.enabled = self._pre_mute.get(id(track), True)
        self._pre_mute = None
        logger.info("Microphone unmuted")

    def toggle_mute(self) -> bool:
        if self.muted:
            self.unmute()
        else:
            self.mute()
        return self.muted

    async def switch_camera(self, facing: str):
        """Swap the outbound video track for one with the given facing mode.

        If the new capture cannot be opened the DeviceError propagates and
        nothing (local handle, peer sessions) is touched.
        """
        if self.handle is None or self._released:
            logger.debug("No local media, camera switch ignored")
            return None

        new_handle = await self.capture.acquire({"video": {"facingMode": facing}, "audio": False})
        new_tracks = new_handle.tracks("video")
        if self._released or self.handle is None:
            _stop_all(new_handle)
            logger.info("Camera switch finished after release, discarded")
            return None
        if not new_tracks:
            _stop_all(new_handle)
            raise DeviceError(f"no video track for facing mode {facing!r}")

        new_track = new_tracks[0]
        for extra in new_handle.tracks():
            if extra is not new_track:
                extra.stop()

        for old_track in self.handle.tracks("video"):
            old_track.stop()
            self.handle.remove_track(old_track)
        self.handle.add_track(new_track)
        self.facing = facing

        if self.sessions is not None:
            self.sessions.replace_video_track(new_track)
        logger.info(f"Camera switched to {facing}")
        return new_track

    def release(self):
        """Stop every local track exactly once. Safe to call again."""
        if self._released:
            return
        self._released = True
        if self.handle is not None:
            _stop_all(self.handle)
            logger.info("Local media released")
        self._pre_mute = None


def _stop_all(handle: MediaHandle):
    for track in handle.tracks():
        track.stop()
