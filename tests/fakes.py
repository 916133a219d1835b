import asyncio
from pyee import EventEmitter
from peer.errors import DeviceError
from peer.media import MediaHandle


class FakeTrack:
    def __init__(self, kind, name=""):
        self.kind = kind
        self.name = name
        self.enabled = True
        self.stop_calls = 0

    def stop(self):
        self.stop_calls += 1

    def __repr__(self):
        return f"FakeTrack({self.kind}, {self.name})"


class FakeCapture:
    """acquire() hands out fresh fake tracks, or raises `error` when set."""

    def __init__(self):
        self.requests = []
        self.error = None
        self.gate = None
        self.handles = []

    async def acquire(self, constraints):
        self.requests.append(constraints)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        tracks = []
        video = constraints.get("video")
        if video:
            facing = video.get("facingMode", "user") if isinstance(video, dict) else "user"
            tracks.append(FakeTrack("video", facing))
        if constraints.get("audio"):
            tracks.append(FakeTrack("audio", "mic"))
        handle = MediaHandle(tracks)
        self.handles.append(handle)
        return handle

    def deny(self):
        self.error = DeviceError("Permission denied")


class FakePeer(EventEmitter):
    def __init__(self, initiator, local_media):
        super().__init__()
        self.initiator = initiator
        self.local_media = local_media
        self.accepted = []
        self.video_tracks = []
        self.destroy_calls = 0

    def accept_signal(self, payload):
        self.accepted.append(payload)

    def replace_video_track(self, track):
        self.video_tracks.append(track)

    def destroy(self):
        self.destroy_calls += 1
        self.emit("close")


class LegacyPeer(FakePeer):
    def replace_video_track(self, track):
        raise NotImplementedError("replaceTrack unsupported")


class PeerFactory:
    def __init__(self, peer_class=FakePeer):
        self.peer_class = peer_class
        self.created = []

    def __call__(self, initiator, local_media):
        peer = self.peer_class(initiator, local_media)
        self.created.append(peer)
        return peer


class RecordingPresentation:
    def __init__(self):
        self.ready = []
        self.removed = []

    def on_remote_media_ready(self, remote_id, media):
        self.ready.append((remote_id, media))

    def on_remote_removed(self, remote_id):
        self.removed.append(remote_id)


class FakeChannel(EventEmitter):
    def __init__(self):
        super().__init__()
        self.connection_id = None
        self.connect_calls = 0
        self.close_calls = 0
        self.rooms = []
        self.signals = []

    async def connect(self):
        self.connect_calls += 1
        self.connection_id = "me"
        await asyncio.sleep(0)

    def join_room(self, room_id):
        self.rooms.append(room_id)

    def send_signal(self, to, signal):
        self.signals.append((to, signal))

    async def close(self):
        self.close_calls += 1


class RecordingConnection:
    """Stands in for relay.Connection without a socket."""

    def __init__(self, connection_id):
        self.connection_id = connection_id
        self.messages = []
        self.closed = False

    def deliver(self, message):
        if self.closed:
            return False
        self.messages.append(message)
        return True

    def close(self):
        self.closed = True
