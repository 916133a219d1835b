"""aiortc-backed implementations of the peer-connection and capture capabilities.

Signal payloads follow the non-trickle shape browsers using simple-peer
exchange: {"type": "offer" | "answer", "sdp": "..."}. Trickled
{"type": "candidate", "candidate": {...}} payloads are accepted too.
"""
import asyncio
from typing import Optional
from aiortc import MediaStreamTrack, RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.contrib.media import MediaPlayer, MediaRelay
from aiortc.sdp import candidate_from_sdp
from av.error import FFmpegError
from pyee.asyncio import AsyncIOEventEmitter
from constants import (
    AUDIO_DEVICE, AUDIO_FORMAT, CAMERA_DEVICES, CAMERA_FORMAT,
    STUN_URLS, TURN_CREDENTIAL, TURN_URLS, TURN_USERNAME,
)
from peer.errors import DeviceError, PeerNegotiationError
from peer.media import MediaHandle
from logging_config import get_logger

logger = get_logger(__name__)

# fans each local track out to every peer connection; an RTCRtpSender pulls
# frames with recv(), so sharing one track between senders would split them
media_relay = MediaRelay()

_background = set()


def spawn(coro, description: str) -> asyncio.Future:
    """Run a fire-and-forget coroutine, keeping it referenced and logging failures."""
    task = asyncio.ensure_future(coro)
    _background.add(task)

    def done(task):
        _background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"{description} failed: {task.exception()!r}")

    task.add_done_callback(done)
    return task


def ice_configuration() -> RTCConfiguration:
    servers = [RTCIceServer(urls=STUN_URLS)]
    if TURN_URLS:
        servers.append(RTCIceServer(urls=TURN_URLS, username=TURN_USERNAME, credential=TURN_CREDENTIAL))
    return RTCConfiguration(iceServers=servers)


class SwitchableTrack(MediaStreamTrack):
    """Relays a capture track and adds the `enabled` flag aiortc lacks.

    A disabled audio track keeps sending frames, but silent ones, so the
    remote side sees mute without renegotiation.
    """

    def __init__(self, source: MediaStreamTrack):
        super().__init__()
        self.kind = source.kind
        self.source = source
        self.enabled = True

    async def recv(self):
        frame = await self.source.recv()
        if not self.enabled and self.kind == "audio":
            for plane in frame.planes:
                plane.update(bytes(plane.buffer_size))
        return frame

    def stop(self):
        super().stop()
        self.source.stop()


class PlayerCapture:
    """Opens capture devices with aiortc's MediaPlayer.

    facingMode picks the camera from `video_devices`; a path to a media file
    works as well, which is handy for headless participants.
    """

    def __init__(self, video_devices=None, video_format=CAMERA_FORMAT,
                 audio_device=AUDIO_DEVICE, audio_format=AUDIO_FORMAT, video_options=None):
        self.video_devices = dict(video_devices or CAMERA_DEVICES)
        self.video_format = video_format or None
        self.audio_device = audio_device
        self.audio_format = audio_format or None
        self.video_options = video_options or {}

    async def acquire(self, constraints: dict) -> MediaHandle:
        loop = asyncio.get_running_loop()
        tracks = []
        try:
            video = constraints.get("video")
            if video:
                facing = video.get("facingMode", "user") if isinstance(video, dict) else "user"
                device = self.video_devices.get(facing)
                if not device:
                    raise DeviceError(f"no camera configured for facing mode {facing!r}")
                player = await loop.run_in_executor(
                    None, lambda: MediaPlayer(device, format=self.video_format, options=self.video_options))
                if player.video is None:
                    raise DeviceError(f"{device} has no video stream")
                tracks.append(SwitchableTrack(player.video))

            if constraints.get("audio"):
                player = await loop.run_in_executor(
                    None, lambda: MediaPlayer(self.audio_device, format=self.audio_format))
                if player.audio is None:
                    raise DeviceError(f"{self.audio_device} has no audio stream")
                tracks.append(SwitchableTrack(player.audio))
        except (OSError, FFmpegError, DeviceError) as e:
            for track in tracks:
                track.stop()
            logger.warning(f"Capture failed for {constraints}: {e}")
            if isinstance(e, DeviceError):
                raise
            raise DeviceError(str(e)) from e

        return MediaHandle(tracks)


class AiortcPeer(AsyncIOEventEmitter):
    """One RTCPeerConnection to one remote participant.

    Emits "signal" (payload), "stream" (MediaHandle), "close" and
    "error" (PeerNegotiationError). Inbound signals are applied strictly in
    the order accept_signal() received them, by a single worker task.

    Local tracks are sent through relay subscriptions, so any number of
    peers can share one capture and each still gets every frame.
    """

    def __init__(self, initiator: bool, local_media: Optional[MediaHandle] = None,
                 configuration: Optional[RTCConfiguration] = None, relay: Optional[MediaRelay] = None):
        super().__init__()
        self.initiator = initiator
        self.pc = RTCPeerConnection(configuration or ice_configuration())
        self.relay = relay or media_relay
        self.remote_media = MediaHandle()
        self.closing: Optional[asyncio.Future] = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._stream_emitted = False
        self._destroyed = False

        if local_media is not None:
            for track in local_media.tracks():
                self.pc.addTrack(self.relay.subscribe(track))
        elif initiator:
            self.pc.addTransceiver("audio", direction="recvonly")
            self.pc.addTransceiver("video", direction="recvonly")

        self.pc.on("track", self._on_track)
        self.pc.on("connectionstatechange", self._on_connection_state)
        # the offer is produced from the worker, after the owner has subscribed
        self._worker = asyncio.ensure_future(self._run())

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def accept_signal(self, payload):
        if self._destroyed:
            return
        self._inbox.put_nowait(payload)

    def replace_video_track(self, track):
        for sender in self.pc.getSenders():
            if sender.track is not None and sender.track.kind == "video":
                previous = sender.track
                sender.replaceTrack(self.relay.subscribe(track))
                previous.stop()
                return
        raise NotImplementedError("no outbound video sender to replace")

    def destroy(self):
        if self._destroyed:
            return
        self._destroyed = True
        self._worker.cancel()
        # unsubscribe from the relay; the local tracks themselves belong to the media controller
        for sender in self.pc.getSenders():
            if sender.track is not None:
                sender.track.stop()
        self.closing = spawn(self.pc.close(), "Closing peer connection")
        self.emit("close")

    async def _run(self):
        try:
            if self.initiator:
                await self._send_local(await self.pc.createOffer())
            while True:
                payload = await self._inbox.get()
                await self._apply(payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Negotiation failed: {e}", exc_info=True)
            if not self._destroyed:
                self.emit("error", PeerNegotiationError(str(e)))

    async def _send_local(self, description):
        # aiortc gathers every candidate inside setLocalDescription
        await self.pc.setLocalDescription(description)
        local = self.pc.localDescription
        if not self._destroyed:
            self.emit("signal", {"type": local.type, "sdp": local.sdp})

    async def _apply(self, payload):
        if not isinstance(payload, dict):
            logger.warning(f"Ignoring non-object signal: {payload!r}")
            return

        kind = payload.get("type")
        if kind in ("offer", "answer") and payload.get("sdp"):
            await self.pc.setRemoteDescription(RTCSessionDescription(sdp=payload["sdp"], type=kind))
            if self.remote_media.tracks() and not self._stream_emitted:
                self._stream_emitted = True
                self.emit("stream", self.remote_media)
            if kind == "offer":
                await self._send_local(await self.pc.createAnswer())
        elif kind == "candidate" or "candidate" in payload:
            candidate = payload.get("candidate") or {}
            sdp = candidate.get("candidate", "")
            if not sdp:
                return  # end-of-candidates
            if sdp.startswith("candidate:"):
                sdp = sdp[len("candidate:"):]
            ice = candidate_from_sdp(sdp)
            ice.sdpMid = candidate.get("sdpMid")
            ice.sdpMLineIndex = candidate.get("sdpMLineIndex")
            await self.pc.addIceCandidate(ice)
        else:
            logger.debug(f"Ignoring signal of type {kind!r}")

    def _on_track(self, track):
        logger.debug(f"Remote {track.kind} track received")
        self.remote_media.add_track(track)

    async def _on_connection_state(self):
        state = self.pc.connectionState
        logger.debug(f"Connection state: {state}")
        if self._destroyed:
            return
        if state == "failed":
            self.emit("error", PeerNegotiationError("connection failed"))
        elif state == "closed":
            self.emit("close")
