import argparse
import asyncio
import signal
from aiortc.contrib.media import MediaBlackhole
from constants import LOG_FILE, LOG_LEVEL, SIGNAL_URL
from peer.call import Call
from peer.channel import SignalingChannel
from peer.errors import DeviceError
from peer.rtc import PlayerCapture, spawn
from logging_config import get_logger, setup_logging

logger = get_logger(__name__)


class LoggingPresentation:
    """Headless stand-in for the video grid: logs and drains remote media."""

    def __init__(self):
        self._sinks = {}

    def on_remote_media_ready(self, remote_id, media):
        logger.info(f"Remote media ready from {remote_id}: {media}")
        sink = MediaBlackhole()
        for track in media.tracks():
            sink.addTrack(track)
        self._sinks[remote_id] = sink
        spawn(sink.start(), f"Draining media from {remote_id}")

    def on_remote_removed(self, remote_id):
        logger.info(f"Remote {remote_id} removed")
        sink = self._sinks.pop(remote_id, None)
        if sink is not None:
            spawn(sink.stop(), f"Stopping media drain for {remote_id}")


async def run(args):
    capture = PlayerCapture()
    if args.video_file:
        capture = PlayerCapture(video_devices={"user": args.video_file, "environment": args.video_file},
                                video_format=None)
    call = Call(SignalingChannel(args.server), capture, LoggingPresentation())

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        if args.room:
            await call.join(args.room)
            room_id = args.room
        else:
            room_id = await call.create_room()
        logger.info(f"In room {room_id}, press Ctrl+C to hang up")
        if args.muted:
            call.mute()
        await stop.wait()
    except DeviceError as e:
        logger.error(f"Camera/Mic access failed: {e}")
        return 1
    finally:
        await call.hang_up()
    return 0


def main():
    parser = argparse.ArgumentParser(description='Headless video chat participant')
    parser.add_argument('--server', default=SIGNAL_URL, help='Signaling WebSocket URL')
    parser.add_argument('--room', default=None, help='Room to join; a new one is created when omitted')
    parser.add_argument('--video-file', default=None, help='Send this media file instead of the camera')
    parser.add_argument('--muted', action='store_true', help='Join with the microphone muted')
    args = parser.parse_args()

    setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
    raise SystemExit(asyncio.run(run(args)))


if __name__ == '__main__':
    main()
