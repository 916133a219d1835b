import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 5000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
STATIC_DIR = os.getenv("STATIC_DIR", None)

ROOM_SLUG_LENGTH = int(os.getenv("ROOM_SLUG_LENGTH", 8))

SIGNAL_URL = os.getenv("SIGNAL_URL", f"ws://localhost:{PORT}/ws")

STUN_URLS = os.getenv("STUN_URLS", "stun:stun.l.google.com:19302").split(",")
TURN_URLS = [url for url in os.getenv(
    "TURN_URLS",
    "turn:openrelay.metered.ca:80,turn:openrelay.metered.ca:443,turn:openrelay.metered.ca:443?transport=tcp",
).split(",") if url]
TURN_USERNAME = os.getenv("TURN_USERNAME", "openrelayproject")
TURN_CREDENTIAL = os.getenv("TURN_CREDENTIAL", "openrelayproject")

# facingMode -> capture device
CAMERA_DEVICES = {
    "user": os.getenv("CAMERA_USER_DEVICE", "/dev/video0"),
    "environment": os.getenv("CAMERA_ENVIRONMENT_DEVICE", "/dev/video1"),
}
CAMERA_FORMAT = os.getenv("CAMERA_FORMAT", "v4l2")
AUDIO_DEVICE = os.getenv("AUDIO_DEVICE", "default")
AUDIO_FORMAT = os.getenv("AUDIO_FORMAT", "pulse")
