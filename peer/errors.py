class DeviceError(Exception):
    """Capture device denied, busy or missing."""


class PeerNegotiationError(Exception):
    """The peer connection for one remote failed."""
