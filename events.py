JOIN_ROOM = "join-room"      # client -> server, data: room name
USER_JOINED = "user-joined"  # server -> client, data: connection id
SIGNAL = "signal"            # both ways, data: {to|from, signal}
USER_LEFT = "user-left"      # server -> client, data: connection id
CONNECTED = "connected"      # server -> client, data: own connection id

# **Frame shape**
# - `{"type": "<event>", "data": <payload>}` as a JSON text frame
# - `signal` payloads are opaque and are never inspected by the server


def frame(event: str, data=None) -> dict:
    return {"type": event, "data": data}
