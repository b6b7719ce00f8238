"""Signaling protocol definitions for rtc-mesh.

This module defines the message types exchanged between mesh clients and the
signaling relay over a WebSocket connection.

Message Protocol Overview
-------------------------

Every frame is a JSON object. The ``type`` field names the event, the other
fields carry its arguments by name. The relay never looks inside ``payload``;
it is forwarded exactly as received.

Message Types
-------------

**join-room**
    Sent by: Client
    Fields: ``room_id``, ``member_id``
    Purpose: Enter a room. Only one room per connection.

**existing-users**
    Sent by: Relay (to the joining client only)
    Fields: ``members``
    Purpose: Members already in the room at join time, in join order,
    never including the requester.

**user-connected** / **user-disconnected**
    Sent by: Relay (to the other members of the room)
    Fields: ``member_id``
    Purpose: Membership change notifications.

**offer** / **answer** / **ice-candidate**
    Sent by: Either client, relayed by the server
    Fields: ``payload``, ``room_id`` (client to relay only), ``member_id``
    (always the sender), ``target_id`` (addressed member, optional)

**error**
    Sent by: Relay
    Fields: ``reason``, ``message``
    Purpose: Tells a client that its last frame was dropped.

Message Flow Example
--------------------

1. A → Relay: join-room(r1, A)
2. Relay → A: existing-users([])
3. B → Relay: join-room(r1, B)
4. Relay → A: user-connected(B)
5. Relay → B: existing-users([A])
6. A → Relay → B: offer(sdp, A, target=B)
7. B → Relay → A: answer(sdp, B, target=A)
8. A ↔ B: ice-candidate(...) in both directions

Payload Shapes
--------------

Session descriptions: ``{"sdp": "v=0...", "type": "offer"}``

ICE candidates: ``{"candidate": "candidate:...", "sdpMid": "0", "sdpMLineIndex": 0}``.
An empty ``candidate`` string marks the end of candidates.
"""

import json
from typing import Any, Dict

# Client → Relay
MSG_JOIN_ROOM = "join-room"

# Relay → Client
MSG_EXISTING_USERS = "existing-users"
MSG_USER_CONNECTED = "user-connected"
MSG_USER_DISCONNECTED = "user-disconnected"
MSG_ERROR = "error"

# Relayed in both directions
MSG_OFFER = "offer"
MSG_ANSWER = "answer"
MSG_ICE_CANDIDATE = "ice-candidate"

RELAYED_TYPES = frozenset({MSG_OFFER, MSG_ANSWER, MSG_ICE_CANDIDATE})

KNOWN_TYPES = frozenset(
    {
        MSG_JOIN_ROOM,
        MSG_EXISTING_USERS,
        MSG_USER_CONNECTED,
        MSG_USER_DISCONNECTED,
        MSG_ERROR,
    }
    | RELAYED_TYPES
)

# Error reasons sent back by the relay
ERROR_INVALID_MESSAGE = "invalid_message"
ERROR_UNKNOWN_ROOM = "unknown_room"
ERROR_UNKNOWN_MEMBER = "unknown_member"
ERROR_ALREADY_JOINED = "already_joined"


class ProtocolError(ValueError):
    """Raised when a frame cannot be understood.

    Handlers catch it, log it and drop the frame; it never terminates a
    connection.
    """


def format_message(msg_type: str, **fields: Any) -> str:
    """Format a protocol frame.

    Fields whose value is ``None`` are omitted.

    Examples:
        >>> format_message(MSG_USER_CONNECTED, member_id="B")
        '{"type": "user-connected", "member_id": "B"}'
    """
    message = {"type": msg_type}
    message.update({key: value for key, value in fields.items() if value is not None})
    return json.dumps(message)


def parse_message(raw) -> Dict[str, Any]:
    """Parse a protocol frame into a dictionary.

    Raises:
        ProtocolError: The frame is not a JSON object or has an unknown type.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Frame is not UTF-8 text: {e}") from e

    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"Frame is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Frame must be a JSON object")

    msg_type = data.get("type")
    if msg_type not in KNOWN_TYPES:
        raise ProtocolError(f"Unknown message type: {msg_type!r}")

    return data


def require_id(data: Dict[str, Any], field: str) -> str:
    """Return a non-empty string id field from a parsed frame.

    Raises:
        ProtocolError: The field is missing, empty, or not a string.
    """
    value = data.get(field)
    if not isinstance(value, str) or not value:
        raise ProtocolError(
            f"{data.get('type')} requires a non-empty string '{field}'"
        )
    return value
