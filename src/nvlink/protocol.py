"""Message encoding and decoding for the nvlink UDP protocol.

One message per datagram, flat UTF-8 text: the message type name, a
``:`` separator, then the raw value.  There is no length prefix; the
datagram boundary is the message boundary.

Example:
    >>> from nvlink.protocol import encode_message, decode_message, MessageType
    >>> raw = encode_message(MessageType.PROJECT_PATH, "/home/me/Game")
    >>> raw
    b'ProjectPath:/home/me/Game'
    >>> msg = decode_message(raw, ("127.0.0.1", 40000))
    >>> msg.type, msg.value
    (<MessageType.PROJECT_PATH: 'ProjectPath'>, '/home/me/Game')
"""

import enum
from dataclasses import dataclass

# -- Protocol constants ------------------------------------------------------

PROTO_SEPARATOR = ":"

# Largest datagram we send or accept.  Payloads are short strings (paths,
# commands), so anything bigger is a protocol error, not a fragment.
MAX_DATAGRAM = 8192


class MessageType(enum.Enum):
    """Protocol message kinds, valued by their wire identifier."""

    PING = "Ping"
    PONG = "Pong"
    PLAY = "Play"
    PLAY_TOGGLE = "PlayToggle"
    STOP = "Stop"
    PAUSE = "Pause"
    PAUSE_TOGGLE = "PauseToggle"
    UNPAUSE = "Unpause"
    BUILD = "Build"
    REFRESH = "Refresh"
    VERSION = "Version"
    UPDATE_PACKAGE = "UpdatePackage"
    PROJECT_PATH = "ProjectPath"
    EXECUTE_TESTS = "ExecuteTests"
    RETRIEVE_TEST_LIST = "RetrieveTestList"
    SHOW_USAGE = "ShowUsage"
    PING_OBJECT = "PingObject"

    # Never sent; stands in for identifiers we do not recognize.
    UNKNOWN = ""

    @classmethod
    def from_wire(cls, name: str) -> "MessageType":
        """Look up a wire identifier, falling back to UNKNOWN."""
        if not name:
            return cls.UNKNOWN
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Message:
    """A single decoded protocol message.

    ``origin`` is the sender's ``(host, port)`` and doubles as the reply
    address.  ``raw_type`` keeps the identifier as received, which only
    differs from ``type.value`` for UNKNOWN messages.
    """

    type: MessageType
    value: str = ""
    origin: tuple[str, int] | None = None
    raw_type: str = ""


# -- Encoding ----------------------------------------------------------------


def encode_message(msg_type: MessageType, value: str = "") -> bytes:
    """Build the datagram bytes for one message.

    Args:
        msg_type: Any MessageType except UNKNOWN.
        value: Payload string; may be empty and may contain ``:``.

    Returns:
        bytes: ``<Type>:<value>`` as UTF-8.

    Raises:
        ValueError: If *msg_type* is UNKNOWN or the result would not fit
            in one datagram.

    Example:
        >>> encode_message(MessageType.PING)
        b'Ping:'
    """
    if msg_type is MessageType.UNKNOWN:
        raise ValueError("cannot encode an UNKNOWN message")
    data = (msg_type.value + PROTO_SEPARATOR + value).encode("utf-8")
    if len(data) > MAX_DATAGRAM:
        raise ValueError(
            "message too large: {} bytes, maximum is {}".format(
                len(data), MAX_DATAGRAM
            )
        )
    return data


# -- Decoding ----------------------------------------------------------------


def decode_message(data: bytes, origin: tuple[str, int] | None = None) -> Message:
    """Parse one datagram into a Message.

    Only the first separator splits type from value.  A datagram with no
    separator is treated as a bare type with an empty value.  Unknown
    type names decode as ``MessageType.UNKNOWN`` so the caller can drop
    them quietly.  A trailing line ending on the type name (as sent by
    ``echo Ping | nc -u``) is ignored.

    Args:
        data: Raw datagram bytes.
        origin: Sender address as returned by ``recvfrom``.

    Returns:
        Message: The decoded message, tagged with *origin*.

    Raises:
        ValueError: If *data* is larger than MAX_DATAGRAM or is not
            valid UTF-8.

    Example:
        >>> decode_message(b"Refresh:", None).type
        <MessageType.REFRESH: 'Refresh'>
        >>> decode_message(b"Bogus:x", None).type
        <MessageType.UNKNOWN: ''>
    """
    if len(data) > MAX_DATAGRAM:
        raise ValueError(
            "datagram too large: {} bytes, maximum is {}".format(
                len(data), MAX_DATAGRAM
            )
        )
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError("datagram is not valid UTF-8: {}".format(exc)) from exc

    name, _, value = text.partition(PROTO_SEPARATOR)
    name = name.rstrip("\r\n")
    return Message(
        type=MessageType.from_wire(name),
        value=value,
        origin=origin,
        raw_type=name,
    )
