#!/usr/bin/env python3
"""Send one nvlink message and print any reply.

Acts as a minimal editor-side client for poking a running session by
hand.

Usage:
    python nvlink_send.py <port> <type> [value] [--host HOST] [--wait SECONDS]

Args:
    port: Messaging port of the host (see ``messaging_port``).
    type: Message type name, e.g. Ping, ProjectPath, PlayToggle.
    value: Optional payload string.

Example:
    python nvlink_send.py 56236 Ping
    python nvlink_send.py 56236 PingObject Scripts/Player.cs
"""

import argparse
import socket
import sys

# Add parent src to path so we can import nvlink
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1] / "src"))

from nvlink.protocol import (  # noqa: E402
    MAX_DATAGRAM,
    MessageType,
    decode_message,
    encode_message,
)


def send(host, port, msg_type, value, wait):
    """Send one message and return the reply Message, or None on timeout.

    Args:
        host: Destination host.
        port: Destination port (int).
        msg_type: MessageType to send.
        value: Payload string.
        wait: Seconds to wait for a reply.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.settimeout(wait)
        sock.sendto(encode_message(msg_type, value), (host, port))
        try:
            data, addr = sock.recvfrom(MAX_DATAGRAM)
        except socket.timeout:
            return None
        return decode_message(data, addr)
    finally:
        sock.close()


def main():
    """Parse arguments, send, print the reply."""
    parser = argparse.ArgumentParser(description="send one nvlink message")
    parser.add_argument("port", type=int)
    parser.add_argument("type", help="message type, e.g. Ping")
    parser.add_argument("value", nargs="?", default="")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--wait", type=float, default=1.0)
    args = parser.parse_args()

    msg_type = MessageType.from_wire(args.type)
    if msg_type is MessageType.UNKNOWN:
        parser.error("unknown message type: %s" % args.type)

    reply = send(args.host, args.port, msg_type, args.value, args.wait)
    if reply is None:
        print("no reply", flush=True)
        return 1
    print("{}: {}".format(reply.type.value, reply.value), flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
