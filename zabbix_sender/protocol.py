"""
Zabbix sender protocol framing.

Every message is ``ZBXD\\x01`` followed by the body length as an 8 byte
little-endian unsigned integer and the JSON body itself.
https://www.zabbix.com/documentation/current/manual/appendix/protocols/header_datalen
"""
import json
import logging
import socket
import struct
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .errors import ProtocolError
from .metric import Metric, Timestamp, to_clock
from .response import Response

logger = logging.getLogger(__name__)

HEADER = b'ZBXD\x01'
HEADER_LENGTH = len(HEADER) + 8

AGENT_DATA = 'agent data'
SENDER_DATA = 'sender data'
ACTIVE_CHECKS = 'active checks'

_LENGTH = struct.Struct('<Q')
_RECV_SIZE = 65536


@dataclass
class Packet:
    """A request envelope sent to the collector."""
    request: str
    data: List[Metric] = field(default_factory=list)
    clock: Optional[int] = None
    ns: Optional[int] = None
    host: str = ''
    host_metadata: str = ''

    @classmethod
    def from_metrics(cls, metrics: Iterable[Metric], active: bool,
                     timestamp: Optional[Timestamp] = None) -> 'Packet':
        """
        Build a data packet.

        Args:
            metrics (iterable): Metrics to send, all with the same delivery mode
            active (bool): True for "agent data", False for "sender data"
            timestamp (datetime | int | float, optional): Batch timestamp

        Returns:
            Packet: The data packet

        Raises:
            ValueError: If a metric's delivery mode does not match ``active``
        """
        metrics = list(metrics)
        for metric in metrics:
            if metric.active != active:
                raise ValueError(
                    f"Metric {metric.host}/{metric.key} has active={metric.active}, "
                    f"packet expects active={active}"
                )

        packet = cls(request=AGENT_DATA if active else SENDER_DATA, data=metrics)
        if timestamp is not None:
            packet.clock, packet.ns = to_clock(timestamp)
        return packet

    @classmethod
    def active_checks(cls, host: str, host_metadata: str = '') -> 'Packet':
        """Build an autoregistration ("active checks") request."""
        return cls(request=ACTIVE_CHECKS, host=host, host_metadata=host_metadata)

    def to_dict(self) -> Dict[str, Any]:
        data = {'request': self.request}
        if self.data:
            data['data'] = [metric.to_dict() for metric in self.data]
        if self.clock:
            data['clock'] = self.clock
        if self.ns:
            data['ns'] = self.ns
        if self.host:
            data['host'] = self.host
        if self.host_metadata:
            data['host_metadata'] = self.host_metadata
        return data

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(',', ':')).encode('utf-8')


def frame(body: bytes) -> bytes:
    """Prefix a body with the protocol header and its length."""
    return HEADER + _LENGTH.pack(len(body)) + body


def encode_packet(packet: Packet) -> bytes:
    """Serialize a packet into a complete request frame."""
    return frame(packet.to_json())


def _check_header(data: bytes) -> int:
    if len(data) < HEADER_LENGTH:
        raise ProtocolError(f"Response too short: {len(data)} bytes")
    header = data[:len(HEADER)]
    if header != HEADER:
        raise ProtocolError(f"Invalid header {header!r}, expected {HEADER!r}")
    return _LENGTH.unpack(data[len(HEADER):HEADER_LENGTH])[0]


def decode_response(data: bytes) -> Response:
    """
    Decode a complete response frame.

    Bytes past the declared body length are ignored.

    Raises:
        ProtocolError: If the frame is short, the header does not match or the
            body is not a valid response object
    """
    length = _check_header(data)
    body = data[HEADER_LENGTH:HEADER_LENGTH + length]
    if len(body) < length:
        raise ProtocolError(f"Truncated response: expected {length} bytes, got {len(body)}")

    try:
        payload = json.loads(body.decode('utf-8'))
        return Response.from_dict(payload)
    except ValueError as e:
        raise ProtocolError(f"Response is not valid: {e}") from e


def _recv_exact(sock: socket.socket, size: int, deadline: float) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        timeout = deadline - time.monotonic()
        if timeout <= 0:
            raise socket.timeout('timed out')
        sock.settimeout(timeout)
        chunk = sock.recv(min(remaining, _RECV_SIZE))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b''.join(chunks)


def read_response(sock: socket.socket, deadline: float, max_size: int) -> bytes:
    """
    Read one response frame from a connected socket.

    The declared body length bounds the read, so the call returns as soon as
    the frame is complete even if the peer keeps the connection open.

    Args:
        sock (socket.socket): Connected socket
        deadline (float): time.monotonic() value after which the read times out
        max_size (int): Largest body length accepted

    Returns:
        bytes: The complete frame

    Raises:
        ProtocolError: If the peer closes early, the header does not match or
            the declared length exceeds ``max_size``
        OSError: If the socket fails or the deadline passes
    """
    head = _recv_exact(sock, HEADER_LENGTH, deadline)
    length = _check_header(head)
    if length > max_size:
        raise ProtocolError(f"Response length {length} exceeds limit of {max_size} bytes")

    body = _recv_exact(sock, length, deadline)
    if len(body) < length:
        raise ProtocolError(f"Connection closed after {len(body)} of {length} body bytes")
    logger.debug("Received %d byte response", HEADER_LENGTH + length)
    return head + body
