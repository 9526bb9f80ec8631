"""
Collector responses, the statistics parser and address normalization.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from . import config
from .errors import InvalidStateError, ParseError

logger = logging.getLogger(__name__)

SUCCESS = 'success'
FAILED = 'failed'

_COUNTER_KEYS = ('processed', 'failed', 'total')
_SPENT_KEY = 'seconds spent'


def normalize_address(address: str, default_port: int = config.DEFAULT_PORT) -> str:
    """
    Normalize a collector address to ``host:port``.

    A missing port is filled with ``default_port``. IPv6 literals are
    bracketed, with or without a port (``[::1]:10051``).

    Args:
        address (str): Address as given by the user or a redirect
        default_port (int): Port used when the address has none

    Returns:
        str: The normalized address

    Raises:
        ValueError: If the host is empty or the port is not a valid TCP port
    """
    addr = (address or '').strip()
    if not addr:
        raise ValueError("Address is empty")

    if addr.startswith('['):
        end = addr.find(']')
        if end == -1:
            raise ValueError(f"Unterminated IPv6 literal in {address!r}")
        host, rest = addr[1:end], addr[end + 1:]
        if not rest:
            port = str(default_port)
        elif rest.startswith(':'):
            port = rest[1:]
        else:
            raise ValueError(f"Unexpected characters after IPv6 literal in {address!r}")
    elif addr.count(':') > 1:
        # Bare IPv6 literal, no port
        host, port = addr, str(default_port)
    elif ':' in addr:
        host, port = addr.split(':', 1)
    else:
        host, port = addr, str(default_port)

    host = host.strip()
    port = port.strip()
    if not host:
        raise ValueError(f"Missing host in {address!r}")
    if not (port.isascii() and port.isdigit()) or not 1 <= int(port) <= 65535:
        raise ValueError(f"Invalid port {port!r} in {address!r}")

    if ':' in host:
        return f"[{host}]:{int(port)}"
    return f"{host}:{int(port)}"


def split_address(address: str) -> Tuple[str, int]:
    """
    Split an address into the (host, port) tuple expected by the socket module.

    Raises:
        ValueError: If the address cannot be normalized
    """
    normalized = normalize_address(address)
    host, _, port = normalized.rpartition(':')
    return host.strip('[]'), int(port)


@dataclass
class ResponseInfo:
    """Statistics reported by the collector for a data request."""
    processed: int = 0
    failed: int = 0
    total: int = 0
    spent_ns: int = 0

    @property
    def spent(self) -> timedelta:
        return timedelta(microseconds=self.spent_ns / 1000)

    @property
    def spent_seconds(self) -> float:
        return self.spent_ns / 1_000_000_000


def parse_info(info: str) -> ResponseInfo:
    """
    Parse the info field of a successful response.

    The expected format is
    ``processed: 1; failed: 0; total: 1; seconds spent: 0.000030``.
    Unknown keys are ignored.

    Args:
        info (str): The info field

    Returns:
        ResponseInfo: The parsed statistics

    Raises:
        ParseError: If the field does not follow the expected format
    """
    result = ResponseInfo()

    segments = info.split(';')
    if len(segments) != 4:
        raise ParseError(f"Expected 4 segments, got {len(segments)} in {info!r}")

    for segment in segments:
        tokens = segment.split(':')
        if len(tokens) != 2:
            raise ParseError(f"Expected 2 tokens, got {len(tokens)} in {segment!r}")
        key = tokens[0].strip()
        value = tokens[1].strip()

        if key in _COUNTER_KEYS:
            try:
                setattr(result, key, int(value))
            except ValueError as e:
                raise ParseError(f"Invalid {key} value {value!r}") from e
        elif key == _SPENT_KEY:
            try:
                result.spent_ns = int(float(value) * 1_000_000_000)
            except (ValueError, OverflowError) as e:
                raise ParseError(f"Invalid seconds spent value {value!r}") from e
        else:
            logger.debug("Ignoring unknown info key %r", key)

    return result


@dataclass
class RedirectInfo:
    """Redirect descriptor sent by a proxy group member."""
    revision: int
    address: str


@dataclass
class Response:
    """A decoded collector response."""
    response: str
    info: str = ''
    redirect: Optional[RedirectInfo] = None

    @property
    def is_success(self) -> bool:
        return self.response == SUCCESS

    @property
    def has_redirect(self) -> bool:
        return self.redirect is not None and bool(self.redirect.address)

    def get_info(self) -> ResponseInfo:
        """
        Parse the statistics of a successful response.

        Raises:
            InvalidStateError: If the response is not a success
            ParseError: If the info field is malformed
        """
        if not self.is_success:
            raise InvalidStateError(f"Cannot process info of a non-success response ({self.response})")
        return parse_info(self.info)

    def to_dict(self) -> Dict[str, Any]:
        data = {'response': self.response, 'info': self.info}
        if self.redirect is not None:
            data['redirect'] = {'revision': self.redirect.revision, 'address': self.redirect.address}
        return data

    @classmethod
    def from_dict(cls, data: Any) -> 'Response':
        """
        Build a response from decoded JSON.

        Raises:
            ValueError: If the object does not have the response shape
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

        status = data.get('response')
        if not isinstance(status, str):
            raise ValueError("Missing or non-string 'response' field")

        info = data.get('info')
        if info is None:
            info = ''
        elif not isinstance(info, str):
            raise ValueError("Non-string 'info' field")

        redirect = None
        raw_redirect = data.get('redirect')
        if raw_redirect is not None:
            if not isinstance(raw_redirect, dict):
                raise ValueError("'redirect' field is not an object")
            revision = raw_redirect.get('revision', 0)
            address = raw_redirect.get('address', '')
            if isinstance(revision, bool) or not isinstance(revision, int):
                raise ValueError("Non-integer redirect revision")
            if not isinstance(address, str):
                raise ValueError("Non-string redirect address")
            redirect = RedirectInfo(revision=revision, address=address)

        return cls(response=status, info=info, redirect=redirect)
