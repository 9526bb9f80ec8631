"""
Zabbix sender with proxy group redirects and multi-host HA support.

A send walks the configured collector addresses in order, starting with the
last address that worked. Against each address it follows the redirects a
proxy group hands out until a collector accepts the packet.
"""
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple, Union

from retrying import retry

from . import config
from .errors import (
    AllHostsFailedError,
    ConnectError,
    InvalidRedirectError,
    InvalidStateError,
    ProtocolError,
    RedirectLimitExceeded,
    RegistrationError,
    RejectedError,
    TransportIOError,
    ZabbixSenderError,
)
from .metric import Metric, Timestamp
from .protocol import Packet, decode_response, encode_packet, read_response
from .response import Response, ResponseInfo, normalize_address, split_address

logger = logging.getLogger(__name__)


@dataclass
class SendOutcome:
    """Result of sending one packet: a response or an error, never both."""
    response: Optional[Response] = None
    error: Optional[ZabbixSenderError] = None

    @property
    def sent(self) -> bool:
        return self.response is not None or self.error is not None

    @property
    def ok(self) -> bool:
        return self.error is None

    def get_info(self) -> ResponseInfo:
        """
        Parse the statistics of the response.

        Raises:
            InvalidStateError: If nothing was sent or the send failed
            ParseError: If the info field is malformed
        """
        if self.response is None:
            raise InvalidStateError(f"No response available: {self.error or 'nothing was sent'}")
        return self.response.get_info()


@dataclass
class BatchResult:
    """Independent outcomes of the active and trapper packets of a batch."""
    active: SendOutcome = field(default_factory=SendOutcome)
    trapper: SendOutcome = field(default_factory=SendOutcome)

    @property
    def ok(self) -> bool:
        return self.active.ok and self.trapper.ok


def _retry_if_sender_error(exception: Exception) -> bool:
    """Return True if we should retry (in this case any protocol level failure)."""
    return isinstance(exception, ZabbixSenderError)


class Sender:
    """Client for sending packets to one or more Zabbix servers or proxies."""

    def __init__(
        self,
        hosts: Union[str, Iterable[str], None] = None,
        connect_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        write_timeout: Optional[float] = None,
        max_redirects: Optional[int] = None,
        update_host: Optional[bool] = None,
    ):
        """
        Initialize the sender.

        Args:
            hosts (str | iterable, optional): One address or an ordered list of
                addresses. Defaults to config.SERVER (comma-separated).
            connect_timeout (float, optional): Seconds to establish a connection.
                Defaults to config.CONNECT_TIMEOUT.
            read_timeout (float, optional): Seconds to receive a response.
                Defaults to config.READ_TIMEOUT.
            write_timeout (float, optional): Seconds to send a request.
                Defaults to config.WRITE_TIMEOUT.
            max_redirects (int, optional): Redirects followed per address.
                Defaults to config.MAX_REDIRECTS.
            update_host (bool, optional): Replace a list entry with the address
                its redirects settled on. Defaults to config.UPDATE_HOST.

        Raises:
            ValueError: If no address is given or an address is invalid
        """
        if hosts is None:
            hosts = [h for h in config.SERVER.split(',') if h.strip()]
        elif isinstance(hosts, str):
            hosts = [hosts]

        self.hosts: List[str] = [normalize_address(h) for h in hosts]
        if not self.hosts:
            raise ValueError("At least one collector address is required")

        self.primary_host = ''
        self.max_redirects = config.MAX_REDIRECTS if max_redirects is None else max_redirects
        self.update_host = config.UPDATE_HOST if update_host is None else update_host
        self.connect_timeout = config.CONNECT_TIMEOUT if connect_timeout is None else connect_timeout
        self.read_timeout = config.READ_TIMEOUT if read_timeout is None else read_timeout
        self.write_timeout = config.WRITE_TIMEOUT if write_timeout is None else write_timeout

        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Sender(hosts={self.hosts!r}, primary_host={self.primary_host!r})"

    def _send_once(self, packet: Packet, address: str) -> Response:
        """
        Exchange one request and response with a single collector.

        Raises:
            ConnectError: If the connection cannot be established
            TransportIOError: If writing the request or reading the response fails
            ProtocolError: If the response frame is malformed
        """
        request = encode_packet(packet)

        try:
            host, port = split_address(address)
        except ValueError as e:
            raise ConnectError(address, str(e)) from e

        try:
            sock = socket.create_connection((host, port), timeout=self.connect_timeout)
        except (OSError, UnicodeError) as e:
            # UnicodeError: the host name cannot be IDNA encoded
            raise ConnectError(address, f"{e} (timeout={self.connect_timeout}s)") from e

        with sock:
            try:
                sock.settimeout(self.write_timeout)
                sock.sendall(request)
            except OSError as e:
                raise TransportIOError(address, 'write', f"{e} (timeout={self.write_timeout}s)") from e

            try:
                data = read_response(sock, time.monotonic() + self.read_timeout, config.MAX_RESPONSE_SIZE)
            except OSError as e:
                raise TransportIOError(address, 'read', f"{e} (timeout={self.read_timeout}s)") from e
            except ProtocolError as e:
                raise ProtocolError(f"{address}: {e}") from e

        try:
            response = decode_response(data)
        except ProtocolError as e:
            raise ProtocolError(f"{address}: {e}") from e

        logger.debug("%s answered %r to %r", address, response.response, packet.request)
        return response

    def _send_with_redirects(self, packet: Packet, start_address: str) -> Tuple[Response, str]:
        """
        Send a packet to one starting address, following redirects.

        Returns:
            tuple: The successful response and the address that produced it

        Raises:
            RejectedError: If a collector fails the request without redirecting
            InvalidRedirectError: If a redirect address cannot be used
            RedirectLimitExceeded: If more than max_redirects redirects are issued
            TransportIOError, ProtocolError: From the underlying exchange
        """
        current = start_address
        redirects = 0

        while True:
            response = self._send_once(packet, current)

            if response.is_success:
                return response, current

            if not response.has_redirect:
                raise RejectedError(current, response.info)

            try:
                target = normalize_address(response.redirect.address)
            except ValueError as e:
                raise InvalidRedirectError(current, response.redirect.address, str(e)) from e

            if redirects == self.max_redirects:
                raise RedirectLimitExceeded(start_address, self.max_redirects)

            redirects += 1
            logger.info("Redirected from %s to %s (revision %d, redirect %d/%d)",
                        current, target, response.redirect.revision, redirects, self.max_redirects)
            current = target

    def _remember_redirect(self, start_address: str, final_address: str) -> None:
        if not self.update_host or final_address == start_address:
            return
        self.hosts = [final_address if h == start_address else h for h in self.hosts]
        logger.info("Replaced %s with %s in the host list", start_address, final_address)

    def send(self, packet: Packet) -> Response:
        """
        Send a packet, falling back across the configured addresses.

        The cached primary address is tried first. The first address that
        succeeds becomes the new primary.

        Args:
            packet (Packet): The packet to send

        Returns:
            Response: The successful response

        Raises:
            AllHostsFailedError: If every address failed
        """
        with self._lock:
            errors = []

            cached = self.primary_host
            if cached:
                # distrusted until this drive succeeds again
                self.primary_host = ''
                try:
                    response, final = self._send_with_redirects(packet, cached)
                except ZabbixSenderError as e:
                    logger.warning("Cached primary %s failed, trying all hosts: %s", cached, e)
                    errors.append((cached, e))
                else:
                    self.primary_host = cached
                    self._remember_redirect(cached, final)
                    return response

            for host in list(self.hosts):
                try:
                    response, final = self._send_with_redirects(packet, host)
                except ZabbixSenderError as e:
                    logger.warning("Sending to %s failed: %s", host, e)
                    errors.append((host, e))
                    continue

                self._remember_redirect(host, final)
                self.primary_host = host
                return response

            self.primary_host = ''
            raise AllHostsFailedError(len(errors), errors)

    def _send_outcome(self, packet: Packet) -> SendOutcome:
        try:
            return SendOutcome(response=self.send(packet))
        except ZabbixSenderError as e:
            logger.error(f"Failed to send {packet.request} with {len(packet.data)} metrics: {e}")
            return SendOutcome(error=e)

    def send_metrics(self, metrics: Iterable[Metric], timestamp: Optional[Timestamp] = None) -> BatchResult:
        """
        Send mixed active and trapper metrics.

        Metrics are split into an "agent data" and a "sender data" packet. Each
        non-empty packet is sent on its own and reports its own outcome.

        Args:
            metrics (iterable): Metrics to send
            timestamp (datetime | int | float, optional): Batch timestamp

        Returns:
            BatchResult: The active and trapper outcomes
        """
        metrics = list(metrics)
        trapper_metrics = [m for m in metrics if not m.active]
        active_metrics = [m for m in metrics if m.active]

        result = BatchResult()
        if trapper_metrics:
            result.trapper = self._send_outcome(Packet.from_metrics(trapper_metrics, False, timestamp))
        if active_metrics:
            result.active = self._send_outcome(Packet.from_metrics(active_metrics, True, timestamp))
        return result

    def register_host(self, host: str, host_metadata: str = '') -> Response:
        """
        Autoregister a host ("active checks").

        The collector usually fails the first request of a new host, so a
        failed first attempt is repeated once to confirm the registration.

        Args:
            host (str): Host name to register
            host_metadata (str): Metadata matched by autoregistration actions

        Returns:
            Response: The successful response

        Raises:
            RegistrationError: If the confirmation attempt fails as well
        """
        attempts = []

        @retry(
            retry_on_exception=_retry_if_sender_error,
            stop_max_attempt_number=2,
            wrap_exception=False
        )
        def _register():
            attempts.append(len(attempts) + 1)
            if len(attempts) > 1:
                logger.info("Repeating autoregistration of %s for confirmation", host)
            return self.send(Packet.active_checks(host, host_metadata))

        try:
            response = _register()
        except ZabbixSenderError as e:
            logger.error("Autoregistration of %s failed after %d attempts: %s", host, len(attempts), e)
            raise RegistrationError(host) from e

        logger.info("Registered host %s", host)
        return response


# Singleton instance for easy import
default_sender = Sender()


def send(packet: Packet) -> Response:
    """Send a packet using the default sender."""
    return default_sender.send(packet)


def send_metrics(metrics: Iterable[Metric], timestamp: Optional[Timestamp] = None) -> BatchResult:
    """
    Send metrics using the default sender.

    Args:
        metrics (iterable): Metrics to send
        timestamp (datetime | int | float, optional): Batch timestamp

    Returns:
        BatchResult: The active and trapper outcomes
    """
    return default_sender.send_metrics(metrics, timestamp)


def register_host(host: str, host_metadata: str = '') -> Response:
    """Autoregister a host using the default sender."""
    return default_sender.register_host(host, host_metadata)
