"""
Exceptions raised by the Zabbix sender.
"""


class ZabbixSenderError(Exception):
    """Base class for every error raised by this package."""


class TransportIOError(ZabbixSenderError):
    """
    A socket operation against a collector failed or timed out.

    Attributes:
        address (str): The collector address the operation targeted
        phase (str): One of 'connect', 'write' or 'read'
    """

    def __init__(self, address: str, phase: str, message: str):
        super().__init__(f"{phase} failed for {address}: {message}")
        self.address = address
        self.phase = phase


class ConnectError(TransportIOError):
    """The TCP connection could not be established within the timeout."""

    def __init__(self, address: str, message: str):
        super().__init__(address, 'connect', message)


class ProtocolError(ZabbixSenderError):
    """The collector answered with a malformed header or body."""


class RejectedError(ZabbixSenderError):
    """The collector answered 'failed' without a usable redirect."""

    def __init__(self, address: str, info: str):
        super().__init__(f"{address} rejected the request: {info or 'no info'}")
        self.address = address
        self.info = info


class InvalidRedirectError(ZabbixSenderError):
    """A redirect pointed at an address we cannot connect to."""

    def __init__(self, address: str, redirect_address: str, reason: str = ''):
        message = f"invalid redirect from {address} to {redirect_address!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.address = address
        self.redirect_address = redirect_address


class RedirectLimitExceeded(ZabbixSenderError):
    """More redirects were issued than the sender is allowed to follow."""

    def __init__(self, start_address: str, max_redirects: int):
        super().__init__(f"max redirects ({max_redirects}) exceeded starting from {start_address}")
        self.start_address = start_address
        self.max_redirects = max_redirects


class AllHostsFailedError(ZabbixSenderError):
    """
    Every candidate address, including the cached primary, failed.

    Attributes:
        attempts (int): Number of addresses tried
        errors (list): (address, exception) pairs in the order they were tried
    """

    def __init__(self, attempts: int, errors=None):
        super().__init__(f"all {attempts} hosts failed")
        self.attempts = attempts
        self.errors = list(errors or [])


class ParseError(ZabbixSenderError):
    """The statistics in a response info field are malformed."""


class InvalidStateError(ZabbixSenderError):
    """Statistics were requested from a response that is not a success."""


class RegistrationError(ZabbixSenderError):
    """Host autoregistration did not succeed after the confirmation round."""

    def __init__(self, host: str):
        super().__init__(f"autoregistration of {host} failed, verify host metadata")
        self.host = host
