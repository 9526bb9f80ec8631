"""
Zabbix sender protocol client with proxy group redirects and multi-host HA.
"""
from .errors import (
    AllHostsFailedError,
    ConnectError,
    InvalidRedirectError,
    InvalidStateError,
    ParseError,
    ProtocolError,
    RedirectLimitExceeded,
    RegistrationError,
    RejectedError,
    TransportIOError,
    ZabbixSenderError,
)
from .metric import Metric, new_metric
from .protocol import Packet, decode_response, encode_packet
from .response import RedirectInfo, Response, ResponseInfo, normalize_address, parse_info
from .sender import (
    BatchResult,
    Sender,
    SendOutcome,
    register_host,
    send,
    send_metrics,
)

__version__ = '0.1.0'

__all__ = [
    'AllHostsFailedError',
    'BatchResult',
    'ConnectError',
    'InvalidRedirectError',
    'InvalidStateError',
    'Metric',
    'Packet',
    'ParseError',
    'ProtocolError',
    'RedirectInfo',
    'RedirectLimitExceeded',
    'RegistrationError',
    'RejectedError',
    'Response',
    'ResponseInfo',
    'SendOutcome',
    'Sender',
    'TransportIOError',
    'ZabbixSenderError',
    'decode_response',
    'encode_packet',
    'new_metric',
    'normalize_address',
    'parse_info',
    'register_host',
    'send',
    'send_metrics',
]
