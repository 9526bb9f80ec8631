"""
End-to-end tests of the sender against in-process mock collectors.
"""
import socket
import struct

import pytest

from mock_server import CLOSE, HANG, SUCCESS_INFO, Hold, failed_reply, redirect_reply, success_reply
from zabbix_sender import (
    AllHostsFailedError,
    ConnectError,
    ProtocolError,
    RegistrationError,
    Sender,
    TransportIOError,
    config,
    new_metric,
)
from zabbix_sender.protocol import Packet, frame


def fast_sender(hosts, **kwargs):
    kwargs.setdefault('connect_timeout', 1)
    kwargs.setdefault('read_timeout', 2)
    kwargs.setdefault('write_timeout', 1)
    return Sender(hosts, **kwargs)


def test_send_active_metric(mock_server):
    server = mock_server(success_reply())
    sender = fast_sender(server.address)

    result = sender.send_metrics([new_metric('zabbixAgent1', 'ping', '13', True)])

    assert result.ok
    info = result.active.get_info()
    assert (info.processed, info.failed, info.total) == (1, 0, 1)
    assert not result.trapper.sent
    assert server.requests == [{
        'request': 'agent data',
        'data': [{'host': 'zabbixAgent1', 'key': 'ping', 'value': '13'}],
    }]


def test_send_active_and_trapper_metrics(mock_server):
    def reply(request):
        if request['request'] == 'agent data':
            return success_reply('processed: 2; failed: 0; total: 2; seconds spent: 0.000030')
        return success_reply('processed: 1; failed: 0; total: 1; seconds spent: 0.111111')

    server = mock_server(reply, reply)
    sender = fast_sender(server.address)

    result = sender.send_metrics([
        new_metric('zabbixAgent1', 'ping', '13', True),
        new_metric('zabbixAgent1', 'pong', '14', True),
        new_metric('zabbixTrapper', 'trap', '15', False),
    ])

    assert result.active.get_info().total == 2
    assert result.trapper.get_info().spent_ns == 111111000
    assert sorted(r['request'] for r in server.requests) == ['agent data', 'sender data']


def test_invalid_response_header(mock_server):
    body = b'{"response":"success","info":"' + SUCCESS_INFO.encode() + b'"}'
    server = mock_server(b'BXD\x01' + struct.pack('<Q', len(body)) + body)
    sender = fast_sender(server.address)

    result = sender.send_metrics([new_metric('zabbixAgent1', 'ping', '13', True)])

    cause = result.active.error.errors[0][1]
    assert isinstance(cause, ProtocolError)


def test_short_response(mock_server):
    server = mock_server(b'ZBX')
    sender = fast_sender(server.address)

    with pytest.raises(AllHostsFailedError) as excinfo:
        sender.send(Packet.from_metrics([new_metric('h', 'k', 'v')], False))

    assert isinstance(excinfo.value.errors[0][1], ProtocolError)


def test_connection_closed_without_reply(mock_server):
    server = mock_server(CLOSE)
    sender = fast_sender(server.address)

    with pytest.raises(ProtocolError):
        sender._send_once(Packet.from_metrics([new_metric('h', 'k', 'v')], False), server.address)


def test_connection_refused(closed_address):
    sender = fast_sender(closed_address)

    with pytest.raises(ConnectError) as excinfo:
        sender._send_once(Packet.from_metrics([new_metric('h', 'k', 'v')], False), closed_address)

    assert excinfo.value.phase == 'connect'
    assert excinfo.value.address == closed_address


def test_read_timeout(mock_server):
    server = mock_server(HANG)
    sender = fast_sender(server.address, read_timeout=0.2)

    with pytest.raises(TransportIOError) as excinfo:
        sender._send_once(Packet.from_metrics([new_metric('h', 'k', 'v')], False), server.address)

    assert excinfo.value.phase == 'read'
    assert not isinstance(excinfo.value, ConnectError)


def test_response_is_bounded_by_length_prefix(mock_server):
    # the peer keeps the connection open after answering
    server = mock_server(Hold(success_reply()))
    sender = fast_sender(server.address, read_timeout=1)

    response = sender._send_once(Packet.from_metrics([new_metric('h', 'k', 'v')], False), server.address)

    assert response.is_success


def test_oversized_response_is_refused(mock_server, monkeypatch):
    monkeypatch.setattr(config, 'MAX_RESPONSE_SIZE', 8)
    server = mock_server(success_reply())
    sender = fast_sender(server.address)

    with pytest.raises(ProtocolError, match='exceeds'):
        sender._send_once(Packet.from_metrics([new_metric('h', 'k', 'v')], False), server.address)


def test_redirect_to_other_proxy(mock_server):
    target = mock_server(success_reply())
    origin = mock_server(redirect_reply(target.address, revision=4))
    sender = fast_sender(origin.address)

    result = sender.send_metrics([new_metric('web01', 'ping', '1')])

    assert result.ok
    assert sender.primary_host == origin.address
    assert origin.requests == target.requests


def test_fallback_and_cache(mock_server, closed_address):
    server = mock_server(success_reply(), success_reply())
    sender = fast_sender([closed_address, server.address])

    first = sender.send_metrics([new_metric('web01', 'ping', '1')])
    second = sender.send_metrics([new_metric('web01', 'ping', '2')])

    assert first.ok and second.ok
    assert sender.primary_host == server.address
    assert len(server.requests) == 2


def test_register_host_success(mock_server):
    server = mock_server({'response': 'success', 'data': [{'key': 'net.if.in[eth0]', 'delay': 60}]})
    sender = fast_sender(server.address)

    response = sender.register_host('prueba', 'prueba')

    assert response.is_success
    assert server.requests == [{'request': 'active checks', 'host': 'prueba', 'host_metadata': 'prueba'}]


def test_register_host_confirmation_round(mock_server):
    server = mock_server(failed_reply('host [prueba] not found'), success_reply(''))
    sender = fast_sender(server.address)

    assert sender.register_host('prueba', 'prueba').is_success
    assert len(server.requests) == 2


def test_register_host_not_found(mock_server):
    server = mock_server(failed_reply('host [prueba] not found'), failed_reply('host [prueba] not found'))
    sender = fast_sender(server.address)

    with pytest.raises(RegistrationError):
        sender.register_host('prueba', 'prueba')

    assert len(server.requests) == 2


def test_frame_used_by_mock_matches_protocol():
    assert frame(b'{}')[:13] == b'ZBXD\x01' + struct.pack('<Q', 2)


UNENCODABLE_HOST = 'a' * 64 + '.example'


def test_unencodable_host_is_a_connect_error(mock_server):
    server = mock_server(success_reply())
    sender = fast_sender([UNENCODABLE_HOST, server.address])

    result = sender.send_metrics([new_metric('web01', 'ping', '1')])

    assert result.ok
    assert sender.primary_host == server.address
    assert len(server.requests) == 1


def test_redirect_to_unencodable_host_falls_back(mock_server):
    target = mock_server(success_reply())
    origin = mock_server(redirect_reply(UNENCODABLE_HOST))
    sender = fast_sender([origin.address, target.address])

    result = sender.send_metrics([new_metric('web01', 'ping', '1')])

    assert result.ok
    assert sender.primary_host == target.address


def test_redirect_to_unencodable_host_reports_connect_phase(mock_server):
    origin = mock_server(redirect_reply(UNENCODABLE_HOST))
    sender = fast_sender(origin.address)

    with pytest.raises(ConnectError) as excinfo:
        sender._send_with_redirects(Packet.from_metrics([new_metric('h', 'k', 'v')], False), origin.address)

    assert excinfo.value.address == f'{UNENCODABLE_HOST}:10051'


def test_write_failure(mock_server, monkeypatch):
    server = mock_server(success_reply())
    sender = fast_sender(server.address)

    def failing_sendall(self, data, *args):
        raise socket.timeout('timed out')

    monkeypatch.setattr(socket.socket, 'sendall', failing_sendall)

    with pytest.raises(TransportIOError) as excinfo:
        sender._send_once(Packet.from_metrics([new_metric('h', 'k', 'v')], False), server.address)

    assert excinfo.value.phase == 'write'
    assert not isinstance(excinfo.value, ConnectError)
