"""
Shared fixtures for the Zabbix sender tests.
"""
import pytest

from mock_server import MockZabbixServer, unused_address
from scripted import ScriptedTransport


@pytest.fixture
def mock_server():
    """Factory starting mock collectors with scripted replies; all are closed on teardown."""
    servers = []

    def factory(*replies):
        server = MockZabbixServer(replies).start()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        server.close()


@pytest.fixture
def closed_address():
    return unused_address()


@pytest.fixture
def scripted(monkeypatch):
    """Install a ScriptedTransport on a sender: ``transport = scripted(sender, {...})``."""

    def install(sender, script):
        transport = ScriptedTransport(script)
        monkeypatch.setattr(sender, '_send_once', transport)
        return transport

    return install
