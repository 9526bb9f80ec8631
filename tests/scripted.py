"""
Scripted replacement for the single-attempt transport used by driver tests.
"""
from zabbix_sender import Response
from zabbix_sender.errors import ConnectError

SUCCESS_INFO = 'processed: 1; failed: 0; total: 1; seconds spent: 0.000030'


class ScriptedTransport:
    """
    Stand-in for Sender._send_once answering from a per-address script.

    The last reply for an address repeats. Addresses without a script refuse
    the connection. Exceptions in the script are raised.
    """

    def __init__(self, script):
        self.script = {address: list(replies) for address, replies in script.items()}
        self.calls = []
        self.packets = []

    def __call__(self, packet, address):
        self.calls.append(address)
        self.packets.append(packet)
        replies = self.script.get(address)
        if not replies:
            raise ConnectError(address, 'connection refused')
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


def ok(info=SUCCESS_INFO):
    return Response.from_dict({'response': 'success', 'info': info})


def rejected(info='host not found'):
    return Response.from_dict({'response': 'failed', 'info': info})


def redirect(address, revision=1):
    return Response.from_dict({'response': 'failed', 'redirect': {'revision': revision, 'address': address}})
