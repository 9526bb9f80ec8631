"""
Metric records handed to the sender.

A metric is a single item value for a monitored host. The ``active`` flag
decides which request it travels in: ``"agent data"`` (emulating an active
agent) or ``"sender data"`` (trapper items).
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

import pytz

EPOCH = datetime(1970, 1, 1, tzinfo=pytz.UTC)

Timestamp = Union[datetime, int, float]


def now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def to_clock(timestamp: Timestamp) -> Tuple[int, int]:
    """
    Convert a timestamp into the (clock, ns) pair used on the wire.

    Args:
        timestamp (datetime | int | float): A datetime (naive values are taken
            as UTC) or seconds since the epoch

    Returns:
        tuple: Epoch seconds and the nanosecond remainder

    Raises:
        TypeError: If the timestamp is of an unsupported type
    """
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            timestamp = pytz.UTC.localize(timestamp)
        delta = timestamp - EPOCH
        return delta.days * 86400 + delta.seconds, delta.microseconds * 1000

    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise TypeError(f"Unsupported timestamp type: {type(timestamp).__name__}")

    clock = math.floor(timestamp)
    ns = int((timestamp - clock) * 1_000_000_000)
    return int(clock), min(ns, 999_999_999)


@dataclass(frozen=True)
class Metric:
    """A single item value for a host."""
    host: str
    key: str
    value: str
    active: bool = False
    clock: Optional[int] = None
    ns: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation; the active flag is not serialized."""
        data = {'host': self.host, 'key': self.key, 'value': self.value}
        if self.clock:
            data['clock'] = self.clock
        if self.ns:
            data['ns'] = self.ns
        return data


def new_metric(host: str, key: str, value: Any, active: bool = False,
               timestamp: Optional[Timestamp] = None) -> Metric:
    """
    Create a metric.

    Args:
        host (str): Host name as configured in Zabbix
        key (str): Item key
        value: Item value, converted with str()
        active (bool): True for active agent items ("agent data"),
            False for trapper items ("sender data")
        timestamp (datetime | int | float, optional): Explicit value time

    Returns:
        Metric: The new metric
    """
    clock = ns = None
    if timestamp is not None:
        clock, ns = to_clock(timestamp)
    return Metric(host=host, key=key, value=str(value), active=active, clock=clock, ns=ns)
