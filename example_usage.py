#!/usr/bin/env python3
"""
Example script sending basic system statistics to Zabbix as trapper items.

Create trapper items with the keys below on the host named by
ZABBIX_SOURCE_HOST (defaults to this machine's hostname), then run:

    ZABBIX_SERVER=proxy1,proxy2 python example_usage.py
"""
import os
import socket
import time

import psutil

from zabbix_sender import Sender, new_metric
from zabbix_sender.metric import now

SOURCE_HOST = os.getenv('ZABBIX_SOURCE_HOST', socket.gethostname())


def collect_system_metrics():
    """Collect CPU, memory and disk usage as trapper metrics."""
    timestamp = now()
    return [
        new_metric(SOURCE_HOST, 'custom.cpu.usage', psutil.cpu_percent(interval=1), timestamp=timestamp),
        new_metric(SOURCE_HOST, 'custom.memory.usage', psutil.virtual_memory().percent, timestamp=timestamp),
        new_metric(SOURCE_HOST, 'custom.disk.usage', psutil.disk_usage('/').percent, timestamp=timestamp),
    ]


def main():
    """Main function to run the example."""
    print("Starting metrics collection example...")
    sender = Sender()

    # Collect metrics every 5 seconds for 1 minute
    for _ in range(12):
        result = sender.send_metrics(collect_system_metrics())
        if result.trapper.ok:
            info = result.trapper.get_info()
            print(f"Sent {info.total} values, {info.processed} processed via {sender.primary_host}")
        else:
            print(f"Error sending metrics: {result.trapper.error}")

        # Wait 5 seconds before next collection
        time.sleep(5)

    print("Metrics collection example completed.")


if __name__ == "__main__":
    main()
