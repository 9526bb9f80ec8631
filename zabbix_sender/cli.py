#!/usr/bin/env python3
"""
Command line front end for sending values to Zabbix servers and proxies.

Examples:
    zabbix-ha-sender -z proxy1,proxy2:10052 -s web01 -k app.requests -o 42
    zabbix-ha-sender -z zabbix -i values.txt --active
    zabbix-ha-sender -z zabbix -s web01 --register --host-metadata Linux
"""
import argparse
import json
import logging
import os
import shlex
import sys
from typing import Any, Dict, List, Optional

from . import config as sender_config
from .errors import ZabbixSenderError
from .metric import Metric, new_metric
from .sender import BatchResult, SendOutcome, Sender

logger = logging.getLogger(__name__)


def setup_logging(log_level: str) -> None:
    """
    Setup logging with the specified log level.

    Args:
        log_level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def load_config_from_file(config_file: str) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    Args:
        config_file (str): Path to the JSON config file

    Returns:
        dict: Configuration dictionary with argument names as keys
    """
    if not os.path.exists(config_file):
        logger.error("Config file not found: %s", config_file)
        return {}

    try:
        with open(config_file, 'r') as f:
            config = json.load(f)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error("Error parsing config file %s: %s", config_file, e)
        return {}

    if not isinstance(config, dict):
        logger.error("Config file %s must contain a JSON object", config_file)
        return {}
    logger.debug("Loaded configuration from %s: %s", config_file, config)
    return config


def merge_config_with_args(config: Dict[str, Any], args: argparse.Namespace) -> argparse.Namespace:
    """
    Merge configuration from a file with command line arguments.
    Command line arguments take precedence over config file values.

    Args:
        config (dict): Configuration dictionary from file
        args (argparse.Namespace): Command line arguments

    Returns:
        argparse.Namespace: Updated arguments namespace
    """
    args_dict = vars(args)

    for key, value in config.items():
        arg_key = key.replace('-', '_')
        if args_dict.get(arg_key) is None:
            args_dict[arg_key] = value

    return argparse.Namespace(**args_dict)


def collect_servers(values: Optional[Any]) -> List[str]:
    """Flatten repeated and comma-separated server options into one list."""
    if values is None:
        values = [sender_config.SERVER]
    elif isinstance(values, str):
        values = [values]

    servers = []
    for value in values:
        servers.extend(part.strip() for part in value.split(',') if part.strip())
    return servers


def read_input_file(path: str, default_host: Optional[str], active: bool) -> List[Metric]:
    """
    Read metrics from a file with one ``<host> <key> <value>`` per line.

    A host of ``-`` stands for ``default_host``. Blank lines and lines starting
    with ``#`` are skipped.

    Raises:
        ValueError: If a line is malformed
    """
    metrics = []
    handle = sys.stdin if path == '-' else open(path, 'r')
    try:
        for number, line in enumerate(handle, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith('#'):
                continue
            fields = shlex.split(stripped)
            if len(fields) != 3:
                raise ValueError(f"{path}:{number}: expected '<host> <key> <value>', got {stripped!r}")
            host, key, value = fields
            if host == '-':
                if not default_host:
                    raise ValueError(f"{path}:{number}: '-' used as host but --host was not given")
                host = default_host
            metrics.append(new_metric(host, key, value, active))
    finally:
        if handle is not sys.stdin:
            handle.close()
    return metrics


def report_outcome(label: str, outcome: SendOutcome) -> None:
    """Print the statistics of one sub-batch."""
    if not outcome.sent:
        return
    if outcome.error is not None:
        print(f"{label}: failed: {outcome.error}")
        return
    try:
        info = outcome.get_info()
    except ZabbixSenderError as e:
        logger.warning("Could not parse %s response info: %s", label, e)
        print(f"{label}: {outcome.response.info}")
        return
    print(f"{label}: processed: {info.processed}; failed: {info.failed}; "
          f"total: {info.total}; seconds spent: {info.spent_seconds:.6f}")


def build_parser(early_parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Send values to Zabbix servers or proxies.',
        parents=[early_parser]
    )
    parser.add_argument('-z', '--zabbix-server', action='append',
                        help='Server or proxy address, may be repeated or comma-separated '
                             f'(default: {sender_config.SERVER})')
    parser.add_argument('-s', '--host', type=str, help='Host name the values belong to')
    parser.add_argument('-k', '--key', type=str, help='Item key')
    parser.add_argument('-o', '--value', type=str, help='Item value')
    parser.add_argument('-i', '--input-file', type=str,
                        help="File with '<host> <key> <value>' lines, '-' for stdin")
    parser.add_argument('--active', action='store_true', default=None,
                        help='Send as active agent data instead of trapper data')
    parser.add_argument('--register', action='store_true', default=None,
                        help='Autoregister --host instead of sending values')
    parser.add_argument('--host-metadata', type=str, help='Metadata sent with --register')
    parser.add_argument('--connect-timeout', type=float,
                        help=f'Connect timeout in seconds (default: {sender_config.CONNECT_TIMEOUT})')
    parser.add_argument('--read-timeout', type=float,
                        help=f'Read timeout in seconds (default: {sender_config.READ_TIMEOUT})')
    parser.add_argument('--write-timeout', type=float,
                        help=f'Write timeout in seconds (default: {sender_config.WRITE_TIMEOUT})')
    parser.add_argument('--max-redirects', type=int,
                        help=f'Redirects followed per address (default: {sender_config.MAX_REDIRECTS})')
    parser.add_argument('--update-host', action='store_true', default=None,
                        help='Replace an address with the one its redirects settle on')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, send the values and return the exit status."""
    # First parser for early config file and log level
    early_parser = argparse.ArgumentParser(add_help=False)
    early_parser.add_argument('--config-file', type=str,
                              help='Path to a JSON file with default option values')
    early_parser.add_argument('--log-level', type=str, default=sender_config.LOG_LEVEL,
                              help='Logging level')
    early_args, _ = early_parser.parse_known_args(argv)

    setup_logging(early_args.log_level)

    file_config = load_config_from_file(early_args.config_file) if early_args.config_file else {}

    parser = build_parser(early_parser)
    args = parser.parse_args(argv)
    if file_config:
        args = merge_config_with_args(file_config, args)

    if args.register:
        if not args.host:
            parser.error("--register requires --host")
    elif not args.input_file and (not args.host or not args.key or args.value is None):
        parser.error("either --input-file or all of --host, --key and --value are required")

    try:
        sender = Sender(
            collect_servers(args.zabbix_server),
            connect_timeout=args.connect_timeout,
            read_timeout=args.read_timeout,
            write_timeout=args.write_timeout,
            max_redirects=args.max_redirects,
            update_host=args.update_host
        )
    except ValueError as e:
        parser.error(str(e))

    if args.register:
        try:
            response = sender.register_host(args.host, args.host_metadata or '')
        except ZabbixSenderError as e:
            logger.error("Registration failed: %s", e)
            return 1
        print(f"registered {args.host}: {response.response}")
        return 0

    active = bool(args.active)
    try:
        if args.input_file:
            metrics = read_input_file(args.input_file, args.host, active)
        else:
            metrics = [new_metric(args.host, args.key, args.value, active)]
    except (OSError, ValueError) as e:
        logger.error("Cannot read input: %s", e)
        return 1

    if not metrics:
        logger.warning("No values to send")
        return 0

    logger.info("Sending %d values to %s", len(metrics), ', '.join(sender.hosts))
    result: BatchResult = sender.send_metrics(metrics)
    report_outcome('active', result.active)
    report_outcome('trapper', result.trapper)

    return 0 if result.ok else 1


if __name__ == '__main__':
    sys.exit(main())
