"""
Configuration settings for the Zabbix sender.
"""
import os

# Server configuration (comma-separated list for HA / proxy groups)
SERVER = os.getenv('ZABBIX_SERVER', 'localhost')
DEFAULT_PORT = 10051

# Socket configuration
CONNECT_TIMEOUT = float(os.getenv('ZABBIX_CONNECT_TIMEOUT', '5'))  # seconds
WRITE_TIMEOUT = float(os.getenv('ZABBIX_WRITE_TIMEOUT', '5'))  # seconds
READ_TIMEOUT = float(os.getenv('ZABBIX_READ_TIMEOUT', '15'))  # seconds

# Redirect configuration
MAX_REDIRECTS = int(os.getenv('ZABBIX_MAX_REDIRECTS', '3'))
UPDATE_HOST = os.getenv('ZABBIX_UPDATE_HOST', 'false').lower() in ('1', 'true', 'yes', 'on')

# Largest response body we are willing to read
MAX_RESPONSE_SIZE = 16 * 1024 * 1024  # bytes

# Logging configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
