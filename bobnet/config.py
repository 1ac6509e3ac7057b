"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup.

Variables:
- LOG_LEVEL: root log level (default INFO)
- BOBNET_MODEL_DIR: directory holding the model database (default 'models')
"""

import os
import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_MODEL_DIR = os.getenv('BOBNET_MODEL_DIR', 'models')

DATABASE_FILENAME = 'networks.db'


def get_log_level() -> int:
    """Resolve LOG_LEVEL to a logging level, falling back to INFO."""
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    return getattr(logging, log_level_str, logging.INFO)


def configure_logging() -> None:
    """
    Set up logging for applications embedding bobnet.

    The library itself never installs handlers; hosts call this once at
    startup.
    """
    logging.basicConfig(level=get_log_level(), format=LOG_FORMAT)
    logging.getLogger('bobnet').setLevel(get_log_level())
