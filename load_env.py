"""
Environment variable loader for the Kite client
This module loads environment variables from .env file if it exists
"""

import os
import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

DEFAULTS = {
    'KITE_TOKEN_FILE': 'access_token.json',
    'KITE_INSTRUMENTS_FILE': 'instruments.csv',
    'KITE_HTTP_TIMEOUT': '7',  # seconds
    'KITE_TWOFA_DELAY': '1',  # seconds before the two-factor call
    'INSTRUMENTS_REFRESH_TIME': '08:30',  # daily dump refresh cutoff (HH:MM)
    'LOG_LEVEL': 'INFO',
}


def load_env_file(path: Union[str, Path] = '.env') -> None:
    """Load environment variables from .env file if it exists"""
    env_file = Path(path)

    if env_file.exists():
        logger.info(f"📁 Loading environment variables from {env_file}...")
        with open(env_file, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    # Strip inline comments (everything after #)
                    if ' #' in value:
                        value = value.split(' #')[0]
                    # Remove quotes if present
                    value = value.strip().strip('\'"')
                    os.environ[key.strip()] = value
    else:
        logger.debug("No .env file found, using system environment variables")

    # Only set defaults not already loaded from .env or the environment
    for key, value in DEFAULTS.items():
        os.environ.setdefault(key, value)


# Load environment variables when this module is imported
load_env_file()
