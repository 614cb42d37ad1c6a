"""
File Stores - JSON token file and instrument CSV file on local disk.

Provides:
- JsonTokenStore: single {"enctoken": "..."} record
- FileDatasetStore: the raw instrument dump plus its modification time
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Union
from datetime import datetime

from core.errors import InstrumentDataError
from core.interfaces.storage_interface import TokenStore, DatasetStore

logger = logging.getLogger(__name__)


class JsonTokenStore(TokenStore):
    """
    Token store backed by a small JSON file.

    A missing, unreadable or malformed file reads as "no token".
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path or os.getenv('KITE_TOKEN_FILE', 'access_token.json'))

    def load(self) -> Optional[str]:
        if not self.path.exists():
            logger.debug(f"No cached token at {self.path}")
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️  Ignoring unreadable token file {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"⚠️  Ignoring malformed token file {self.path}")
            return None

        enctoken = data.get('enctoken')
        if not enctoken or not isinstance(enctoken, str):
            return None
        return enctoken

    def save(self, enctoken: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump({'enctoken': enctoken}, f)
        logger.debug(f"Saved enctoken to {self.path}")


class FileDatasetStore(DatasetStore):
    """Instrument dataset stored as a single CSV file."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path or os.getenv('KITE_INSTRUMENTS_FILE', 'instruments.csv'))

    def read_text(self) -> str:
        try:
            return self.path.read_text(encoding='utf-8')
        except OSError as e:
            raise InstrumentDataError(f"Cannot read instrument dataset {self.path}: {e}") from e

    def write_text(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        tmp_path.write_text(text, encoding='utf-8')
        os.replace(tmp_path, self.path)
        logger.debug(f"Wrote {len(text)} bytes to {self.path}")

    def last_modified(self) -> Optional[datetime]:
        try:
            return datetime.fromtimestamp(self.path.stat().st_mtime)
        except FileNotFoundError:
            return None
