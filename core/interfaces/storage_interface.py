"""
Storage Interfaces - Abstract persistence for the session token and the instrument dump.

Both stores hold exactly one record: the token store a single enctoken,
the dataset store a single instrument file plus its modification time.
"""

from abc import ABC, abstractmethod
from typing import Optional
from datetime import datetime


class TokenStore(ABC):
    """
    Durable storage for the cached session token.

    Implementations must treat a missing or corrupt record as absent.
    """

    @abstractmethod
    def load(self) -> Optional[str]:
        """
        Read the stored enctoken.

        Returns:
            The token, or None if nothing usable is stored
        """
        pass

    @abstractmethod
    def save(self, enctoken: str) -> None:
        """Persist the enctoken, replacing any previous one."""
        pass


class DatasetStore(ABC):
    """Durable storage for the raw instrument dataset."""

    @abstractmethod
    def read_text(self) -> str:
        """
        Read the whole dataset.

        Raises:
            InstrumentDataError: If the dataset is missing or unreadable
        """
        pass

    @abstractmethod
    def write_text(self, text: str) -> None:
        """Replace the dataset."""
        pass

    @abstractmethod
    def last_modified(self) -> Optional[datetime]:
        """Modification time of the dataset, None if it does not exist."""
        pass
