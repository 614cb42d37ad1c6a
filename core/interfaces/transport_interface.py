"""
Transport Interface - Abstract HTTP transport to the broker.

The transport performs one request and hands back status, parsed body and
cookies. It knows nothing about sessions; authorization headers are added
by the caller.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field


@dataclass
class TransportResponse:
    """Raw broker response."""
    status_code: int
    body: Optional[Any] = None  # parsed JSON, None when the body is not JSON
    set_cookies: List[str] = field(default_factory=list)
    text: str = ""

    @property
    def message(self) -> Optional[str]:
        """Error message from the broker's envelope, if any."""
        if isinstance(self.body, dict):
            return self.body.get("message")
        return None


class BrokerTransport(ABC):
    """
    Abstract broker transport.

    All broker HTTP traffic goes through this interface so it can be
    replaced in tests or swapped for another HTTP stack.
    """

    @abstractmethod
    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> TransportResponse:
        """
        Execute a single HTTP request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            url: Fully resolved URL
            headers: Extra request headers
            data: Form body (sent URL-encoded)
            params: Query string parameters

        Returns:
            TransportResponse for any HTTP status

        Raises:
            TransportError: On network failure or timeout
        """
        pass
