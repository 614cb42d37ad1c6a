"""
HTTP Transport - requests based implementation of BrokerTransport.

Uses a pooled requests.Session with retries for idempotent calls. Form
bodies are sent URL-encoded, which is what the Kite login and order
endpoints expect.
"""

import os
import logging
from typing import Optional, List, Dict, Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.errors import TransportError
from core.interfaces.transport_interface import BrokerTransport, TransportResponse

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
)


class RequestsTransport(BrokerTransport):
    """
    Broker transport on top of requests.

    Only GET is retried; orders and login steps must not be replayed.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize transport.

        Args:
            timeout: Request timeout in seconds (default KITE_HTTP_TIMEOUT or 7)
            user_agent: User-Agent header sent with every call
            session: Pre-built requests session (mainly for tests)
        """
        self.timeout = timeout if timeout is not None else float(os.getenv('KITE_HTTP_TIMEOUT', '7'))
        self.user_agent = user_agent
        self._http_session = session or self._create_http_session()

    def _create_http_session(self) -> requests.Session:
        """
        Create HTTP session with retry logic.

        Returns:
            Configured requests.Session
        """
        session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=10, pool_maxsize=10)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": self.user_agent})
        return session

    @staticmethod
    def _set_cookies(response: requests.Response) -> List[str]:
        raw_headers = getattr(response.raw, 'headers', None)
        if raw_headers is not None and hasattr(raw_headers, 'getlist'):
            return list(raw_headers.getlist('Set-Cookie'))
        return [f"{cookie.name}={cookie.value}" for cookie in response.cookies]

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> TransportResponse:
        # Kite rejects empty form fields
        if data:
            data = {k: v for k, v in data.items() if v is not None}

        try:
            response = self._http_session.request(
                method=method.upper(),
                url=url,
                headers=headers,
                data=data,
                params=params,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(f"{method.upper()} {url} timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Connection error: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        logger.debug(f"{method.upper()} {url} -> {response.status_code}")
        return TransportResponse(
            status_code=response.status_code,
            body=body,
            set_cookies=self._set_cookies(response),
            text=response.text
        )

    def close(self) -> None:
        self._http_session.close()
