"""
Authentication Module - Handles Kite web login and enctoken management.

Turns long-lived credentials (user id, password, TOTP secret) into a
short-lived enctoken, caches it in the token store, validates a cached
token before reuse and logs in again when it is rejected.
"""

import os
import time
import asyncio
import binascii
import logging
from typing import Optional, List, Dict, Any, Tuple
from enum import Enum

import pyotp

from core.errors import ApiResult, ErrorKind, AuthenticationError, TransportError
from core.interfaces.transport_interface import BrokerTransport, TransportResponse
from core.interfaces.storage_interface import TokenStore

logger = logging.getLogger(__name__)

LOGIN_URL = "https://kite.zerodha.com/api/login"
TWOFA_URL = "https://kite.zerodha.com/api/twofa"
ROOT_URL = "https://api.kite.trade"
MARGINS_ROUTE = "/user/margins"


class SessionState(Enum):
    """Authentication state machine."""
    UNAUTHENTICATED = "unauthenticated"
    TOKEN_CACHED_UNVERIFIED = "token_cached_unverified"
    VERIFIED = "verified"
    LOGGING_IN = "logging_in"
    AWAITING_TWO_FACTOR = "awaiting_two_factor"
    AUTHENTICATED = "authenticated"


def extract_enctoken(set_cookies: List[str]) -> Optional[str]:
    """
    Pull the enctoken value out of Set-Cookie headers.

    Returns:
        Token text up to the first ';', or None if no enctoken cookie is present
    """
    for cookie in set_cookies:
        cookie = cookie.strip()
        if cookie.startswith("enctoken="):
            value = cookie.split(";", 1)[0][len("enctoken="):]
            return value or None
    return None


class SessionManager:
    """
    Manages the Kite session token.

    Owns the only copy of the session state. Callers go through
    ensure_session() before any authenticated call; concurrent callers
    share a single in-flight session task.
    """

    def __init__(
        self,
        transport: BrokerTransport,
        token_store: Optional[TokenStore] = None,
        user_id: Optional[str] = None,
        password: Optional[str] = None,
        totp_secret: Optional[str] = None,
        root_url: str = ROOT_URL,
        login_url: str = LOGIN_URL,
        twofa_url: str = TWOFA_URL,
        twofa_delay: Optional[float] = None
    ):
        """
        Initialize session manager.

        Args:
            transport: Broker transport used for every HTTP call
            token_store: Where the enctoken is cached between runs
            user_id: Kite user id (or KITE_USER_ID)
            password: Kite password (or KITE_PASSWORD)
            totp_secret: Base32 TOTP secret (or KITE_TOTP_SECRET)
            root_url: Trading API root; only calls to it carry the enctoken
            login_url: Password login endpoint
            twofa_url: Two-factor endpoint
            twofa_delay: Pause before the two-factor call in seconds (default 1)
        """
        self.transport = transport
        self.token_store = token_store
        self.user_id = user_id or os.getenv('KITE_USER_ID')
        self.password = password or os.getenv('KITE_PASSWORD')
        self.totp_secret = totp_secret or os.getenv('KITE_TOTP_SECRET')
        self.root_url = root_url.rstrip('/')
        self.login_url = login_url
        self.twofa_url = twofa_url
        self.twofa_delay = twofa_delay if twofa_delay is not None else float(os.getenv('KITE_TWOFA_DELAY', '1'))

        self.enctoken = ""
        self.state = SessionState.UNAUTHENTICATED

        self._session_task: Optional[asyncio.Future] = None
        self._login_task: Optional[asyncio.Future] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.enctoken) and self.state in (SessionState.VERIFIED, SessionState.AUTHENTICATED)

    def get_token(self) -> Optional[str]:
        """
        Get current enctoken.

        Returns:
            Enctoken or None if not authenticated
        """
        return self.enctoken or None

    def get_auth_headers(self, url: str) -> Dict[str, str]:
        """
        Authorization header for a request URL.

        Only URLs on the trading API root get the enctoken; the login and
        two-factor host never does.
        """
        if not self.enctoken or not url.startswith(self.root_url):
            return {}
        return {"Authorization": f"enctoken {self.enctoken}"}

    def invalidate(self) -> None:
        """Forget the in-memory token so the next ensure_session() re-authenticates."""
        self.enctoken = ""
        self.state = SessionState.UNAUTHENTICATED

    def generate_totp(self) -> Tuple[str, int]:
        """
        Current TOTP code.

        Returns:
            (6-digit code, seconds until it expires)
        """
        totp = pyotp.TOTP(self.totp_secret)
        remaining = totp.interval - int(time.time()) % totp.interval
        return totp.now(), remaining

    # ==================== Transport ====================

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> TransportResponse:
        request_headers = {**(headers or {}), **self.get_auth_headers(url)}
        return await asyncio.to_thread(
            self.transport.request,
            method,
            url,
            headers=request_headers,
            data=data,
            params=params
        )

    @staticmethod
    def _unwrap(response: TransportResponse) -> ApiResult:
        """Normalise the broker envelope: 200 gives data, anything else a failure."""
        if response.status_code == 200:
            data = response.body.get("data") if isinstance(response.body, dict) else response.body
            return ApiResult.ok(data, status_code=200)

        message = response.message
        if message:
            logger.error(f"Status not success ({response.status_code}): {message}")
            return ApiResult.fail(ErrorKind.BROKER, message, status_code=response.status_code)

        error_msg = f"HTTP {response.status_code}"
        logger.error(f"Request failed: {error_msg}")
        return ApiResult.fail(ErrorKind.TRANSPORT, error_msg, status_code=response.status_code)

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> ApiResult:
        """
        Make an HTTP request and normalise the response.

        Never raises; transport failures come back as a failed ApiResult.
        """
        try:
            response = await self._send(method, url, params=params, data=data, headers=headers)
        except TransportError as e:
            logger.error(f"Request error: {e}")
            return ApiResult.fail(ErrorKind.TRANSPORT, str(e))
        return self._unwrap(response)

    # ==================== Session lifecycle ====================

    async def ensure_session(self) -> bool:
        """
        Ensure we have a usable token, reusing or re-authenticating as needed.

        Returns:
            True if a session is available
        """
        if self.enctoken:
            return True

        if self._session_task is None:
            self._session_task = asyncio.ensure_future(self._establish_session())
            self._session_task.add_done_callback(self._clear_session_task)
        return await asyncio.shield(self._session_task)

    def _clear_session_task(self, _task: asyncio.Future) -> None:
        self._session_task = None

    async def _establish_session(self) -> bool:
        stored = self._read_stored_token()
        if stored:
            self.enctoken = stored
            self.state = SessionState.TOKEN_CACHED_UNVERIFIED
            margins = await self.request("GET", f"{self.root_url}{MARGINS_ROUTE}")
            if margins.success:
                self.state = SessionState.VERIFIED
                logger.info("✅ Cached enctoken is valid")
                return True
            logger.info("Cached enctoken rejected")
            self.invalidate()

        logger.info("Generating new session...")
        return await self.login()

    def _read_stored_token(self) -> Optional[str]:
        if not self.token_store:
            return None
        try:
            return self.token_store.load()
        except Exception as e:
            logger.warning(f"⚠️  Token store unreadable, treating as empty: {e}")
            return None

    async def login(self) -> bool:
        """
        Full password + TOTP login.

        Concurrent calls share one in-flight login.

        Returns:
            True if a new enctoken was obtained
        """
        if self._login_task is None:
            self._login_task = asyncio.ensure_future(self._login())
            self._login_task.add_done_callback(self._clear_login_task)
        return await asyncio.shield(self._login_task)

    def _clear_login_task(self, _task: asyncio.Future) -> None:
        self._login_task = None

    async def _login(self) -> bool:
        if not self.user_id or not self.password or not self.totp_secret:
            logger.error("User id, password and TOTP secret are required")
            self.state = SessionState.UNAUTHENTICATED
            return False

        try:
            logger.info(f"Logging in as {self.user_id}...")
            self.state = SessionState.LOGGING_IN
            request_id = await self._password_login()

            self.state = SessionState.AWAITING_TWO_FACTOR
            enctoken = await self._two_factor(request_id)
        except (AuthenticationError, TransportError) as e:
            logger.error(f"Login failed: {e}")
            self.invalidate()
            return False

        self.enctoken = enctoken
        self.state = SessionState.AUTHENTICATED
        self._persist_token(enctoken)
        logger.info(f"✅ Successfully logged in as {self.user_id}")
        return True

    async def _password_login(self) -> str:
        response = await self._send(
            "POST",
            self.login_url,
            data={"user_id": self.user_id, "password": self.password}
        )
        result = self._unwrap(response)
        if not result.success:
            raise AuthenticationError(f"Password login rejected: {result.error}")

        request_id = result.data.get("request_id") if isinstance(result.data, dict) else None
        if not request_id:
            raise AuthenticationError("Password login returned no request_id")
        return request_id

    async def _two_factor(self, request_id: str) -> str:
        try:
            code, valid_for = self.generate_totp()
        except (binascii.Error, ValueError, TypeError) as e:
            raise AuthenticationError(f"Invalid TOTP secret: {e}") from e
        logger.debug(f"TOTP generated, valid for {valid_for}s")

        # Kite throttles an immediate second factor
        await asyncio.sleep(self.twofa_delay)

        response = await self._send(
            "POST",
            self.twofa_url,
            data={"user_id": self.user_id, "request_id": request_id, "twofa_value": code}
        )
        if response.status_code != 200:
            message = response.message or f"HTTP {response.status_code}"
            raise AuthenticationError(f"Two-factor rejected: {message}")

        enctoken = extract_enctoken(response.set_cookies)
        if not enctoken:
            raise AuthenticationError("Two-factor response carried no enctoken cookie")
        return enctoken

    def _persist_token(self, enctoken: str) -> None:
        if not self.token_store:
            return
        try:
            self.token_store.save(enctoken)
        except OSError as e:
            logger.error(f"Failed to save enctoken: {e}")
