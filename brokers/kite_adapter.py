"""
Kite Broker Adapter - Pass-through REST operations for the Kite trading API.

Each call makes sure a session exists, resolves the route template and
returns the broker payload wrapped in an ApiResult. Request and response
bodies are passed through unchanged.
"""

import logging
from typing import Optional, List, Dict, Any, Union

from core.auth import SessionManager
from core.errors import ApiResult, ErrorKind
from core.interfaces import OrderInterface

logger = logging.getLogger(__name__)

ROUTES = {
    "user_profile": "/user/profile",
    "user_margins": "/user/margins",
    "user_margins_segment": "/user/margins/{segment}",
    "orders": "/orders",
    "trades": "/trades",
    "order_info": "/orders/{order_id}",
    "order_trades": "/orders/{order_id}/trades",
    "place_order": "/orders/{variety}",
    "modify_order": "/orders/{variety}/{order_id}",
    "cancel_order": "/orders/{variety}/{order_id}",
    "quote": "/quote",
    "historical_data": "/instruments/historical/{instrument_token}/{interval}",
}

REQUIRED_ORDER_FIELDS = (
    "tradingsymbol",
    "exchange",
    "transaction_type",
    "order_type",
    "product",
)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class KiteAdapter(OrderInterface):
    """
    Kite broker adapter.

    Authentication is delegated to the SessionManager; this class only knows
    routes and payloads.
    """

    def __init__(self, session: SessionManager):
        """
        Initialize Kite adapter.

        Args:
            session: SessionManager that owns the enctoken
        """
        self.session = session
        self.root_url = session.root_url
        logger.debug("Kite adapter initialized")

    def _build_url(self, route: str, **path_params: Any) -> str:
        template = ROUTES[route]
        missing = [
            key for key, value in path_params.items()
            if value is None or value == ""
        ]
        if missing:
            raise ValueError(f"Missing path parameter(s) for {route}: {', '.join(missing)}")
        return self.root_url + template.format(**{k: _enum_value(v) for k, v in path_params.items()})

    async def _call(
        self,
        method: str,
        route: str,
        path_params: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> ApiResult:
        """
        Make an authenticated API call.

        A 403 on a previously established session (expired or revoked
        enctoken) triggers one re-login and retry.
        """
        try:
            url = self._build_url(route, **(path_params or {}))
        except ValueError as e:
            logger.error(str(e))
            return ApiResult.fail(ErrorKind.VALIDATION, str(e))

        had_session = self.session.is_authenticated
        if not await self.session.ensure_session():
            return ApiResult.fail(ErrorKind.AUTH, "No valid session")

        result = await self.session.request(method, url, params=params, data=data)

        # A token verified for this very call is not retried
        if result.status_code == 403 and had_session:
            logger.info("Token rejected during request, re-authenticating...")
            self.session.invalidate()
            if await self.session.ensure_session():
                result = await self.session.request(method, url, params=params, data=data)

        return result

    # ==================== User ====================

    async def profile(self) -> ApiResult:
        """Get user profile."""
        return await self._call("GET", "user_profile")

    async def margins(self, segment: Optional[str] = None) -> ApiResult:
        """
        Get user funds and margins, optionally for one segment ("equity" or "commodity").
        """
        if segment:
            return await self._call("GET", "user_margins_segment", {"segment": segment})
        return await self._call("GET", "user_margins")

    # ==================== Orders ====================

    async def orders(self) -> ApiResult:
        """Retrieve the list of all orders (open and executed) for the day."""
        return await self._call("GET", "orders")

    async def trades(self) -> ApiResult:
        """Retrieve the list of all executed trades for the day."""
        return await self._call("GET", "trades")

    async def order_info(self, order_id: str) -> ApiResult:
        return await self._call("GET", "order_info", {"order_id": order_id})

    async def order_trades(self, order_id: str) -> ApiResult:
        return await self._call("GET", "order_trades", {"order_id": order_id})

    def validate_order(self, variety: Any, params: Dict[str, Any]) -> Optional[str]:
        """
        Check the fields every order needs.

        Returns:
            Error message, or None if the order is complete
        """
        missing = [key for key in REQUIRED_ORDER_FIELDS if not params.get(key)]
        if not variety:
            missing.insert(0, "variety")
        if missing:
            return f"Place order params missing: {', '.join(missing)}"

        try:
            quantity = int(params.get("quantity") or 0)
        except (TypeError, ValueError):
            return f"Invalid quantity: {params.get('quantity')!r}"
        if quantity <= 0:
            return "Quantity must be greater than zero"
        return None

    async def place_order(self, variety: Any, **params: Any) -> ApiResult:
        error = self.validate_order(variety, params)
        if error:
            logger.error(error)
            return ApiResult.fail(ErrorKind.VALIDATION, error)

        payload = {key: _enum_value(value) for key, value in params.items()}
        result = await self._call("POST", "place_order", {"variety": variety}, data=payload)
        if result.success:
            logger.info(
                f"Order placed: {payload['transaction_type']} {payload['quantity']} "
                f"{payload['exchange']}:{payload['tradingsymbol']} -> {result.data}"
            )
        return result

    async def modify_order(self, variety: Any, order_id: str, **params: Any) -> ApiResult:
        payload = {key: _enum_value(value) for key, value in params.items()}
        return await self._call(
            "PUT",
            "modify_order",
            {"variety": variety, "order_id": order_id},
            data=payload
        )

    async def cancel_order(
        self,
        variety: Any,
        order_id: str,
        parent_order_id: Optional[str] = None
    ) -> ApiResult:
        params = {"parent_order_id": parent_order_id} if parent_order_id else None
        return await self._call(
            "DELETE",
            "cancel_order",
            {"variety": variety, "order_id": order_id},
            params=params
        )

    # ==================== Market data ====================

    async def quote(self, instruments: Union[str, List[str]]) -> ApiResult:
        """
        Full market quotes.

        Args:
            instruments: "EXCHANGE:TRADINGSYMBOL" or a list of them
        """
        if isinstance(instruments, str):
            instruments = [instruments]
        if not instruments:
            return ApiResult.fail(ErrorKind.VALIDATION, "At least one instrument is required")
        return await self._call("GET", "quote", params={"i": instruments})

    async def historical_data(
        self,
        instrument_token: Union[str, int],
        interval: str,
        from_date: str,
        to_date: str,
        continuous: bool = False,
        oi: bool = False
    ) -> ApiResult:
        """
        Historical candles for an instrument.

        Args:
            instrument_token: Instrument token from the catalog
            interval: minute, 3minute, 5minute, ..., day
            from_date: "yyyy-mm-dd hh:mm:ss"
            to_date: "yyyy-mm-dd hh:mm:ss"
        """
        params = {
            "from": from_date,
            "to": to_date,
            "continuous": int(continuous),
            "oi": int(oi),
        }
        return await self._call(
            "GET",
            "historical_data",
            {"instrument_token": instrument_token, "interval": interval},
            params=params
        )
