"""
Unit tests for the Kite broker adapter.

Tests route resolution, session handling and order validation with the
session manager mocked out.
"""

import pytest
import os
import sys
from unittest.mock import Mock, AsyncMock

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brokers.kite_adapter import KiteAdapter
from core.errors import ApiResult, ErrorKind
from core.interfaces import Variety, OrderType, Product, TransactionType

ROOT = "https://api.kite.trade"


class TestKiteAdapter:
    """Test suite for KiteAdapter."""

    @pytest.fixture
    def session(self):
        session = Mock()
        session.root_url = ROOT
        session.is_authenticated = True
        session.ensure_session = AsyncMock(return_value=True)
        session.request = AsyncMock(return_value=ApiResult.ok({"ok": True}, status_code=200))
        return session

    @pytest.fixture
    def adapter(self, session):
        return KiteAdapter(session)

    @pytest.fixture
    def order_params(self):
        return {
            "tradingsymbol": "INFY",
            "exchange": "NSE",
            "transaction_type": TransactionType.BUY,
            "order_type": OrderType.MARKET,
            "quantity": 1,
            "product": Product.CNC,
        }

    @pytest.mark.asyncio
    async def test_margins_route(self, adapter, session):
        result = await adapter.margins()
        assert result.success
        session.request.assert_awaited_once_with("GET", f"{ROOT}/user/margins", params=None, data=None)

    @pytest.mark.asyncio
    async def test_margins_segment_route(self, adapter, session):
        await adapter.margins("equity")
        session.request.assert_awaited_once_with("GET", f"{ROOT}/user/margins/equity", params=None, data=None)

    @pytest.mark.asyncio
    async def test_profile_orders_trades_routes(self, adapter, session):
        await adapter.profile()
        await adapter.orders()
        await adapter.trades()
        urls = [call.args[1] for call in session.request.await_args_list]
        assert urls == [f"{ROOT}/user/profile", f"{ROOT}/orders", f"{ROOT}/trades"]

    @pytest.mark.asyncio
    async def test_order_info_substitutes_order_id(self, adapter, session):
        await adapter.order_info("240520000000001")
        await adapter.order_trades("240520000000001")
        urls = [call.args[1] for call in session.request.await_args_list]
        assert urls == [
            f"{ROOT}/orders/240520000000001",
            f"{ROOT}/orders/240520000000001/trades",
        ]

    @pytest.mark.asyncio
    async def test_order_info_requires_order_id(self, adapter, session):
        result = await adapter.order_info(None)
        assert not result.success
        assert result.error_kind == ErrorKind.VALIDATION
        session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_session_fails_without_request(self, adapter, session):
        session.ensure_session.return_value = False
        result = await adapter.orders()
        assert not result.success
        assert result.error_kind == ErrorKind.AUTH
        session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_forbidden_triggers_single_relogin(self, adapter, session):
        session.request.side_effect = [
            ApiResult.fail(ErrorKind.BROKER, "Invalid token", status_code=403),
            ApiResult.ok([{"order_id": "1"}], status_code=200),
        ]
        result = await adapter.orders()

        assert result.success
        assert result.data == [{"order_id": "1"}]
        session.invalidate.assert_called_once()
        assert session.ensure_session.await_count == 2
        assert session.request.await_count == 2

    @pytest.mark.asyncio
    async def test_forbidden_right_after_login_is_not_retried(self, adapter, session):
        session.is_authenticated = False
        session.request.return_value = ApiResult.fail(ErrorKind.BROKER, "Insufficient permission", status_code=403)

        result = await adapter.orders()

        assert result.status_code == 403
        session.invalidate.assert_not_called()
        session.ensure_session.assert_awaited_once()
        assert session.request.await_count == 1

    @pytest.mark.asyncio
    async def test_forbidden_twice_is_reported(self, adapter, session):
        session.request.return_value = ApiResult.fail(ErrorKind.BROKER, "Invalid token", status_code=403)
        result = await adapter.orders()
        assert not result.success
        assert session.request.await_count == 2

    @pytest.mark.asyncio
    async def test_place_order(self, adapter, session, order_params):
        session.request.return_value = ApiResult.ok({"order_id": "151220000000000"}, status_code=200)
        result = await adapter.place_order(Variety.REGULAR, **order_params)

        assert result.data == {"order_id": "151220000000000"}
        method, url = session.request.await_args.args
        assert method == "POST"
        assert url == f"{ROOT}/orders/regular"
        assert session.request.await_args.kwargs["data"] == {
            "tradingsymbol": "INFY",
            "exchange": "NSE",
            "transaction_type": "BUY",
            "order_type": "MARKET",
            "quantity": 1,
            "product": "CNC",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["tradingsymbol", "exchange", "transaction_type", "order_type", "product"])
    async def test_place_order_missing_field(self, adapter, session, order_params, missing):
        del order_params[missing]
        result = await adapter.place_order("regular", **order_params)
        assert result.error_kind == ErrorKind.VALIDATION
        assert missing in result.error
        session.request.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1, "abc", None])
    async def test_place_order_bad_quantity(self, adapter, session, order_params, quantity):
        order_params["quantity"] = quantity
        result = await adapter.place_order("regular", **order_params)
        assert result.error_kind == ErrorKind.VALIDATION
        session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_place_order_requires_variety(self, adapter, session, order_params):
        result = await adapter.place_order("", **order_params)
        assert "variety" in result.error
        session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_modify_order(self, adapter, session):
        await adapter.modify_order("regular", "42", price=101.5, order_type=OrderType.LIMIT)
        method, url = session.request.await_args.args
        assert method == "PUT"
        assert url == f"{ROOT}/orders/regular/42"
        assert session.request.await_args.kwargs["data"] == {"price": 101.5, "order_type": "LIMIT"}

    @pytest.mark.asyncio
    async def test_cancel_order(self, adapter, session):
        await adapter.cancel_order(Variety.CO, "42", parent_order_id="41")
        method, url = session.request.await_args.args
        assert method == "DELETE"
        assert url == f"{ROOT}/orders/co/42"
        assert session.request.await_args.kwargs["params"] == {"parent_order_id": "41"}

    @pytest.mark.asyncio
    async def test_quote(self, adapter, session):
        await adapter.quote("NSE:INFY")
        assert session.request.await_args.args[1] == f"{ROOT}/quote"
        assert session.request.await_args.kwargs["params"] == {"i": ["NSE:INFY"]}

    @pytest.mark.asyncio
    async def test_quote_requires_instruments(self, adapter, session):
        result = await adapter.quote([])
        assert result.error_kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_historical_data(self, adapter, session):
        await adapter.historical_data(408065, "5minute", "2024-05-20 09:15:00", "2024-05-20 15:30:00", oi=True)
        assert session.request.await_args.args[1] == f"{ROOT}/instruments/historical/408065/5minute"
        assert session.request.await_args.kwargs["params"] == {
            "from": "2024-05-20 09:15:00",
            "to": "2024-05-20 15:30:00",
            "continuous": 0,
            "oi": 1,
        }
