"""
Order Interface - Abstract interface for order operations.

Order parameters follow the Kite order API. Every operation returns an
ApiResult instead of raising.
"""

from abc import ABC, abstractmethod
from typing import Optional, Any
from enum import Enum

from core.errors import ApiResult


class Variety(Enum):
    """Order variety (URL path segment)."""
    REGULAR = "regular"
    AMO = "amo"
    CO = "co"
    ICEBERG = "iceberg"
    AUCTION = "auction"


class OrderType(Enum):
    """Order type."""
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    SL = "SL"
    SL_M = "SL-M"


class Product(Enum):
    """Margin product."""
    CNC = "CNC"
    NRML = "NRML"
    MIS = "MIS"


class Validity(Enum):
    """Order validity."""
    DAY = "DAY"
    IOC = "IOC"
    TTL = "TTL"


class TransactionType(Enum):
    """Order side."""
    BUY = "BUY"
    SELL = "SELL"


class OrderInterface(ABC):
    """
    Abstract interface for order operations.

    All broker implementations must implement this interface.
    """

    @abstractmethod
    async def place_order(self, variety: str, **params: Any) -> ApiResult:
        """
        Place an order.

        Args:
            variety: Order variety (see Variety)
            **params: tradingsymbol, exchange, transaction_type, order_type,
                quantity, product and optional price fields

        Returns:
            ApiResult whose data holds the order_id
        """
        pass

    @abstractmethod
    async def modify_order(self, variety: str, order_id: str, **params: Any) -> ApiResult:
        """Modify a pending order."""
        pass

    @abstractmethod
    async def cancel_order(
        self,
        variety: str,
        order_id: str,
        parent_order_id: Optional[str] = None
    ) -> ApiResult:
        """Cancel a pending order."""
        pass

    @abstractmethod
    async def orders(self) -> ApiResult:
        """List all orders for the day."""
        pass

    @abstractmethod
    async def order_info(self, order_id: str) -> ApiResult:
        """History of a single order."""
        pass

    @abstractmethod
    async def trades(self) -> ApiResult:
        """List all executed trades for the day."""
        pass
