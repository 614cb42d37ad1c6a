"""
Core interfaces for broker abstraction (Translation Layer).

These interfaces abstract away the HTTP stack, persistence and
broker-specific order calls so each can be swapped or faked in tests.
"""

from .order_interface import (
    OrderInterface,
    Variety,
    OrderType,
    Product,
    Validity,
    TransactionType
)
from .transport_interface import BrokerTransport, TransportResponse
from .storage_interface import TokenStore, DatasetStore

__all__ = [
    'OrderInterface',
    'Variety',
    'OrderType',
    'Product',
    'Validity',
    'TransactionType',
    'BrokerTransport',
    'TransportResponse',
    'TokenStore',
    'DatasetStore',
]
