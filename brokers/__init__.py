"""
Broker adapters - Implementation of broker-specific interfaces.

Each broker has its own adapter that implements the core interfaces.
"""

from .kite_adapter import KiteAdapter

__all__ = ['KiteAdapter']
