#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Kite Client - enctoken based client for the Kite trading API.

This client provides:
1. Password + TOTP login with a cached, validated enctoken
2. A local instrument catalog refreshed once a day
3. Expiry and option-strike lookups for building orders
4. Pass-through order, margin, trade, quote and candle calls
"""

import os
import sys
import asyncio
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional, List, Dict, Any, Union

# Load environment variables from .env file
import load_env  # noqa: F401

from core.auth import SessionManager
from core.errors import ApiResult
from core.instruments import Instrument
from core.market_data import InstrumentManager
from core.option_chain import DEFAULT_MAX_STRIKES
from core.interfaces import BrokerTransport, TokenStore, DatasetStore
from brokers.kite_adapter import KiteAdapter
from infrastructure.file_store import JsonTokenStore, FileDatasetStore
from infrastructure.http_transport import RequestsTransport

logger = logging.getLogger(__name__)


def setup_logging(log_file: str = 'kite_client.log', verbose: bool = False) -> None:
    """
    Configure logging: rotating file gets everything at LOG_LEVEL, console only warnings.
    """
    log_level = 'DEBUG' if verbose else os.getenv('LOG_LEVEL', 'INFO').upper()
    level = getattr(logging, log_level, logging.INFO)

    file_handler = RotatingFileHandler(
        log_file,
        mode='a',
        encoding='utf-8',
        maxBytes=10*1024*1024,  # 10MB per file
        backupCount=5
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[file_handler, console_handler],
        force=True
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logger.info(f"Logging initialized - file: {log_file} ({log_level}+)")


class KiteClient:
    """
    Facade over the session manager, broker adapter and instrument manager.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        password: Optional[str] = None,
        totp_secret: Optional[str] = None,
        transport: Optional[BrokerTransport] = None,
        token_store: Optional[TokenStore] = None,
        dataset_store: Optional[DatasetStore] = None
    ):
        """
        Initialize the client.

        Args:
            user_id: Kite user id (or KITE_USER_ID)
            password: Kite password (or KITE_PASSWORD)
            totp_secret: Base32 TOTP secret (or KITE_TOTP_SECRET)
            transport: HTTP transport (default RequestsTransport)
            token_store: enctoken cache (default JSON file at KITE_TOKEN_FILE)
            dataset_store: Instrument dump (default CSV at KITE_INSTRUMENTS_FILE)
        """
        self.transport = transport or RequestsTransport()
        self.session = SessionManager(
            transport=self.transport,
            token_store=token_store or JsonTokenStore(),
            user_id=user_id,
            password=password,
            totp_secret=totp_secret
        )
        self.broker = KiteAdapter(self.session)
        self.instruments = InstrumentManager(
            store=dataset_store or FileDatasetStore(),
            transport=self.transport
        )

    async def generate_session(self) -> bool:
        """
        Reuse the cached enctoken if it still works, otherwise log in.

        Returns:
            True if the client is authenticated
        """
        return await self.session.ensure_session()

    async def check_instruments(self) -> bool:
        """Refresh the instrument dump if needed and load the catalog."""
        return await self.instruments.check_instruments()

    def find_instrument(self, criteria: Dict[str, Any]) -> Union[None, Instrument, List[Instrument]]:
        return self.instruments.find_instrument(criteria)

    def get_expiry_dates(self, exchange: str, name: str, instrument_type: str) -> ApiResult:
        return self.instruments.get_expiry_dates(exchange, name, instrument_type)

    def get_option_strikes(
        self,
        price: float,
        name: str,
        expiry: str,
        instrument_type: str,
        max_strikes: int = DEFAULT_MAX_STRIKES
    ) -> ApiResult:
        return self.instruments.get_option_strikes(price, name, expiry, instrument_type, max_strikes)

    async def start(self) -> bool:
        """
        Authenticate and load instruments.

        The two steps are independent and run concurrently.
        """
        session_ok, instruments_ok = await asyncio.gather(
            self.generate_session(),
            self.check_instruments()
        )
        if not session_ok:
            logger.error("❌ Could not establish a Kite session")
        if not instruments_ok:
            logger.error("❌ Instrument catalog unavailable")
        return session_ok and instruments_ok


def main():
    """
    Log in, load instruments and print the account profile.
    """
    import argparse

    parser = argparse.ArgumentParser(description='Kite enctoken client')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose/debug logging')
    args = parser.parse_args()
    setup_logging(verbose=args.verbose)

    client = KiteClient()

    async def run() -> bool:
        if not await client.start():
            return False
        profile = await client.broker.profile()
        if profile.success:
            print(f"✅ Logged in as {(profile.data or {}).get('user_name', client.session.user_id)}")
        print(f"📋 {len(client.instruments.catalog or [])} instruments loaded")
        return profile.success

    try:
        ok = asyncio.run(run())
    except KeyboardInterrupt:
        print("\n👋 Stopped by user.")
        ok = False
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
