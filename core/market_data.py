"""
Market Data Manager - Owns the instrument catalog and serves instrument queries.

This module keeps the current catalog snapshot, refreshes the instrument
dump once a day and exposes the lookup, expiry and option-strike queries
used to build orders.
"""

import os
import time
import asyncio
import logging
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from threading import Lock

from core.errors import ApiResult, KiteClientError, TransportError, InstrumentDataError
from core.instruments import (
    Instrument,
    InstrumentCatalog,
    load_catalog,
    parse_refresh_time,
    should_refresh,
)
from core.option_chain import (
    DEFAULT_MAX_STRIKES,
    OptionChainQuery,
    expiry_dates,
    option_strikes,
)
from core.interfaces.storage_interface import DatasetStore
from core.interfaces.transport_interface import BrokerTransport

logger = logging.getLogger(__name__)

INSTRUMENTS_URL = "https://api.kite.trade/instruments"


class InstrumentManager:
    """
    Manages the instrument catalog.

    Holds one immutable snapshot at a time. Reloading swaps the reference,
    so queries already running keep the snapshot they started with.
    """

    def __init__(
        self,
        store: DatasetStore,
        transport: Optional[BrokerTransport] = None,
        instruments_url: str = INSTRUMENTS_URL,
        timezone: Optional[str] = None,
        refresh_time: Optional[str] = None
    ):
        """
        Initialize instrument manager.

        Args:
            store: Dataset store holding the instrument dump
            transport: Transport used to download the dump (refresh disabled if None)
            instruments_url: Public instrument dump URL
            timezone: Timezone for the daily refresh cutoff (or INSTRUMENTS_TIMEZONE, default local)
            refresh_time: HH:MM daily cutoff (or INSTRUMENTS_REFRESH_TIME, default 08:30)
        """
        self.store = store
        self.transport = transport
        self.instruments_url = instruments_url
        self.timezone = timezone or os.getenv('INSTRUMENTS_TIMEZONE') or None
        self.refresh_time = parse_refresh_time(refresh_time or os.getenv('INSTRUMENTS_REFRESH_TIME'))
        self._catalog: Optional[InstrumentCatalog] = None
        self._catalog_lock = Lock()
        logger.debug("InstrumentManager initialized")

    @property
    def catalog(self) -> Optional[InstrumentCatalog]:
        """Current snapshot, None until the first successful load."""
        with self._catalog_lock:
            return self._catalog

    def set_catalog(self, catalog: InstrumentCatalog) -> None:
        with self._catalog_lock:
            self._catalog = catalog
        logger.debug(f"Catalog replaced ({len(catalog)} instruments)")

    def clear_cache(self) -> None:
        """Drop the in-memory catalog."""
        with self._catalog_lock:
            self._catalog = None
            logger.debug("Instrument catalog cleared")

    def load(self) -> bool:
        """
        Load the dataset into a fresh catalog.

        Returns:
            True if the catalog was loaded
        """
        try:
            catalog = load_catalog(self.store)
        except InstrumentDataError as e:
            logger.error(f"❌ Error loading instruments: {e}")
            return False
        self.set_catalog(catalog)
        return True

    def _current_catalog(self) -> InstrumentCatalog:
        catalog = self.catalog
        if catalog is None:
            if not self.load():
                raise InstrumentDataError("Instrument catalog is not loaded")
            catalog = self.catalog
        return catalog

    # ==================== Refresh ====================

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        return should_refresh(
            self.store.last_modified(),
            now=now,
            tz=self.timezone,
            refresh_time=self.refresh_time
        )

    async def download_instruments(self) -> bool:
        """
        Download the instrument dump and replace the stored dataset.

        Returns:
            True if the dump was downloaded and stored
        """
        if self.transport is None:
            logger.error("No transport configured, cannot download instruments")
            return False

        start_time = time.perf_counter()
        try:
            response = await asyncio.to_thread(self.transport.request, "GET", self.instruments_url)
        except TransportError as e:
            logger.error(f"Error downloading instruments: {e}")
            return False

        if response.status_code != 200 or not response.text:
            logger.error(f"Error downloading instruments: HTTP {response.status_code} {response.message or ''}".rstrip())
            return False

        try:
            self.store.write_text(response.text)
        except OSError as e:
            logger.error(f"Error saving instruments: {e}")
            return False

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Instruments downloaded in {elapsed_ms:.2f} ms")
        return True

    async def check_instruments(self, now: Optional[datetime] = None) -> bool:
        """
        Download the dump if it is missing or older than today's cutoff, then load it.

        Returns:
            True if a usable catalog is loaded afterwards
        """
        refresh = self.needs_refresh(now)
        logger.info(f"Instrument refresh required: {refresh}")
        if refresh:
            downloaded = await self.download_instruments()
            if not downloaded and self.store.last_modified() is None:
                return False
            if not downloaded:
                logger.warning("⚠️  Using stale instrument dataset")
        elif self.catalog is not None:
            return True
        return self.load()

    # ==================== Queries ====================

    def find_instrument(self, criteria: Dict[str, Any]) -> Union[None, Instrument, List[Instrument]]:
        """
        Exact-match instrument lookup.

        Args:
            criteria: Field name to value; empty values are wildcards

        Returns:
            None, a single Instrument, or a list of matches in catalog order
        """
        try:
            catalog = self._current_catalog()
        except InstrumentDataError as e:
            logger.error(str(e))
            return None
        return catalog.find(criteria)

    def get_expiry_dates(self, exchange: str, name: str, instrument_type: str) -> ApiResult:
        """
        Sorted distinct expiries for an underlying.

        Returns:
            ApiResult whose data is a list of date strings
        """
        try:
            dates = expiry_dates(self._current_catalog(), exchange, name, instrument_type)
        except KiteClientError as e:
            logger.error(f"Expiry lookup failed: {e}")
            return ApiResult.from_exception(e)
        return ApiResult.ok(dates)

    def get_option_strikes(
        self,
        price: float,
        name: str,
        expiry: str,
        instrument_type: str,
        max_strikes: int = DEFAULT_MAX_STRIKES
    ) -> ApiResult:
        """
        ATM strike plus nearest strikes above and below the price.

        Returns:
            ApiResult whose data is an OptionChainResult
        """
        query = OptionChainQuery(
            price=price,
            name=name,
            expiry=expiry,
            instrument_type=instrument_type,
            max_strikes=max_strikes
        )
        try:
            result = option_strikes(self._current_catalog(), query)
        except KiteClientError as e:
            logger.error(f"Option strike lookup failed: {e}")
            return ApiResult.from_exception(e)
        return ApiResult.ok(result)
