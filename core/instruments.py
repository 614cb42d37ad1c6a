"""
Instrument Catalog - Parses the broker's instrument dump into typed records.

The dump is a flat comma separated file with a header row. Every load builds
a fresh immutable catalog; row order is preserved because several queries
break ties by it.
"""

import math
import logging
from typing import Optional, List, Dict, Any, Iterator, Tuple, Union
from dataclasses import dataclass, field, fields
from datetime import datetime, time as dt_time

import pytz

from core.errors import InstrumentDataError
from core.interfaces.storage_interface import DatasetStore

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_TIME = dt_time(8, 30)


@dataclass(frozen=True)
class Instrument:
    """One row of the instrument dump."""
    instrument_token: Optional[str] = None
    exchange_token: Optional[str] = None
    tradingsymbol: Optional[str] = None
    name: Optional[str] = None
    last_price: Optional[str] = None
    expiry: Optional[str] = None
    strike: Optional[float] = None
    tick_size: Optional[str] = None
    lot_size: Optional[Union[int, float]] = None
    instrument_type: Optional[str] = None
    segment: Optional[str] = None
    exchange: Optional[str] = None
    extras: Dict[str, Optional[str]] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Read a named field or an unrecognised column by header name."""
        if key in _FIELD_NAMES:
            return getattr(self, key)
        return self.extras.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        row = {name: getattr(self, name) for name in _FIELD_NAMES}
        row.update(self.extras)
        return row

    def __hash__(self) -> int:
        return hash((self.exchange, self.tradingsymbol, self.instrument_token))


_FIELD_NAMES = tuple(f.name for f in fields(Instrument) if f.name != 'extras')


def _to_number(text: str) -> Optional[float]:
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def _coerce(column: str, text: Optional[str]) -> Any:
    """Coerce strike and lot size columns to numbers, keep everything else as text."""
    if text is None:
        return None
    text = text.strip()
    if text == "":
        return None
    if 'strike' in column:
        value = _to_number(text)
        if value is None or value < 0:
            return None
        return value
    if column == 'lot_size':
        value = _to_number(text)
        if value is None:
            return None
        return int(value) if value.is_integer() else value
    return text


def _build_instrument(headers: List[str], values: List[str]) -> Instrument:
    named: Dict[str, Any] = {}
    extras: Dict[str, Optional[str]] = {}
    for i, column in enumerate(headers):
        raw = values[i] if i < len(values) else None
        value = _coerce(column, raw)
        if column in _FIELD_NAMES:
            named[column] = value
        elif column:
            extras[column] = value
    return Instrument(extras=extras, **named)


class InstrumentCatalog:
    """
    Ordered, read-only snapshot of instruments.

    Never mutated after construction; a reload builds a new catalog.
    """

    def __init__(self, instruments: Optional[List[Instrument]] = None, loaded_at: Optional[datetime] = None):
        self._instruments: Tuple[Instrument, ...] = tuple(instruments or ())
        self.loaded_at = loaded_at or datetime.now()

    def __len__(self) -> int:
        return len(self._instruments)

    def __iter__(self) -> Iterator[Instrument]:
        return iter(self._instruments)

    def __getitem__(self, index: int) -> Instrument:
        return self._instruments[index]

    @property
    def instruments(self) -> Tuple[Instrument, ...]:
        return self._instruments

    def filter(self, criteria: Dict[str, Any]) -> List[Instrument]:
        """
        Return every instrument matching the criteria, in catalog order.

        Criteria with empty or None values act as wildcards.
        """
        active = {key: value for key, value in criteria.items() if value not in (None, "")}
        return [
            inst for inst in self._instruments
            if all(inst.get(key) == value for key, value in active.items())
        ]

    def find(self, criteria: Dict[str, Any]) -> Union[None, Instrument, List[Instrument]]:
        """
        Exact-match lookup.

        Returns:
            None when nothing matches, the Instrument when exactly one row
            matches, otherwise the list of matches in catalog order
        """
        matches = self.filter(criteria)
        if not matches:
            return None
        if len(matches) == 1:
            return matches[0]
        return matches


def parse_instruments(text: str) -> InstrumentCatalog:
    """
    Parse the raw instrument dump.

    Double quotes are stripped before splitting. Rows shorter than the header
    leave trailing fields absent and blank lines become all-absent records.
    """
    lines = text.replace('"', '').split('\n')
    headers = [column.strip() for column in lines[0].split(',')]
    instruments = [
        _build_instrument(headers, line.strip().split(','))
        for line in lines[1:]
    ]
    logger.debug(f"Parsed {len(instruments)} instrument rows with {len(headers)} columns")
    return InstrumentCatalog(instruments)


def load_catalog(store: DatasetStore) -> InstrumentCatalog:
    """
    Load the catalog from the dataset store.

    Raises:
        InstrumentDataError: If the dataset cannot be read
    """
    text = store.read_text()
    if not text:
        raise InstrumentDataError("Instrument dataset is empty")
    catalog = parse_instruments(text)
    logger.info(f"Loaded {len(catalog)} instruments")
    return catalog


def parse_refresh_time(value: Optional[str]) -> dt_time:
    """Parse an HH:MM refresh time, falling back to 08:30."""
    if not value:
        return DEFAULT_REFRESH_TIME
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except ValueError:
        logger.warning(f"Invalid refresh time {value!r}, using {DEFAULT_REFRESH_TIME:%H:%M}")
        return DEFAULT_REFRESH_TIME


def refresh_cutoff(
    now: Optional[datetime] = None,
    tz: Optional[str] = None,
    refresh_time: dt_time = DEFAULT_REFRESH_TIME
) -> datetime:
    """
    Today's refresh cutoff.

    Always today's date at the refresh time, even when now is earlier than it.
    With tz the cutoff is an aware datetime in that timezone and a naive
    now is read as host local time.
    """
    if tz:
        zone = pytz.timezone(tz)
        if now is None:
            now = datetime.now(zone)
        else:
            now = now.astimezone(zone)
        return zone.localize(datetime.combine(now.date(), refresh_time))
    now = now or datetime.now()
    return now.replace(
        hour=refresh_time.hour,
        minute=refresh_time.minute,
        second=0,
        microsecond=0
    )


def should_refresh(
    last_modified: Optional[datetime],
    now: Optional[datetime] = None,
    tz: Optional[str] = None,
    refresh_time: dt_time = DEFAULT_REFRESH_TIME
) -> bool:
    """
    Decide whether the instrument dump must be downloaded again.

    Args:
        last_modified: Dataset modification time, None when no dataset exists.
            Naive values are host local time.
        now: Current time (defaults to local now)
        tz: Optional timezone name for the cutoff, e.g. "Asia/Kolkata"
        refresh_time: Daily cutoff time

    Returns:
        True if there is no dataset or it predates today's cutoff
    """
    if last_modified is None:
        return True
    cutoff = refresh_cutoff(now, tz, refresh_time)
    if tz and last_modified.tzinfo is None:
        last_modified = last_modified.astimezone(pytz.timezone(tz))
    return last_modified < cutoff
