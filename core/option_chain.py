"""
Option Chain Resolver - Expiry enumeration and nearest-strike selection.

Works only on catalog rows; it never touches the dataset or the network.
"""

import logging
from typing import Optional, List, Tuple, Union
from dataclasses import dataclass, field
from datetime import date

from core.errors import ValidationError, NotFoundError
from core.instruments import InstrumentCatalog

logger = logging.getLogger(__name__)

DEFAULT_MAX_STRIKES = 5


@dataclass
class OptionChainQuery:
    """Strike lookup around a reference price."""
    price: float
    name: str
    expiry: str
    instrument_type: str
    max_strikes: int = DEFAULT_MAX_STRIKES

    def validate(self) -> None:
        """
        Raises:
            ValidationError: If a required field is missing or max_strikes is not positive
        """
        missing = [
            key for key in ('name', 'expiry', 'instrument_type')
            if not getattr(self, key)
        ]
        if self.price is None:
            missing.insert(0, 'price')
        if missing:
            raise ValidationError(f"Option chain query missing: {', '.join(missing)}")
        if self.price <= 0:
            raise ValidationError(f"Price must be positive, got {self.price}")
        if not isinstance(self.max_strikes, int) or self.max_strikes <= 0:
            raise ValidationError(f"max_strikes must be a positive integer, got {self.max_strikes!r}")


@dataclass
class OptionChainResult:
    """ATM strike plus the nearest strikes above and below the price."""
    atm_strike: Optional[float] = None
    up_strikes: List[float] = field(default_factory=list)
    down_strikes: List[float] = field(default_factory=list)


def _expiry_sort_key(expiry: str) -> Tuple[int, Union[date, str]]:
    try:
        return (0, date.fromisoformat(expiry))
    except ValueError:
        return (1, expiry)


def expiry_dates(
    catalog: InstrumentCatalog,
    exchange: str,
    name: str,
    instrument_type: str
) -> List[str]:
    """
    Distinct expiries for an underlying, oldest first.

    instrument_type is matched as a prefix of the row's type, so "FUT"
    also matches "FUTIDX"-style types.

    Raises:
        ValidationError: If exchange, name or instrument_type is empty
    """
    if not exchange or not name or not instrument_type:
        raise ValidationError("exchange, name and instrument_type are required")

    expiries = {
        inst.expiry
        for inst in catalog
        if inst.exchange == exchange
        and inst.name == name
        and inst.instrument_type is not None
        and inst.instrument_type.startswith(instrument_type)
        and inst.expiry
    }
    return sorted(expiries, key=_expiry_sort_key)


def option_strikes(catalog: InstrumentCatalog, query: OptionChainQuery) -> OptionChainResult:
    """
    Select the ATM strike and up to max_strikes strikes on each side of the price.

    Rows are ordered by distance from the price with a stable sort, so equal
    distances keep catalog order. Up and down strikes come out nearest first,
    not sorted by strike value.

    Raises:
        ValidationError: If the query is incomplete
        NotFoundError: If no row matches name, expiry and instrument_type
    """
    query.validate()
    price = query.price

    strikes = [
        inst.strike
        for inst in catalog
        if inst.name == query.name
        and inst.expiry == query.expiry
        and inst.instrument_type == query.instrument_type
        and inst.strike is not None
    ]
    if not strikes:
        raise NotFoundError(
            f"No {query.instrument_type} strikes for {query.name} expiring {query.expiry}"
        )

    by_distance = sorted(strikes, key=lambda strike: abs(strike - price))
    atm_strike = by_distance[0]

    down_strikes = [s for s in by_distance if s < price and s < atm_strike][:query.max_strikes]
    up_strikes = [s for s in by_distance if s > price and s > atm_strike][:query.max_strikes]

    logger.debug(
        f"{query.name} {query.expiry} {query.instrument_type} @ {price}: "
        f"ATM {atm_strike}, {len(down_strikes)} down, {len(up_strikes)} up"
    )
    return OptionChainResult(atm_strike=atm_strike, up_strikes=up_strikes, down_strikes=down_strikes)
