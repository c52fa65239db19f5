"""Oracle price lookup for farms priced through a price feed account."""

from __future__ import annotations

from dataclasses import dataclass, field

from .consts import U64_MAX
from .errors import ErrorCode, FarmError
from .state import DEFAULT_PUBKEY, DatedPrice, FarmState

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def _b58decode(text: str) -> bytes:
    value = 0
    for char in text:
        value = value * 58 + _BASE58_ALPHABET.index(char)
    body = value.to_bytes((value.bit_length() + 7) // 8, "big") if value else b""
    leading = len(text) - len(text.lstrip("1"))
    return bytes(leading) + body


PROGRAM_ID = _b58decode("FarmsPZpWu9i7Kky8tPN37rs2TpmMrAZrC7S7vJa91Hr")


@dataclass
class OraclePrices:
    """A price feed account: its address and the prices it holds."""

    key: bytes
    prices: list[DatedPrice] = field(default_factory=list)


def load_scope_price(
    scope_prices: OraclePrices | None, farm_state: FarmState
) -> DatedPrice | None:
    """Return the farm's oracle price, or None when the farm uses no oracle."""
    if farm_state.scope_oracle_price_id == U64_MAX:
        return None
    if scope_prices is None:
        raise FarmError(ErrorCode.INVALID_ORACLE_CONFIG, "price account missing")
    if scope_prices.key in (DEFAULT_PUBKEY, PROGRAM_ID):
        raise FarmError(ErrorCode.INVALID_ORACLE_CONFIG, "price account not set")
    if scope_prices.key != farm_state.scope_prices:
        raise FarmError(ErrorCode.INVALID_ORACLE_CONFIG, "price account mismatch")
    return scope_prices.prices[farm_state.scope_oracle_price_id]