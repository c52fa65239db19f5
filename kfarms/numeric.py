"""Fixed-point decimals scaled by 10**18 and bounded integer helpers."""

from __future__ import annotations

from dataclasses import dataclass

from .consts import U64_MAX, U128_MAX
from .errors import ErrorCode, FarmError

WAD = 10**18

_U192_LIMIT = 1 << 192
_U256_LIMIT = 1 << 256


def _require_uint(value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"expected an unsigned integer, got {value!r}")
    if value < 0:
        raise OverflowError(f"negative value {value} for an unsigned integer")
    return value


@dataclass(frozen=True, order=True)
class WadDecimal:
    """Non-negative decimal stored as an integer scaled by WAD (fits 192 bits)."""

    scaled: int

    def __post_init__(self) -> None:
        _require_uint(self.scaled)
        if self.scaled >= _U192_LIMIT:
            raise OverflowError("arithmetic operation overflow")

    @classmethod
    def from_int(cls, value: int) -> "WadDecimal":
        return cls(_require_uint(value) * WAD)

    @classmethod
    def from_scaled_val(cls, value: int) -> "WadDecimal":
        return cls(value)

    @classmethod
    def zero(cls) -> "WadDecimal":
        return cls(0)

    @classmethod
    def one(cls) -> "WadDecimal":
        return cls(WAD)

    def to_scaled_val(self) -> int:
        """Return the scaled value, which must fit in 128 bits."""
        if self.scaled > U128_MAX:
            raise FarmError(ErrorCode.MATH_OVERFLOW, "scaled value exceeds 128 bits")
        return self.scaled

    def try_floor(self) -> int:
        value = self.scaled // WAD
        if value > U64_MAX:
            raise FarmError(ErrorCode.MATH_OVERFLOW, "floor exceeds 64 bits")
        return value

    def try_ceil(self) -> int:
        value = -(-self.scaled // WAD)
        if value > U64_MAX:
            raise FarmError(ErrorCode.MATH_OVERFLOW, "ceil exceeds 64 bits")
        return value

    @staticmethod
    def _coerce(other: object) -> "WadDecimal | None":
        if isinstance(other, WadDecimal):
            return other
        if isinstance(other, int) and not isinstance(other, bool):
            return WadDecimal.from_int(other)
        return None

    def __add__(self, other: object) -> "WadDecimal":
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return WadDecimal(self.scaled + rhs.scaled)

    __radd__ = __add__

    def __sub__(self, other: object) -> "WadDecimal":
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return WadDecimal(self.scaled - rhs.scaled)

    def __rsub__(self, other: object) -> "WadDecimal":
        lhs = self._coerce(other)
        if lhs is None:
            return NotImplemented
        return WadDecimal(lhs.scaled - self.scaled)

    def __mul__(self, other: object) -> "WadDecimal":
        if isinstance(other, WadDecimal):
            return WadDecimal(self.scaled * other.scaled // WAD)
        if isinstance(other, int) and not isinstance(other, bool):
            return WadDecimal(self.scaled * _require_uint(other))
        return NotImplemented

    __rmul__ = __mul__

    def __truediv__(self, other: object) -> "WadDecimal":
        if isinstance(other, WadDecimal):
            return WadDecimal(self.scaled * WAD // other.scaled)
        if isinstance(other, int) and not isinstance(other, bool):
            return WadDecimal(self.scaled // _require_uint(other))
        return NotImplemented

    def __bool__(self) -> bool:
        return self.scaled != 0

    def __str__(self) -> str:
        whole, fraction = divmod(self.scaled, WAD)
        return f"{whole}.{fraction:018d}"

    def __repr__(self) -> str:
        return f"WadDecimal('{self}')"


def ten_pow(x: int) -> int:
    """Return 10**x for an exponent between 0 and 19."""
    if not 0 <= x <= 19:
        raise ValueError("The exponent must be between 0 and 19.")
    return 10**x


def full_decimal_mul_div(a: WadDecimal, b: int, c: WadDecimal) -> WadDecimal:
    """Compute a * b / c with a 256-bit intermediate."""
    numerator = a.scaled * WAD * _require_uint(b)
    if numerator >= _U256_LIMIT:
        raise OverflowError("arithmetic operation overflow")
    result = numerator // c.scaled
    if result >= _U192_LIMIT:
        raise OverflowError("full_decimal_mul_div overflow")
    return WadDecimal.from_scaled_val(result)


def u64_mul_div(a: int, b: int, c: int) -> int:
    """Compute a * b // c, the result having to fit in 64 bits."""
    result = _require_uint(a) * _require_uint(b) // _require_uint(c)
    if result > U64_MAX:
        raise OverflowError("u64_mul_div overflow")
    return result