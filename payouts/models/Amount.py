from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Iterable, Union

from pydantic import BaseModel, ConfigDict, field_validator

DisplayValue = Union[Decimal, str, int]


class TokenAmount(BaseModel):
    """
    An amount of tokens held in the smallest unit (wei for 18 decimal tokens).

    This is the only place where integer amounts and decimal display values are
    converted into each other. Both directions are exact: a display value that
    cannot be represented in `decimals` places is rejected instead of rounded.
    """

    model_config = ConfigDict(frozen=True)

    wei: int
    decimals: int = 18

    @field_validator("wei")
    @classmethod
    def non_negative(cls, wei: int):
        if wei < 0:
            raise ValueError(f"Token amounts cannot be negative, got {wei}")
        return wei

    @staticmethod
    def zero(decimals: int = 18) -> TokenAmount:
        return TokenAmount(wei=0, decimals=decimals)

    @staticmethod
    def from_display(value: DisplayValue, decimals: int = 18) -> TokenAmount:
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a decimal amount: {value!r}")
        if not d.is_finite():
            raise ValueError(f"Not a finite amount: {value!r}")
        # shift the exponent by hand, Decimal arithmetic would round to the context precision
        sign, digits, exponent = d.as_tuple()
        coefficient = int("".join(str(n) for n in digits))
        shift = exponent + decimals
        if shift >= 0:
            wei = coefficient * 10**shift
        elif coefficient % 10**-shift != 0:
            raise ValueError(f"{value} has more than {decimals} decimal places")
        else:
            wei = coefficient // 10**-shift
        if sign and wei != 0:
            raise ValueError(f"Token amounts cannot be negative, got {value}")
        return TokenAmount(wei=wei, decimals=decimals)

    def to_display(self) -> Decimal:
        return Decimal((0, tuple(int(c) for c in str(self.wei)), -self.decimals))

    def _check_compatible(self, other: TokenAmount) -> None:
        if not isinstance(other, TokenAmount):
            raise TypeError(f"Cannot combine TokenAmount with {type(other).__name__}")
        if other.decimals != self.decimals:
            raise ValueError(
                f"Cannot combine amounts with {self.decimals} and {other.decimals} decimals"
            )

    def __add__(self, other: TokenAmount) -> TokenAmount:
        self._check_compatible(other)
        return TokenAmount(wei=self.wei + other.wei, decimals=self.decimals)

    def __sub__(self, other: TokenAmount) -> TokenAmount:
        self._check_compatible(other)
        return TokenAmount(wei=self.wei - other.wei, decimals=self.decimals)

    def __int__(self) -> int:
        return self.wei

    def __str__(self) -> str:
        s = format(self.to_display(), "f")
        return s.rstrip("0").rstrip(".") if "." in s else s


def sum_amounts(amounts: Iterable[TokenAmount], decimals: int = 18) -> TokenAmount:
    total = TokenAmount.zero(decimals)
    for a in amounts:
        total = total + a
    return total
