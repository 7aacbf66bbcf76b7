"""
Values -- Immutable monetary value object for settlement amounts.

Responsibility:
    Pairs a Decimal amount with its currency so batch totals, eligibility
    thresholds and bank files never handle bare floats.  The service
    settles in a single currency (SAR); Money refuses any other.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValueError on construction with a float, a non-numeric amount or an
      unsupported currency.
    - ValueError when arithmetic or comparison mixes currencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

SETTLEMENT_CURRENCY = "SAR"
SUPPORTED_CURRENCIES: frozenset[str] = frozenset({SETTLEMENT_CURRENCY})
CURRENCY_DECIMAL_PLACES = 2

_CENT = Decimal("0.01")


def to_decimal(value: Decimal | str | int) -> Decimal:
    """Convert to a finite Decimal; floats, NaN and infinities are rejected."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Monetary amounts must not be float/bool: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def quantize_amount(value: Decimal) -> Decimal:
    """Round half-up to the settlement currency's two decimal places."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Guarantees:
        - Immutable and hashable.
        - ``amount`` is always a Decimal.
        - ``currency`` is always a supported ISO 4217 code.
        - Arithmetic never mixes currencies.
    """

    amount: Decimal
    currency: str = SETTLEMENT_CURRENCY

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        code = str(self.currency).strip().upper()
        if code not in SUPPORTED_CURRENCIES:
            raise ValueError(
                f"Unsupported currency {self.currency!r}; "
                f"settlement is in {SETTLEMENT_CURRENCY} only"
            )
        object.__setattr__(self, "currency", code)

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str = SETTLEMENT_CURRENCY) -> Money:
        return cls(amount=to_decimal(amount), currency=currency)

    @classmethod
    def zero(cls, currency: str = SETTLEMENT_CURRENCY) -> Money:
        return cls(amount=Decimal("0"), currency=currency)

    @classmethod
    def total(cls, amounts, currency: str = SETTLEMENT_CURRENCY) -> Money:
        """Sum an iterable of Money or Decimal values."""
        result = cls.zero(currency)
        for value in amounts:
            result = result + (value if isinstance(value, Money) else cls.of(value, currency))
        return result

    @property
    def is_positive(self) -> bool:
        return self.amount > Decimal("0")

    def round(self) -> Money:
        return Money(amount=quantize_amount(self.amount), currency=self.currency)

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot combine Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{quantize_amount(self.amount)} {self.currency}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"
