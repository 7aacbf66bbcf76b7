"""
Module: settlement_engines.bank_registry
Responsibility:
    Read-only catalog of the banks the service can settle through, keyed
    by ``BankCode`` and by the two-digit IBAN bank prefix.

Architecture position:
    Engines -- pure, zero I/O.  Built once from configuration (see
    ``settlement_config.bridges.build_bank_registry``) and shared.

Invariants enforced:
    - Bank codes and IBAN prefixes are unique across the catalog.
    - The registry never changes after construction, so concurrent
      readers need no synchronization.

Failure modes:
    - ConfigurationError on duplicate codes or prefixes at construction.
    - BankNotFoundError from ``lookup()`` for a code not in the catalog.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from types import MappingProxyType

from settlement_kernel.domain.bank import BankCode, BankDefinition
from settlement_kernel.exceptions import BankNotFoundError, ConfigurationError


class BankRegistry:
    """Immutable bank catalog."""

    def __init__(self, banks: Iterable[BankDefinition]):
        by_code: dict[BankCode, BankDefinition] = {}
        by_prefix: dict[str, BankDefinition] = {}
        for bank in banks:
            if bank.code in by_code:
                raise ConfigurationError(f"Duplicate bank code {bank.code.value}")
            if bank.iban_prefix in by_prefix:
                raise ConfigurationError(
                    f"IBAN prefix {bank.iban_prefix} is shared by "
                    f"{by_prefix[bank.iban_prefix].code.value} and {bank.code.value}"
                )
            by_code[bank.code] = bank
            by_prefix[bank.iban_prefix] = bank
        self._by_code = MappingProxyType(by_code)
        self._by_prefix = MappingProxyType(by_prefix)

    def lookup(self, bank_code: BankCode | str) -> BankDefinition:
        """Return the bank for ``bank_code`` or raise BankNotFoundError."""
        bank = self.find(bank_code)
        if bank is None:
            raise BankNotFoundError(str(getattr(bank_code, "value", bank_code)))
        return bank

    def find(self, bank_code: BankCode | str) -> BankDefinition | None:
        try:
            code = BankCode.parse(bank_code)
        except ValueError:
            return None
        return self._by_code.get(code)

    def by_iban_prefix(self, prefix: str) -> BankDefinition | None:
        return self._by_prefix.get(prefix)

    def all(self) -> tuple[BankDefinition, ...]:
        return tuple(self._by_code.values())

    def known_prefixes(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_prefix))

    def __contains__(self, bank_code: object) -> bool:
        if not isinstance(bank_code, (BankCode, str)):
            return False
        return self.find(bank_code) is not None

    def __iter__(self) -> Iterator[BankDefinition]:
        return iter(self._by_code.values())

    def __len__(self) -> int:
        return len(self._by_code)
