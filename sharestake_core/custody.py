"""
Custody collaborator interface.

The engine never holds funds itself.  Principal moves through a custody
object that may refuse any transfer; the engine only updates its books
after a confirmed inbound transfer and only pays out once its books are
final.

``InMemoryCustody`` is a dictionary-backed implementation used by the
runner and the test-suite.  ``fail_next_transfer_out`` / ``fail_transfers``
let tests inject failures.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger("sharestake.custody")


@runtime_checkable
class Custody(Protocol):
    def transfer_in(self, account: str, amount: int) -> bool:
        """Pull *amount* from *account* into custody."""

    def transfer_out(self, account: str, amount: int) -> bool:
        """Pay *amount* from custody to *account*."""

    def balance(self) -> int:
        """Total balance currently held in custody."""


class InMemoryCustody:
    """Account balances plus a single custodied balance."""

    def __init__(self, custodied: int = 0) -> None:
        self.accounts: dict[str, int] = {}
        self.custodied: int = custodied
        self.fail_transfers: bool = False
        self._fail_next_out: bool = False

    def fund(self, account: str, amount: int) -> None:
        self.accounts[account] = self.accounts.get(account, 0) + amount

    def balance_of(self, account: str) -> int:
        return self.accounts.get(account, 0)

    def fail_next_transfer_out(self) -> None:
        self._fail_next_out = True

    # ── Custody protocol ────────────────────────────────────────────

    def transfer_in(self, account: str, amount: int) -> bool:
        if self.fail_transfers or amount < 0:
            return False
        have = self.accounts.get(account, 0)
        if have < amount:
            logger.debug(f"transfer_in refused: {account} has {have}, needs {amount}")
            return False
        self.accounts[account] = have - amount
        self.custodied += amount
        return True

    def transfer_out(self, account: str, amount: int) -> bool:
        if self._fail_next_out:
            self._fail_next_out = False
            return False
        if self.fail_transfers or amount < 0 or amount > self.custodied:
            return False
        self.custodied -= amount
        self.accounts[account] = self.accounts.get(account, 0) + amount
        return True

    def balance(self) -> int:
        return self.custodied
