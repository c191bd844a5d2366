# bakery_pos/checkout/ledger.py
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Tuple

from .errors import ReconciliationError
from .money import EPSILON_CENTS, format_money
from .payments import Payment, PaymentStatus


class LedgerState(str, Enum):
    EMPTY = "EMPTY"
    ACCUMULATING = "ACCUMULATING"
    COMPLETE = "COMPLETE"


class PaymentLedger:
    """Ordered payments of one checkout session.

    Aggregates are derived on every call. The ledger does not guard against
    double submission; that is the caller's in-flight flag.
    """

    def __init__(self) -> None:
        self._entries: List[Payment] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    @property
    def entries(self) -> Tuple[Payment, ...]:
        return tuple(self._entries)

    def add(self, payment: Payment, final_total_cents: Optional[int] = None) -> Payment:
        """Appends a payment. With a total, refuses one that would overshoot it."""
        if final_total_cents is not None:
            after = self.total_paid() + int(payment.amount_cents)
            if after > int(final_total_cents) + EPSILON_CENTS:
                raise ReconciliationError(
                    f"Payment exceeds the remaining balance of {format_money(self.remaining(final_total_cents))}",
                    expected_cents=self.remaining(final_total_cents),
                    actual_cents=int(payment.amount_cents),
                )
        self._entries.append(payment)
        return payment

    def remove(self, payment_id: str) -> bool:
        before = len(self._entries)
        self._entries = [p for p in self._entries if p.id != payment_id]
        return len(self._entries) != before

    def replace(self, payment_id: str, payment: Payment) -> bool:
        """Swaps an entry in place, keeping its position."""
        for i, p in enumerate(self._entries):
            if p.id == payment_id:
                self._entries[i] = payment
                return True
        return False

    def clear(self) -> None:
        self._entries = []

    def total_paid(self) -> int:
        return sum(int(p.amount_cents) for p in self._entries)

    def remaining(self, final_total_cents: int) -> int:
        return max(0, int(final_total_cents) - self.total_paid())

    def overpaid(self, final_total_cents: int) -> bool:
        return self.total_paid() > int(final_total_cents) + EPSILON_CENTS

    def is_complete(self, final_total_cents: int) -> bool:
        if not self._entries:
            return False
        paid = self.total_paid()
        return paid >= int(final_total_cents) - EPSILON_CENTS and not self.overpaid(final_total_cents)

    def has_partial(self) -> bool:
        return any(p.status == PaymentStatus.PARTIALLY_PAID for p in self._entries)

    def state(self, final_total_cents: int) -> LedgerState:
        if not self._entries:
            return LedgerState.EMPTY
        if self.is_complete(final_total_cents):
            return LedgerState.COMPLETE
        return LedgerState.ACCUMULATING
