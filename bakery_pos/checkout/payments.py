# bakery_pos/checkout/payments.py
"""Payment records, one dataclass per method, plus the builders the payment
form goes through and the overall method classification for the order."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple, Union
from uuid import uuid4

from .errors import ReconciliationError, ValidationError
from .money import EPSILON_CENTS, to_amount, within_epsilon


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    SPLIT = "SPLIT"
    PARTIAL = "PARTIAL"
    BANK_TRANSFER = "BANK_TRANSFER"
    PBL = "PBL"
    TALABAT = "TALABAT"
    COD = "COD"


class PaymentStatus(str, Enum):
    FULLY_PAID = "FULLY_PAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"


# card-like instruments that need a slip / transaction reference
REFERENCE_REQUIRED = frozenset({
    PaymentMethod.CARD,
    PaymentMethod.BANK_TRANSFER,
    PaymentMethod.PBL,
    PaymentMethod.TALABAT,
})

METHOD_LABELS = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.CARD: "Card",
    PaymentMethod.SPLIT: "Split Payment",
    PaymentMethod.PARTIAL: "Partial Payment",
    PaymentMethod.BANK_TRANSFER: "Bank Transfer",
    PaymentMethod.PBL: "Pay by Link",
    PaymentMethod.TALABAT: "Talabat",
    PaymentMethod.COD: "Cash on Delivery",
}


def _new_id() -> str:
    return uuid4().hex[:12]


@dataclass(frozen=True)
class CashPayment:
    id: str
    amount_cents: int
    cash_tendered_cents: int
    change_cents: int = 0

    method = PaymentMethod.CASH
    status = PaymentStatus.FULLY_PAID


@dataclass(frozen=True)
class CardPayment:
    id: str
    amount_cents: int
    reference: str

    method = PaymentMethod.CARD
    status = PaymentStatus.FULLY_PAID


@dataclass(frozen=True)
class ReferencedPayment:
    """Bank transfer, pay-by-link and Talabat: amount + external reference."""
    id: str
    amount_cents: int
    method: PaymentMethod
    reference: str

    status = PaymentStatus.FULLY_PAID


@dataclass(frozen=True)
class CodPayment:
    id: str
    amount_cents: int

    method = PaymentMethod.COD
    status = PaymentStatus.FULLY_PAID


@dataclass(frozen=True)
class SplitPayment:
    id: str
    amount_cents: int
    cash_portion_cents: int
    card_portion_cents: int
    card_reference: Optional[str] = None

    method = PaymentMethod.SPLIT
    status = PaymentStatus.FULLY_PAID


@dataclass(frozen=True)
class PartialPayment:
    id: str
    amount_cents: int
    method: PaymentMethod
    future_method: PaymentMethod
    # snapshot at creation; the live balance always comes from the ledger
    remaining_at_creation_cents: int
    reference: Optional[str] = None

    status = PaymentStatus.PARTIALLY_PAID


Payment = Union[CashPayment, CardPayment, ReferencedPayment, CodPayment, SplitPayment, PartialPayment]


# ---- builders ---------------------------------------------------------------

def _require_amount(amount_cents: Optional[int], field: str = "amount") -> int:
    if amount_cents is None or int(amount_cents) <= 0:
        raise ValidationError(field, "Payment amount must be greater than zero")
    return int(amount_cents)


def _require_reference(method: PaymentMethod, reference: Optional[str], field: str = "reference") -> str:
    ref = (reference or "").strip()
    if not ref:
        label = METHOD_LABELS.get(method, method.value).lower()
        raise ValidationError(field, f"Please enter the {label} reference")
    return ref


def build_cash_payment(amount_cents: int, cash_tendered_cents: Optional[int] = None) -> CashPayment:
    amount = _require_amount(amount_cents)
    tendered = amount if cash_tendered_cents is None else int(cash_tendered_cents)
    if tendered + EPSILON_CENTS < amount:
        raise ValidationError("cash_amount", "Cash received is less than the amount due")
    return CashPayment(
        id=_new_id(),
        amount_cents=amount,
        cash_tendered_cents=tendered,
        change_cents=max(0, tendered - amount),
    )


def build_card_payment(amount_cents: int, reference: Optional[str]) -> CardPayment:
    amount = _require_amount(amount_cents)
    return CardPayment(id=_new_id(), amount_cents=amount, reference=_require_reference(PaymentMethod.CARD, reference))


def build_referenced_payment(method: PaymentMethod, amount_cents: int, reference: Optional[str]) -> ReferencedPayment:
    method = PaymentMethod(method)
    if method not in (PaymentMethod.BANK_TRANSFER, PaymentMethod.PBL, PaymentMethod.TALABAT):
        raise ValidationError("method", f"{method.value} is not a referenced payment method")
    amount = _require_amount(amount_cents)
    return ReferencedPayment(
        id=_new_id(), amount_cents=amount, method=method, reference=_require_reference(method, reference)
    )


def build_cod_payment(amount_cents: int) -> CodPayment:
    return CodPayment(id=_new_id(), amount_cents=_require_amount(amount_cents))


def split_portions(expected_cents: int, cash_cents: int, card_cents: int) -> Tuple[int, int]:
    """Cash/card portions as entered; the 50/50 default only when both are exactly zero."""
    cash = int(cash_cents or 0)
    card = int(card_cents or 0)
    if cash < 0 or card < 0:
        raise ValidationError("split", "Split amounts can't be negative")
    if cash == 0 and card == 0:
        half = int(expected_cents) // 2
        return half, int(expected_cents) - half
    return cash, card


def build_split_payment(
    expected_cents: int,
    cash_cents: int,
    card_cents: int,
    card_reference: Optional[str] = None,
) -> SplitPayment:
    expected = _require_amount(expected_cents, "split")
    cash, card = split_portions(expected, cash_cents, card_cents)
    if not within_epsilon(cash + card, expected):
        raise ReconciliationError(
            "Split amounts must add up to the total amount",
            expected_cents=expected,
            actual_cents=cash + card,
        )
    return SplitPayment(
        id=_new_id(),
        amount_cents=expected,
        cash_portion_cents=cash,
        card_portion_cents=card,
        card_reference=(card_reference or "").strip() or None,
    )


def build_partial_payment(
    method: PaymentMethod,
    amount_cents: int,
    final_total_cents: int,
    future_method: PaymentMethod = PaymentMethod.CASH,
    reference: Optional[str] = None,
) -> PartialPayment:
    method = PaymentMethod(method)
    if method in (PaymentMethod.SPLIT, PaymentMethod.PARTIAL):
        raise ValidationError("method", "A partial payment needs a single instrument")
    amount = _require_amount(amount_cents)
    if amount + EPSILON_CENTS >= int(final_total_cents):
        raise ValidationError("amount", "A partial payment must be less than the total")
    if method in REFERENCE_REQUIRED:
        reference = _require_reference(method, reference)
    return PartialPayment(
        id=_new_id(),
        amount_cents=amount,
        method=method,
        future_method=PaymentMethod(future_method),
        remaining_at_creation_cents=int(final_total_cents) - amount,
        reference=(reference or "").strip() or None,
    )


def build_payment(
    method: PaymentMethod,
    amount_cents: int,
    reference: Optional[str] = None,
    cash_tendered_cents: Optional[int] = None,
) -> Payment:
    """Single-instrument payment for the given method."""
    method = PaymentMethod(method)
    if method == PaymentMethod.CASH:
        return build_cash_payment(amount_cents, cash_tendered_cents)
    if method == PaymentMethod.CARD:
        return build_card_payment(amount_cents, reference)
    if method == PaymentMethod.COD:
        return build_cod_payment(amount_cents)
    if method in (PaymentMethod.BANK_TRANSFER, PaymentMethod.PBL, PaymentMethod.TALABAT):
        return build_referenced_payment(method, amount_cents, reference)
    raise ValidationError("method", f"Use the {method.value.lower()} form for this payment")


def build_remaining_split(
    remaining_cents: int,
    first: Tuple[PaymentMethod, int, Optional[str]],
    second: Tuple[PaymentMethod, int, Optional[str]],
) -> Tuple[Payment, Payment]:
    """Pays an outstanding balance with two instruments (same method allowed)."""
    (m1, a1, r1), (m2, a2, r2) = first, second
    if int(a1 or 0) <= 0 or int(a2 or 0) <= 0:
        raise ValidationError("split", "Both split amounts must be greater than zero")
    if not within_epsilon(int(a1) + int(a2), int(remaining_cents)):
        raise ReconciliationError(
            "Split amounts must add up to the total remaining amount",
            expected_cents=int(remaining_cents),
            actual_cents=int(a1) + int(a2),
        )
    return build_payment(m1, a1, r1), build_payment(m2, a2, r2)


# ---- derived ----------------------------------------------------------------

def resolve_payment_method(payments: Iterable[Payment], split_active: bool = False) -> Optional[PaymentMethod]:
    payments = list(payments)
    if not payments:
        return PaymentMethod.SPLIT if split_active else None
    if any(p.status == PaymentStatus.PARTIALLY_PAID for p in payments):
        return PaymentMethod.PARTIAL
    if split_active or any(p.method == PaymentMethod.SPLIT for p in payments):
        return PaymentMethod.SPLIT
    # several distinct instruments collapse into SPLIT, there is no "multiple" tag
    if len({p.method for p in payments}) > 1:
        return PaymentMethod.SPLIT
    return payments[0].method


def cash_component_cents(payments: Iterable[Payment]) -> int:
    """Cash taken at the till for these payments (drives the drawer kick)."""
    total = 0
    for p in payments:
        if isinstance(p, CashPayment):
            total += p.amount_cents
        elif isinstance(p, SplitPayment):
            total += p.cash_portion_cents
        elif isinstance(p, PartialPayment) and p.method == PaymentMethod.CASH:
            total += p.amount_cents
    return total


def payment_record(payment: Payment, remaining_cents: Optional[int] = None) -> Dict[str, Any]:
    """Flat wire record of a payment; only the fields its variant carries are set."""
    out: Dict[str, Any] = {
        "id": payment.id,
        "amount": to_amount(payment.amount_cents),
        "method": payment.method.value,
        "status": payment.status.value,
        "reference": getattr(payment, "reference", None),
    }
    if isinstance(payment, CashPayment):
        out["cashAmount"] = to_amount(payment.cash_tendered_cents)
        out["changeAmount"] = to_amount(payment.change_cents)
    elif isinstance(payment, SplitPayment):
        out["isSplitPayment"] = True
        out["cashPortion"] = to_amount(payment.cash_portion_cents)
        out["cardPortion"] = to_amount(payment.card_portion_cents)
        out["cardReference"] = payment.card_reference
    elif isinstance(payment, PartialPayment):
        rem = payment.remaining_at_creation_cents if remaining_cents is None else remaining_cents
        out["isPartialPayment"] = True
        out["remainingAmount"] = to_amount(max(0, rem))
        out["futurePaymentMethod"] = payment.future_method.value
    return out
