# bakery_pos/receipts/order_receipt.py
"""Receipt bodies for the thermal printer, rendered with Jinja2.

Templates use the ``[[TAG]]`` line prefixes understood by ``print_text``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from ..checkout.assembler import OrderSubmission
from .printing_service import render_jinja

ORDER_RECEIPT = """\
[[C]][[BIG]]{{ shop_name }}
[[C]]Tax Invoice
{{ rule }}
{{ row('Order #:', order_number) }}
{{ row('Date:', now.strftime('%d/%m/%Y %H:%M')) }}
{{ row('Customer:', o.customer_name) }}
{{ row('Phone:', o.customer_phone) }}
{{ rule }}
{% if o.delivery %}
[[B]]Delivery Details
{{ row('Date:', o.delivery.date) }}
{{ row('Time:', o.delivery.time_slot) }}
{{ row('Address:', o.delivery.street_address) }}
{% if o.delivery.apartment %}{{ row('Apartment:', o.delivery.apartment) }}
{% endif %}
{{ row('Emirate:', o.delivery.emirate) }}
{% else %}
[[B]]Pickup Details
{{ row('Date:', o.pickup.date) }}
{{ row('Time:', o.pickup.time_slot) }}
{% endif %}
{{ rule }}
{% for item in o.items %}
{{ row('%dx %s' % (item.quantity, item.product_name), money(item.total_price)) }}
{% for v in item.variations %}
  {{ v.type }}: {{ v.value }}
{% endfor %}
{% for a in item.addons %}
{{ row('  + ' ~ a.option ~ (' (' ~ a.custom_text ~ ')' if a.custom_text else ''), money(a.price) if a.price else '') }}
{% for s in a.sub_options %}
    - {{ s }}
{% endfor %}
{% endfor %}
{% if item.notes %}
  Note: {{ item.notes }}
{% endif %}
{% endfor %}
{{ rule }}
{{ row('Subtotal:', money(o.subtotal)) }}
{% if o.coupon_discount %}
{{ row('Discount' ~ (' (' ~ o.coupon_code ~ ')' if o.coupon_code else '') ~ ':', '-' ~ money(o.coupon_discount)) }}
{% endif %}
{% if o.delivery_charge %}
{{ row('Delivery Charge:', money(o.delivery_charge)) }}
{% endif %}
[[B]]{{ row('TOTAL:', money(o.total_amount)) }}
{{ rule }}
{% for p in o.payments %}
{{ row(p.method ~ (' (partial)' if p.is_partial_payment else '') ~ ':', money(p.amount)) }}
{% if p.cash_amount is not none and p.change_amount %}
{{ row('  Cash received:', money(p.cash_amount)) }}
{{ row('  Change:', money(p.change_amount)) }}
{% endif %}
{% if p.is_split_payment %}
{{ row('  Cash:', money(p.cash_portion)) }}
{{ row('  Card:', money(p.card_portion)) }}
{% endif %}
{% endfor %}
{% if balance %}
[[B]]{{ row('BALANCE DUE:', money(balance)) }}
{% endif %}
[[C]]Thank you!
"""

GIFT_RECEIPT = """\
[[C]][[BIG]]{{ shop_name }}
[[C]]Gift Receipt
{{ rule }}
{{ row('Order #:', order_number) }}
{{ row('To:', o.gift.recipient_name) }}
{{ rule }}
{% for item in o.items %}
{{ item.quantity }}x {{ item.product_name }}
{% endfor %}
{% if o.gift.message %}
{{ rule }}
[[C]]{{ o.gift.message }}
{% endif %}
"""


def _row(width: int):
    def row(left: Any, right: Any = "") -> str:
        left, right = str(left or ""), str(right or "")
        pad = width - len(left) - len(right)
        if pad < 1:
            return f"{left}\n{right.rjust(width)}" if right else left
        return left + " " * pad + right
    return row


def _context(o: OrderSubmission, order_number: Optional[str], width: int, currency: str,
             shop_name: str, now: Optional[datetime]) -> Dict[str, Any]:
    return {
        "o": o,
        "order_number": order_number or "-",
        "now": now or datetime.now(),
        "shop_name": shop_name,
        "rule": "-" * width,
        "row": _row(width),
        "money": lambda amount: f"{currency} {float(amount or 0):.2f}",
        "balance": max(0.0, round(o.total_amount - o.paid_amount, 2)),
    }


def render_order_receipt(o: OrderSubmission, order_number: Optional[str] = None, *, width: int = 42,
                         currency: str = "AED", shop_name: str = "BAKERY", now: Optional[datetime] = None) -> str:
    return render_jinja(ORDER_RECEIPT, _context(o, order_number, width, currency, shop_name, now))


def render_gift_receipt(o: OrderSubmission, order_number: Optional[str] = None, *, width: int = 42,
                        shop_name: str = "BAKERY", now: Optional[datetime] = None) -> str:
    return render_jinja(GIFT_RECEIPT, _context(o, order_number, width, "", shop_name, now))
