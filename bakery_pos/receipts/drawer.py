# bakery_pos/receipts/drawer.py
"""Post-submission sidecar: receipt printing and the cash drawer kick.

Runs only after the order service accepted the order. Nothing here can fail
the sale; every problem comes back as a warning string.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from ..checkout.assembler import OrderSubmission
from ..checkout.errors import ExternalServiceError
from ..config import CONFIG, PrinterConfig
from . import printing_service
from .order_receipt import render_gift_receipt, render_order_receipt

log = logging.getLogger("bakery-pos.drawer")


class ReceiptSidecar:
    def __init__(self, printer: Optional[PrinterConfig] = None, currency: Optional[str] = None):
        self.printer = printer or CONFIG.printer
        self.currency = currency or CONFIG.currency

    def after_submit(self, submission: OrderSubmission, result: Any, cash_cents: int) -> List[str]:
        if not self.printer.enabled:
            log.debug("printer disabled, no receipt")
            return []

        cfg = self.printer
        order_number = getattr(result, "order_number", None) or getattr(result, "order_id", None)
        warnings: List[str] = []

        bodies = [render_order_receipt(submission, order_number, width=cfg.width_chars, currency=self.currency)]
        if submission.gift is not None:
            bodies.append(render_gift_receipt(submission, order_number, width=cfg.width_chars))
        try:
            for body in bodies:
                printing_service.print_text(cfg.host, cfg.port, body, do_cut=True, timeout=cfg.timeout)
        except ExternalServiceError as exc:
            warnings.append(f"Receipt not printed: {exc.message}")

        # drawer only opens when cash changed hands at the till
        if cash_cents > 0:
            try:
                printing_service.open_drawer(cfg.host, cfg.port, cfg.drawer_pin, timeout=cfg.timeout)
            except ExternalServiceError as exc:
                warnings.append(f"Cash drawer not opened: {exc.message}")

        for w in warnings:
            log.warning("order %s: %s", order_number, w)
        return warnings
