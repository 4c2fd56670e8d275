# Overview: Receipt data query and the renderer/sink interfaces used to publish receipts.

"""
Receipts

The core only answers "what goes on the receipt for transaction X"
(get_receipt_data). Turning that into a document and deciding whether to
share, save or discard it belongs to a collaborator implementing
ReceiptRenderer and ReceiptSink. PlainTextReceiptRenderer is the one
renderer shipped here; it backs the `flask transactions receipt` command.
"""

from __future__ import annotations

from typing import Protocol

from ..models.sales import STATUS_COMPLETED
from ..validation import ConflictError, ValidationError
from .transaction_service import load_transaction

RECEIPT_ACTIONS = ("share", "save", "discard")


def get_receipt_data(transaction_id: int, tenant_id: int, cashier_id: int | None = None) -> dict:
    """
    Read-only receipt payload for a completed transaction.

    Raises:
        NotFoundError: transaction missing in tenant / cashier scope
        ConflictError: transaction is not completed yet
    """
    txn = load_transaction(transaction_id, tenant_id, cashier_id)
    if txn.status != STATUS_COMPLETED:
        raise ConflictError("Receipt is only available for completed transactions")

    data = txn.to_dict()
    data["tenant"] = {"id": txn.tenant.id, "name": txn.tenant.name, "code": txn.tenant.code}
    data["item_count"] = sum(item["quantity"] for item in data["items"])
    return data


class ReceiptRenderer(Protocol):
    content_type: str

    def render(self, receipt: dict) -> bytes:
        ...


class ReceiptSink(Protocol):
    def share(self, document: bytes, content_type: str, receipt: dict) -> None:
        ...

    def save(self, document: bytes, content_type: str, receipt: dict) -> None:
        ...

    def discard(self, receipt: dict) -> None:
        ...


class PlainTextReceiptRenderer:
    content_type = "text/plain; charset=utf-8"

    def __init__(self, width: int = 40):
        self.width = width

    def _row(self, left: str, right: str) -> str:
        gap = max(self.width - len(left) - len(right), 1)
        return f"{left}{' ' * gap}{right}"

    def render(self, receipt: dict) -> bytes:
        rule = "-" * self.width
        lines = [
            receipt["tenant"]["name"].center(self.width).rstrip(),
            rule,
            f"Transaction #{receipt['id']}",
            f"Cashier: {receipt['cashier']['username'] if receipt.get('cashier') else '-'}",
            f"Completed: {receipt['completed_at']}",
            rule,
        ]
        for item in receipt["items"]:
            lines.append(item["product_name"][: self.width])
            lines.append(self._row(f"  {item['quantity']} x {item['unit_price']:,}", f"{item['subtotal']:,}"))
        lines.extend([
            rule,
            self._row("TOTAL", f"{receipt['total']:,}"),
            self._row(f"PAID ({receipt['payment_method']})", f"{receipt['payment_amount']:,}"),
            self._row("CHANGE", f"{receipt['change_amount']:,}"),
            rule,
        ])
        return ("\n".join(lines) + "\n").encode("utf-8")


def publish_receipt(receipt: dict, renderer: ReceiptRenderer, sink: ReceiptSink, action: str = "share") -> None:
    """Render and hand the document to the sink; 'discard' skips rendering."""
    if action not in RECEIPT_ACTIONS:
        raise ValidationError("Validation failed", {"action": [f"action must be one of: {', '.join(RECEIPT_ACTIONS)}"]})

    if action == "discard":
        sink.discard(receipt)
        return

    document = renderer.render(receipt)
    if action == "share":
        sink.share(document, renderer.content_type, receipt)
    else:
        sink.save(document, renderer.content_type, receipt)
