# Overview: Flask API routes for sales transactions; order creation, payment completion, history, receipts.

# backend/kasir/routes/transactions.py
"""
Transaction routes.

ROLE SCOPE: cashiers only see and complete their own transactions; admins
see every transaction of the tenant. Out-of-scope ids answer 404, the same
as missing ones.
"""
from flask import Blueprint, request, g

from ..services import transaction_service, receipt_service
from ..validation import (
    TRANSACTION_ITEM,
    PAYMENT_COMPLETE,
    TRANSACTION_LIST_QUERY,
    validate_request,
    validate_many,
)
from ..decorators import require_auth, handle_service_errors, get_product_cache

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _cashier_scope():
    """cashier_id restriction for the current user, or None for admins."""
    user = g.current_user
    return None if user.is_admin else user.id


@transactions_bp.post("")
@require_auth
@handle_service_errors("create transaction")
def create_transaction_route():
    """
    Create a PENDING transaction.

    Body: {"items": [{"productId": 1, "quantity": 2}, ...]}
    """
    payload = request.get_json(silent=True) or {}
    items = validate_many(TRANSACTION_ITEM, payload.get("items"), "items")

    txn = transaction_service.create_transaction(
        g.tenant_id,
        g.current_user.id,
        items,
        cache=get_product_cache(),
    )
    return {"success": True, "data": txn}, 201


@transactions_bp.get("")
@require_auth
@handle_service_errors("list transactions")
def list_transactions_route():
    """
    Query params: startDate, endDate (ISO-8601), cashierId, status, page, limit.
    cashierId is ignored for cashiers, who always see their own history.
    """
    query = validate_request(TRANSACTION_LIST_QUERY, request.args)

    scope = _cashier_scope()
    if scope is not None:
        query["cashier_id"] = scope

    return transaction_service.list_transactions(g.tenant_id, **query)


@transactions_bp.get("/<int:transaction_id>")
@require_auth
@handle_service_errors("load transaction")
def get_transaction_route(transaction_id: int):
    return transaction_service.get_transaction(transaction_id, g.tenant_id, _cashier_scope())


@transactions_bp.post("/<int:transaction_id>/complete")
@require_auth
@handle_service_errors("complete payment")
def complete_payment_route(transaction_id: int):
    """
    Complete payment for a PENDING transaction.

    Body: {"paymentAmount": 50000, "paymentMethod": "CASH"}

    Responses:
        200 {"success": true, "message", "data": {..., "paymentAmount", "changeAmount"}}
        400 {"success": false, "message", "minimumRequired"} when underpaid
        404 transaction not found in scope
        409 already completed
    """
    payload = request.get_json(silent=True) or {}
    data = validate_request(PAYMENT_COMPLETE, payload)

    txn = transaction_service.complete_payment(
        transaction_id,
        g.tenant_id,
        data["payment_amount"],
        data["payment_method"],
        cashier_id=_cashier_scope(),
    )
    txn["paymentAmount"] = txn["payment_amount"]
    txn["changeAmount"] = txn["change_amount"]

    return {
        "success": True,
        "message": "Payment completed",
        "data": txn,
    }


@transactions_bp.get("/<int:transaction_id>/receipt")
@require_auth
@handle_service_errors("load receipt")
def get_receipt_route(transaction_id: int):
    """Receipt data for a completed transaction; 409 while still pending."""
    receipt = receipt_service.get_receipt_data(transaction_id, g.tenant_id, _cashier_scope())
    return {"success": True, "data": receipt}
