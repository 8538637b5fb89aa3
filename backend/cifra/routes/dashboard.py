# Overview: Seller dashboard routes; orders, the sales ledger and its summary, customers, payouts.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import order_service, payouts_service, sales_service
from ..services.order_service import OrderError
from ..services.payouts_service import PayoutError
from ..services.sales_service import ReportError


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api")


@dashboard_bp.get("/sales")
@require_auth
def list_sales_route():
    """
    Query params:
    - start, end: ISO-8601 (optional)
    - product_id: int (optional)
    - limit (default 100, max 500), offset
    """
    try:
        result = sales_service.list_sales(
            g.current_seller.id,
            start=request.args.get("start"),
            end=request.args.get("end"),
            product_id=request.args.get("product_id", type=int),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result), 200


@dashboard_bp.get("/sales/summary")
@require_auth
def sales_summary_route():
    try:
        result = sales_service.get_sales_summary(
            g.current_seller.id,
            days=request.args.get("days", 30, type=int),
        )
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result), 200


@dashboard_bp.get("/customers")
@require_auth
def list_customers_route():
    items = sales_service.list_customers(g.current_seller.id, limit=request.args.get("limit", 200, type=int))
    return jsonify({"items": items, "count": len(items)}), 200


@dashboard_bp.get("/payouts")
@require_auth
def list_payouts_route():
    return jsonify({
        "balance": payouts_service.get_available_balance(g.current_seller.id),
        "items": payouts_service.list_payouts(g.current_seller.id),
    }), 200


@dashboard_bp.get("/payouts/balance")
@require_auth
def payout_balance_route():
    return jsonify(payouts_service.get_available_balance(g.current_seller.id)), 200


@dashboard_bp.post("/payouts")
@require_auth
def request_payout_route():
    """Request body: {"amount": 1500, "method": "card *4242"}"""
    data = request.get_json(silent=True) or {}
    try:
        payout = payouts_service.request_payout(g.current_seller.id, data.get("amount"), data.get("method"))
    except PayoutError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(payout), 201


@dashboard_bp.get("/orders")
@require_auth
def list_orders_route():
    """
    Query params:
    - status: pending | paid | canceled | failed (optional)
    - limit (default 100)
    """
    try:
        orders = order_service.list_orders_for_seller(
            g.current_seller.id,
            status=request.args.get("status") or None,
            limit=min(max(request.args.get("limit", 100, type=int), 1), 500),
        )
    except OrderError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200
