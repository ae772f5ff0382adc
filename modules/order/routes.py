"""
Order Module - REST API Routes
================================
JSON API for checkout, order history, status/payment updates and stats.
Auth: Bearer token.

Endpoints:
  POST  /api/orders/checkout                - Place order from cart (buyer)
  GET   /api/orders                         - Orders visible to the caller (paginated)
  GET   /api/orders/stats/summary           - Caller's order statistics
  GET   /api/orders/config/payment-methods  - Accepted payment methods
  GET   /api/orders/{order_id}              - Order detail with lines
  PATCH /api/orders/{order_id}/status       - Status transition
  PATCH /api/orders/{order_id}/payment      - Payment status (admin)
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from modules.account.service import buyer_stats_service, producer_stats_service
from modules.auth.deps import get_current_user, require_buyer, require_admin
from modules.order.checkout import CheckoutService, get_checkout_service
from modules.order.models import PaymentMethod
from modules.order.service import order_service, order_to_dict, order_item_to_dict
from modules.user.models import User

router = APIRouter(prefix="/api/orders", tags=["orders"])


# ==========================================
# Schemas
# ==========================================

class CheckoutRequest(BaseModel):
    # Presence and enum checks are done by CheckoutService
    delivery_address: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


class StatusUpdateRequest(BaseModel):
    status: Optional[str] = None


class PaymentUpdateRequest(BaseModel):
    payment_status: Optional[str] = None


PAYMENT_METHOD_INFO = {
    PaymentMethod.CASH_ON_DELIVERY: ("Cash on Delivery", "Pay when your order is delivered"),
    PaymentMethod.BANK_TRANSFER: ("Bank Transfer", "Direct bank transfer"),
    PaymentMethod.GCASH: ("GCash", "GCash mobile wallet"),
    PaymentMethod.PAYPAL: ("PayPal", "PayPal account or card"),
}


# ==========================================
# ✅ Checkout
# ==========================================

@router.post("/checkout", status_code=201)
def checkout(
    body: CheckoutRequest,
    db: Session = Depends(get_db),
    me: User = Depends(require_buyer),
    checkout_service: CheckoutService = Depends(get_checkout_service),
):
    result = checkout_service.place_order(
        db,
        buyer_id=me.id,
        delivery_address=body.delivery_address,
        payment_method=body.payment_method,
        notes=body.notes,
    )
    return {
        "success": True,
        "message": "Order created successfully",
        "data": {
            "order": order_to_dict(result.order),
            "order_items": [order_item_to_dict(it) for it in result.items],
            "summary": result.summary,
        },
    }


# ==========================================
# 📋 Order list / stats / detail
# ==========================================

@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    orders, total = order_service.list_orders(db, me, page=page, limit=limit, status=status)
    return {
        "success": True,
        "data": [order_to_dict(o, include_items=True) for o in orders],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


@router.get("/stats/summary")
def order_stats(
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    stats = order_service.get_stats(db, me)
    if me.is_buyer:
        stats["profile"] = buyer_stats_service.get(db, me.id)
    elif me.is_producer:
        stats["profile"] = producer_stats_service.get(db, me.id)
    return {"success": True, "data": stats}


@router.get("/config/payment-methods")
def payment_methods():
    return {
        "success": True,
        "data": [
            {"value": method.value, "label": label, "description": description}
            for method, (label, description) in PAYMENT_METHOD_INFO.items()
        ],
    }


@router.get("/{order_id}")
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    order = order_service.get_order(db, order_id, me)
    return {"success": True, "data": order_to_dict(order, include_items=True)}


# ==========================================
# 🔄 Status / Payment
# ==========================================

@router.patch("/{order_id}/status")
def update_order_status(
    order_id: int,
    body: StatusUpdateRequest,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    order = order_service.update_status(db, order_id, body.status, me)
    return {
        "success": True,
        "message": f"Order status updated to {order.status}",
        "data": order_to_dict(order),
    }


@router.patch("/{order_id}/payment")
def update_payment_status(
    order_id: int,
    body: PaymentUpdateRequest,
    db: Session = Depends(get_db),
    me: User = Depends(require_admin),
):
    order = order_service.update_payment_status(db, order_id, body.payment_status)
    return {
        "success": True,
        "message": f"Payment status updated to {order.payment_status}",
        "data": order_to_dict(order),
    }
