"""
Cart Routes
=============
Buyer cart: view, summary, add/update/remove lines, clear.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import ValidationError
from modules.auth.deps import require_buyer
from modules.cart.service import cart_service, cart_item_to_dict
from modules.user.models import User

router = APIRouter(prefix="/api/cart", tags=["cart"])


class CartItemRequest(BaseModel):
    product_id: Optional[int] = None
    quantity: Optional[int] = None


class CartQuantityRequest(BaseModel):
    quantity: Optional[int] = None


# ==========================================
# 🛒 View Cart
# ==========================================

@router.get("")
def view_cart(
    db: Session = Depends(get_db),
    me: User = Depends(require_buyer),
):
    return {"success": True, "data": cart_service.get_cart(db, me.id)}


@router.get("/summary")
def cart_summary(
    db: Session = Depends(get_db),
    me: User = Depends(require_buyer),
):
    return {"success": True, "data": cart_service.get_summary(db, me.id)}


# ==========================================
# ➕➖ Update Cart
# ==========================================

@router.post("/items", status_code=201)
def add_cart_item(
    body: CartItemRequest,
    db: Session = Depends(get_db),
    me: User = Depends(require_buyer),
):
    errors = []
    if not body.product_id:
        errors.append("Product ID is required")
    if body.quantity is None or body.quantity <= 0:
        errors.append("Valid quantity is required (must be > 0)")
    if errors:
        raise ValidationError("Validation failed", errors)

    item = cart_service.add_item(db, me.id, body.product_id, body.quantity)
    return {
        "success": True,
        "message": f"{item.product.title} added to cart successfully",
        "data": cart_item_to_dict(item),
    }


@router.put("/items/{item_id}")
def update_cart_item(
    item_id: int,
    body: CartQuantityRequest,
    db: Session = Depends(get_db),
    me: User = Depends(require_buyer),
):
    item = cart_service.update_item(db, me.id, item_id, body.quantity or 0)
    return {
        "success": True,
        "message": "Cart item updated successfully",
        "data": cart_item_to_dict(item),
    }


@router.delete("/items/{item_id}")
def remove_cart_item(
    item_id: int,
    db: Session = Depends(get_db),
    me: User = Depends(require_buyer),
):
    cart_service.remove_item(db, me.id, item_id)
    return {"success": True, "message": "Item removed from cart successfully"}


@router.delete("/clear")
def clear_cart(
    db: Session = Depends(get_db),
    me: User = Depends(require_buyer),
):
    cart_service.clear(db, me.id)
    return {"success": True, "message": "Cart cleared successfully"}
