"""
Cart Module - Service Layer
==============================
Cart management: add/update/remove lines, totals, and the two calls
checkout depends on (snapshot read and clear).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.database import unit_of_work
from common.exceptions import NotFoundError, ValidationError, StoreError
from common.helpers import now_utc, to_money, money_json
from modules.cart.models import CartItem
from modules.catalog.models import Product, ProductStatus
from modules.catalog.service import product_service

logger = logging.getLogger("farmlink.cart")


@dataclass(frozen=True)
class CartLineSnapshot:
    """
    A cart line with the product state read alongside it.
    Detached plain values: later product writes do not leak into a checkout
    that already validated against this snapshot.
    """
    cart_item_id: int
    product_id: int
    quantity: int
    product_title: Optional[str] = None
    unit_price: Optional[Decimal] = None
    available_quantity: Optional[int] = None
    status: Optional[str] = None
    producer_id: Optional[int] = None

    @property
    def product_exists(self) -> bool:
        return self.status is not None

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class CartService:

    # ==========================================
    # Checkout collaborators
    # ==========================================

    def get_items_with_product_snapshot(self, db: Session, buyer_id: int) -> List[CartLineSnapshot]:
        rows = (
            db.query(CartItem, Product)
            .outerjoin(Product, Product.id == CartItem.product_id)
            .filter(CartItem.buyer_id == buyer_id)
            .order_by(CartItem.id)
            .all()
        )
        snapshot = []
        for item, product in rows:
            if product is None:
                snapshot.append(CartLineSnapshot(item.id, item.product_id, item.quantity))
                continue
            snapshot.append(CartLineSnapshot(
                cart_item_id=item.id,
                product_id=item.product_id,
                quantity=item.quantity,
                product_title=product.title,
                unit_price=to_money(product.unit_price),
                available_quantity=product.available_quantity,
                status=product.status,
                producer_id=product.producer_id,
            ))
        return snapshot

    def clear(self, db: Session, buyer_id: int) -> int:
        """Remove all lines from the buyer's cart. Returns lines deleted."""
        with unit_of_work(db, "cart.clear"):
            deleted = db.query(CartItem).filter(CartItem.buyer_id == buyer_id).delete(synchronize_session=False)
        return deleted

    # ==========================================
    # Cart management
    # ==========================================

    def add_item(self, db: Session, buyer_id: int, product_id: int, quantity: int) -> CartItem:
        """Add a product or increase the existing line; never creates a duplicate line."""
        if quantity <= 0:
            raise ValidationError("Valid quantity is required (must be > 0)")

        product = product_service.get(db, product_id)
        if product.status != ProductStatus.AVAILABLE:
            raise ValidationError("Product is not available for purchase")
        if product.producer_id == buyer_id:
            raise ValidationError("You cannot add your own products to cart")

        if self._find_line(db, buyer_id, product_id) is None:
            if quantity > product.available_quantity:
                raise ValidationError(f"Only {product.available_quantity} items available in stock")
            item = CartItem(buyer_id=buyer_id, product_id=product_id, quantity=quantity)
            try:
                with unit_of_work(db, "cart.add_item"):
                    db.add(item)
                db.refresh(item)
                return item
            except StoreError as e:
                if not isinstance(e.__cause__, IntegrityError):
                    raise
                logger.info(f"Cart line buyer #{buyer_id}/product #{product_id} created concurrently, incrementing")

        return self._increment_line(db, buyer_id, product, quantity)

    def update_item(self, db: Session, buyer_id: int, item_id: int, quantity: int) -> CartItem:
        if quantity <= 0:
            raise ValidationError("Valid quantity is required (must be > 0)")

        item = self._get_own_item(db, buyer_id, item_id)
        product = item.product
        if product is None or product.status != ProductStatus.AVAILABLE:
            raise ValidationError("Product is no longer available")
        if quantity > product.available_quantity:
            raise ValidationError(f"Only {product.available_quantity} items available in stock")

        with unit_of_work(db, "cart.update_item"):
            item.quantity = quantity
        db.refresh(item)
        return item

    def remove_item(self, db: Session, buyer_id: int, item_id: int):
        item = self._get_own_item(db, buyer_id, item_id)
        with unit_of_work(db, "cart.remove_item"):
            db.delete(item)

    def get_cart(self, db: Session, buyer_id: int) -> dict:
        """Cart lines with live product data and totals over available lines."""
        lines = self.get_items_with_product_snapshot(db, buyer_id)
        items = []
        subtotal = Decimal("0.00")
        for line in lines:
            available = line.status == ProductStatus.AVAILABLE
            line_total = line.line_total if line.product_exists else Decimal("0.00")
            if available:
                subtotal += line_total
            items.append({
                "id": line.cart_item_id,
                "product_id": line.product_id,
                "title": line.product_title,
                "quantity": line.quantity,
                "price": money_json(line.unit_price) if line.product_exists else None,
                "line_total": money_json(line_total),
                "status": line.status,
                "available_quantity": line.available_quantity,
                "is_available": available,
            })
        return {
            "items": items,
            "item_count": sum(it["quantity"] for it in items if it["is_available"]),
            "subtotal": money_json(subtotal),
            "total": money_json(subtotal),
        }

    def get_summary(self, db: Session, buyer_id: int) -> dict:
        cart = self.get_cart(db, buyer_id)
        return {
            "item_count": cart["item_count"],
            "subtotal": cart["subtotal"],
            "total": cart["total"],
        }

    # ==========================================
    # Private helpers
    # ==========================================

    def _find_line(self, db: Session, buyer_id: int, product_id: int) -> Optional[CartItem]:
        return db.query(CartItem).filter(
            CartItem.buyer_id == buyer_id,
            CartItem.product_id == product_id,
        ).first()

    def _increment_line(self, db: Session, buyer_id: int, product: Product, quantity: int) -> CartItem:
        """Add to an existing line in SQL, guarded so the line never exceeds stock."""
        limit = product.available_quantity
        with unit_of_work(db, "cart.add_item"):
            matched = db.query(CartItem).filter(
                CartItem.buyer_id == buyer_id,
                CartItem.product_id == product.id,
                CartItem.quantity + quantity <= limit,
            ).update({
                CartItem.quantity: CartItem.quantity + quantity,
                CartItem.updated_at: now_utc(),
            }, synchronize_session=False)

        item = self._find_line(db, buyer_id, product.id)
        if item is None:
            raise NotFoundError("Cart item not found")
        if not matched:
            remaining = max(limit - item.quantity, 0)
            raise ValidationError(f"Cannot add {quantity} more items. Only {remaining} more items can be added.")
        db.refresh(item)
        return item

    def _get_own_item(self, db: Session, buyer_id: int, item_id: int) -> CartItem:
        item = db.query(CartItem).filter(
            CartItem.id == item_id,
            CartItem.buyer_id == buyer_id,
        ).first()
        if not item:
            raise NotFoundError("Cart item not found")
        return item


def cart_item_to_dict(item: CartItem) -> dict:
    return {
        "id": item.id,
        "buyer_id": item.buyer_id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }


# Singleton
cart_service = CartService()
