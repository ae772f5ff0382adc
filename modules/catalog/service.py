"""
Catalog Module - Service Layer
================================
Product lookup, producer stock maintenance, and the atomic conditional
stock decrement used by checkout.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from config.database import unit_of_work
from common.exceptions import NotFoundError, AuthorizationError, ValidationError
from common.helpers import to_money, money_json
from modules.catalog.models import Product, ProductStatus, derive_status

logger = logging.getLogger("farmlink.catalog")


@dataclass(frozen=True)
class DecrementResult:
    ok: bool
    new_quantity: Optional[int] = None


def product_to_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "producer_id": product.producer_id,
        "title": product.title,
        "description": product.description,
        "category": product.category,
        "unit": product.unit,
        "price": money_json(product.unit_price),
        "quantity": product.available_quantity,
        "status": product.status,
        "order_count": product.order_count,
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }


class ProductService:

    def get(self, db: Session, product_id: int) -> Product:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Product not found")
        return product

    def create(self, db: Session, producer_id: int, data: dict) -> Product:
        """Create a listing. Status follows the initial stock."""
        quantity = int(data.get("quantity", 0))
        product = Product(
            producer_id=producer_id,
            title=data["title"].strip(),
            description=data.get("description"),
            category=data.get("category"),
            unit=data.get("unit") or "kg",
            unit_price=to_money(data["price"]),
            available_quantity=quantity,
            status=derive_status(quantity).value,
        )
        with unit_of_work(db, "product.create"):
            db.add(product)
        db.refresh(product)
        logger.info(f"Product #{product.id} created by producer #{producer_id}")
        return product

    def set_quantity(self, db: Session, product_id: int, producer_id: int, quantity: int) -> Product:
        """Producer restock/adjustment. Only the owning producer may change stock."""
        if quantity < 0:
            raise ValidationError("Valid quantity is required (must be >= 0)")

        product = self.get(db, product_id)
        if product.producer_id != producer_id:
            raise AuthorizationError("Access denied. You can only manage your own products")

        with unit_of_work(db, "product.set_quantity"):
            product.available_quantity = quantity
            product.status = derive_status(quantity).value
        db.refresh(product)
        return product

    def set_status(self, db: Session, product_id: int, producer_id: int, status: Optional[str]) -> Product:
        """Producer listing status, e.g. discontinuing a product. Owner only."""
        valid = [s.value for s in ProductStatus]
        if status not in valid:
            raise ValidationError(f"Valid status is required ({', '.join(valid)})")

        product = self.get(db, product_id)
        if product.producer_id != producer_id:
            raise AuthorizationError("Access denied. You can only manage your own products")
        if status == ProductStatus.AVAILABLE and product.available_quantity == 0:
            raise ValidationError("Cannot mark a product with no stock as available")

        with unit_of_work(db, "product.set_status"):
            product.status = status
        db.refresh(product)
        logger.info(f"Product #{product.id} status -> {status} by producer #{producer_id}")
        return product

    # ==========================================
    # Conditional decrement
    # ==========================================

    def conditional_decrement(self, db: Session, product_id: int, amount: int) -> DecrementResult:
        """
        Take `amount` units in one UPDATE guarded by
        `status = available AND available_quantity >= amount`.

        The guard and the write are a single statement, so concurrent
        checkouts can never drive stock below zero; a request that would
        matches no row and leaves the product untouched. Status is derived
        from the new quantity inside the same statement.
        """
        if amount <= 0:
            raise ValidationError("Decrement amount must be positive")

        new_quantity = None
        with unit_of_work(db, "product.conditional_decrement"):
            matched = (
                db.query(Product)
                .filter(
                    Product.id == product_id,
                    Product.status == ProductStatus.AVAILABLE.value,
                    Product.available_quantity >= amount,
                )
                .update({
                    Product.available_quantity: Product.available_quantity - amount,
                    Product.status: case(
                        (Product.available_quantity == amount, ProductStatus.OUT_OF_STOCK.value),
                        else_=ProductStatus.AVAILABLE.value,
                    ),
                    Product.order_count: Product.order_count + 1,
                }, synchronize_session=False)
            )
            if matched:
                new_quantity = (
                    db.query(Product.available_quantity)
                    .filter(Product.id == product_id)
                    .scalar()
                )

        if not matched:
            logger.info(f"Conditional decrement refused: product #{product_id}, amount {amount}")
            return DecrementResult(ok=False)
        return DecrementResult(ok=True, new_quantity=new_quantity)


# Singleton
product_service = ProductService()
