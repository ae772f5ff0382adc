"""
Order Module - Checkout
=========================
Turns a buyer's cart into an order:

1. Load cart lines with a product snapshot
2. Validate every line against that snapshot (collect all conflicts)
3. Abort on any conflict: all-or-nothing, no writes
4. Total from snapshot prices
5. Create the order header (pending / payment pending)
6. Per line: create the order line, then conditionally decrement stock
7. Clear the cart                      (best-effort)
8. Update buyer statistics             (best-effort)
9. Update producer sales statistics    (best-effort)
10. Return order + lines + summary

Every step is its own durable write; there is no transaction around
steps 5-6. If step 6 stops part-way the order is left as written, flagged
for reconciliation, and PartialOrderError reports which lines made it.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from common.best_effort import best_effort
from common.exceptions import (
    ValidationError, EmptyCartError, CartConflictError, PartialOrderError,
)
from common.helpers import money_json
from modules.account.service import buyer_stats_service, producer_stats_service
from modules.cart.service import cart_service, CartLineSnapshot
from modules.catalog.models import ProductStatus
from modules.catalog.service import product_service
from modules.order.models import Order, OrderItem, PaymentMethod
from modules.order.service import order_service

logger = logging.getLogger("farmlink.checkout")

REASON_UNAVAILABLE = "Product is no longer available"
REASON_INSUFFICIENT = "Insufficient stock"


@dataclass
class CheckoutResult:
    order: Order
    items: List[OrderItem]
    summary: Dict = field(default_factory=dict)


class CheckoutService:
    """
    Collaborators are injected so a checkout can run against alternative
    stores; the defaults are the module singletons.
    """

    def __init__(
        self,
        cart=None,
        orders=None,
        products=None,
        buyer_stats=None,
        producer_stats=None,
    ):
        self.cart = cart or cart_service
        self.orders = orders or order_service
        self.products = products or product_service
        self.buyer_stats = buyer_stats or buyer_stats_service
        self.producer_stats = producer_stats or producer_stats_service

    def place_order(
        self,
        db: Session,
        buyer_id: int,
        delivery_address: str,
        payment_method: str,
        notes: Optional[str] = None,
    ) -> CheckoutResult:
        delivery_address = (delivery_address or "").strip()
        self._check_input(delivery_address, payment_method)

        lines = self.cart.get_items_with_product_snapshot(db, buyer_id)
        if not lines:
            raise EmptyCartError()

        valid_items, conflicts = self.validate_lines(lines)
        if conflicts:
            logger.info(f"Checkout rejected for buyer #{buyer_id}: {len(conflicts)} conflicting line(s)")
            raise CartConflictError(conflicts)
        if not valid_items:
            raise EmptyCartError("No valid items in cart")

        total_amount = sum((line.line_total for line in valid_items), Decimal("0.00"))

        order = self.orders.create_header(
            db,
            buyer_id=buyer_id,
            total_amount=total_amount,
            delivery_address=delivery_address,
            payment_method=payment_method,
            notes=notes,
        )
        order_id, order_number = order.id, order.order_number
        logger.info(f"Order {order_number} (#{order_id}) created for buyer #{buyer_id}, total {total_amount}")

        created_items, succeeded, failed = self._commit_lines(db, order_id, valid_items)
        if failed:
            best_effort(
                f"flag order #{order_id} for reconciliation",
                self.orders.flag_for_reconciliation, db, order_id,
                logger=logger,
            )
            logger.warning(
                f"Order {order_number} partially created: "
                f"{len(succeeded)} line(s) committed, {len(failed)} failed"
            )
            raise PartialOrderError(order_id, order_number, succeeded, failed)

        best_effort(f"clear cart of buyer #{buyer_id}", self.cart.clear, db, buyer_id, logger=logger)
        best_effort(
            f"buyer #{buyer_id} statistics",
            self.buyer_stats.apply_order, db, buyer_id, total_amount, delivery_address,
            logger=logger,
        )
        for producer_id, amount in self.sales_by_producer(valid_items).items():
            best_effort(
                f"producer #{producer_id} statistics",
                self.producer_stats.apply_sales, db, producer_id, amount,
                logger=logger,
            )

        return CheckoutResult(
            order=order,
            items=created_items,
            summary={
                "item_count": len(valid_items),
                "total_amount": money_json(total_amount),
                "order_number": order_number,
            },
        )

    # ==========================================
    # Validation
    # ==========================================

    @staticmethod
    def validate_lines(lines: List[CartLineSnapshot]) -> Tuple[List[CartLineSnapshot], List[dict]]:
        """Split cart lines into purchasable lines and conflicts."""
        valid_items, conflicts = [], []
        for line in lines:
            if not line.product_exists or line.status != ProductStatus.AVAILABLE:
                conflicts.append({
                    "product_id": line.product_id,
                    "product_title": line.product_title,
                    "reason": REASON_UNAVAILABLE,
                    "requested": line.quantity,
                    "available": 0,
                })
                continue
            if line.quantity > line.available_quantity:
                conflicts.append({
                    "product_id": line.product_id,
                    "product_title": line.product_title,
                    "reason": REASON_INSUFFICIENT,
                    "requested": line.quantity,
                    "available": line.available_quantity,
                })
                continue
            valid_items.append(line)
        return valid_items, conflicts

    @staticmethod
    def sales_by_producer(lines: List[CartLineSnapshot]) -> Dict[int, Decimal]:
        sales = OrderedDict()
        for line in lines:
            sales[line.producer_id] = sales.get(line.producer_id, Decimal("0.00")) + line.line_total
        return sales

    def _check_input(self, delivery_address: str, payment_method: str):
        errors = []
        if not delivery_address:
            errors.append("Delivery address is required")
        methods = [m.value for m in PaymentMethod]
        if payment_method not in methods:
            errors.append(f"Valid payment method is required ({', '.join(methods)})")
        if errors:
            raise ValidationError("Validation failed", errors)

    # ==========================================
    # Lines + stock
    # ==========================================

    def _commit_lines(
        self, db: Session, order_id: int, valid_items: List[CartLineSnapshot],
    ) -> Tuple[List[OrderItem], List[dict], List[dict]]:
        """
        Write lines one at a time and stop at the first failure.
        A line whose stock could not be taken is removed again, so the order
        only carries lines that actually reduced inventory.
        """
        created, succeeded, failed = [], [], []

        for index, line in enumerate(valid_items):
            try:
                item = self.orders.add_line(db, order_id, line.product_id, line.quantity, line.unit_price)
            except Exception as e:
                logger.exception(f"Order #{order_id}: line for product #{line.product_id} could not be written")
                failed.append(self._failure(line, "order_line_failed", str(e)))
                failed.extend(self._failure(rest, "not_attempted") for rest in valid_items[index + 1:])
                break

            try:
                result = self.products.conditional_decrement(db, line.product_id, line.quantity)
                problem, detail = (None, "") if result.ok else ("insufficient_stock", "stock changed after validation")
            except Exception as e:
                logger.exception(f"Order #{order_id}: stock update for product #{line.product_id} failed")
                result, problem, detail = None, "stock_update_failed", str(e)

            if problem:
                removed = best_effort(
                    f"remove order line #{item.id}", self.orders.remove_line, db, item.id, logger=logger,
                )
                entry = self._failure(line, problem, detail)
                if not removed:
                    entry["order_item_id"] = item.id
                failed.append(entry)
                failed.extend(self._failure(rest, "not_attempted") for rest in valid_items[index + 1:])
                break

            created.append(item)
            succeeded.append({
                "product_id": line.product_id,
                "quantity": line.quantity,
                "order_item_id": item.id,
                "subtotal": money_json(line.line_total),
                "remaining_stock": result.new_quantity,
            })

        return created, succeeded, failed

    @staticmethod
    def _failure(line: CartLineSnapshot, reason: str, detail: str = "") -> dict:
        entry = {
            "product_id": line.product_id,
            "quantity": line.quantity,
            "reason": reason,
        }
        if detail:
            entry["detail"] = detail
        return entry


def get_checkout_service() -> CheckoutService:
    """FastAPI dependency; override in tests to inject other stores."""
    return CheckoutService()
