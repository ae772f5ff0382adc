"""
Order Module - Service Layer
===============================
Order persistence used by checkout (header, lines), role-scoped queries,
status/payment state machine, and statistics.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from config.database import unit_of_work
from common.exceptions import (
    NotFoundError, AuthorizationError, ValidationError, InvalidTransitionError,
)
from common.helpers import now_utc, to_money, money_json, generate_order_number
from modules.catalog.models import Product
from modules.order.models import (
    Order, OrderItem, OrderStatus, PaymentStatus,
    STATUS_TIMESTAMP_FIELDS, ACTIVE_STATUSES,
    can_transition, can_transition_payment,
)
from modules.user.models import User

logger = logging.getLogger("farmlink.order")


def order_item_to_dict(item: OrderItem) -> dict:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "unit_price": money_json(item.unit_price),
        "subtotal": money_json(item.subtotal),
        "created_at": item.created_at,
    }


def order_to_dict(order: Order, include_items: bool = False) -> dict:
    data = {
        "id": order.id,
        "buyer_id": order.buyer_id,
        "order_number": order.order_number,
        "total_amount": money_json(order.total_amount),
        "delivery_address": order.delivery_address,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "status": order.status,
        "notes": order.notes,
        "needs_reconciliation": order.needs_reconciliation,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }
    for field in STATUS_TIMESTAMP_FIELDS.values():
        data[field] = getattr(order, field)
    if include_items:
        data["order_items"] = [order_item_to_dict(it) for it in order.items]
    return data


class OrderService:

    # ==========================================
    # Checkout collaborators
    # ==========================================

    def create_header(
        self,
        db: Session,
        buyer_id: int,
        total_amount: Decimal,
        delivery_address: str,
        payment_method: str,
        notes: Optional[str] = None,
    ) -> Order:
        """Persist a new order in pending/pending. First durable write of a checkout."""
        order = Order(
            buyer_id=buyer_id,
            order_number=self._unique_order_number(db),
            total_amount=to_money(total_amount),
            delivery_address=delivery_address,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PENDING.value,
            notes=notes or None,
        )
        with unit_of_work(db, "order.create_header"):
            db.add(order)
        db.refresh(order)
        return order

    def add_line(self, db: Session, order_id: int, product_id: int, quantity: int, unit_price: Decimal) -> OrderItem:
        """Snapshot one purchased line; subtotal is fixed here and never recomputed."""
        unit_price = to_money(unit_price)
        item = OrderItem(
            order_id=order_id,
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=to_money(unit_price * quantity),
        )
        with unit_of_work(db, "order.add_line"):
            db.add(item)
        db.refresh(item)
        return item

    def remove_line(self, db: Session, line_id: int):
        """Drop a line whose stock could not be taken."""
        with unit_of_work(db, "order.remove_line"):
            db.query(OrderItem).filter(OrderItem.id == line_id).delete(synchronize_session=False)

    def flag_for_reconciliation(self, db: Session, order_id: int):
        with unit_of_work(db, "order.flag_for_reconciliation"):
            db.query(Order).filter(Order.id == order_id).update(
                {Order.needs_reconciliation: True}, synchronize_session=False,
            )

    def find_orders_needing_reconciliation(self, db: Session) -> List[Order]:
        return (
            db.query(Order)
            .filter(Order.needs_reconciliation.is_(True))
            .order_by(Order.created_at)
            .all()
        )

    # ==========================================
    # Query
    # ==========================================

    def get_order(self, db: Session, order_id: int, actor: User) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found")

        if actor.is_buyer and order.buyer_id != actor.id:
            raise AuthorizationError("Access denied. You can only view your own orders.")
        if actor.is_producer and not self._has_producer_items(db, order.id, actor.id):
            raise AuthorizationError("Access denied. This order does not contain your products.")
        return order

    def list_orders(
        self,
        db: Session,
        actor: User,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
    ) -> Tuple[List[Order], int]:
        """Newest first. Buyers see their own orders, producers orders containing their products."""
        q = self._scoped_query(db, actor)
        if status:
            q = q.filter(Order.status == status)

        total = q.count()
        orders = (
            q.order_by(desc(Order.created_at), desc(Order.id))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return orders, total

    # ==========================================
    # Status / Payment
    # ==========================================

    def update_status(self, db: Session, order_id: int, new_status: str, actor: User) -> Order:
        valid = [s.value for s in OrderStatus]
        if new_status not in valid:
            raise ValidationError(f"Valid status is required. Available statuses: {', '.join(valid)}")

        with unit_of_work(db, "order.update_status"):
            order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
            if not order:
                raise NotFoundError("Order not found")

            if actor.is_producer and not self._has_producer_items(db, order.id, actor.id):
                raise AuthorizationError("Access denied. You can only update orders containing your products.")
            if actor.is_buyer:
                if order.buyer_id != actor.id:
                    raise AuthorizationError("Access denied. You can only update your own orders.")
                if new_status != OrderStatus.CANCELLED or order.status != OrderStatus.PENDING:
                    raise InvalidTransitionError("Buyers can only cancel pending orders")

            if not can_transition(order.status, new_status):
                raise InvalidTransitionError(f"Cannot change order status from {order.status} to {new_status}")

            now = now_utc()
            order.status = new_status
            order.updated_at = now
            setattr(order, STATUS_TIMESTAMP_FIELDS[OrderStatus(new_status)], now)
            if new_status == OrderStatus.DELIVERED:
                order.payment_status = PaymentStatus.COMPLETED.value

        db.refresh(order)
        logger.info(f"Order #{order.id} -> {new_status} by user #{actor.id}")
        return order

    def update_payment_status(self, db: Session, order_id: int, payment_status: str) -> Order:
        valid = [s.value for s in PaymentStatus]
        if payment_status not in valid:
            raise ValidationError(f"Valid payment status is required. Available statuses: {', '.join(valid)}")

        with unit_of_work(db, "order.update_payment_status"):
            order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
            if not order:
                raise NotFoundError("Order not found")
            if not can_transition_payment(order.payment_status, payment_status):
                raise InvalidTransitionError(
                    f"Cannot change payment status from {order.payment_status} to {payment_status}"
                )
            order.payment_status = payment_status
            order.updated_at = now_utc()

        db.refresh(order)
        return order

    # ==========================================
    # Statistics
    # ==========================================

    def get_stats(self, db: Session, actor: User) -> dict:
        orders = self._scoped_query(db, actor).all()
        by_status = {}
        for o in orders:
            by_status[o.status] = by_status.get(o.status, 0) + 1

        stats = {
            "total_orders": len(orders),
            "pending_orders": by_status.get(OrderStatus.PENDING.value, 0),
            "completed_orders": by_status.get(OrderStatus.DELIVERED.value, 0),
            "orders_by_status": by_status,
        }

        if actor.is_producer:
            revenue = (
                db.query(func.coalesce(func.sum(OrderItem.subtotal), 0))
                .join(Product, Product.id == OrderItem.product_id)
                .filter(Product.producer_id == actor.id)
                .scalar()
            )
            stats["total_revenue"] = money_json(revenue)
            stats["active_orders"] = sum(by_status.get(s.value, 0) for s in ACTIVE_STATUSES)
        else:
            stats["total_spent"] = money_json(sum((to_money(o.total_amount) for o in orders), Decimal("0")))
            stats["cancelled_orders"] = by_status.get(OrderStatus.CANCELLED.value, 0)
        return stats

    # ==========================================
    # Private Helpers
    # ==========================================

    def _scoped_query(self, db: Session, actor: User):
        q = db.query(Order)
        if actor.is_buyer:
            q = q.filter(Order.buyer_id == actor.id)
        elif actor.is_producer:
            producer_orders = (
                select(OrderItem.order_id)
                .join(Product, Product.id == OrderItem.product_id)
                .where(Product.producer_id == actor.id)
            )
            q = q.filter(Order.id.in_(producer_orders))
        return q

    def _has_producer_items(self, db: Session, order_id: int, producer_id: int) -> bool:
        return db.query(OrderItem.id).join(Product, Product.id == OrderItem.product_id).filter(
            OrderItem.order_id == order_id,
            Product.producer_id == producer_id,
        ).first() is not None

    def _unique_order_number(self, db: Session, max_retries: int = 10) -> str:
        for _ in range(max_retries):
            number = generate_order_number()
            exists = db.query(Order.id).filter(Order.order_number == number).first()
            if not exists:
                return number
        raise RuntimeError("Failed to generate unique order number after retries")


# Singleton
order_service = OrderService()
