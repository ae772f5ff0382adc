"""
Account Module - Aggregate Statistics
=======================================
Denormalized buyer/producer counters updated after a successful checkout.
Increments are applied in SQL (`col = col + x`) so two checkouts for the
same producer cannot lose an update; a missing profile row is created.
"""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from config.database import unit_of_work
from common.helpers import to_money, money_json
from modules.account.models import BuyerProfile, ProducerProfile

logger = logging.getLogger("farmlink.stats")


class BuyerStatsService:

    def apply_order(self, db: Session, buyer_id: int, amount: Decimal, address: str):
        amount = to_money(amount)
        with unit_of_work(db, "buyer.apply_order"):
            matched = db.query(BuyerProfile).filter(BuyerProfile.user_id == buyer_id).update({
                BuyerProfile.total_spent: BuyerProfile.total_spent + amount,
                BuyerProfile.total_orders: BuyerProfile.total_orders + 1,
                BuyerProfile.delivery_address: address,
            }, synchronize_session=False)
            if not matched:
                db.add(BuyerProfile(
                    user_id=buyer_id,
                    total_spent=amount,
                    total_orders=1,
                    delivery_address=address,
                ))

    def get(self, db: Session, buyer_id: int) -> dict:
        profile = db.query(BuyerProfile).filter(BuyerProfile.user_id == buyer_id).first()
        if not profile:
            return {"total_spent": 0.0, "total_orders": 0, "delivery_address": None}
        return {
            "total_spent": money_json(profile.total_spent),
            "total_orders": profile.total_orders,
            "delivery_address": profile.delivery_address,
        }


class ProducerStatsService:

    def apply_sales(self, db: Session, producer_id: int, amount: Decimal):
        amount = to_money(amount)
        with unit_of_work(db, "producer.apply_sales"):
            matched = db.query(ProducerProfile).filter(ProducerProfile.user_id == producer_id).update({
                ProducerProfile.total_sales: ProducerProfile.total_sales + amount,
            }, synchronize_session=False)
            if not matched:
                db.add(ProducerProfile(user_id=producer_id, total_sales=amount))

    def get(self, db: Session, producer_id: int) -> dict:
        profile = db.query(ProducerProfile).filter(ProducerProfile.user_id == producer_id).first()
        if not profile:
            return {"farm_name": None, "total_sales": 0.0}
        return {"farm_name": profile.farm_name, "total_sales": money_json(profile.total_sales)}


# Singletons
buyer_stats_service = BuyerStatsService()
producer_stats_service = ProducerStatsService()
