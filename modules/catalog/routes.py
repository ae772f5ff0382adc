"""
Catalog Routes
================
Product detail, producer listing creation, stock and status maintenance.
Browse/search endpoints belong to the catalog read service.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_producer
from modules.catalog.service import product_service, product_to_dict
from modules.user.models import User

router = APIRouter(prefix="/api/products", tags=["products"])


class ProductCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    quantity: int = Field(..., ge=0)
    unit: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    description: Optional[str] = None


class QuantityUpdateRequest(BaseModel):
    quantity: int = Field(..., ge=0)


class StatusUpdateRequest(BaseModel):
    status: Optional[str] = None


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": product_to_dict(product_service.get(db, product_id))}


@router.post("", status_code=201)
def create_product(
    body: ProductCreateRequest,
    db: Session = Depends(get_db),
    me: User = Depends(require_producer),
):
    product = product_service.create(db, me.id, body.model_dump())
    return {
        "success": True,
        "message": "Product created successfully",
        "data": product_to_dict(product),
    }


@router.patch("/{product_id}/quantity")
def update_product_quantity(
    product_id: int,
    body: QuantityUpdateRequest,
    db: Session = Depends(get_db),
    me: User = Depends(require_producer),
):
    product = product_service.set_quantity(db, product_id, me.id, body.quantity)
    return {
        "success": True,
        "message": "Product quantity updated successfully",
        "data": product_to_dict(product),
    }


@router.patch("/{product_id}/status")
def update_product_status(
    product_id: int,
    body: StatusUpdateRequest,
    db: Session = Depends(get_db),
    me: User = Depends(require_producer),
):
    product = product_service.set_status(db, product_id, me.id, body.status)
    return {
        "success": True,
        "message": "Product status updated successfully",
        "data": product_to_dict(product),
    }
