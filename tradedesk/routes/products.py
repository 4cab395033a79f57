"""
Catalog routes — sellers list products, anyone can browse.
"""
import logging
from decimal import Decimal
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from tradedesk.database import get_db
from tradedesk.errors import NotFound, Forbidden, ValidationError
from tradedesk.models import Product, ProductImage, Business
from tradedesk.routes.auth import AuthContext, get_current_user, resolve_owned_business
from tradedesk.serializers import product_to_dict, page_info

logger = logging.getLogger("tradedesk.products")

router = APIRouter(prefix="/api/v1/products", tags=["products"])


# ═══════════════════════════════════════════════
#  SCHEMAS
# ═══════════════════════════════════════════════

class ProductCreate(BaseModel):
    business_id: Optional[int] = None
    product_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    base_price: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    available_quantity: Optional[int] = Field(None, ge=0)
    hs_code: Optional[str] = Field(None, max_length=20)
    images: List[str] = []


class ProductUpdate(BaseModel):
    product_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    base_price: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    available_quantity: Optional[int] = Field(None, ge=0)
    hs_code: Optional[str] = Field(None, max_length=20)
    status: Optional[str] = Field(None, pattern="^(active|inactive)$")


# columns that may be changed but never cleared
REQUIRED_FIELDS = ("product_name", "status")


def _get_product(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found")
    return product


def _check_can_edit(db: Session, user: AuthContext, product: Product):
    if user.role == "admin":
        return
    owner = db.query(Business).filter(Business.id == product.business_id).first()
    if not owner or owner.user_id != user.user_id:
        raise Forbidden("You can only modify your own products")


# ═══════════════════════════════════════════════
#  ENDPOINTS
# ═══════════════════════════════════════════════

@router.post("", status_code=201)
def create_product(
    data: ProductCreate,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List a product under one of the caller's selling businesses."""
    seller = resolve_owned_business(db, user, data.business_id, can_sell=True)
    product = Product(
        business_id=seller.id,
        **data.model_dump(exclude={"business_id", "images"}),
    )
    for i, url in enumerate(data.images):
        product.images.append(ProductImage(image_url=url, is_primary=(i == 0)))
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Business %s listed product %s", seller.id, product.id)
    return {"message": "Product created successfully", "product": product_to_dict(product)}


@router.get("")
def list_products(
    category: Optional[str] = None,
    business_id: Optional[int] = None,
    status: Optional[str] = "active",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    q = db.query(Product)
    if category:
        q = q.filter(Product.category == category)
    if business_id is not None:
        q = q.filter(Product.business_id == business_id)
    if status:
        q = q.filter(Product.status == status)
    total = q.count()
    rows = q.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"products": [product_to_dict(p) for p in rows], "pagination": page_info(total, page, limit)}


@router.get("/search")
def search_products(
    q: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Case-insensitive match on name or description, active products only."""
    pattern = f"%{q}%"
    query = db.query(Product).filter(
        Product.status == "active",
        or_(Product.product_name.ilike(pattern), Product.description.ilike(pattern)),
    )
    total = query.count()
    rows = query.order_by(Product.product_name).offset((page - 1) * limit).limit(limit).all()
    return {"products": [product_to_dict(p) for p in rows], "pagination": page_info(total, page, limit)}


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    return {"product": product_to_dict(_get_product(db, product_id))}


@router.put("/{product_id}")
def update_product(
    product_id: int,
    data: ProductUpdate,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    product = _get_product(db, product_id)
    _check_can_edit(db, user, product)
    changes = data.model_dump(exclude_unset=True)
    for field in REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be null")
    for field, value in changes.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return {"message": "Product updated successfully", "product": product_to_dict(product)}


@router.delete("/{product_id}")
def delete_product(
    product_id: int,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Deactivate the product; order and invoice lines keep pointing at it."""
    product = _get_product(db, product_id)
    _check_can_edit(db, user, product)
    product.status = "inactive"
    db.commit()
    logger.info("Product %s deactivated by user %s", product.id, user.user_id)
    return {"message": "Product deleted successfully"}
