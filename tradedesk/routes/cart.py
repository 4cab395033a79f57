"""
Cart routes. A bearer token is optional: guests keep a cart under a
`session_id` they generate themselves.
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tradedesk.database import get_db
from tradedesk.routes.auth import AuthContext, get_optional_user, parse_id
from tradedesk.services import cart as cart_service

router = APIRouter(prefix="/api/v1/cart", tags=["cart"])


class AddToCartRequest(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    negotiated_price: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    delivery_option: Optional[str] = None
    delivery_notes: Optional[str] = None
    business_id: Optional[int] = None
    session_id: Optional[str] = Field(None, max_length=100)


class UpdateCartItemRequest(BaseModel):
    quantity: Optional[int] = Field(None, gt=0)
    delivery_option: Optional[str] = None
    delivery_notes: Optional[str] = None


class DeliveryRequest(BaseModel):
    delivery_option: str
    delivery_notes: Optional[str] = None


def _scope(db: Session, user: Optional[AuthContext], business_id=None, session_id=None):
    bid = parse_id(business_id, "business_id")
    if bid is None and user is not None:
        bid = user.business_id
    return cart_service.resolve_scope(db, user.user_id if user else None, bid, session_id)


def _user_id(user: Optional[AuthContext]) -> Optional[int]:
    return user.user_id if user else None


@router.get("")
def get_cart(
    business_id: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None),
    x_session_id: Optional[str] = Header(None),
    user: Optional[AuthContext] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    scope = _scope(db, user, business_id, session_id or x_session_id)
    items, summary = cart_service.get_cart(db, scope)
    return {"items": items, "summary": summary}


@router.post("", status_code=201)
def add_to_cart(
    data: AddToCartRequest,
    x_session_id: Optional[str] = Header(None),
    user: Optional[AuthContext] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    scope = _scope(db, user, data.business_id, data.session_id or x_session_id)
    item = cart_service.add_item(
        db, scope, data.product_id, data.quantity,
        delivery_option=data.delivery_option,
        negotiated_price=data.negotiated_price,
        delivery_notes=data.delivery_notes,
    )
    return {"message": "Item added to cart successfully", "item": cart_service.item_to_dict(item)}


@router.put("/{item_id}")
def update_cart_item(
    item_id: int,
    data: UpdateCartItemRequest,
    user: Optional[AuthContext] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    item = cart_service.update_item(
        db, item_id, _user_id(user),
        quantity=data.quantity,
        delivery_option=data.delivery_option,
        delivery_notes=data.delivery_notes,
    )
    return {"message": "Cart item updated successfully", "item": cart_service.item_to_dict(item)}


@router.put("/{item_id}/delivery")
def update_delivery_option(
    item_id: int,
    data: DeliveryRequest,
    user: Optional[AuthContext] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    item = cart_service.set_delivery_option(db, item_id, _user_id(user), data.delivery_option, data.delivery_notes)
    return {"message": "Delivery option updated successfully", "item": cart_service.item_to_dict(item)}


@router.delete("/{item_id}")
def remove_from_cart(
    item_id: int,
    user: Optional[AuthContext] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    cart_service.remove_item(db, item_id, _user_id(user))
    return {"message": "Item removed from cart successfully"}


@router.delete("")
def clear_cart(
    business_id: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None),
    x_session_id: Optional[str] = Header(None),
    user: Optional[AuthContext] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    scope = _scope(db, user, business_id, session_id or x_session_id)
    removed = cart_service.clear_cart(db, scope)
    return {"message": "Cart cleared successfully", "removed": removed}
