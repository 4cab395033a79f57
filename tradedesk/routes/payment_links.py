"""
Payment link routes — sellers issue fixed-price links, buyers claim them
into their cart.
"""
from decimal import Decimal
from typing import Optional, List

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tradedesk.database import get_db
from tradedesk.routes.auth import AuthContext, get_current_user, resolve_owned_business
from tradedesk.serializers import payment_link_to_dict, page_info
from tradedesk.services import cart as cart_service
from tradedesk.services import payment_links as link_service

router = APIRouter(prefix="/api/v1/payment-links", tags=["payment-links"])


class LinkItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(1, gt=0)
    negotiated_price: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    notes: Optional[str] = None


class PaymentLinkCreate(BaseModel):
    seller_business_id: Optional[int] = None
    buyer_business_id: Optional[int] = None
    conversation_id: Optional[int] = None
    items: List[LinkItemRequest] = []
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    expires_in_days: Optional[int] = Field(link_service.DEFAULT_EXPIRY_DAYS, ge=0)


class StatusUpdate(BaseModel):
    status: str


class ClaimRequest(BaseModel):
    business_id: Optional[int] = None
    delivery_option: Optional[str] = None
    delivery_notes: Optional[str] = None


def _url(request: Request, link) -> str:
    return link_service.payment_url(request.app.state.settings.frontend_url, link.link_code)


@router.post("", status_code=201)
def create_payment_link(
    data: PaymentLinkCreate,
    request: Request,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    seller = resolve_owned_business(db, user, data.seller_business_id, can_sell=True)
    link = link_service.create_payment_link(
        db, seller,
        [item.model_dump() for item in data.items],
        buyer_business_id=data.buyer_business_id,
        conversation_id=data.conversation_id,
        title=data.title,
        description=data.description,
        tax_amount=data.tax_amount,
        discount_amount=data.discount_amount,
        expires_in_days=data.expires_in_days,
    )
    return {
        "message": "Payment link created successfully",
        "payment_link": payment_link_to_dict(link),
        "payment_url": _url(request, link),
    }


@router.get("/code/{code}")
def get_payment_link(code: str, db: Session = Depends(get_db)):
    """Public lookup used by the payment page."""
    return {"payment_link": payment_link_to_dict(link_service.get_payment_link_by_code(db, code))}


@router.get("/seller/{business_id}")
def list_seller_links(
    business_id: int,
    request: Request,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    seller = resolve_owned_business(db, user, business_id, can_sell=True)
    rows, total = link_service.list_seller_payment_links(db, seller.id, status, page, limit)
    return {
        "payment_links": [{**payment_link_to_dict(link), "payment_url": _url(request, link)} for link in rows],
        "pagination": page_info(total, page, limit),
    }


@router.put("/{link_id}/status")
def update_status(
    link_id: int,
    data: StatusUpdate,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    link = link_service.update_payment_link_status(db, link_id, user.user_id, data.status)
    return {"message": "Payment link status updated successfully", "payment_link": payment_link_to_dict(link)}


@router.post("/{code}/add-to-cart")
def add_to_cart(
    code: str,
    data: Optional[ClaimRequest] = None,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Copy the link's lines into the caller's cart at the link's prices."""
    data = data or ClaimRequest()
    link, items = link_service.add_payment_link_to_cart(
        db, code, user.user_id,
        business_id=data.business_id if data.business_id is not None else user.business_id,
        delivery_option=data.delivery_option,
        delivery_notes=data.delivery_notes,
    )
    return {
        "message": "Payment link items added to cart",
        "payment_link_id": str(link.id),
        "items": [cart_service.item_to_dict(item) for item in items],
    }
