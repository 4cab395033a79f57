"""
Chat routes — negotiation between a buyer and a seller business.

Features:
- Get-or-create a conversation (optionally about a product)
- List a business's conversations
- Paged message history (marks the other party's messages read)
- Send / delete messages, mark a conversation read
- Turn a conversation into an inquiry, order, quotation or payment link

The acting business comes from `business_id` (body, query) or the
`X-Business-Id` header and is always checked against the token's user.
"""
from decimal import Decimal
from typing import Optional, List

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tradedesk.database import get_db
from tradedesk.ratelimit import chat_rate_limit
from tradedesk.routes.auth import AuthContext, get_current_user, resolve_owned_business
from tradedesk.routes.realtime import publish
from tradedesk.serializers import (
    conversation_to_dict, message_to_dict, order_to_dict, quotation_to_dict, inquiry_to_dict,
    payment_link_to_dict, page_info,
)
from tradedesk.services import chat as chat_service
from tradedesk.services import commerce
from tradedesk.services import payment_links as link_service

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


# ═══════════════════════════════════════════════
#  SCHEMAS
# ═══════════════════════════════════════════════

class ConversationRequest(BaseModel):
    buyer_business_id: int
    seller_business_id: int
    product_id: Optional[int] = None
    inquiry_id: Optional[int] = None
    order_id: Optional[int] = None
    business_id: Optional[int] = None


class SendMessageRequest(BaseModel):
    conversation_id: int
    message_type: str = Field(default="text")
    content: Optional[str] = Field(None, max_length=chat_service.MAX_CONTENT_LENGTH)
    metadata: Optional[dict] = None
    sender_business_id: Optional[int] = None


class InquiryRequest(BaseModel):
    seller_business_id: int
    product_id: Optional[int] = None
    quantity: Optional[int] = Field(None, gt=0)
    message: Optional[str] = None
    conversation_id: Optional[int] = None
    business_id: Optional[int] = None


class ChatOrderRequest(BaseModel):
    conversation_id: int
    product_id: int
    quantity: int = Field(..., gt=0)
    agreed_price: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    shipping_amount: Optional[Decimal] = Field(None, ge=0)
    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_state: Optional[str] = None
    delivery_pincode: Optional[str] = None
    delivery_country: Optional[str] = None
    buyer_notes: Optional[str] = None
    business_id: Optional[int] = None


class ChatQuoteRequest(BaseModel):
    conversation_id: int
    inquiry_id: Optional[int] = None
    price: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    quantity: int = Field(..., gt=0)
    validity_days: Optional[int] = Field(None, gt=0)
    delivery_time_days: Optional[int] = Field(None, ge=0)
    payment_terms: Optional[str] = None
    other_terms: Optional[str] = None
    business_id: Optional[int] = None


class LinkItem(BaseModel):
    product_id: int
    quantity: int = Field(1, gt=0)
    negotiated_price: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    notes: Optional[str] = None


class ChatPaymentLinkRequest(BaseModel):
    conversation_id: int
    items: List[LinkItem] = []
    title: Optional[str] = None
    description: Optional[str] = None
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    expires_in_days: Optional[int] = Field(link_service.DEFAULT_EXPIRY_DAYS, ge=0)


# ═══════════════════════════════════════════════
#  CONVERSATIONS
# ═══════════════════════════════════════════════

@router.post("/conversations")
def get_or_create_conversation(
    data: ConversationRequest,
    response: Response,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Return the active conversation for (buyer, seller, product), creating it on first contact."""
    me = resolve_owned_business(db, user, data.business_id)
    conv, created = chat_service.get_or_create_conversation(
        db, me.id,
        data.buyer_business_id, data.seller_business_id,
        product_id=data.product_id, inquiry_id=data.inquiry_id, order_id=data.order_id,
    )
    response.status_code = 201 if created else 200
    return {
        "message": "Conversation fetched successfully",
        "created": created,
        "conversation": conversation_to_dict(conv, chat_service.last_message(db, conv.id)),
    }


@router.get("/conversations/business/{business_id}")
def list_conversations(
    business_id: int,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = resolve_owned_business(db, user, business_id)
    rows = chat_service.list_business_conversations(db, business.id)
    return {"conversations": [conversation_to_dict(conv, last) for conv, last in rows]}


@router.get("/conversations/{conversation_id}/messages")
def get_messages(
    conversation_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    me = resolve_owned_business(db, user)
    messages, total = chat_service.get_messages(db, conversation_id, me.id, page, limit)
    return {
        "messages": [message_to_dict(m) for m in messages],
        "pagination": page_info(total, page, limit),
    }


@router.patch("/conversations/{conversation_id}/read")
def mark_read(
    conversation_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    me = resolve_owned_business(db, user)
    updated, events = chat_service.mark_read(db, conversation_id, me.id)
    publish(request, background_tasks, events)
    return {"message": "Messages marked as read", "updated": updated}


# ═══════════════════════════════════════════════
#  MESSAGES
# ═══════════════════════════════════════════════

@router.post("/messages", status_code=201, dependencies=[Depends(chat_rate_limit)])
def send_message(
    data: SendMessageRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    me = resolve_owned_business(db, user, data.sender_business_id)
    msg, events = chat_service.send_message(
        db, data.conversation_id, me.id, data.message_type, data.content, data.metadata,
    )
    publish(request, background_tasks, events)
    return {"message": "Message sent successfully", "data": message_to_dict(msg)}


@router.delete("/messages/{message_id}")
def delete_message(
    message_id: int,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    me = resolve_owned_business(db, user)
    chat_service.delete_message(db, message_id, me.id)
    return {"message": "Message deleted successfully"}


# ═══════════════════════════════════════════════
#  COMMERCE FROM CHAT
# ═══════════════════════════════════════════════

@router.post("/inquiries", status_code=201)
def create_inquiry(
    data: InquiryRequest,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    buyer = resolve_owned_business(db, user, data.business_id, can_buy=True)
    inquiry = commerce.create_inquiry(
        db, buyer.id, data.seller_business_id,
        product_id=data.product_id, quantity=data.quantity, message=data.message,
        conversation_id=data.conversation_id,
    )
    return {"message": "Inquiry created successfully", "inquiry": inquiry_to_dict(inquiry)}


@router.post("/orders/create", status_code=201)
def create_order_from_chat(
    data: ChatOrderRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Buyer confirms the negotiated deal as an order."""
    me = resolve_owned_business(db, user, data.business_id)
    order, events = commerce.create_order_from_chat(
        db, data.conversation_id, me.id, data.product_id, data.quantity, data.agreed_price,
        tax_amount=data.tax_amount,
        discount_amount=data.discount_amount,
        shipping_amount=data.shipping_amount,
        delivery_address=data.delivery_address,
        delivery_city=data.delivery_city,
        delivery_state=data.delivery_state,
        delivery_pincode=data.delivery_pincode,
        delivery_country=data.delivery_country,
        buyer_notes=data.buyer_notes,
    )
    publish(request, background_tasks, events)
    return {"message": "Order created successfully", "order": order_to_dict(order)}


@router.post("/quotations/create", status_code=201)
def create_quote_from_chat(
    data: ChatQuoteRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Seller answers the conversation's inquiry with a price."""
    me = resolve_owned_business(db, user, data.business_id)
    quote, events = commerce.create_quote_from_chat(
        db, data.conversation_id, me.id, data.price, data.quantity,
        inquiry_id=data.inquiry_id,
        validity_days=data.validity_days,
        delivery_time_days=data.delivery_time_days,
        payment_terms=data.payment_terms,
        other_terms=data.other_terms,
    )
    publish(request, background_tasks, events)
    return {"message": "Quotation created successfully", "quotation": quotation_to_dict(quote)}


@router.post("/payment-links/create", status_code=201)
def create_payment_link_from_chat(
    data: ChatPaymentLinkRequest,
    request: Request,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    link = link_service.create_payment_link_from_chat(
        db, data.conversation_id, user.user_id,
        [item.model_dump() for item in data.items],
        title=data.title,
        description=data.description,
        tax_amount=data.tax_amount,
        discount_amount=data.discount_amount,
        expires_in_days=data.expires_in_days,
    )
    return {
        "message": "Payment link created successfully",
        "payment_link": payment_link_to_dict(link),
        "payment_url": link_service.payment_url(request.app.state.settings.frontend_url, link.link_code),
    }
