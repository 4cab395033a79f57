"""
Turning a negotiated conversation into an order or a quotation.
"""
import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session

from tradedesk.errors import Forbidden, NotFound, ValidationError, InsufficientStock
from tradedesk.models import Order, OrderItem, Product, Inquiry, Quotation, Business, Conversation
from tradedesk.serializers import order_to_dict, quotation_to_dict, sid
from tradedesk.services.chat import get_conversation
from tradedesk.services.notifications import notify_business
from tradedesk.services.realtime import PushEvent, conversation_room, business_room

logger = logging.getLogger("tradedesk.commerce")

RATE_PLACES = Decimal("0.000001")
ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def now_millis() -> int:
    return int(time.time() * 1000)


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{now_millis()}-{suffix}"


def to_decimal(value, field: str, default=None) -> Optional[Decimal]:
    if value is None or value == "":
        return default
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return amount


def back_derived_rate(amount: Decimal, subtotal: Decimal) -> Decimal:
    if not subtotal:
        return Decimal("0")
    return (amount / subtotal).quantize(RATE_PLACES)


def create_inquiry(
    db: Session,
    buyer_business_id: int,
    seller_business_id: int,
    product_id: Optional[int] = None,
    quantity: Optional[int] = None,
    message: Optional[str] = None,
    conversation_id: Optional[int] = None,
) -> Inquiry:
    """Record a buyer's request for a quote; optionally attach it to a conversation."""
    if buyer_business_id == seller_business_id:
        raise ValidationError("A business cannot send an inquiry to itself")
    if quantity is not None and quantity <= 0:
        raise ValidationError("quantity must be greater than 0")
    seller = db.query(Business).filter(Business.id == seller_business_id).first()
    if not seller:
        raise NotFound("Seller business not found")
    if not seller.can_sell:
        raise ValidationError("This business does not sell")
    if product_id is not None:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFound("Product not found")
        if product.business_id != seller_business_id:
            raise ValidationError("Product does not belong to the seller")

    conv = None
    if conversation_id is not None:
        conv = get_conversation(db, conversation_id)
        if (conv.buyer_business_id, conv.seller_business_id) != (buyer_business_id, seller_business_id):
            raise ValidationError("Inquiry parties do not match the conversation")

    inquiry = Inquiry(
        buyer_business_id=buyer_business_id,
        seller_business_id=seller_business_id,
        product_id=product_id,
        quantity=quantity,
        message=message,
    )
    db.add(inquiry)
    db.flush()
    if conv is not None:
        conv.inquiry_id = inquiry.id
    db.commit()
    db.refresh(inquiry)
    logger.info("Inquiry %s from business %s to %s", inquiry.id, buyer_business_id, seller_business_id)
    return inquiry


def create_order_from_chat(
    db: Session,
    conversation_id: int,
    caller_business_id: int,
    product_id: int,
    quantity: int,
    agreed_price,
    tax_amount=None,
    discount_amount=None,
    shipping_amount=None,
    delivery_address: Optional[str] = None,
    delivery_city: Optional[str] = None,
    delivery_state: Optional[str] = None,
    delivery_pincode: Optional[str] = None,
    delivery_country: Optional[str] = None,
    buyer_notes: Optional[str] = None,
) -> Tuple[Order, List[PushEvent]]:
    """The buyer commits to the agreed price: one order with one snapshotted item."""
    conv: Conversation = get_conversation(db, conversation_id)
    if caller_business_id != conv.buyer_business_id:
        raise Forbidden("Only the buyer can create an order from this conversation")

    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be greater than 0")
    price = to_decimal(agreed_price, "agreed_price")
    if price is None:
        raise ValidationError("agreed_price is required")
    tax = to_decimal(tax_amount, "tax_amount", Decimal("0"))
    discount = to_decimal(discount_amount, "discount_amount", Decimal("0"))
    shipping = to_decimal(shipping_amount, "shipping_amount", Decimal("0"))

    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found")
    if product.business_id != conv.seller_business_id:
        raise ValidationError("Product does not belong to the seller")
    if product.available_quantity is not None and quantity > product.available_quantity:
        raise InsufficientStock(product.available_quantity)

    subtotal = price * quantity
    order = Order(
        order_number=generate_order_number(),
        buyer_business_id=conv.buyer_business_id,
        seller_business_id=conv.seller_business_id,
        subtotal=subtotal,
        tax_amount=tax,
        discount_amount=discount,
        shipping_amount=shipping,
        final_amount=subtotal + tax + shipping - discount,
        delivery_address=delivery_address,
        delivery_city=delivery_city,
        delivery_state=delivery_state,
        delivery_pincode=delivery_pincode,
        delivery_country=delivery_country or "India",
        buyer_notes=buyer_notes or f"Order created from chat conversation {conv.id}",
    )
    order.items.append(OrderItem(
        product_id=product.id,
        product_name=product.product_name,
        quantity=quantity,
        unit_price=price,
        total_price=subtotal,
        tax_rate=back_derived_rate(tax, subtotal),
        discount_rate=back_derived_rate(discount, subtotal),
        hs_code=product.hs_code,
    ))
    db.add(order)
    db.flush()
    conv.order_id = order.id

    meta = {"order_id": sid(order.id), "order_number": order.order_number}
    notifications = [
        notify_business(
            db, conv.seller_business_id, "order", "New Order Received",
            f"You received a new order: {order.order_number}",
            link=f"/orders/{order.id}",
            metadata={**meta, "buyer_business_id": sid(conv.buyer_business_id)},
        ),
        notify_business(
            db, conv.buyer_business_id, "order", "Order Created",
            f"Your order {order.order_number} has been created successfully",
            link=f"/orders/{order.id}",
            metadata=meta,
        ),
    ]
    db.commit()
    db.refresh(order)
    logger.info("Order %s created from conversation %s", order.order_number, conv.id)

    payload = order_to_dict(order)
    events = [
        PushEvent(conversation_room(conv.id), "order_created", payload),
        PushEvent(business_room(conv.seller_business_id), "new_order", payload),
    ]
    events.extend(n for n in notifications if n)
    return order, events


def create_quote_from_chat(
    db: Session,
    conversation_id: int,
    caller_business_id: int,
    price,
    quantity: int,
    inquiry_id: Optional[int] = None,
    validity_days: Optional[int] = None,
    delivery_time_days: Optional[int] = None,
    payment_terms: Optional[str] = None,
    other_terms: Optional[str] = None,
) -> Tuple[Quotation, List[PushEvent]]:
    """The seller answers the conversation's inquiry with a quotation."""
    conv = get_conversation(db, conversation_id)
    if caller_business_id != conv.seller_business_id:
        raise Forbidden("Only the seller can create a quotation from this conversation")

    inquiry_id = inquiry_id if inquiry_id is not None else conv.inquiry_id
    if inquiry_id is None:
        raise ValidationError("inquiry_id is required")
    inquiry = db.query(Inquiry).filter(Inquiry.id == inquiry_id).first()
    if not inquiry:
        raise NotFound("Inquiry not found")
    if inquiry.seller_business_id != conv.seller_business_id or inquiry.buyer_business_id != conv.buyer_business_id:
        raise ValidationError("Inquiry does not belong to this conversation")

    amount = to_decimal(price, "price")
    if amount is None:
        raise ValidationError("price is required")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be greater than 0")

    quote = Quotation(
        inquiry_id=inquiry.id,
        seller_business_id=conv.seller_business_id,
        price=amount,
        quantity=quantity,
        validity_days=validity_days or 30,
        delivery_time_days=delivery_time_days,
        payment_terms=payment_terms,
        other_terms=other_terms or f"Quote created from chat. Price: {price}, Quantity: {quantity}",
        status="sent",
    )
    db.add(quote)
    inquiry.status = "quoted"
    db.flush()

    notification = notify_business(
        db, inquiry.buyer_business_id, "quotation", "New Quotation Received",
        "You received a new quotation for your inquiry",
        link=f"/quotations/{quote.id}",
        metadata={"quotation_id": sid(quote.id), "inquiry_id": sid(inquiry.id)},
    )
    db.commit()
    db.refresh(quote)
    logger.info("Quotation %s sent for inquiry %s", quote.id, inquiry.id)

    events = [PushEvent(conversation_room(conv.id), "quotation_created", quotation_to_dict(quote))]
    if notification:
        events.append(notification)
    return quote, events
