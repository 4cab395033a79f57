"""
Payment links: a seller-issued, code-addressed cart with fixed prices that a
buyer can claim into their own cart.
"""
import logging
import secrets
from datetime import timedelta
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session

from tradedesk.errors import Forbidden, NotFound, ValidationError, Gone
from tradedesk.models import PaymentLink, PaymentLinkItem, Product, Business, CartItem, utcnow
from tradedesk.services.cart import resolve_scope, upsert_item, check_delivery, DEFAULT_DELIVERY
from tradedesk.services.chat import get_conversation
from tradedesk.services.commerce import now_millis, to_decimal

logger = logging.getLogger("tradedesk.payment_links")

PAYMENT_LINK_STATUSES = ("active", "used", "expired", "cancelled")
DEFAULT_EXPIRY_DAYS = 30


def generate_link_code() -> str:
    return f"PL-{now_millis()}-{secrets.token_hex(4).upper()}"


def payment_url(frontend_url: str, link_code: str) -> str:
    return f"{frontend_url.rstrip('/')}/payment/{link_code}"


def _get(db: Session, link_id: int) -> PaymentLink:
    link = db.query(PaymentLink).filter(PaymentLink.id == link_id).first()
    if not link:
        raise NotFound("Payment link not found")
    return link


def _by_code(db: Session, code: str) -> PaymentLink:
    link = db.query(PaymentLink).filter(PaymentLink.link_code == code).first()
    if not link:
        raise NotFound("Payment link not found")
    return link


def is_expired(link: PaymentLink) -> bool:
    return link.expires_at is not None and link.expires_at < utcnow()


def create_payment_link(
    db: Session,
    seller: Business,
    items: List[dict],
    buyer_business_id: Optional[int] = None,
    conversation_id: Optional[int] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    tax_amount=None,
    discount_amount=None,
    expires_in_days: Optional[int] = DEFAULT_EXPIRY_DAYS,
) -> PaymentLink:
    """Price every line, then store the link and its items together.

    `seller` must already be verified as owned by the caller and able to sell.
    Each item is a mapping with product_id, quantity, optional negotiated_price
    and notes.
    """
    if not items:
        raise ValidationError("At least one item is required")
    if buyer_business_id == seller.id:
        raise ValidationError("A business cannot issue a payment link to itself")

    link = PaymentLink(
        link_code=generate_link_code(),
        seller_business_id=seller.id,
        buyer_business_id=buyer_business_id,
        conversation_id=conversation_id,
        title=title or f"Payment Link - {seller.business_name}",
        description=description,
    )
    subtotal = Decimal("0")
    negotiated = False
    for raw in items:
        product = db.query(Product).filter(Product.id == raw["product_id"]).first()
        if not product:
            raise NotFound(f"Product {raw['product_id']} not found")
        if product.business_id != seller.id:
            raise ValidationError(f"Product {product.id} does not belong to this seller")

        quantity = raw.get("quantity") or 1
        if quantity <= 0:
            raise ValidationError("quantity must be greater than 0")
        negotiated_price = to_decimal(raw.get("negotiated_price"), "negotiated_price")
        base_price = Decimal(product.base_price or 0)
        unit_price = negotiated_price if negotiated_price is not None else base_price
        line_total = unit_price * quantity
        subtotal += line_total
        negotiated = negotiated or negotiated_price is not None

        link.items.append(PaymentLinkItem(
            product_id=product.id,
            product_name=product.product_name,
            quantity=quantity,
            negotiated_price=negotiated_price,
            base_price=base_price,
            unit_price=unit_price,
            total_price=line_total,
            notes=raw.get("notes"),
        ))

    tax = to_decimal(tax_amount, "tax_amount", Decimal("0"))
    discount = to_decimal(discount_amount, "discount_amount", Decimal("0"))
    link.total_amount = subtotal
    link.tax_amount = tax or None
    link.discount_amount = discount or None
    link.final_amount = subtotal + tax - discount
    link.is_negotiated = negotiated
    if expires_in_days:
        link.expires_at = utcnow() + timedelta(days=expires_in_days)

    db.add(link)
    db.commit()
    db.refresh(link)
    logger.info("Payment link %s created by seller %s for %s", link.link_code, seller.id, link.final_amount)
    return link


def create_payment_link_from_chat(
    db: Session,
    conversation_id: int,
    user_id: int,
    items: List[dict],
    title: Optional[str] = None,
    description: Optional[str] = None,
    tax_amount=None,
    discount_amount=None,
    expires_in_days: Optional[int] = DEFAULT_EXPIRY_DAYS,
) -> PaymentLink:
    """The conversation's seller issues a link addressed to the conversation's buyer."""
    conv = get_conversation(db, conversation_id)
    seller = conv.seller_business
    if seller.user_id != user_id:
        raise Forbidden("Only the seller can create payment links from this conversation")
    if not seller.can_sell:
        raise Forbidden("This business is not allowed to sell")
    return create_payment_link(
        db,
        seller,
        items,
        buyer_business_id=conv.buyer_business_id,
        conversation_id=conv.id,
        title=title,
        description=description or "Payment link generated from chat conversation",
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        expires_in_days=expires_in_days,
    )


def get_payment_link_by_code(db: Session, code: str) -> PaymentLink:
    link = _by_code(db, code)
    if is_expired(link):
        raise Gone("Payment link has expired")
    if link.status == "used":
        raise Gone("Payment link has already been used")
    return link


def list_seller_payment_links(
    db: Session,
    seller_business_id: int,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[PaymentLink], int]:
    q = db.query(PaymentLink).filter(PaymentLink.seller_business_id == seller_business_id)
    if status:
        q = q.filter(PaymentLink.status == status)
    total = q.count()
    rows = (
        q.order_by(PaymentLink.created_at.desc(), PaymentLink.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def update_payment_link_status(db: Session, link_id: int, user_id: int, status: str) -> PaymentLink:
    if status not in PAYMENT_LINK_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PAYMENT_LINK_STATUSES)}")
    link = _get(db, link_id)
    if link.seller_business.user_id != user_id:
        raise Forbidden("You do not have permission to update this payment link")
    link.status = status
    if status == "used":
        link.used_at = utcnow()
    db.commit()
    db.refresh(link)
    logger.info("Payment link %s is now %s", link.link_code, status)
    return link


def add_payment_link_to_cart(
    db: Session,
    code: str,
    user_id: int,
    business_id: Optional[int] = None,
    delivery_option: Optional[str] = None,
    delivery_notes: Optional[str] = None,
) -> Tuple[PaymentLink, List[CartItem]]:
    """Copy every line of an active link into the caller's cart.

    Rows already holding the same product and delivery option take the link's
    quantity and price. The link stays active; sellers retire it through
    `update_payment_link_status`.
    """
    link = _by_code(db, code)
    if link.status != "active":
        raise Gone("Payment link is not active")
    if is_expired(link):
        raise Gone("Payment link has expired")

    if business_id is not None:
        buyer = db.query(Business).filter(Business.id == business_id).first()
        if not buyer:
            raise NotFound("Business not found")
        if buyer.user_id != user_id:
            raise Forbidden("You do not own this business")
    else:
        buyer = (
            db.query(Business)
            .filter(Business.user_id == user_id, Business.can_buy == True)
            .order_by(Business.id)
            .first()
        )
        if not buyer:
            raise ValidationError("business_id is required")
    if not buyer.can_buy:
        raise Forbidden("This business is not allowed to buy")
    if buyer.id == link.seller_business_id:
        raise ValidationError("A business cannot claim its own payment link")

    scope = resolve_scope(db, user_id=user_id, business_id=buyer.id)
    option = check_delivery(delivery_option or DEFAULT_DELIVERY)
    cart_items = []
    for line in link.items:
        product = db.query(Product).filter(Product.id == line.product_id).first()
        if not product:
            raise NotFound(f"Product {line.product_id} not found")
        price = line.negotiated_price if line.negotiated_price is not None else line.unit_price
        cart_items.append(upsert_item(
            db, scope, product, line.quantity, option,
            negotiated_price=price, delivery_notes=delivery_notes, replace=True,
        ))
    db.commit()
    for item in cart_items:
        db.refresh(item)
    logger.info("Payment link %s claimed into cart %s", link.link_code, scope.key)
    return link, cart_items
