"""
Invoices built from exactly one source: an order or a payment link.
"""
import logging
import secrets
from datetime import timedelta
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session

from tradedesk.errors import Forbidden, NotFound, ValidationError
from tradedesk.models import Invoice, InvoiceItem, Order, PaymentLink, Business, utcnow
from tradedesk.services.commerce import now_millis, to_decimal

logger = logging.getLogger("tradedesk.invoices")

INVOICE_STATUSES = ("draft", "sent", "paid", "overdue", "cancelled")
DEFAULT_DUE_DAYS = 30


def generate_invoice_number() -> str:
    return f"INV-{now_millis()}-{secrets.randbelow(1000):03d}"


def _items_from_order(order: Order) -> Tuple[List[InvoiceItem], Decimal]:
    items = [
        InvoiceItem(
            product_id=i.product_id,
            product_name=i.product_name,
            quantity=i.quantity,
            unit_price=i.unit_price,
            tax_rate=i.tax_rate or None,
            discount_rate=i.discount_rate or None,
            total_price=i.total_price,
        )
        for i in order.items
    ]
    return items, sum((Decimal(i.total_price) for i in order.items), Decimal("0"))


def _items_from_link(link: PaymentLink) -> Tuple[List[InvoiceItem], Decimal]:
    items = [
        InvoiceItem(
            product_id=i.product_id,
            product_name=i.product_name,
            quantity=i.quantity,
            unit_price=i.unit_price,
            total_price=i.total_price,
            description=i.notes,
        )
        for i in link.items
    ]
    return items, Decimal(link.total_amount)


def create_invoice(
    db: Session,
    seller: Business,
    order_id: Optional[int] = None,
    payment_link_id: Optional[int] = None,
    buyer_business_id: Optional[int] = None,
    subtotal=None,
    tax_amount=None,
    discount_amount=None,
    shipping_amount=None,
    due_date_days: Optional[int] = DEFAULT_DUE_DAYS,
    notes: Optional[str] = None,
) -> Invoice:
    """Snapshot the source's lines into a draft invoice.

    `seller` must already be verified as owned by the caller and able to sell.
    """
    if (order_id is None) == (payment_link_id is None):
        raise ValidationError("Exactly one of order_id or payment_link_id is required")

    if order_id is not None:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFound("Order not found")
        if order.seller_business_id != seller.id:
            raise Forbidden("This order does not belong to your business")
        items, derived = _items_from_order(order)
        source_buyer = order.buyer_business_id
    else:
        link = db.query(PaymentLink).filter(PaymentLink.id == payment_link_id).first()
        if not link:
            raise NotFound("Payment link not found")
        if link.seller_business_id != seller.id:
            raise Forbidden("This payment link does not belong to your business")
        items, derived = _items_from_link(link)
        source_buyer = link.buyer_business_id

    buyer_id = buyer_business_id or source_buyer
    if not buyer_id:
        raise ValidationError("buyer_business_id is required")
    if not db.query(Business.id).filter(Business.id == buyer_id).first():
        raise NotFound("Buyer business not found")

    sub = to_decimal(subtotal, "subtotal", derived)
    tax = to_decimal(tax_amount, "tax_amount", Decimal("0"))
    discount = to_decimal(discount_amount, "discount_amount", Decimal("0"))
    shipping = to_decimal(shipping_amount, "shipping_amount", Decimal("0"))

    invoice = Invoice(
        invoice_number=generate_invoice_number(),
        order_id=order_id,
        payment_link_id=payment_link_id,
        seller_business_id=seller.id,
        buyer_business_id=buyer_id,
        subtotal=sub,
        tax_amount=tax or None,
        discount_amount=discount or None,
        shipping_amount=shipping or None,
        total_amount=sub + tax - discount + shipping,
        status="draft",
        due_date=utcnow() + timedelta(days=due_date_days) if due_date_days else None,
        notes=notes,
    )
    invoice.items.extend(items)
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    logger.info("Invoice %s created by seller %s for %s", invoice.invoice_number, seller.id, invoice.total_amount)
    return invoice


def _owner_ids(db: Session, user_id: int) -> set:
    return {b.id for b in db.query(Business.id).filter(Business.user_id == user_id).all()}


def get_invoice(db: Session, invoice_id: int, user_id: int) -> Invoice:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFound("Invoice not found")
    owned = _owner_ids(db, user_id)
    if invoice.seller_business_id not in owned and invoice.buyer_business_id not in owned:
        raise Forbidden("You do not have permission to view this invoice")
    return invoice


def list_business_invoices(
    db: Session,
    business_id: int,
    role: str = "seller",
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Invoice], int]:
    if role not in ("seller", "buyer"):
        raise ValidationError("role must be seller or buyer")
    column = Invoice.seller_business_id if role == "seller" else Invoice.buyer_business_id
    q = db.query(Invoice).filter(column == business_id)
    if status:
        q = q.filter(Invoice.status == status)
    total = q.count()
    rows = (
        q.order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def update_invoice_status(db: Session, invoice_id: int, user_id: int, status: str,
                          pdf_url: Optional[str] = None) -> Invoice:
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFound("Invoice not found")
    if invoice.seller_business.user_id != user_id:
        raise Forbidden("Only the seller can update this invoice")
    invoice.status = status
    if status == "paid":
        invoice.paid_at = utcnow()
    if pdf_url:
        invoice.pdf_url = pdf_url
    db.commit()
    db.refresh(invoice)
    logger.info("Invoice %s is now %s", invoice.invoice_number, status)
    return invoice
