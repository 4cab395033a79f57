"""
Invoice routes. Sellers raise invoices against an order or a payment link;
both parties can read them.
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tradedesk.database import get_db
from tradedesk.pdf_generator import generate_invoice_pdf
from tradedesk.routes.auth import AuthContext, get_current_user, resolve_owned_business
from tradedesk.serializers import invoice_to_dict, page_info
from tradedesk.services import invoices as invoice_service

router = APIRouter(prefix="/api/v1/invoices", tags=["invoices"])


class InvoiceCreate(BaseModel):
    seller_business_id: Optional[int] = None
    order_id: Optional[int] = None
    payment_link_id: Optional[int] = None
    buyer_business_id: Optional[int] = None
    subtotal: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    shipping_amount: Optional[Decimal] = Field(None, ge=0)
    due_date_days: Optional[int] = Field(invoice_service.DEFAULT_DUE_DAYS, ge=0)
    notes: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str
    pdf_url: Optional[str] = Field(None, max_length=500)


@router.post("", status_code=201)
def create_invoice(
    data: InvoiceCreate,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    seller = resolve_owned_business(db, user, data.seller_business_id, can_sell=True)
    invoice = invoice_service.create_invoice(
        db, seller, **data.model_dump(exclude={"seller_business_id"}),
    )
    return {"message": "Invoice created successfully", "invoice": invoice_to_dict(invoice)}


@router.get("/business/{business_id}")
def list_invoices(
    business_id: int,
    role: str = Query("seller", pattern="^(seller|buyer)$"),
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Invoices the business issued (role=seller) or received (role=buyer)."""
    business = resolve_owned_business(db, user, business_id)
    rows, total = invoice_service.list_business_invoices(db, business.id, role, status, page, limit)
    return {"invoices": [invoice_to_dict(i) for i in rows], "pagination": page_info(total, page, limit)}


@router.get("/{invoice_id}")
def get_invoice(
    invoice_id: int,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"invoice": invoice_to_dict(invoice_service.get_invoice(db, invoice_id, user.user_id))}


@router.put("/{invoice_id}/status")
def update_status(
    invoice_id: int,
    data: StatusUpdate,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    invoice = invoice_service.update_invoice_status(db, invoice_id, user.user_id, data.status, data.pdf_url)
    return {"message": "Invoice status updated successfully", "invoice": invoice_to_dict(invoice)}


@router.get("/{invoice_id}/pdf")
def download_invoice_pdf(
    invoice_id: int,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The invoice rendered as a PDF attachment."""
    invoice = invoice_service.get_invoice(db, invoice_id, user.user_id)
    return Response(
        content=generate_invoice_pdf(invoice),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice.invoice_number}.pdf"'},
    )
