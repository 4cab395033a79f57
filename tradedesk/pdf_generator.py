"""
Invoice PDF rendering with ReportLab. Returns the document as bytes.
"""
import io
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

RUPEE = "Rs."
ACCENT = colors.HexColor("#0f766e")


def _amount(value) -> str:
    return f"{RUPEE}{Decimal(value or 0):,.2f}"


def _party_block(business, style) -> Paragraph:
    if business is None:
        return Paragraph("-", style)
    lines = [f"<b>{escape(business.business_name)}</b>"]
    if business.gst_number:
        lines.append(f"GSTIN: {business.gst_number}")
    if business.address_line1:
        lines.append(escape(business.address_line1))
    place = ", ".join(p for p in (business.city, business.state) if p)
    if business.pincode:
        place = f"{place} - {business.pincode}" if place else business.pincode
    if place:
        lines.append(place)
    return Paragraph("<br/>".join(lines), style)


def generate_invoice_pdf(invoice) -> bytes:
    """Render `invoice` (with its seller, buyer and snapshotted items) as an A4 PDF."""
    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=A4, topMargin=15 * mm, bottomMargin=15 * mm,
                            leftMargin=15 * mm, rightMargin=15 * mm,
                            title=invoice.invoice_number)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("InvTitle", parent=styles["Heading1"], fontSize=18,
                                 textColor=ACCENT, alignment=TA_CENTER)
    muted = ParagraphStyle("Muted", parent=styles["Normal"], fontSize=8,
                           textColor=colors.gray, alignment=TA_CENTER)
    heading = ParagraphStyle("PartyHeading", parent=styles["Heading3"], fontSize=10, textColor=ACCENT)
    normal = styles["Normal"]
    small = ParagraphStyle("Small", parent=normal, fontSize=8)
    cell = ParagraphStyle("Cell", parent=normal, fontSize=8, leading=10)

    elements = [
        Paragraph("INVOICE", title_style),
        Spacer(1, 4 * mm),
    ]

    issued = invoice.created_at.date().isoformat() if invoice.created_at else "-"
    due = invoice.due_date.date().isoformat() if invoice.due_date else "-"
    source = f"Order #{invoice.order_id}" if invoice.order_id else f"Payment link #{invoice.payment_link_id}"
    info = Table([
        [Paragraph(f"<b>Invoice #:</b> {invoice.invoice_number}", normal),
         Paragraph(f"<b>Issued:</b> {issued}", normal)],
        [Paragraph(f"<b>Against:</b> {source}", normal),
         Paragraph(f"<b>Due:</b> {due}", normal)],
        [Paragraph(f"<b>Status:</b> {invoice.status.upper()}", normal), ""],
    ], colWidths=[90 * mm, 90 * mm])
    info.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP"), ("BOTTOMPADDING", (0, 0), (-1, -1), 2)]))
    elements += [info, Spacer(1, 5 * mm)]

    parties = Table([
        [Paragraph("Seller", heading), Paragraph("Buyer", heading)],
        [_party_block(invoice.seller_business, small), _party_block(invoice.buyer_business, small)],
    ], colWidths=[90 * mm, 90 * mm])
    parties.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f0fdfa")),
        ("LEFTPADDING", (0, 0), (-1, -1), 6),
    ]))
    elements += [parties, Spacer(1, 5 * mm)]

    # ── Line items ──
    rows = [["#", "Item", "Qty", "Unit price", "Total"]]
    for idx, item in enumerate(invoice.items, 1):
        label = escape(item.product_name or f"Product {item.product_id}")
        if item.description:
            label = f"{label}<br/><font size='7' color='grey'>{escape(item.description)}</font>"
        rows.append([str(idx), Paragraph(label, cell), str(item.quantity),
                     _amount(item.unit_price), _amount(item.total_price)])
    items_table = Table(rows, colWidths=[10 * mm, 80 * mm, 20 * mm, 35 * mm, 35 * mm], repeatRows=1)
    items_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), ACCENT),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
        ("ALIGN", (2, 1), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f8fafc")]),
    ]))
    elements += [items_table, Spacer(1, 5 * mm)]

    # ── Totals ──
    totals = [["Subtotal", _amount(invoice.subtotal)]]
    if invoice.tax_amount:
        totals.append(["Tax", _amount(invoice.tax_amount)])
    if invoice.discount_amount:
        totals.append(["Discount", f"-{_amount(invoice.discount_amount)}"])
    if invoice.shipping_amount:
        totals.append(["Shipping", _amount(invoice.shipping_amount)])
    totals.append(["TOTAL", _amount(invoice.total_amount)])
    totals_table = Table(totals, colWidths=[50 * mm, 40 * mm], hAlign="RIGHT")
    totals_table.setStyle(TableStyle([
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, -1), (-1, -1), 11),
        ("LINEABOVE", (0, -1), (-1, -1), 1, ACCENT),
    ]))
    elements += [totals_table, Spacer(1, 6 * mm)]

    if invoice.notes:
        elements.append(Paragraph("<b>Notes:</b> " + escape(invoice.notes), small))
        elements.append(Spacer(1, 4 * mm))

    elements.append(Paragraph("Computer-generated invoice. No signature required.", muted))
    doc.build(elements)
    return buf.getvalue()
