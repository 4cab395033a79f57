"""
Response shaping. Ids go out as decimal strings (64-bit safe in JSON),
money as decimal strings with two places, datetimes as ISO-8601.
"""
from decimal import Decimal
from typing import Optional

CENTS = Decimal("0.01")


def sid(value) -> Optional[str]:
    return str(value) if value is not None else None


def money(value) -> Optional[str]:
    if value is None:
        return None
    return str(Decimal(value).quantize(CENTS))


def rate(value) -> Optional[str]:
    if value is None:
        return None
    return str(Decimal(value).normalize()) if Decimal(value) != 0 else "0"


def iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def page_info(total: int, page: int, limit: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "total_pages": (total + limit - 1) // limit}


# ── Accounts ──

def user_to_dict(user) -> dict:
    return {
        "user_id": sid(user.id),
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "role": user.role,
        "is_verified": user.is_verified,
        "email_verified": user.email_verified,
        "status": user.status,
        "last_login": iso(user.last_login),
        "created_at": iso(user.created_at),
    }


def business_brief(business) -> Optional[dict]:
    if business is None:
        return None
    return {
        "business_id": sid(business.id),
        "business_name": business.business_name,
        "display_name": business.display_name,
    }


def business_to_dict(business) -> dict:
    return {
        **business_brief(business),
        "user_id": sid(business.user_id),
        "can_buy": business.can_buy,
        "can_sell": business.can_sell,
        "gst_number": business.gst_number,
        "pan_number": business.pan_number,
        "msme_number": business.msme_number,
        "description": business.description,
        "address_line1": business.address_line1,
        "city": business.city,
        "state": business.state,
        "country": business.country,
        "pincode": business.pincode,
        "is_verified": business.is_verified,
        "verification_level": business.verification_level,
        "verified_at": iso(business.verified_at),
        "verified_by": sid(business.verified_by),
        "created_at": iso(business.created_at),
    }


# ── Catalog / cart ──

def product_to_dict(product) -> dict:
    return {
        "product_id": sid(product.id),
        "business_id": sid(product.business_id),
        "product_name": product.product_name,
        "description": product.description,
        "category": product.category,
        "base_price": money(product.base_price),
        "available_quantity": product.available_quantity,
        "hs_code": product.hs_code,
        "status": product.status,
        "images": [
            {"image_id": sid(i.id), "image_url": i.image_url, "is_primary": i.is_primary}
            for i in product.images
        ],
        "created_at": iso(product.created_at),
    }


def cart_item_to_dict(item, unit_price: Decimal, total: Decimal) -> dict:
    return {
        "cart_item_id": sid(item.id),
        "user_id": sid(item.user_id),
        "business_id": sid(item.business_id),
        "session_id": item.session_id,
        "product_id": sid(item.product_id),
        "quantity": item.quantity,
        "negotiated_price": money(item.negotiated_price),
        "delivery_option": item.delivery_option,
        "delivery_notes": item.delivery_notes,
        "created_at": iso(item.created_at),
        "product": product_to_dict(item.product) if item.product else None,
        "calculated_price": {"unit_price": money(unit_price), "total": money(total)},
    }


# ── Negotiation ──

def message_to_dict(msg) -> dict:
    return {
        "message_id": sid(msg.id),
        "conversation_id": sid(msg.conversation_id),
        "sender_business_id": sid(msg.sender_business_id),
        "sender_business": business_brief(msg.sender_business),
        "message_type": msg.message_type,
        "content": msg.content,
        "metadata": msg.meta,
        "is_read": msg.is_read,
        "read_at": iso(msg.read_at),
        "is_deleted": msg.is_deleted,
        "created_at": iso(msg.created_at),
    }


def conversation_to_dict(conv, last_message=None) -> dict:
    product = conv.product
    return {
        "conversation_id": sid(conv.id),
        "buyer_business_id": sid(conv.buyer_business_id),
        "seller_business_id": sid(conv.seller_business_id),
        "product_id": sid(conv.product_id),
        "inquiry_id": sid(conv.inquiry_id),
        "order_id": sid(conv.order_id),
        "is_active": conv.is_active,
        "last_message_at": iso(conv.last_message_at),
        "created_at": iso(conv.created_at),
        "buyer_business": business_brief(conv.buyer_business),
        "seller_business": business_brief(conv.seller_business),
        "product": {
            "product_id": sid(product.id),
            "product_name": product.product_name,
            "base_price": money(product.base_price),
        } if product else None,
        "last_message": message_to_dict(last_message) if last_message else None,
    }


def inquiry_to_dict(inquiry) -> dict:
    return {
        "inquiry_id": sid(inquiry.id),
        "buyer_business_id": sid(inquiry.buyer_business_id),
        "seller_business_id": sid(inquiry.seller_business_id),
        "product_id": sid(inquiry.product_id),
        "quantity": inquiry.quantity,
        "message": inquiry.message,
        "status": inquiry.status,
        "created_at": iso(inquiry.created_at),
    }


def quotation_to_dict(quote) -> dict:
    return {
        "quotation_id": sid(quote.id),
        "inquiry_id": sid(quote.inquiry_id),
        "seller_business_id": sid(quote.seller_business_id),
        "price": money(quote.price),
        "quantity": quote.quantity,
        "validity_days": quote.validity_days,
        "delivery_time_days": quote.delivery_time_days,
        "payment_terms": quote.payment_terms,
        "other_terms": quote.other_terms,
        "status": quote.status,
        "created_at": iso(quote.created_at),
    }


# ── Commerce ──

def order_to_dict(order) -> dict:
    return {
        "order_id": sid(order.id),
        "order_number": order.order_number,
        "buyer_business_id": sid(order.buyer_business_id),
        "seller_business_id": sid(order.seller_business_id),
        "status": order.status,
        "payment_status": order.payment_status,
        "subtotal": money(order.subtotal),
        "tax_amount": money(order.tax_amount),
        "discount_amount": money(order.discount_amount),
        "shipping_amount": money(order.shipping_amount),
        "final_amount": money(order.final_amount),
        "delivery_address": order.delivery_address,
        "delivery_city": order.delivery_city,
        "delivery_state": order.delivery_state,
        "delivery_pincode": order.delivery_pincode,
        "delivery_country": order.delivery_country,
        "buyer_notes": order.buyer_notes,
        "created_at": iso(order.created_at),
        "order_items": [
            {
                "order_item_id": sid(i.id),
                "product_id": sid(i.product_id),
                "product_name": i.product_name,
                "quantity": i.quantity,
                "unit_price": money(i.unit_price),
                "total_price": money(i.total_price),
                "tax_rate": rate(i.tax_rate),
                "discount_rate": rate(i.discount_rate),
                "hs_code": i.hs_code,
            }
            for i in order.items
        ],
    }


def payment_link_to_dict(link) -> dict:
    return {
        "payment_link_id": sid(link.id),
        "link_code": link.link_code,
        "seller_business_id": sid(link.seller_business_id),
        "buyer_business_id": sid(link.buyer_business_id),
        "conversation_id": sid(link.conversation_id),
        "title": link.title,
        "description": link.description,
        "total_amount": money(link.total_amount),
        "tax_amount": money(link.tax_amount),
        "discount_amount": money(link.discount_amount),
        "final_amount": money(link.final_amount),
        "status": link.status,
        "is_negotiated": link.is_negotiated,
        "expires_at": iso(link.expires_at),
        "used_at": iso(link.used_at),
        "created_at": iso(link.created_at),
        "seller_business": business_brief(link.seller_business),
        "payment_link_items": [
            {
                "payment_link_item_id": sid(i.id),
                "product_id": sid(i.product_id),
                "product_name": i.product_name,
                "quantity": i.quantity,
                "negotiated_price": money(i.negotiated_price),
                "base_price": money(i.base_price),
                "unit_price": money(i.unit_price),
                "total_price": money(i.total_price),
                "notes": i.notes,
            }
            for i in link.items
        ],
    }


def invoice_to_dict(invoice) -> dict:
    return {
        "invoice_id": sid(invoice.id),
        "invoice_number": invoice.invoice_number,
        "order_id": sid(invoice.order_id),
        "payment_link_id": sid(invoice.payment_link_id),
        "seller_business_id": sid(invoice.seller_business_id),
        "buyer_business_id": sid(invoice.buyer_business_id),
        "seller_business": business_brief(invoice.seller_business),
        "buyer_business": business_brief(invoice.buyer_business),
        "subtotal": money(invoice.subtotal),
        "tax_amount": money(invoice.tax_amount),
        "discount_amount": money(invoice.discount_amount),
        "shipping_amount": money(invoice.shipping_amount),
        "total_amount": money(invoice.total_amount),
        "status": invoice.status,
        "due_date": iso(invoice.due_date),
        "paid_at": iso(invoice.paid_at),
        "pdf_url": invoice.pdf_url,
        "notes": invoice.notes,
        "created_at": iso(invoice.created_at),
        "invoice_items": [
            {
                "invoice_item_id": sid(i.id),
                "product_id": sid(i.product_id),
                "product_name": i.product_name,
                "quantity": i.quantity,
                "unit_price": money(i.unit_price),
                "tax_rate": rate(i.tax_rate),
                "discount_rate": rate(i.discount_rate),
                "total_price": money(i.total_price),
                "description": i.description,
            }
            for i in invoice.items
        ],
    }


def notification_to_dict(n) -> dict:
    return {
        "notification_id": sid(n.id),
        "user_id": sid(n.user_id),
        "business_id": sid(n.business_id),
        "type": n.notification_type,
        "title": n.title,
        "message": n.message,
        "link": n.link,
        "metadata": n.meta,
        "is_read": n.is_read,
        "read_at": iso(n.read_at),
        "created_at": iso(n.created_at),
    }
