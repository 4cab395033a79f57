from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, Integer, Numeric, JSON, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from tradedesk.database import Base, BigId

Money = Numeric(14, 2)
Rate = Numeric(9, 6)

DELIVERY_OPTIONS = ("pickup", "buyer_delivery", "seller_delivery", "platform_delivery")
MESSAGE_TYPES = ("text", "product", "quote", "order", "file", "image")


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ════════════════════════════════════════════════
#  USER / BUSINESS
# ════════════════════════════════════════════════
class User(Base):
    __tablename__ = "users"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    email = Column(String(200), unique=True, nullable=False, index=True)
    password_hash = Column(String(200), nullable=False)
    full_name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(String(30), nullable=False, default="business_owner")  # business_owner, admin
    is_verified = Column(Boolean, default=False)
    email_verified = Column(Boolean, default=False)
    status = Column(String(20), nullable=False, default="active")
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    businesses = relationship("Business", back_populates="user", foreign_keys="Business.user_id",
                              order_by="Business.id")
    notifications = relationship("Notification", back_populates="user")


class Business(Base):
    __tablename__ = "businesses"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    business_name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    can_buy = Column(Boolean, nullable=False, default=True)
    can_sell = Column(Boolean, nullable=False, default=False)
    gst_number = Column(String(15), nullable=True)
    pan_number = Column(String(10), nullable=True)
    msme_number = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    address_line1 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=False, default="India")
    pincode = Column(String(10), nullable=True)

    # ── Verification (set by an admin) ──
    is_verified = Column(Boolean, default=False)
    verification_level = Column(String(20), nullable=True)  # basic, full
    verified_at = Column(DateTime, nullable=True)
    verified_by = Column(BigId, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="businesses", foreign_keys=[user_id])
    products = relationship("Product", back_populates="business")


# ════════════════════════════════════════════════
#  CATALOG
# ════════════════════════════════════════════════
class Product(Base):
    __tablename__ = "products"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    business_id = Column(BigId, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    product_name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    base_price = Column(Money, nullable=True)
    available_quantity = Column(Integer, nullable=True)  # None = not tracked
    hs_code = Column(String(20), nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active, inactive
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    business = relationship("Business", back_populates="products")
    images = relationship("ProductImage", back_populates="product", cascade="all, delete-orphan")


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(BigId, primary_key=True, autoincrement=True)
    product_id = Column(BigId, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    image_url = Column(String(500), nullable=False)
    is_primary = Column(Boolean, default=False)

    product = relationship("Product", back_populates="images")


# ════════════════════════════════════════════════
#  CART
# ════════════════════════════════════════════════
class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    business_id = Column(BigId, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=True, index=True)
    session_id = Column(String(100), nullable=True, index=True)
    scope_key = Column(String(120), nullable=False)  # user:<id> | business:<id> | session:<token>
    product_id = Column(BigId, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False)
    negotiated_price = Column(Money, nullable=True)
    delivery_option = Column(String(30), nullable=False, default="platform_delivery")
    delivery_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("scope_key", "product_id", "delivery_option", name="uq_cart_scope_product_delivery"),
    )


# ════════════════════════════════════════════════
#  NEGOTIATION
# ════════════════════════════════════════════════
class Conversation(Base):
    """A negotiation thread between a buyer and a seller business."""
    __tablename__ = "conversations"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    buyer_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False, index=True)
    seller_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = Column(BigId, ForeignKey("products.id"), nullable=True)
    inquiry_id = Column(BigId, ForeignKey("inquiries.id"), nullable=True)
    order_id = Column(BigId, ForeignKey("orders.id"), nullable=True)

    # "<buyer>:<seller>:<product or 0>"; one thread per triple
    thread_key = Column(String(80), nullable=True, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    buyer_business = relationship("Business", foreign_keys=[buyer_business_id])
    seller_business = relationship("Business", foreign_keys=[seller_business_id])
    product = relationship("Product")
    messages = relationship("ChatMessage", back_populates="conversation", order_by="ChatMessage.id")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    conversation_id = Column(BigId, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False)
    message_type = Column(String(20), nullable=False, default="text")
    content = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")
    sender_business = relationship("Business")


class Inquiry(Base):
    __tablename__ = "inquiries"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    buyer_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False)
    seller_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False)
    product_id = Column(BigId, ForeignKey("products.id"), nullable=True)
    quantity = Column(Integer, nullable=True)
    message = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="open")  # open, quoted, closed
    created_at = Column(DateTime, default=utcnow)


class Quotation(Base):
    __tablename__ = "quotations"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    inquiry_id = Column(BigId, ForeignKey("inquiries.id"), nullable=False)
    seller_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False)
    price = Column(Money, nullable=False)
    quantity = Column(Integer, nullable=False)
    validity_days = Column(Integer, nullable=False, default=30)
    delivery_time_days = Column(Integer, nullable=True)
    payment_terms = Column(Text, nullable=True)
    other_terms = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="sent")
    created_at = Column(DateTime, default=utcnow)

    inquiry = relationship("Inquiry")


# ════════════════════════════════════════════════
#  ORDERS
# ════════════════════════════════════════════════
class Order(Base):
    __tablename__ = "orders"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(50), nullable=False, unique=True)
    buyer_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False, index=True)
    seller_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="pending")

    subtotal = Column(Money, nullable=False, default=0)
    tax_amount = Column(Money, nullable=False, default=0)
    discount_amount = Column(Money, nullable=False, default=0)
    shipping_amount = Column(Money, nullable=False, default=0)
    final_amount = Column(Money, nullable=False, default=0)

    delivery_address = Column(Text, nullable=True)
    delivery_city = Column(String(100), nullable=True)
    delivery_state = Column(String(100), nullable=True)
    delivery_pincode = Column(String(10), nullable=True)
    delivery_country = Column(String(100), nullable=True, default="India")
    buyer_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(BigId, primary_key=True, autoincrement=True)
    order_id = Column(BigId, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(BigId, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    total_price = Column(Money, nullable=False)
    tax_rate = Column(Rate, nullable=False, default=0)
    discount_rate = Column(Rate, nullable=False, default=0)
    hs_code = Column(String(20), nullable=True)

    order = relationship("Order", back_populates="items")


# ════════════════════════════════════════════════
#  PAYMENT LINKS
# ════════════════════════════════════════════════
class PaymentLink(Base):
    __tablename__ = "payment_links"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    link_code = Column(String(64), nullable=False, unique=True, index=True)
    seller_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False, index=True)
    buyer_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=True)
    conversation_id = Column(BigId, ForeignKey("conversations.id"), nullable=True)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    total_amount = Column(Money, nullable=False, default=0)
    tax_amount = Column(Money, nullable=True)
    discount_amount = Column(Money, nullable=True)
    final_amount = Column(Money, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="active")  # active, used, expired, cancelled
    is_negotiated = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=True)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    seller_business = relationship("Business", foreign_keys=[seller_business_id])
    items = relationship("PaymentLinkItem", back_populates="payment_link", cascade="all, delete-orphan",
                         order_by="PaymentLinkItem.id")


class PaymentLinkItem(Base):
    __tablename__ = "payment_link_items"

    id = Column(BigId, primary_key=True, autoincrement=True)
    payment_link_id = Column(BigId, ForeignKey("payment_links.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(BigId, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    negotiated_price = Column(Money, nullable=True)
    base_price = Column(Money, nullable=False, default=0)
    unit_price = Column(Money, nullable=False)
    total_price = Column(Money, nullable=False)
    notes = Column(Text, nullable=True)

    payment_link = relationship("PaymentLink", back_populates="items")


# ════════════════════════════════════════════════
#  INVOICES
# ════════════════════════════════════════════════
class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    invoice_number = Column(String(50), nullable=False, unique=True)
    order_id = Column(BigId, ForeignKey("orders.id"), nullable=True)
    payment_link_id = Column(BigId, ForeignKey("payment_links.id"), nullable=True)
    seller_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False, index=True)
    buyer_business_id = Column(BigId, ForeignKey("businesses.id"), nullable=False, index=True)

    subtotal = Column(Money, nullable=False, default=0)
    tax_amount = Column(Money, nullable=True)
    discount_amount = Column(Money, nullable=True)
    shipping_amount = Column(Money, nullable=True)
    total_amount = Column(Money, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="draft")  # draft, sent, paid, overdue, cancelled
    due_date = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    pdf_url = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    seller_business = relationship("Business", foreign_keys=[seller_business_id])
    buyer_business = relationship("Business", foreign_keys=[buyer_business_id])
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan",
                         order_by="InvoiceItem.id")


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(BigId, primary_key=True, autoincrement=True)
    invoice_id = Column(BigId, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(BigId, ForeignKey("products.id"), nullable=True)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    tax_rate = Column(Rate, nullable=True)
    discount_rate = Column(Rate, nullable=True)
    total_price = Column(Money, nullable=False)
    description = Column(Text, nullable=True)

    invoice = relationship("Invoice", back_populates="items")


# ════════════════════════════════════════════════
#  NOTIFICATION
# ════════════════════════════════════════════════
class Notification(Base):
    __tablename__ = "notifications"

    id = Column(BigId, primary_key=True, index=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    business_id = Column(BigId, ForeignKey("businesses.id"), nullable=True)
    notification_type = Column(String(50), nullable=False)  # message, order, quotation, system
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "is_read"),
    )
