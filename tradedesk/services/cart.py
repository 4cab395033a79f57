"""
Cart operations.

A cart is the set of rows sharing a scope key. The key is picked in the order
user > business > guest session; rows also record whichever of the three ids
were known when they were added.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradedesk.errors import MissingScope, InsufficientStock, NotFound, Forbidden, ValidationError
from tradedesk.models import CartItem, Product, Business, DELIVERY_OPTIONS
from tradedesk.serializers import cart_item_to_dict, money

logger = logging.getLogger("tradedesk.cart")

DEFAULT_DELIVERY = "platform_delivery"


@dataclass
class CartScope:
    key: str
    user_id: Optional[int] = None
    business_id: Optional[int] = None
    session_id: Optional[str] = None


def resolve_scope(
    db: Session,
    user_id: Optional[int] = None,
    business_id: Optional[int] = None,
    session_id: Optional[str] = None,
) -> CartScope:
    """Pick the cart scope for a caller.

    An explicit business id must belong to the caller when the caller is
    authenticated. An authenticated caller without one records their first
    buying business on new rows.
    """
    if user_id is not None:
        if business_id is not None:
            business = db.query(Business).filter(Business.id == business_id).first()
            if not business:
                raise NotFound("Business not found")
            if business.user_id != user_id:
                raise Forbidden("You do not own this business")
        else:
            first = (
                db.query(Business)
                .filter(Business.user_id == user_id, Business.can_buy == True)
                .order_by(Business.id)
                .first()
            )
            business_id = first.id if first else None
        return CartScope(f"user:{user_id}", user_id, business_id, session_id)
    if business_id is not None:
        return CartScope(f"business:{business_id}", None, business_id, session_id)
    if session_id:
        return CartScope(f"session:{session_id}", None, None, session_id)
    raise MissingScope()


def check_delivery(option: str) -> str:
    if option not in DELIVERY_OPTIONS:
        raise ValidationError(f"delivery_option must be one of: {', '.join(DELIVERY_OPTIONS)}")
    return option


def _check_quantity(quantity) -> int:
    if quantity is None or int(quantity) <= 0:
        raise ValidationError("quantity must be greater than 0")
    return int(quantity)


def _check_stock(product: Product, quantity: int):
    if product.available_quantity is not None and quantity > product.available_quantity:
        raise InsufficientStock(product.available_quantity)


def line_price(item: CartItem) -> Tuple[Decimal, Decimal]:
    """(unit price, line total). Negotiated price wins over the catalog price."""
    if item.negotiated_price is not None:
        unit = Decimal(item.negotiated_price)
    else:
        unit = Decimal(item.product.base_price or 0) if item.product else Decimal("0")
    return unit, unit * item.quantity


def item_to_dict(item: CartItem) -> dict:
    unit, total = line_price(item)
    return cart_item_to_dict(item, unit, total)


def _find(db: Session, scope_key: str, product_id: int, delivery_option: str) -> Optional[CartItem]:
    return db.query(CartItem).filter(
        CartItem.scope_key == scope_key,
        CartItem.product_id == product_id,
        CartItem.delivery_option == delivery_option,
    ).first()


def get_cart(db: Session, scope: CartScope) -> Tuple[List[dict], dict]:
    rows = (
        db.query(CartItem)
        .filter(CartItem.scope_key == scope.key)
        .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        .all()
    )
    items = []
    subtotal = Decimal("0")
    for row in rows:
        unit, total = line_price(row)
        subtotal += total
        items.append(cart_item_to_dict(row, unit, total))
    summary = {
        "subtotal": money(subtotal),
        "item_count": len(rows),
        "total_quantity": sum(r.quantity for r in rows),
    }
    return items, summary


def upsert_item(
    db: Session,
    scope: CartScope,
    product: Product,
    quantity: int,
    delivery_option: str,
    negotiated_price: Optional[Decimal] = None,
    delivery_notes: Optional[str] = None,
    replace: bool = False,
) -> CartItem:
    """Insert the row for (scope, product, delivery option) or update the existing one.

    `replace=False` sums quantities; `replace=True` overwrites them. The caller
    commits.
    """
    existing = _find(db, scope.key, product.id, delivery_option)
    if existing is None:
        _check_stock(product, quantity)
        item = CartItem(
            user_id=scope.user_id,
            business_id=scope.business_id,
            session_id=scope.session_id,
            scope_key=scope.key,
            product_id=product.id,
            quantity=quantity,
            negotiated_price=negotiated_price,
            delivery_option=delivery_option,
            delivery_notes=delivery_notes,
        )
        try:
            with db.begin_nested():
                db.add(item)
            return item
        except IntegrityError:
            # another request inserted the same key first
            existing = _find(db, scope.key, product.id, delivery_option)
            if existing is None:
                raise

    new_quantity = quantity if replace else existing.quantity + quantity
    _check_stock(product, new_quantity)
    existing.quantity = new_quantity
    if negotiated_price is not None:
        existing.negotiated_price = negotiated_price
    if delivery_notes is not None:
        existing.delivery_notes = delivery_notes
    db.flush()
    return existing


def add_item(
    db: Session,
    scope: CartScope,
    product_id: int,
    quantity,
    delivery_option: Optional[str] = None,
    negotiated_price: Optional[Decimal] = None,
    delivery_notes: Optional[str] = None,
) -> CartItem:
    quantity = _check_quantity(quantity)
    delivery_option = check_delivery(delivery_option or DEFAULT_DELIVERY)
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found")

    item = upsert_item(db, scope, product, quantity, delivery_option, negotiated_price, delivery_notes)
    db.commit()
    db.refresh(item)
    logger.info("Cart %s: product %s quantity now %s", scope.key, product.id, item.quantity)
    return item


def _owned_item(db: Session, item_id: int, user_id: Optional[int]) -> CartItem:
    item = db.query(CartItem).filter(CartItem.id == item_id).first()
    if not item:
        raise NotFound("Cart item not found")
    if item.user_id is not None and item.user_id != user_id:
        raise Forbidden("You do not have permission to modify this cart item")
    return item


def update_item(
    db: Session,
    item_id: int,
    user_id: Optional[int],
    quantity=None,
    delivery_option: Optional[str] = None,
    delivery_notes: Optional[str] = None,
) -> CartItem:
    item = _owned_item(db, item_id, user_id)
    if quantity is not None:
        quantity = _check_quantity(quantity)
        _check_stock(item.product, quantity)
        item.quantity = quantity
    if delivery_option:
        item.delivery_option = check_delivery(delivery_option)
    if delivery_notes is not None:
        item.delivery_notes = delivery_notes
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("The cart already has this product with that delivery option")
    db.refresh(item)
    return item


def set_delivery_option(db: Session, item_id: int, user_id: Optional[int], delivery_option: str,
                        delivery_notes: Optional[str] = None) -> CartItem:
    if not delivery_option:
        raise ValidationError("delivery_option is required")
    return update_item(db, item_id, user_id, delivery_option=delivery_option, delivery_notes=delivery_notes)


def remove_item(db: Session, item_id: int, user_id: Optional[int]):
    item = _owned_item(db, item_id, user_id)
    db.delete(item)
    db.commit()


def clear_cart(db: Session, scope: CartScope) -> int:
    deleted = db.query(CartItem).filter(CartItem.scope_key == scope.key).delete(synchronize_session=False)
    db.commit()
    logger.info("Cleared cart %s (%d items)", scope.key, deleted)
    return deleted
