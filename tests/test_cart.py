from decimal import Decimal

from tradedesk.models import CartItem
from tradedesk.services.cart import CartScope, line_price


def test_line_price_prefers_negotiated():
    item = CartItem(quantity=3, negotiated_price=Decimal("5.50"))
    assert line_price(item) == (Decimal("5.50"), Decimal("16.50"))


def test_add_merges_quantities_for_same_delivery_option(buyer, make_product):
    product = make_product(price="100.00")
    first = buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 2})
    assert first.status_code == 201
    again = buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 3})
    assert again.json()["item"]["cart_item_id"] == first.json()["item"]["cart_item_id"]
    assert again.json()["item"]["quantity"] == 5

    cart = buyer.get("/api/v1/cart").json()
    assert len(cart["items"]) == 1
    item = cart["items"][0]
    assert item["delivery_option"] == "platform_delivery"
    assert item["user_id"] == buyer.user_id
    assert item["business_id"] == buyer.business_id
    assert item["calculated_price"] == {"unit_price": "100.00", "total": "500.00"}
    assert cart["summary"] == {"subtotal": "500.00", "item_count": 1, "total_quantity": 5}


def test_different_delivery_options_are_separate_rows(buyer, make_product):
    product = make_product(price="10")
    buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 1})
    buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 1, "delivery_option": "pickup"})
    assert buyer.get("/api/v1/cart").json()["summary"]["item_count"] == 2


def test_negotiated_price_drives_line_total(buyer, make_product):
    product = make_product(price="1000.00")
    buyer.post("/api/v1/cart", json={
        "product_id": product["product_id"], "quantity": 4, "negotiated_price": "850.00",
    })
    cart = buyer.get("/api/v1/cart").json()
    assert cart["items"][0]["calculated_price"] == {"unit_price": "850.00", "total": "3400.00"}
    assert cart["summary"]["subtotal"] == "3400.00"


def test_stock_is_checked_against_merged_quantity(buyer, make_product):
    product = make_product(quantity=5)
    assert buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 3}).status_code == 201
    r = buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 3})
    assert r.status_code == 400
    assert r.json()["available_quantity"] == 5
    assert buyer.get("/api/v1/cart").json()["items"][0]["quantity"] == 3


def test_rejects_bad_quantity_and_delivery(buyer, make_product):
    product = make_product()
    assert buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 0}).status_code == 400
    r = buyer.post("/api/v1/cart", json={
        "product_id": product["product_id"], "quantity": 1, "delivery_option": "teleport",
    })
    assert r.status_code == 400


def test_missing_product(buyer):
    assert buyer.post("/api/v1/cart", json={"product_id": 424242, "quantity": 1}).status_code == 404


def test_guest_cart_requires_some_scope(client, make_product):
    product = make_product()
    r = client.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 1})
    assert r.status_code == 400
    assert r.json()["detail"] == "user_id, business_id, or session_id is required"


def test_guest_session_cart(client, make_product):
    product = make_product(price="20")
    r = client.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 2, "session_id": "guest-abc"})
    assert r.status_code == 201
    assert r.json()["item"]["user_id"] is None

    cart = client.get("/api/v1/cart", headers={"X-Session-Id": "guest-abc"}).json()
    assert cart["summary"]["subtotal"] == "40.00"
    assert client.get("/api/v1/cart", params={"session_id": "someone-else"}).json()["items"] == []


def test_update_delivery_and_remove(buyer, make_product):
    product = make_product(quantity=10)
    item = buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 1}).json()["item"]
    url = f"/api/v1/cart/{item['cart_item_id']}"

    r = buyer.put(url, json={"quantity": 7, "delivery_notes": "Dock 4"})
    assert r.status_code == 200
    assert r.json()["item"]["quantity"] == 7
    assert r.json()["item"]["delivery_notes"] == "Dock 4"

    assert buyer.put(url, json={"quantity": 11}).status_code == 400

    r = buyer.put(f"{url}/delivery", json={"delivery_option": "seller_delivery"})
    assert r.status_code == 200
    assert r.json()["item"]["delivery_option"] == "seller_delivery"
    assert buyer.put(f"{url}/delivery", json={"delivery_option": "drone"}).status_code == 400

    assert buyer.delete(url).status_code == 200
    assert buyer.delete(url).status_code == 404


def test_cannot_touch_someone_elses_item(client, buyer, register, make_product):
    product = make_product()
    item = buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 1}).json()["item"]
    other = register()
    assert other.put(f"/api/v1/cart/{item['cart_item_id']}", json={"quantity": 2}).status_code == 403
    assert other.delete(f"/api/v1/cart/{item['cart_item_id']}").status_code == 403
    assert client.delete(f"/api/v1/cart/{item['cart_item_id']}").status_code == 403


def test_cannot_use_foreign_business_scope(buyer, seller, make_product):
    product = make_product()
    r = buyer.post("/api/v1/cart", json={
        "product_id": product["product_id"], "quantity": 1, "business_id": seller.business_id,
    })
    assert r.status_code == 403


def test_clear_cart(buyer, make_product):
    for name in ("A", "B"):
        product = make_product(name=name)
        buyer.post("/api/v1/cart", json={"product_id": product["product_id"], "quantity": 1})
    r = buyer.delete("/api/v1/cart")
    assert r.json()["removed"] == 2
    assert buyer.get("/api/v1/cart").json()["summary"] == {"subtotal": "0.00", "item_count": 0, "total_quantity": 0}


def test_scope_precedence(app, buyer):
    from tradedesk.services.cart import resolve_scope

    db = app.state.db.session()
    try:
        scope = resolve_scope(db, user_id=int(buyer.user_id), session_id="s1")
        assert scope == CartScope(f"user:{buyer.user_id}", int(buyer.user_id), int(buyer.business_id), "s1")
        assert resolve_scope(db, business_id=7, session_id="s1").key == "business:7"
        assert resolve_scope(db, session_id="s1").key == "session:s1"
    finally:
        db.close()
