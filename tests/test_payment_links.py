import re
from datetime import timedelta

from tradedesk.models import PaymentLink, utcnow
from tradedesk.services.payment_links import generate_link_code, payment_url


def test_link_code_and_url():
    code = generate_link_code()
    assert re.fullmatch(r"PL-\d{13}-[0-9A-F]{8}", code)
    assert payment_url("https://shop.example.com/", code) == f"https://shop.example.com/payment/{code}"


def _create(seller, product, **extra):
    body = {
        "items": [{"product_id": product["product_id"], "quantity": 10, "negotiated_price": "900.00"}],
        **extra,
    }
    r = seller.post("/api/v1/payment-links", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def test_create_prices_lines_and_totals(seller, make_product):
    product = make_product(price="1000.00")
    plain = make_product(price="50.00", name="Bolts")
    data = seller.post("/api/v1/payment-links", json={
        "items": [
            {"product_id": product["product_id"], "quantity": 10, "negotiated_price": "900.00"},
            {"product_id": plain["product_id"]},
        ],
        "tax_amount": "100",
        "discount_amount": "50",
    }).json()
    link = data["payment_link"]
    assert link["total_amount"] == "9050.00"
    assert link["final_amount"] == "9100.00"
    assert link["is_negotiated"] is True
    assert link["status"] == "active"
    assert link["title"].startswith("Payment Link - ")
    lines = {i["product_name"]: i for i in link["payment_link_items"]}
    assert lines["Bolts"]["quantity"] == 1
    assert lines["Bolts"]["unit_price"] == "50.00"
    assert lines["Bolts"]["negotiated_price"] is None
    assert data["payment_url"].endswith(f"/payment/{link['link_code']}")


def test_create_requires_items_and_own_products(register, seller, make_product):
    assert seller.post("/api/v1/payment-links", json={"items": []}).status_code == 400
    other = register(can_sell=True)
    foreign = make_product(owner=other)
    r = seller.post("/api/v1/payment-links", json={"items": [{"product_id": foreign["product_id"]}]})
    assert r.status_code == 400


def test_buyer_only_business_cannot_issue(buyer, make_product):
    product = make_product()
    r = buyer.post("/api/v1/payment-links", json={"items": [{"product_id": product["product_id"]}]})
    assert r.status_code == 403


def test_public_lookup_and_expiry(app, client, seller, make_product):
    link = _create(seller, make_product())["payment_link"]
    r = client.get(f"/api/v1/payment-links/code/{link['link_code']}")
    assert r.status_code == 200
    assert r.json()["payment_link"]["payment_link_id"] == link["payment_link_id"]

    assert client.get("/api/v1/payment-links/code/PL-0-DEADBEEF").status_code == 404

    db = app.state.db.session()
    try:
        row = db.query(PaymentLink).filter(PaymentLink.link_code == link["link_code"]).one()
        row.expires_at = utcnow() - timedelta(minutes=1)
        db.commit()
    finally:
        db.close()
    assert client.get(f"/api/v1/payment-links/code/{link['link_code']}").status_code == 410


def test_used_link_is_gone(client, seller, make_product):
    link = _create(seller, make_product())["payment_link"]
    r = seller.put(f"/api/v1/payment-links/{link['payment_link_id']}/status", json={"status": "used"})
    assert r.status_code == 200
    assert r.json()["payment_link"]["used_at"] is not None
    assert client.get(f"/api/v1/payment-links/code/{link['link_code']}").status_code == 410


def test_status_update_validation_and_ownership(buyer, seller, make_product):
    link = _create(seller, make_product())["payment_link"]
    url = f"/api/v1/payment-links/{link['payment_link_id']}/status"
    assert seller.put(url, json={"status": "paid"}).status_code == 400
    assert buyer.put(url, json={"status": "cancelled"}).status_code == 403


def test_seller_listing(buyer, seller, make_product):
    product = make_product()
    first = _create(seller, product)["payment_link"]
    _create(seller, product)
    seller.put(f"/api/v1/payment-links/{first['payment_link_id']}/status", json={"status": "cancelled"})

    data = seller.get(f"/api/v1/payment-links/seller/{seller.business_id}").json()
    assert data["pagination"]["total"] == 2
    assert all("payment_url" in link for link in data["payment_links"])
    active = seller.get(f"/api/v1/payment-links/seller/{seller.business_id}", params={"status": "active"}).json()
    assert active["pagination"]["total"] == 1

    assert buyer.get(f"/api/v1/payment-links/seller/{seller.business_id}").status_code == 403


def test_claim_into_cart(buyer, seller, make_product):
    product = make_product(price="1000.00")
    link = _create(seller, product)["payment_link"]

    r = buyer.post(f"/api/v1/payment-links/{link['link_code']}/add-to-cart")
    assert r.status_code == 200
    assert len(r.json()["items"]) == 1

    # claiming twice keeps one row with the link's quantity
    buyer.post(f"/api/v1/payment-links/{link['link_code']}/add-to-cart")
    cart = buyer.get("/api/v1/cart").json()
    assert cart["summary"] == {"subtotal": "9000.00", "item_count": 1, "total_quantity": 10}
    assert cart["items"][0]["negotiated_price"] == "900.00"

    # the link stays claimable
    assert buyer.get(f"/api/v1/payment-links/code/{link['link_code']}").status_code == 200


def test_claim_rules(client, register, seller, make_product):
    link = _create(seller, make_product())["payment_link"]
    code = link["link_code"]

    assert client.post(f"/api/v1/payment-links/{code}/add-to-cart").status_code == 401
    assert seller.post(f"/api/v1/payment-links/{code}/add-to-cart").status_code == 403

    dual = register(can_buy=True, can_sell=True)
    own = _create(dual, make_product(owner=dual))["payment_link"]
    assert dual.post(f"/api/v1/payment-links/{own['link_code']}/add-to-cart").status_code == 400

    seller.put(f"/api/v1/payment-links/{link['payment_link_id']}/status", json={"status": "cancelled"})
    buyer = register()
    assert buyer.post(f"/api/v1/payment-links/{code}/add-to-cart").status_code == 410


def test_link_from_chat_addresses_conversation_buyer(buyer, seller, conversation):
    r = seller.post("/api/v1/chat/payment-links/create", json={
        "conversation_id": conversation["conversation_id"],
        "items": [{"product_id": conversation["product_id"], "quantity": 2}],
    })
    assert r.status_code == 201
    link = r.json()["payment_link"]
    assert link["buyer_business_id"] == buyer.business_id
    assert link["conversation_id"] == conversation["conversation_id"]
    assert link["description"] == "Payment link generated from chat conversation"
    assert link["final_amount"] == "2000.00"

    r = buyer.post("/api/v1/chat/payment-links/create", json={
        "conversation_id": conversation["conversation_id"],
        "items": [{"product_id": conversation["product_id"]}],
    })
    assert r.status_code == 403
