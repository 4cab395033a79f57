"""Negotiate in chat, issue a payment link, claim it, invoice it."""


def test_negotiation_to_invoice(client, register):
    seller = register(can_buy=False, can_sell=True, name="Mill")
    buyer = register(can_buy=True, can_sell=False, name="Fabricator")

    product = seller.post("/api/v1/products", json={
        "product_name": "HR Coil", "base_price": "1000.00", "available_quantity": 50,
    }).json()["product"]

    conv = buyer.post("/api/v1/chat/conversations", json={
        "buyer_business_id": buyer.business_id,
        "seller_business_id": seller.business_id,
        "product_id": product["product_id"],
    }).json()["conversation"]
    cid = conv["conversation_id"]

    buyer.post("/api/v1/chat/messages", json={"conversation_id": cid, "content": "10 coils at 900?"})
    seller.post("/api/v1/chat/messages", json={"conversation_id": cid, "content": "Deal"})

    r = seller.post("/api/v1/chat/payment-links/create", json={
        "conversation_id": cid,
        "items": [{"product_id": product["product_id"], "quantity": 10, "negotiated_price": "900.00"}],
    })
    assert r.status_code == 201
    link = r.json()["payment_link"]
    assert link["final_amount"] == "9000.00"

    public = client.get(f"/api/v1/payment-links/code/{link['link_code']}").json()["payment_link"]
    assert public["seller_business"]["business_name"].startswith("Mill")

    assert buyer.post(f"/api/v1/payment-links/{link['link_code']}/add-to-cart").status_code == 200
    cart = buyer.get("/api/v1/cart").json()
    assert cart["summary"]["subtotal"] == "9000.00"
    assert cart["items"][0]["calculated_price"] == {"unit_price": "900.00", "total": "9000.00"}

    r = seller.post("/api/v1/invoices", json={"payment_link_id": link["payment_link_id"]})
    assert r.status_code == 201
    invoice = r.json()["invoice"]
    assert invoice["buyer_business_id"] == buyer.business_id
    assert invoice["total_amount"] == "9000.00"

    seen_by_buyer = buyer.get(f"/api/v1/invoices/{invoice['invoice_id']}").json()["invoice"]
    assert seen_by_buyer["invoice_number"] == invoice["invoice_number"]

    assert client.get("/health").json() == {"status": "healthy"}
