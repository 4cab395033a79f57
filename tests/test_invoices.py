import re

from tradedesk.services.invoices import generate_invoice_number


def test_invoice_number_format():
    assert re.fullmatch(r"INV-\d{13}-\d{3}", generate_invoice_number())


def _order(buyer, conversation, **extra):
    r = buyer.post("/api/v1/chat/orders/create", json={
        "conversation_id": conversation["conversation_id"],
        "product_id": conversation["product_id"],
        "quantity": 10,
        "agreed_price": "900.00",
        **extra,
    })
    assert r.status_code == 201, r.text
    return r.json()["order"]


def test_invoice_from_order(buyer, seller, conversation):
    order = _order(buyer, conversation)
    r = seller.post("/api/v1/invoices", json={
        "order_id": order["order_id"], "tax_amount": "1620", "shipping_amount": "80", "discount_amount": "100",
    })
    assert r.status_code == 201
    invoice = r.json()["invoice"]
    assert invoice["status"] == "draft"
    assert invoice["buyer_business_id"] == buyer.business_id
    assert invoice["subtotal"] == "9000.00"
    assert invoice["total_amount"] == "10600.00"
    assert invoice["due_date"] is not None
    assert [i["product_name"] for i in invoice["invoice_items"]] == [conversation["product"]["product_name"]]


def test_invoice_needs_exactly_one_source(seller):
    assert seller.post("/api/v1/invoices", json={}).status_code == 400
    assert seller.post("/api/v1/invoices", json={"order_id": 1, "payment_link_id": 1}).status_code == 400


def test_invoice_from_payment_link_needs_buyer(buyer, seller, make_product):
    product = make_product()
    link = seller.post("/api/v1/payment-links", json={
        "items": [{"product_id": product["product_id"], "quantity": 3}],
    }).json()["payment_link"]

    assert seller.post("/api/v1/invoices", json={"payment_link_id": link["payment_link_id"]}).status_code == 400

    r = seller.post("/api/v1/invoices", json={
        "payment_link_id": link["payment_link_id"], "buyer_business_id": buyer.business_id,
    })
    assert r.status_code == 201
    assert r.json()["invoice"]["total_amount"] == "3000.00"


def test_only_source_seller_may_invoice(register, buyer, conversation):
    order = _order(buyer, conversation)
    other_seller = register(can_sell=True)
    assert other_seller.post("/api/v1/invoices", json={"order_id": order["order_id"]}).status_code == 403


def test_read_list_and_status(register, buyer, seller, conversation):
    order = _order(buyer, conversation)
    invoice = seller.post("/api/v1/invoices", json={"order_id": order["order_id"]}).json()["invoice"]
    url = f"/api/v1/invoices/{invoice['invoice_id']}"

    assert buyer.get(url).status_code == 200
    assert register().get(url).status_code == 403
    assert seller.get("/api/v1/invoices/424242").status_code == 404

    issued = seller.get(f"/api/v1/invoices/business/{seller.business_id}").json()
    assert issued["pagination"]["total"] == 1
    received = buyer.get(f"/api/v1/invoices/business/{buyer.business_id}", params={"role": "buyer"}).json()
    assert [i["invoice_id"] for i in received["invoices"]] == [invoice["invoice_id"]]
    assert buyer.get(f"/api/v1/invoices/business/{seller.business_id}").status_code == 403

    assert buyer.put(f"{url}/status", json={"status": "paid"}).status_code == 403
    assert seller.put(f"{url}/status", json={"status": "settled"}).status_code == 400
    r = seller.put(f"{url}/status", json={"status": "paid"})
    assert r.status_code == 200
    assert r.json()["invoice"]["paid_at"] is not None


def test_pdf_download_and_pdf_url(buyer, seller, register, conversation):
    order = _order(buyer, conversation)
    invoice = seller.post("/api/v1/invoices", json={"order_id": order["order_id"], "notes": "Net 30 <bank>"}).json()["invoice"]
    url = f"/api/v1/invoices/{invoice['invoice_id']}"

    r = buyer.get(f"{url}/pdf")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")
    assert invoice["invoice_number"] in r.headers["content-disposition"]
    assert register().get(f"{url}/pdf").status_code == 403

    r = seller.put(f"{url}/status", json={"status": "sent", "pdf_url": "https://files.example.com/inv.pdf"})
    assert r.json()["invoice"]["pdf_url"] == "https://files.example.com/inv.pdf"
