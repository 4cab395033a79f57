import itertools

import pytest
from fastapi.testclient import TestClient

from tradedesk.config import Settings
from tradedesk.main import create_app

_seq = itertools.count(1)


class Party:
    """A registered user acting as one of their businesses."""

    def __init__(self, client, token, user, business):
        self.client = client
        self.token = token
        self.user_id = user["user_id"]
        self.business_id = business["business_id"]

    @property
    def headers(self):
        return {"Authorization": f"Bearer {self.token}", "X-Business-Id": self.business_id}

    def get(self, url, **kw):
        return self.client.get(url, headers=self.headers, **kw)

    def post(self, url, **kw):
        return self.client.post(url, headers=self.headers, **kw)

    def put(self, url, **kw):
        return self.client.put(url, headers=self.headers, **kw)

    def patch(self, url, **kw):
        return self.client.patch(url, headers=self.headers, **kw)

    def delete(self, url, **kw):
        return self.client.delete(url, headers=self.headers, **kw)


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", jwt_secret="test-secret", chat_rate_limit=1000)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def count_rows(app):
    """Count stored rows of `model` matching `criteria`."""
    def _count(model, *criteria):
        db = app.state.db.session()
        try:
            return db.query(model).filter(*criteria).count()
        finally:
            db.close()

    return _count


@pytest.fixture
def register(client):
    def _register(can_buy=True, can_sell=False, name=None, **extra):
        n = next(_seq)
        body = {
            "email": f"user{n}@example.com",
            "password": "Secret@123",
            "full_name": name or f"User {n}",
            "phone": f"90000{n:05d}",
            "business_name": f"{name or 'Business'} {n}",
            "can_buy": can_buy,
            "can_sell": can_sell,
            **extra,
        }
        r = client.post("/api/v1/users/register", json=body)
        assert r.status_code == 201, r.text
        data = r.json()
        return Party(client, data["token"], data["user"], data["businesses"][0])

    return _register


@pytest.fixture
def buyer(register):
    return register(can_buy=True, can_sell=False, name="Buyer")


@pytest.fixture
def seller(register):
    return register(can_buy=False, can_sell=True, name="Seller")


@pytest.fixture
def make_product(seller):
    def _make(owner=None, price="1000.00", quantity=100, name="Steel Rod", **extra):
        owner = owner or seller
        r = owner.post("/api/v1/products", json={
            "product_name": name,
            "base_price": price,
            "available_quantity": quantity,
            "category": "metals",
            **extra,
        })
        assert r.status_code == 201, r.text
        return r.json()["product"]

    return _make


@pytest.fixture
def conversation(buyer, seller, make_product):
    product = make_product()
    r = buyer.post("/api/v1/chat/conversations", json={
        "buyer_business_id": buyer.business_id,
        "seller_business_id": seller.business_id,
        "product_id": product["product_id"],
    })
    assert r.status_code == 201, r.text
    conv = r.json()["conversation"]
    conv["product"] = product
    return conv
