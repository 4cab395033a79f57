import pytest


@pytest.fixture
def inbox(buyer, seller, conversation):
    """Three unread notifications for the seller."""
    for i in range(3):
        buyer.post("/api/v1/chat/messages", json={"conversation_id": conversation["conversation_id"], "content": f"n{i}"})
    return seller


def test_list_newest_first_with_pagination(inbox):
    data = inbox.get("/api/v1/notifications", params={"limit": 2}).json()
    assert [n["message"] for n in data["notifications"]] == ["n2", "n1"]
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}


def test_unread_count_and_mark_read(inbox):
    assert inbox.get("/api/v1/notifications/unread-count").json() == {"unread_count": 3}
    first = inbox.get("/api/v1/notifications").json()["notifications"][0]

    r = inbox.patch(f"/api/v1/notifications/{first['notification_id']}/read")
    assert r.status_code == 200
    assert r.json()["notification"]["is_read"] is True
    assert r.json()["notification"]["read_at"] is not None
    assert inbox.get("/api/v1/notifications/unread-count").json()["unread_count"] == 2

    unread = inbox.get("/api/v1/notifications", params={"is_read": False}).json()
    assert first["notification_id"] not in {n["notification_id"] for n in unread["notifications"]}


def test_read_all(inbox):
    r = inbox.patch("/api/v1/notifications/read-all")
    assert r.json()["updated"] == 3
    assert inbox.get("/api/v1/notifications/unread-count").json()["unread_count"] == 0


def test_cannot_touch_others_notifications(inbox, buyer):
    target = inbox.get("/api/v1/notifications").json()["notifications"][0]
    assert buyer.patch(f"/api/v1/notifications/{target['notification_id']}/read").status_code == 403
    assert buyer.delete(f"/api/v1/notifications/{target['notification_id']}").status_code == 403
    assert buyer.delete("/api/v1/notifications/999999").status_code == 404


def test_delete(inbox):
    target = inbox.get("/api/v1/notifications").json()["notifications"][0]
    assert inbox.delete(f"/api/v1/notifications/{target['notification_id']}").status_code == 200
    assert inbox.get("/api/v1/notifications").json()["pagination"]["total"] == 2


def test_requires_auth(client):
    assert client.get("/api/v1/notifications").status_code == 401
