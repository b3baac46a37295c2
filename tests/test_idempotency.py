import time

from sheetcms import idempotency


def test_create_is_replayed_for_same_key(client, store, editor_headers):
    headers = {**editor_headers, "Idempotency-Key": "abc-123"}
    first = client.post("/api/faqs", json={"question": "Q", "answer": "A"}, headers=headers)
    second = client.post("/api/faqs", json={"question": "Q", "answer": "A"}, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.headers["Idempotency-Replayed"] == "1"
    assert "Idempotency-Replayed" not in first.headers
    assert second.json() == first.json()
    assert len(store.rows("faqs")) == 2


def test_keys_are_scoped_per_resource(client, store, editor_headers):
    headers = {**editor_headers, "Idempotency-Key": "same"}
    client.post("/api/faqs", json={"question": "Q", "answer": "A"}, headers=headers)
    other = client.post("/api/testimonials", json={"name": "N", "review": "R"}, headers=headers)
    assert "Idempotency-Replayed" not in other.headers
    assert len(store.rows("testimonials")) == 2


def test_without_key_every_post_appends(client, store, editor_headers):
    for _ in range(2):
        client.post("/api/faqs", json={"question": "Q", "answer": "A"}, headers=editor_headers)
    assert len(store.rows("faqs")) == 3


def test_lookup_honours_ttl_and_purge(client):
    idempotency.save("faqs", "k1", 201, {"id": "f1"})
    hit = idempotency.lookup("faqs", "k1", ttl_seconds=60)
    assert hit.response == {"id": "f1"}
    assert hit.status_code == 201
    assert idempotency.lookup("faqs", "k2", ttl_seconds=60) is None

    idempotency.save("faqs", "old", 201, {"id": "f0"})
    from sqlmodel import Session

    with Session(idempotency._get_engine()) as session:
        row = session.get(idempotency.Idempotency, "faqs:old")
        row.created_at = int(time.time()) - 1000
        session.add(row)
        session.commit()

    assert idempotency.lookup("faqs", "old", ttl_seconds=60) is None
    assert idempotency.purge_older_than(60) == 1
    assert idempotency.lookup("faqs", "k1", ttl_seconds=60) is not None


def test_purge_endpoint_requires_admin(client, admin_headers, editor_headers):
    assert client.post("/admin/idempotency/purge").status_code == 401
    assert client.post("/admin/idempotency/purge", headers=editor_headers).status_code == 403
    response = client.post("/admin/idempotency/purge", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"deleted": 0, "ttl_seconds": 86400}
