from sheetcms import schema
from sheetcms.errors import RemoteStoreUnavailable
from sheetcms.schema import Sheet


def _post(client, headers, **body):
    response = client.post("/api/blog", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_post_fills_defaults_and_slug(client, editor_headers):
    post = _post(client, editor_headers, title="Welcome Post", content="x" * 200)
    assert post["id"].startswith("pst_")
    assert post["slug"] == "welcome-post"
    assert post["status"] == "draft"
    assert post["author"] == "ed"
    assert post["views"] == "0"
    assert post["excerpt"] == "x" * 150 + "..."
    assert post["date"]

    again = _post(client, editor_headers, title="Welcome Post", content="more")
    assert again["slug"] == "welcome-post-1"


def test_missing_required_fields(client, editor_headers):
    response = client.post("/api/blog", json={"title": "No body"}, headers=editor_headers)
    assert response.status_code == 422
    assert response.json()["detail"] == "missing_required:content"


def test_writes_need_editor(client, viewer_headers):
    assert client.post("/api/blog", json={"title": "t", "content": "c"}).status_code == 401
    response = client.post("/api/blog", json={"title": "t", "content": "c"}, headers=viewer_headers)
    assert response.status_code == 403


def test_anonymous_sees_only_published(client, editor_headers):
    draft = _post(client, editor_headers, title="Draft", content="c")
    live = _post(client, editor_headers, title="Live", content="c", status="published")

    public = client.get("/api/blog").json()
    assert [item["id"] for item in public["items"]] == [live["id"]]
    assert public["total"] == 1
    assert client.get(f"/api/blog/{draft['id']}").status_code == 404
    assert client.get(f"/api/blog/slug/{live['slug']}").json()["id"] == live["id"]

    staff = client.get("/api/blog", headers=editor_headers).json()
    assert staff["total"] == 2
    assert set(staff) == {"items", "total", "page", "limit", "totalPages", "hasNext", "hasPrev"}


def test_draft_to_published_lifecycle(client, editor_headers):
    post = _post(client, editor_headers, title="Welcome Post", content="c")
    drafts = client.get("/api/blog", params={"status": "draft"}, headers=editor_headers).json()
    assert [item["id"] for item in drafts["items"]] == [post["id"]]

    response = client.put(f"/api/blog/{post['id']}", json={"status": "published"}, headers=editor_headers)
    assert response.status_code == 200
    assert client.get("/api/blog", params={"status": "draft"}, headers=editor_headers).json()["items"] == []
    published = client.get("/api/blog", params={"status": "published"}).json()
    assert [item["id"] for item in published["items"]] == [post["id"]]


def test_invalid_status_and_query(client, editor_headers):
    post = _post(client, editor_headers, title="T", content="c")
    response = client.put(f"/api/blog/{post['id']}", json={"status": "gone"}, headers=editor_headers)
    assert response.status_code == 422
    assert client.get("/api/blog", params={"sort": "nope"}).status_code == 422
    assert client.get("/api/blog", params={"order": "up"}).status_code == 422
    assert client.get("/api/blog", params={"limit": 1000}).status_code == 422
    assert client.get("/api/blog", params={"page": 0}).status_code == 422


def test_update_renames_slug_without_colliding_with_itself(client, editor_headers):
    post = _post(client, editor_headers, title="First Title", content="c")
    same = client.put(f"/api/blog/{post['id']}", json={"title": "First Title"}, headers=editor_headers)
    assert same.json()["slug"] == "first-title"

    renamed = client.put(f"/api/blog/{post['id']}", json={"title": "Second"}, headers=editor_headers)
    assert renamed.json()["slug"] == "second"
    assert renamed.json()["created_at"] == post["created_at"]


def test_view_counter(client, editor_headers):
    post = _post(client, editor_headers, title="T", content="c", status="published")
    client.put(f"/api/blog/{post['id']}/view")
    response = client.put(f"/api/blog/{post['id']}/view")
    assert response.json() == {"views": 2}


def test_delete(client, editor_headers):
    post = _post(client, editor_headers, title="T", content="c")
    assert client.delete(f"/api/blog/{post['id']}", headers=editor_headers).json() == {"deleted": True}
    response = client.delete(f"/api/blog/{post['id']}", headers=editor_headers)
    assert response.status_code == 404
    assert response.json() == {"detail": "Post not found"}


def test_reorder_faqs(client, editor_headers):
    ids = []
    for q in ("one", "two", "three"):
        response = client.post("/api/faqs", json={"question": q, "answer": "a"}, headers=editor_headers)
        ids.append(response.json()["id"])

    payload = [{"id": ids[0], "order": 3}, {"id": ids[1], "order": 1}, {"id": ids[2], "order": 2}]
    assert client.put("/api/faqs/reorder", json=payload, headers=editor_headers).json() == {"updated": 3}

    listed = client.get("/api/faqs").json()["items"]
    assert [item["question"] for item in listed] == ["two", "three", "one"]


def test_product_search_and_type_errors(client, editor_headers):
    client.post("/api/products", json={"name": "Blue Mug", "price": 9.5}, headers=editor_headers)
    client.post("/api/products", json={"name": "Red Pan", "price": "12"}, headers=editor_headers)
    found = client.get("/api/products", params={"q": "mug"}).json()
    assert [item["name"] for item in found["items"]] == ["Blue Mug"]
    assert found["items"][0]["price"] == "9.5"

    bad = client.post("/api/products", json={"name": "Bad", "price": "cheap"}, headers=editor_headers)
    assert bad.status_code == 422
    assert bad.json()["detail"] == "type_error:price:decimal"


def test_public_contact_form(client, admin_headers):
    response = client.post(
        "/api/contact",
        json={"name": "Sam", "email": "sam@example.com", "message": "hi", "status": "replied"},
    )
    assert response.status_code == 201
    message = response.json()
    assert message["status"] == "unread"

    assert client.get("/api/contact").status_code == 401
    viewed = client.get(f"/api/contact/{message['id']}", headers=admin_headers).json()
    assert viewed["status"] == "read"

    bulk = client.put(
        "/api/contact/bulk-status",
        json={"ids": [message["id"]], "status": "archived"},
        headers=admin_headers,
    )
    assert bulk.json() == {"updated": 1}
    bad = client.put(f"/api/contact/{message['id']}/status", json={"status": "spam"}, headers=admin_headers)
    assert bad.status_code == 422


def test_public_fund_request(client, editor_headers):
    response = client.post("/api/funds", json={"name": "Ana", "email": "a@x.io", "amount": "250"})
    fund = response.json()
    assert fund["status"] == "pending"
    approved = client.put(f"/api/funds/{fund['id']}/status", json={"status": "approved"}, headers=editor_headers)
    assert approved.json()["status"] == "approved"


def test_private_content_by_page(client, editor_headers, viewer_headers):
    client.post("/api/content", json={"page": "home", "section": "hero", "order": 2}, headers=editor_headers)
    client.post("/api/content", json={"page": "home", "section": "intro", "order": 1}, headers=editor_headers)
    client.post("/api/content", json={"page": "about", "section": "hero"}, headers=editor_headers)

    assert client.get("/api/content").status_code == 401
    sections = client.get("/api/content/page/home", headers=viewer_headers).json()["items"]
    assert [s["section"] for s in sections] == ["intro", "hero"]


def test_store_outage_returns_503(client, store):
    store.fail = RemoteStoreUnavailable("read", "connection reset")
    response = client.get("/api/faqs")
    assert response.status_code == 503
    assert response.headers["Retry-After"]
    assert response.json() == {"detail": "service temporarily unavailable, retry", "retryable": True}


def test_symbol_only_title_falls_back_to_id_slug(client, editor_headers):
    post = _post(client, editor_headers, title="!!!", content="c")
    assert post["slug"] == post["id"].replace("_", "-")
    other = _post(client, editor_headers, title="???", content="c")
    assert other["slug"] == other["id"].replace("_", "-")


def test_content_with_hand_typed_order_sorts_last(client, store, viewer_headers):
    headers = schema.headers(Sheet.WEBSITE_CONTENT)
    for row_id, order in (("c1", "first"), ("c2", "2"), ("c3", "1")):
        record = {"id": row_id, "page": "home", "section": row_id, "order": order}
        store.append_row("website_content", [record.get(h, "") for h in headers])

    sections = client.get("/api/content/page/home", headers=viewer_headers).json()["items"]
    assert [s["id"] for s in sections] == ["c3", "c2", "c1"]


def test_lookup_by_category_and_type(client, editor_headers):
    news = _post(client, editor_headers, title="A", content="c", category="news", status="published")
    _post(client, editor_headers, title="B", content="c", category="news")
    _post(client, editor_headers, title="C", content="c", category="tips", status="published")

    public = client.get("/api/blog/category/news").json()
    assert [item["id"] for item in public["items"]] == [news["id"]]
    assert client.get("/api/blog/category/news", headers=editor_headers).json()["total"] == 2

    client.post("/api/faqs", json={"question": "q", "answer": "a", "category": "billing"}, headers=editor_headers)
    assert client.get("/api/faqs/category/billing").json()["total"] == 1
    client.post("/api/products", json={"name": "Mug", "category": "kitchen"}, headers=editor_headers)
    assert client.get("/api/products/category/kitchen").json()["items"][0]["name"] == "Mug"

    client.post("/api/categories", json={"name": "News", "type": "blog"}, headers=editor_headers)
    client.post("/api/categories", json={"name": "Kitchen", "type": "product"}, headers=editor_headers)
    by_type = client.get("/api/categories/type/blog").json()
    assert [item["name"] for item in by_type["items"]] == ["News"]


def test_bulk_delete_messages_and_images(client, editor_headers):
    ids = [
        client.post("/api/contact", json={"name": "n", "email": "e@x.io", "message": str(i)}).json()["id"]
        for i in range(3)
    ]
    assert client.request("DELETE", "/api/contact", json={"ids": ids[:2]}).status_code == 401
    response = client.request(
        "DELETE", "/api/contact", json={"ids": [*ids[:2], "con_missing"]}, headers=editor_headers
    )
    assert response.json() == {"deleted": 2, "total": 3}
    left = client.get("/api/contact", headers=editor_headers).json()["items"]
    assert [item["id"] for item in left] == [ids[2]]

    image = client.post("/api/images", json={"url": "https://cdn.example/a.png"}, headers=editor_headers).json()
    response = client.request("DELETE", "/api/images", json={"ids": [image["id"]]}, headers=editor_headers)
    assert response.json() == {"deleted": 1, "total": 1}
    empty = client.request("DELETE", "/api/images", json={"ids": []}, headers=editor_headers)
    assert empty.status_code == 422
