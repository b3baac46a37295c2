"""REST routes for the content sheets.

Every content resource gets the same list/get/create/update/delete surface;
the differences between them (slugs, public visibility, status values,
reordering) are declared on a Resource.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, Response, status

from .auth import Identity, has_min_role, optional_user, require_min_role
from .config import settings
from .deps import get_repo, idempotent, not_found, require_fields
from .ids import generate_entity_id
from .repository import Page, SheetRepository
from .schema import Sheet
from .slugify import slugify, unique_slug
from .validate import to_python

PROTECTED_FIELDS = ("id", "created_at", "updated_at")

Prepare = Callable[[Dict[str, Any], Optional[Identity]], None]


@dataclass(frozen=True)
class Resource:
    path: str
    sheet: Sheet
    label: str
    kind: str
    required: Tuple[str, ...] = ()
    filters: Tuple[str, ...] = ()
    search_fields: Tuple[str, ...] = ()
    slug_source: Optional[str] = None
    slug_lookup: bool = False
    # anonymous callers only see rows with this status; None means private
    public_status: Optional[str] = None
    # anonymous callers may create rows, which always start in this status
    public_create_status: Optional[str] = None
    statuses: Tuple[str, ...] = ()
    read_transition: Optional[Tuple[str, str]] = None
    reorderable: bool = False
    bulk_delete: bool = False
    # extra GET /{field}/{value} routes, e.g. /category/{value}
    lookups: Tuple[str, ...] = ()
    default_sort: str = "created_at"
    default_order: str = "desc"
    defaults: Dict[str, Any] = field(default_factory=dict)
    prepare: Optional[Prepare] = None


def _prepare_post(fields: Dict[str, Any], user: Optional[Identity]) -> None:
    content = str(fields.get("content") or "")
    if not fields.get("excerpt") and content:
        fields["excerpt"] = content[:150] + ("..." if len(content) > 150 else "")
    if not fields.get("author"):
        fields["author"] = (user.username if user and user.username else "Admin")
    fields.setdefault("date", date.today().isoformat())


def _check_writer(res: Resource, user: Optional[Identity], creating: bool = False) -> None:
    if creating and res.public_create_status is not None:
        return
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing token")
    if not has_min_role(user, "editor"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient role")


def _check_reader(res: Resource, user: Optional[Identity]) -> None:
    if user is None and res.public_status is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing token")


def _visible(res: Resource, record: Dict[str, str], user: Optional[Identity]) -> bool:
    return user is not None or record.get("status") == res.public_status


def _check_status(res: Resource, value: Any) -> None:
    if res.statuses and value not in res.statuses:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"status must be one of {', '.join(res.statuses)}",
        )


def build_router(res: Resource) -> APIRouter:
    r = APIRouter(prefix=f"/api/{res.path}", tags=[res.path])
    editor = require_min_role("editor")

    async def _slug(
        repo: SheetRepository, text: str, fallback: str, exclude_id: Optional[str] = None
    ) -> str:
        if not slugify(text):
            text = fallback

        async def taken(candidate: str) -> bool:
            return await repo.exists_by_field(res.sheet, "slug", candidate, exclude_id)

        return await unique_slug(text, taken)

    # static paths first so they win over /{item_id}

    if res.reorderable:

        @r.put("/reorder")
        async def reorder(
            items: List[Dict[str, Any]] = Body(...),
            _: Identity = Depends(editor),
            repo: SheetRepository = Depends(get_repo),
        ):
            for item in items:
                require_fields(item, "id", "order")
            updated = await repo.bulk_update(
                res.sheet, [(str(item["id"]), {"order": item["order"]}) for item in items]
            )
            return {"updated": len(updated)}

    if res.statuses:

        @r.put("/bulk-status")
        async def bulk_status(
            body: Dict[str, Any] = Body(...),
            _: Identity = Depends(editor),
            repo: SheetRepository = Depends(get_repo),
        ):
            require_fields(body, "ids", "status")
            _check_status(res, body["status"])
            updated = await repo.bulk_update(
                res.sheet, [(str(i), {"status": body["status"]}) for i in body["ids"]]
            )
            return {"updated": len(updated)}

        @r.put("/{item_id}/status")
        async def set_status(
            item_id: str,
            body: Dict[str, Any] = Body(...),
            _: Identity = Depends(editor),
            repo: SheetRepository = Depends(get_repo),
        ):
            require_fields(body, "status")
            _check_status(res, body["status"])
            updated = await repo.update(res.sheet, item_id, {"status": body["status"]})
            if updated is None:
                raise not_found(res.label)
            return updated

    if res.slug_lookup:

        @r.get("/slug/{slug}")
        async def get_by_slug(
            slug: str,
            user: Optional[Identity] = Depends(optional_user),
            repo: SheetRepository = Depends(get_repo),
        ):
            _check_reader(res, user)
            matches = await repo.get_by_field(res.sheet, "slug", slug)
            if not matches or not _visible(res, matches[0], user):
                raise not_found(res.label)
            return matches[0]

    for lookup in res.lookups:

        def _lookup_route(lookup_field: str):
            async def list_by_field(
                value: str,
                page: int = Query(1, ge=1),
                limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
                user: Optional[Identity] = Depends(optional_user),
                repo: SheetRepository = Depends(get_repo),
            ):
                _check_reader(res, user)
                exact = {lookup_field: value}
                if user is None:
                    exact["status"] = res.public_status
                return await repo.query(
                    res.sheet,
                    page=page,
                    limit=limit,
                    sort_field=res.default_sort,
                    sort_direction=res.default_order,
                    exact=exact,
                )

            return list_by_field

        r.add_api_route(
            f"/{lookup}/{{value}}",
            _lookup_route(lookup),
            methods=["GET"],
            response_model=Page,
            name=f"{res.path}_by_{lookup}",
        )

    if res.bulk_delete:

        @r.delete("")
        async def bulk_delete(
            body: Dict[str, Any] = Body(...),
            _: Identity = Depends(editor),
            repo: SheetRepository = Depends(get_repo),
        ):
            require_fields(body, "ids")
            ids = body["ids"]
            if not isinstance(ids, list) or not ids:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="ids must be a non-empty list",
                )
            deleted = 0
            for item_id in ids:
                if await repo.remove(res.sheet, str(item_id)):
                    deleted += 1
            return {"deleted": deleted, "total": len(ids)}

    @r.get("", response_model=Page)
    async def list_items(
        request: Request,
        page: int = Query(1, ge=1),
        limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
        sort: str = Query(res.default_sort),
        order: str = Query(res.default_order, pattern="^(asc|desc)$"),
        q: Optional[str] = Query(None, description="search text"),
        user: Optional[Identity] = Depends(optional_user),
        repo: SheetRepository = Depends(get_repo),
    ):
        _check_reader(res, user)
        filters = {name: request.query_params.get(name) for name in res.filters}
        exact = {"status": res.public_status} if user is None else None
        return await repo.query(
            res.sheet,
            page=page,
            limit=limit,
            sort_field=sort,
            sort_direction=order,
            filters=filters,
            exact=exact,
            text=q,
            text_fields=res.search_fields,
        )

    @r.get("/{item_id}")
    async def get_item(
        item_id: str,
        user: Optional[Identity] = Depends(optional_user),
        repo: SheetRepository = Depends(get_repo),
    ):
        _check_reader(res, user)
        located = await repo.get_by_id(res.sheet, item_id)
        if located is None or not _visible(res, located.record, user):
            raise not_found(res.label)
        record = located.record
        if user is not None and res.read_transition:
            before, after = res.read_transition
            if record.get("status") == before:
                record = await repo.update(res.sheet, item_id, {"status": after}) or record
        return record

    @r.post("", status_code=status.HTTP_201_CREATED)
    async def create_item(
        response: Response,
        body: Dict[str, Any] = Body(...),
        user: Optional[Identity] = Depends(optional_user),
        repo: SheetRepository = Depends(get_repo),
        idem_key: str | None = Header(default=None, alias="Idempotency-Key"),
    ):
        _check_writer(res, user, creating=True)
        require_fields(body, *res.required)
        fields = {k: v for k, v in body.items() if k not in PROTECTED_FIELDS}
        for key, value in res.defaults.items():
            fields.setdefault(key, value)
        if res.public_create_status is not None:
            fields["status"] = res.public_create_status
        elif "status" in fields:
            _check_status(res, fields["status"])
        if res.prepare is not None:
            res.prepare(fields, user)

        async def make() -> Dict[str, Any]:
            fields["id"] = generate_entity_id(res.kind)
            if res.slug_source:
                base = fields.get("slug") or fields.get(res.slug_source) or fields["id"]
                fields["slug"] = await _slug(repo, str(base), fields["id"])
            return await repo.create(res.sheet, fields)

        return await idempotent(res.path, idem_key, response, make)

    @r.put("/{item_id}")
    async def update_item(
        item_id: str,
        body: Dict[str, Any] = Body(...),
        _: Identity = Depends(editor),
        repo: SheetRepository = Depends(get_repo),
    ):
        fields = dict(body)
        if "status" in fields:
            _check_status(res, fields["status"])
        if res.slug_source and ("slug" in fields or res.slug_source in fields):
            located = await repo.get_by_id(res.sheet, item_id)
            if located is None:
                raise not_found(res.label)
            current = located.record
            if fields.get("slug") and fields["slug"] != current.get("slug"):
                fields["slug"] = await _slug(repo, str(fields["slug"]), item_id, exclude_id=item_id)
            elif fields.get(res.slug_source) and fields[res.slug_source] != current.get(res.slug_source):
                fields["slug"] = await _slug(repo, str(fields[res.slug_source]), item_id, exclude_id=item_id)
            else:
                fields.pop("slug", None)
        updated = await repo.update(res.sheet, item_id, fields)
        if updated is None:
            raise not_found(res.label)
        return updated

    @r.delete("/{item_id}")
    async def delete_item(
        item_id: str,
        _: Identity = Depends(editor),
        repo: SheetRepository = Depends(get_repo),
    ):
        if not await repo.remove(res.sheet, item_id):
            raise not_found(res.label)
        return {"deleted": True}

    return r


def blog_extras() -> APIRouter:
    r = APIRouter(prefix="/api/blog", tags=["blog"])

    @r.put("/{item_id}/view")
    async def increment_views(item_id: str, repo: SheetRepository = Depends(get_repo)):
        located = await repo.get_by_id(Sheet.BLOG_POSTS, item_id)
        if located is None or located.record.get("status") != "published":
            raise not_found("Post")
        updated = await repo.increment(Sheet.BLOG_POSTS, item_id, "views")
        if updated is None:
            raise not_found("Post")
        return {"views": int(updated["views"])}

    return r


def _order_key(row: Dict[str, str]) -> Tuple[int, int]:
    # hand-typed non-numeric orders sort last
    order = to_python(Sheet.WEBSITE_CONTENT, row).get("order")
    if isinstance(order, int):
        return (0, order)
    return (1, 0)


def content_extras() -> APIRouter:
    r = APIRouter(prefix="/api/content", tags=["content"])

    @r.get("/page/{page_name}")
    async def content_for_page(
        page_name: str,
        _: Identity = Depends(require_min_role("viewer")),
        repo: SheetRepository = Depends(get_repo),
    ):
        rows = await repo.get_by_field(Sheet.WEBSITE_CONTENT, "page", page_name)
        return {"items": sorted(rows, key=_order_key)}

    return r


RESOURCES: Tuple[Resource, ...] = (
    Resource(
        path="blog",
        sheet=Sheet.BLOG_POSTS,
        label="Post",
        kind="post",
        required=("title", "content"),
        filters=("status", "category"),
        search_fields=("title", "content", "excerpt"),
        slug_source="title",
        slug_lookup=True,
        public_status="published",
        statuses=("draft", "published", "archived"),
        lookups=("category",),
        default_sort="date",
        defaults={"status": "draft", "views": 0},
        prepare=_prepare_post,
    ),
    Resource(
        path="products",
        sheet=Sheet.PRODUCTS,
        label="Product",
        kind="product",
        required=("name",),
        filters=("status", "category"),
        search_fields=("name", "description", "sku"),
        slug_source="name",
        slug_lookup=True,
        public_status="active",
        lookups=("category",),
        defaults={"status": "active", "stock": 0},
    ),
    Resource(
        path="categories",
        sheet=Sheet.CATEGORIES,
        label="Category",
        kind="category",
        required=("name",),
        filters=("type", "status"),
        search_fields=("name", "description"),
        slug_source="name",
        public_status="active",
        lookups=("type",),
        reorderable=True,
        default_sort="order",
        default_order="asc",
        defaults={"status": "active", "order": 0},
    ),
    Resource(
        path="faqs",
        sheet=Sheet.FAQS,
        label="FAQ",
        kind="faq",
        required=("question", "answer"),
        filters=("category", "status"),
        search_fields=("question", "answer"),
        public_status="active",
        lookups=("category",),
        reorderable=True,
        default_sort="order",
        default_order="asc",
        defaults={"status": "active", "order": 0},
    ),
    Resource(
        path="testimonials",
        sheet=Sheet.TESTIMONIALS,
        label="Testimonial",
        kind="testimonial",
        required=("name", "review"),
        filters=("status",),
        search_fields=("name", "review"),
        public_status="active",
        reorderable=True,
        default_sort="order",
        default_order="asc",
        defaults={"status": "active", "order": 0, "rating": 5},
    ),
    Resource(
        path="menu",
        sheet=Sheet.MENU_ITEMS,
        label="Menu item",
        kind="menu",
        required=("label", "url"),
        filters=("parent_id", "status"),
        public_status="active",
        reorderable=True,
        default_sort="order",
        default_order="asc",
        defaults={"status": "active", "order": 0, "target": "_self"},
    ),
    Resource(
        path="content",
        sheet=Sheet.WEBSITE_CONTENT,
        label="Content",
        kind="content",
        required=("page", "section"),
        filters=("page", "section"),
        search_fields=("content",),
        default_sort="order",
        default_order="asc",
        defaults={"order": 0},
    ),
    Resource(
        path="images",
        sheet=Sheet.IMAGES,
        label="Image",
        kind="image",
        required=("url",),
        filters=("format",),
        search_fields=("filename",),
        bulk_delete=True,
    ),
    Resource(
        path="contact",
        sheet=Sheet.CONTACT_MESSAGES,
        label="Message",
        kind="contact",
        required=("name", "email", "message"),
        filters=("status",),
        search_fields=("name", "email", "subject", "message"),
        public_create_status="unread",
        statuses=("unread", "read", "replied", "archived"),
        read_transition=("unread", "read"),
        bulk_delete=True,
    ),
    Resource(
        path="funds",
        sheet=Sheet.FUNDS,
        label="Fund request",
        kind="fund",
        required=("name", "email", "amount"),
        filters=("status",),
        search_fields=("name", "email"),
        public_create_status="pending",
        statuses=("pending", "approved", "rejected"),
    ),
)


def routers() -> List[APIRouter]:
    # extras go first: their static segments must not be shadowed by /{item_id}
    out = [blog_extras(), content_extras()]
    out.extend(build_router(res) for res in RESOURCES)
    return out
