"""Key/value site settings and the dashboard stats endpoint."""

from __future__ import annotations

import json
from collections import Counter
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from .auth import Identity, require_min_role
from .deps import get_repo, not_found
from .ids import generate_entity_id
from .repository import SheetRepository
from .schema import Sheet
from .validate import to_python

SETTING_TYPES = ("string", "number", "boolean", "json")


def typed_value(record: Dict[str, str]) -> Any:
    value = record.get("setting_value", "")
    kind = record.get("setting_type") or "string"
    if kind == "number":
        try:
            number = float(value)
        except ValueError:
            return value
        return int(number) if number.is_integer() else number
    if kind == "boolean":
        return value.strip().lower() in ("true", "1", "yes", "on")
    if kind == "json":
        try:
            return json.loads(value) if value else None
        except ValueError:
            return value
    return value


def _as_text(value: Any, kind: str) -> str:
    if kind == "json":
        return value if isinstance(value, str) else json.dumps(value, separators=(",", ":"))
    if kind == "boolean":
        return "true" if value in (True, "true", "1", 1, "yes", "on") else "false"
    return str(value)


def _infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (dict, list)):
        return "json"
    return "string"


async def upsert_setting(
    repo: SheetRepository, key: str, value: Any, kind: Optional[str] = None
) -> Dict[str, str]:
    matches = await repo.get_by_field(Sheet.SETTINGS, "setting_key", key)
    current = matches[0] if matches else None
    kind = kind or (current or {}).get("setting_type") or _infer_type(value)
    if kind not in SETTING_TYPES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"setting_type must be one of {', '.join(SETTING_TYPES)}",
        )
    fields = {"setting_value": _as_text(value, kind), "setting_type": kind}
    if current is not None:
        updated = await repo.update(Sheet.SETTINGS, current["id"], fields)
        if updated is not None:
            return updated
    return await repo.create(
        Sheet.SETTINGS,
        {"id": generate_entity_id("setting"), "setting_key": key, **fields},
    )


def settings_router() -> APIRouter:
    r = APIRouter(prefix="/api/settings", tags=["settings"])
    editor = require_min_role("editor")
    viewer = require_min_role("viewer")

    @r.get("")
    async def all_settings(
        _: Identity = Depends(viewer),
        repo: SheetRepository = Depends(get_repo),
    ):
        return {
            rec["setting_key"]: typed_value(rec)
            for rec in await repo.list_all(Sheet.SETTINGS)
            if rec.get("setting_key")
        }

    @r.get("/{key}")
    async def get_setting(
        key: str,
        _: Identity = Depends(viewer),
        repo: SheetRepository = Depends(get_repo),
    ):
        matches = await repo.get_by_field(Sheet.SETTINGS, "setting_key", key)
        if not matches:
            raise not_found("Setting")
        return {"key": key, "value": typed_value(matches[0]), "type": matches[0].get("setting_type") or "string"}

    @r.put("/{key}")
    async def put_setting(
        key: str,
        body: Dict[str, Any] = Body(...),
        _: Identity = Depends(editor),
        repo: SheetRepository = Depends(get_repo),
    ):
        if "value" not in body:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="missing_required:value")
        record = await upsert_setting(repo, key, body["value"], body.get("type"))
        return {"key": key, "value": typed_value(record), "type": record["setting_type"]}

    @r.put("")
    async def put_settings(
        body: Dict[str, Any] = Body(...),
        _: Identity = Depends(editor),
        repo: SheetRepository = Depends(get_repo),
    ):
        out = {}
        for key, value in body.items():
            record = await upsert_setting(repo, key, value)
            out[key] = typed_value(record)
        return out

    return r


def _by(records: Iterable[Dict[str, str]], field: str) -> Dict[str, int]:
    return dict(Counter(rec.get(field) or "" for rec in records))


# (sheet, activity type, action, title builder) for the recent feed
_ACTIVITY_SOURCES = (
    (Sheet.BLOG_POSTS, "blog", "created", lambda rec: rec.get("title", "")),
    (Sheet.PRODUCTS, "product", "created", lambda rec: rec.get("name", "")),
    (Sheet.TESTIMONIALS, "testimonial", "created", lambda rec: f"Testimonial from {rec.get('name', '')}"),
    (Sheet.CONTACT_MESSAGES, "message", "received", lambda rec: f"Message from {rec.get('name', '')}"),
)
MAX_RECENT = 50


def stats_router() -> APIRouter:
    r = APIRouter(prefix="/api/stats", tags=["stats"])
    viewer = require_min_role("viewer")

    @r.get("/overview")
    async def overview(
        _: Identity = Depends(viewer),
        repo: SheetRepository = Depends(get_repo),
    ):
        posts = await repo.list_all(Sheet.BLOG_POSTS)
        products = await repo.list_all(Sheet.PRODUCTS)
        categories = await repo.list_all(Sheet.CATEGORIES)
        users = await repo.list_all(Sheet.ADMIN_USERS)
        messages = await repo.list_all(Sheet.CONTACT_MESSAGES)
        views = sum(
            p["views"] for p in (to_python(Sheet.BLOG_POSTS, rec) for rec in posts)
            if isinstance(p["views"], int)
        )
        value = sum(
            (p["price"] for p in (to_python(Sheet.PRODUCTS, rec) for rec in products)
             if isinstance(p["price"], Decimal)),
            Decimal(0),
        )
        return {
            "blogs": {"total": len(posts), "by_status": _by(posts, "status"), "total_views": views},
            "products": {"total": len(products), "by_status": _by(products, "status"), "total_value": float(value)},
            "categories": {"total": len(categories), "by_type": _by(categories, "type")},
            "users": {
                "total": len(users),
                "by_role": _by(users, "role"),
                "by_status": _by(users, "status"),
            },
            "messages": {"total": len(messages), "by_status": _by(messages, "status")},
        }

    @r.get("/recent")
    async def recent(
        limit: int = Query(10, ge=1, le=MAX_RECENT),
        _: Identity = Depends(viewer),
        repo: SheetRepository = Depends(get_repo),
    ):
        activities: List[Dict[str, Any]] = []
        latest: Dict[str, List[Dict[str, str]]] = {}
        for sheet, kind, action, title in _ACTIVITY_SOURCES:
            page = await repo.query(sheet, page=1, limit=limit)
            latest[kind] = page.items
            activities.extend(
                {
                    "type": kind,
                    "action": action,
                    "title": title(rec),
                    "id": rec.get("id"),
                    "timestamp": rec.get("created_at"),
                    "status": rec.get("status"),
                }
                for rec in page.items
            )
        activities.sort(key=lambda item: item["timestamp"] or "", reverse=True)
        return {
            "activities": activities[:limit],
            "recent_blogs": latest["blog"][:5],
            "recent_products": latest["product"][:5],
            "recent_messages": latest["message"][:5],
        }

    @r.get("")
    async def dashboard(
        _: Identity = Depends(viewer),
        repo: SheetRepository = Depends(get_repo),
    ):
        posts = await repo.list_all(Sheet.BLOG_POSTS)
        typed = [to_python(Sheet.BLOG_POSTS, post) for post in posts]
        views = sum(p["views"] for p in typed if isinstance(p["views"], int))
        return {
            "posts": {
                "total": len(posts),
                "published": await repo.count(Sheet.BLOG_POSTS, {"status": "published"}),
                "drafts": await repo.count(Sheet.BLOG_POSTS, {"status": "draft"}),
                "views": views,
            },
            "products": {
                "total": await repo.count(Sheet.PRODUCTS),
                "active": await repo.count(Sheet.PRODUCTS, {"status": "active"}),
                "categories": len(await repo.distinct(Sheet.PRODUCTS, "category")),
            },
            "messages": {
                "total": await repo.count(Sheet.CONTACT_MESSAGES),
                "unread": await repo.count(Sheet.CONTACT_MESSAGES, {"status": "unread"}),
            },
            "funds": {
                "total": await repo.count(Sheet.FUNDS),
                "pending": await repo.count(Sheet.FUNDS, {"status": "pending"}),
            },
            "testimonials": await repo.count(Sheet.TESTIMONIALS),
            "faqs": await repo.count(Sheet.FAQS),
            "users": await repo.count(Sheet.ADMIN_USERS),
        }

    return r
