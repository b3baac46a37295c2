"""Login, token and admin-user management routes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel

from .auth import (
    ROLE_HIERARCHY,
    Identity,
    create_access_token,
    hash_password,
    require_min_role,
    require_role,
    require_user,
    verify_password,
)
from .config import settings
from .deps import get_repo, not_found, require_fields
from .errors import ConflictError
from .ids import generate_entity_id
from .repository import Page, SheetRepository
from .schema import Sheet

log = logging.getLogger(__name__)

USER_STATUSES = ("active", "inactive", "suspended")
MIN_PASSWORD_LENGTH = 8


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    token: str
    user: Dict[str, Any]


def public_user(record: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in record.items() if k != "password_hash"}


def _check_role(role: Any) -> None:
    if role not in ROLE_HIERARCHY:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"role must be one of {', '.join(ROLE_HIERARCHY)}",
        )


def _check_password(password: Any) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"password must be at least {MIN_PASSWORD_LENGTH} characters",
        )


async def _unique(
    repo: SheetRepository, body: Dict[str, Any], exclude_id: Optional[str] = None
) -> None:
    for field in ("username", "email"):
        value = body.get(field)
        if value and await repo.exists_by_field(Sheet.ADMIN_USERS, field, str(value), exclude_id):
            raise ConflictError(f"{field} already exists")


async def _find_login(repo: SheetRepository, login: str) -> Optional[Dict[str, str]]:
    for field in ("email", "username"):
        matches = await repo.get_by_field(Sheet.ADMIN_USERS, field, login)
        if matches:
            return matches[0]
    return None


def auth_router() -> APIRouter:
    r = APIRouter(prefix="/api/auth", tags=["auth"])

    @r.post("/login", response_model=LoginResponse)
    async def login(body: LoginRequest, repo: SheetRepository = Depends(get_repo)):
        user = await _find_login(repo, body.email)
        # one message for every failure so usernames cannot be probed
        if user is None or not verify_password(body.password, user.get("password_hash", "")):
            log.info("failed login for %s", body.email)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid credentials")
        if user.get("status") != "active":
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="account is not active")
        updated = await repo.update(
            Sheet.ADMIN_USERS, user["id"], {"last_login": datetime.now(timezone.utc)}
        )
        user = updated or user
        token = create_access_token(
            user["id"], user.get("email", ""), user.get("role", "viewer"), user.get("username", "")
        )
        return LoginResponse(token=token, user=public_user(user))

    @r.post("/register", status_code=status.HTTP_201_CREATED)
    async def register(
        body: Dict[str, Any] = Body(...),
        _: Identity = Depends(require_role("super_admin")),
        repo: SheetRepository = Depends(get_repo),
    ):
        return await _create_user(repo, body)

    @r.get("/verify")
    async def verify(
        user: Identity = Depends(require_user),
        repo: SheetRepository = Depends(get_repo),
    ):
        located = await repo.get_by_id(Sheet.ADMIN_USERS, user.id)
        if located is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="user not found")
        return {"valid": True, "user": public_user(located.record)}

    @r.get("/me")
    async def me(
        user: Identity = Depends(require_user),
        repo: SheetRepository = Depends(get_repo),
    ):
        located = await repo.get_by_id(Sheet.ADMIN_USERS, user.id)
        if located is None:
            raise not_found("User")
        return public_user(located.record)

    @r.put("/change-password")
    async def change_password(
        body: Dict[str, Any] = Body(...),
        user: Identity = Depends(require_user),
        repo: SheetRepository = Depends(get_repo),
    ):
        require_fields(body, "current_password", "new_password")
        _check_password(body["new_password"])
        located = await repo.get_by_id(Sheet.ADMIN_USERS, user.id)
        if located is None:
            raise not_found("User")
        if not verify_password(str(body["current_password"]), located.record.get("password_hash", "")):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid credentials")
        await repo.update(
            Sheet.ADMIN_USERS, user.id, {"password_hash": hash_password(body["new_password"])}
        )
        return {"changed": True}

    return r


async def _create_user(repo: SheetRepository, body: Dict[str, Any]) -> Dict[str, str]:
    require_fields(body, "username", "email", "password")
    _check_password(body["password"])
    role = body.get("role") or "editor"
    _check_role(role)
    await _unique(repo, body)
    created = await repo.create(
        Sheet.ADMIN_USERS,
        {
            "id": generate_entity_id("user"),
            "username": body["username"],
            "email": body["email"],
            "password_hash": hash_password(body["password"]),
            "role": role,
            "status": body.get("status") or "active",
        },
    )
    return public_user(created)


def users_router() -> APIRouter:
    r = APIRouter(prefix="/api/users", tags=["users"])
    admin = require_min_role("admin")

    @r.get("", response_model=Page)
    async def list_users(
        page: int = Query(1, ge=1),
        limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
        role: Optional[str] = None,
        status_: Optional[str] = Query(None, alias="status"),
        q: Optional[str] = None,
        _: Identity = Depends(admin),
        repo: SheetRepository = Depends(get_repo),
    ):
        result = await repo.query(
            Sheet.ADMIN_USERS,
            page=page,
            limit=limit,
            exact={"role": role, "status": status_},
            text=q,
            text_fields=("username", "email"),
        )
        result.items = [public_user(item) for item in result.items]
        return result

    @r.get("/{user_id}")
    async def get_user(
        user_id: str,
        _: Identity = Depends(admin),
        repo: SheetRepository = Depends(get_repo),
    ):
        located = await repo.get_by_id(Sheet.ADMIN_USERS, user_id)
        if located is None:
            raise not_found("User")
        return public_user(located.record)

    @r.post("", status_code=status.HTTP_201_CREATED)
    async def create_user(
        body: Dict[str, Any] = Body(...),
        _: Identity = Depends(admin),
        repo: SheetRepository = Depends(get_repo),
    ):
        return await _create_user(repo, body)

    @r.put("/{user_id}")
    async def update_user(
        user_id: str,
        body: Dict[str, Any] = Body(...),
        _: Identity = Depends(admin),
        repo: SheetRepository = Depends(get_repo),
    ):
        changes = {k: v for k, v in body.items() if k in ("username", "email", "role", "status")}
        if "role" in changes:
            _check_role(changes["role"])
        if "status" in changes and changes["status"] not in USER_STATUSES:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid status")
        if body.get("password"):
            _check_password(body["password"])
            changes["password_hash"] = hash_password(body["password"])
        await _unique(repo, changes, exclude_id=user_id)
        updated = await repo.update(Sheet.ADMIN_USERS, user_id, changes)
        if updated is None:
            raise not_found("User")
        return public_user(updated)

    @r.put("/{user_id}/status")
    async def set_user_status(
        user_id: str,
        body: Dict[str, Any] = Body(...),
        user: Identity = Depends(admin),
        repo: SheetRepository = Depends(get_repo),
    ):
        require_fields(body, "status")
        if body["status"] not in USER_STATUSES:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid status")
        if user_id == user.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="cannot change your own status")
        updated = await repo.update(Sheet.ADMIN_USERS, user_id, {"status": body["status"]})
        if updated is None:
            raise not_found("User")
        return public_user(updated)

    @r.delete("/{user_id}")
    async def delete_user(
        user_id: str,
        user: Identity = Depends(admin),
        repo: SheetRepository = Depends(get_repo),
    ):
        if user_id == user.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="cannot delete yourself")
        if not await repo.remove(Sheet.ADMIN_USERS, user_id):
            raise not_found("User")
        return {"deleted": True}

    return r
