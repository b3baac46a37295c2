"""Password hashing, bearer tokens and role checks.

Tokens are trusted on their signed claims alone; the user sheet is not
consulted per request.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import bcrypt
from fastapi import Depends, Header, HTTPException, status
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from .config import settings

ROLE_HIERARCHY = ["viewer", "editor", "admin", "super_admin"]


class Identity(BaseModel):
    id: str
    email: str = ""
    username: str = ""
    role: str = "viewer"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=10)).decode()


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


def create_access_token(
    user_id: str,
    email: str,
    role: str,
    username: str = "",
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRE_MINUTES))
    claims = {
        "sub": user_id,
        "email": email,
        "role": role,
        "username": username,
        "iss": settings.JWT_ISSUER,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Identity:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
        )
    except ExpiredSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="token expired",
        ) from exc
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid token",
        ) from exc
    if not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")
    return Identity(
        id=payload["sub"],
        email=payload.get("email", ""),
        username=payload.get("username", ""),
        role=payload.get("role", "viewer"),
    )


def _bearer(authorization: str | None) -> str | None:
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


def require_user(authorization: str | None = Header(default=None)) -> Identity:
    token = _bearer(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing token")
    return decode_token(token)


def optional_user(authorization: str | None = Header(default=None)) -> Optional[Identity]:
    token = _bearer(authorization)
    if not token:
        return None
    try:
        return decode_token(token)
    except HTTPException:
        return None


def _rank(role: str) -> int:
    return ROLE_HIERARCHY.index(role) if role in ROLE_HIERARCHY else -1


def has_min_role(user: Identity, role: str) -> bool:
    return _rank(user.role) >= _rank(role)


def require_role(*roles: str) -> Callable[..., Identity]:
    def _check(user: Identity = Depends(require_user)) -> Identity:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient role")
        return user

    return _check


def require_min_role(role: str) -> Callable[..., Identity]:
    def _check(user: Identity = Depends(require_user)) -> Identity:
        if not has_min_role(user, role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient role")
        return user

    return _check
