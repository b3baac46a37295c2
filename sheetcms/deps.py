"""FastAPI dependencies and small helpers shared by the route modules."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import HTTPException, Request, Response, status

from . import idempotency
from .blocking import to_thread
from .config import settings
from .repository import SheetRepository


def get_repo(request: Request) -> SheetRepository:
    """Return the repository the app factory attached to app state."""

    return request.app.state.repo


def not_found(label: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")


def require_fields(body: Dict[str, Any], *names: str) -> None:
    """Raise 422 listing every named field that is missing or blank."""

    missing = [name for name in names if body.get(name) in (None, "")]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"missing_required:{','.join(missing)}",
        )


async def idempotent(
    scope: str,
    key: Optional[str],
    response: Response,
    make: Callable[[], Awaitable[Dict[str, Any]]],
    status_code: int = status.HTTP_201_CREATED,
) -> Dict[str, Any]:
    """Run ``make`` once per Idempotency-Key and replay its result afterwards."""

    if key:
        hit = await to_thread(idempotency.lookup, scope, key, settings.IDEMPOTENCY_TTL_SECONDS)
        if hit is not None:
            response.headers["Idempotency-Replayed"] = "1"
            response.status_code = hit.status_code
            return hit.response or {}
    out = await make()
    response.status_code = status_code
    if key:
        await to_thread(idempotency.save, scope, key, status_code, out)
    return out
