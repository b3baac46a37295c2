from __future__ import annotations

import functools
from typing import Optional

import anyio


async def to_thread(fn, *a, timeout: Optional[float] = None, **kw):
    """Run a blocking call in a worker thread.

    With a timeout the caller stops waiting after ``timeout`` seconds and
    gets TimeoutError; the worker thread is abandoned, not killed.
    """

    call = functools.partial(fn, *a, **kw)
    if timeout is None:
        return await anyio.to_thread.run_sync(call)
    with anyio.fail_after(timeout):
        return await anyio.to_thread.run_sync(call, abandon_on_cancel=True)
