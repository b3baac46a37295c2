from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQS = Counter(
    "sheetcms_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "sheetcms_latency_seconds",
    "Latency",
    ["method", "path"],
)
SHEET_CALLS = Counter(
    "sheetcms_sheet_calls_total",
    "Calls made to the spreadsheet service",
    ["op", "outcome"],
)
SHEET_LAT = Histogram(
    "sheetcms_sheet_call_seconds",
    "Spreadsheet service call latency",
    ["op"],
)
CACHE_EVENTS = Counter(
    "sheetcms_cache_events_total",
    "Sheet cache hits, misses, invalidations and discarded stale reads",
    ["sheet", "event"],
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r
