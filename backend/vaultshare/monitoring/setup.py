import logging
import time

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

url_cache_hits = Counter("signed_url_cache_hits_total", "Signed URL lookups served from cache")
url_cache_misses = Counter("signed_url_cache_misses_total", "Signed URL lookups sent to the signer")
url_batch_failures = Counter("signed_url_batch_failures_total", "Batch signing exchanges that failed")
url_fallback_requests = Counter("signed_url_fallback_requests_total", "Items resolved through per-item fallback")
url_fallback_failures = Counter("signed_url_fallback_failures_total", "Items that failed every fallback attempt")
gate_transitions = Counter("access_gate_transitions_total", "Access gate state changes", ["state"])
maintenance_runs = Counter("maintenance_runs_total", "Maintenance loop runs")
maintenance_links_expired = Counter("maintenance_links_expired_total", "Share links marked expired by maintenance")
maintenance_cache_swept = Counter("maintenance_cache_swept_total", "Stale signed URLs dropped from cache")
maintenance_duration = Histogram("maintenance_duration_seconds", "Duration of a maintenance run in seconds")

def report_url_lookup(hits: int, misses: int) -> None:
    if hits:
        url_cache_hits.inc(hits)
    if misses:
        url_cache_misses.inc(misses)

def report_batch_failure() -> None:
    url_batch_failures.inc()

def report_fallback(requested: int, failed: int) -> None:
    url_fallback_requests.inc(requested)
    if failed:
        url_fallback_failures.inc(failed)

def report_gate_state(state: str) -> None:
    gate_transitions.labels(state=state).inc()

def report_maintenance(links_expired: int, cache_swept: int, duration: float) -> None:
    """Record maintenance metrics to Prometheus."""
    maintenance_runs.inc()
    if links_expired:
        maintenance_links_expired.inc(links_expired)
    if cache_swept:
        maintenance_cache_swept.inc(cache_swept)
    maintenance_duration.observe(duration)

def setup_monitoring(app: ASGIApp):
    Instrumentator().instrument(app).expose(app, endpoint="/api/metrics", include_in_schema=False)

    @app.middleware("http")
    async def monitor_requests(request: Request, call_next):
        start_time = time.time()
        response = None
        try:
            response = await call_next(request)
        except HTTPException as e:
            logger.exception("HTTP exception: %s %s -> %s", request.method, request.url.path, e.detail)
            response = JSONResponse(status_code=e.status_code, content={"detail": e.detail})
        except Exception as e:
            logger.exception("Unhandled error: %s %s -> %s", request.method, request.url.path, e)
            response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
        finally:
            process_time = time.time() - start_time
            logger.info("method=%s path=%s status=%s duration=%.4fs",
                        request.method, request.url.path,
                        getattr(response, "status_code", "?"), process_time)
        return response
