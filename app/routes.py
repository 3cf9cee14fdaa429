"""FastAPI route definitions for the URL shortener REST API.

This module provides all HTTP endpoints with dependency injection and maps
the service layer's typed failures onto HTTP status codes. It is the only
module that knows about status codes.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/shorten
        ├─ URLCreate (request body)
        └─ URLResponse (201) or 409/422/500

    GET  /api/stats/:short_code
        └─ URLStats (200) or 404/500

    GET  /:short_code
        └─ 307 Redirect or 404/500

Error Mapping
=============
::
    CodeConflictError          → 409 (message)
    NotFoundError              → 404 "Short URL not found"
    AllocationExhaustedError   → 500 "Internal server error"
    BackendFailureError        → 500 "Internal server error"

Key Behaviours
===============
- All endpoints use async/await for non-blocking I/O.
- Backend details are logged, never returned to the client.
- Expired codes redirect like unknown codes (404).
- 307 redirects preserve the HTTP method.
- Visit recording never delays or fails the redirect.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from app.database import ping_db
from app.dependencies import RequestContext, get_request_context, get_url_service
from app.enums import HealthStatus
from app.errors import AllocationExhaustedError, BackendFailureError, CodeConflictError, NotFoundError
from app.schemas import HealthResponse, URLCreate, URLResponse, URLStats, VisitRecord
from app.url_service import URLShorteningService

__all__ = ["router"]

router = APIRouter()

NOT_FOUND_DETAIL = "Short URL not found"
INTERNAL_ERROR_DETAIL = "Internal server error"


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    ctx.logger.info("Health check requested")
    db_status = HealthStatus.HEALTHY

    try:
        await ping_db(ctx.database)
        ctx.logger.debug("Database health check passed")
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    ctx.logger.info(f"Health check completed: {db_status.value}")
    return HealthResponse(status=db_status, database=db_status)


@router.post("/api/shorten", response_model=URLResponse, status_code=201, tags=["urls"])
async def shorten_url(
    payload: URLCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> URLResponse:
    ctx.add_tag("url_creation")

    ctx.logger.info(
        f"URL shortening requested: {payload.url}",
        extra={
            "operation": "create_short_url",
            "target_url": payload.url,
            "custom_code": payload.custom_code,
        },
    )

    try:
        mapping = await service.create_short_url(payload)
    except CodeConflictError as exc:
        ctx.logger.warning(
            f"URL shortening failed: {exc}",
            extra={"operation": "create_short_url", "error": "conflict", "duration_ms": ctx.get_duration()},
        )
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except (AllocationExhaustedError, BackendFailureError) as exc:
        ctx.logger.error(
            f"URL shortening failed: {exc}",
            extra={"operation": "create_short_url", "error": type(exc).__name__, "duration_ms": ctx.get_duration()},
        )
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL) from exc

    ctx.logger.info(
        f"URL shortened successfully: {mapping.code}",
        extra={"operation": "create_short_url", "short_code": mapping.code, "duration_ms": ctx.get_duration()},
    )
    return URLResponse.from_mapping(mapping, service.settings.BASE_URL)


@router.get("/api/stats/{short_code}", response_model=URLStats, tags=["urls"])
async def get_stats(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> URLStats:
    ctx.logger.info(f"Stats requested for short code: {short_code}")
    try:
        snapshot = await service.get_url_statistics(short_code)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL) from exc
    except BackendFailureError as exc:
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL) from exc

    summary = URLResponse.from_mapping(snapshot.mapping, service.settings.BASE_URL)
    return URLStats(
        short_code=summary.short_code,
        original_url=summary.original_url,
        short_url=summary.short_url,
        created_at=summary.created_at,
        expires_at=summary.expires_at,
        total_visits=snapshot.total_visits,
        visits=[VisitRecord.model_validate(visit) for visit in snapshot.visits],
    )


@router.get("/{short_code}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")

    ctx.logger.info(
        f"Redirect requested for short code: {short_code}",
        extra={
            "operation": "redirect",
            "short_code": short_code,
            "user_agent": ctx.user_agent,
            "client_ip": ctx.client_ip,
        },
    )

    try:
        mapping = await service.resolve_redirect(short_code, ctx.client_ip, ctx.user_agent)
    except NotFoundError as exc:
        ctx.logger.warning(
            f"Redirect failed - short code not found: {short_code}",
            extra={"operation": "redirect", "short_code": short_code, "error": "not_found"},
        )
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL) from exc
    except BackendFailureError as exc:
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL) from exc

    ctx.logger.info(
        f"Redirect successful: {short_code} -> {mapping.original_url}",
        extra={
            "operation": "redirect",
            "short_code": short_code,
            "target_url": mapping.original_url,
            "duration_ms": ctx.get_duration(),
        },
    )

    return RedirectResponse(url=mapping.original_url, status_code=307)
