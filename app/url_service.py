"""URL Shortener Service Layer - Core Business Logic

This module owns the three core operations of the service: short-code
allocation, redirect resolution, and visit statistics. Routes call into
``URLShorteningService``; the service talks to the relational backend and
hands visit writes to the background ``VisitRecorder``.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                    Service Layer                            │
    │  ┌─────────────────┐  ┌─────────────────┐  ┌──────────────┐ │
    │  │   Allocation    │  │    Redirect     │  │    Stats     │ │
    │  │                 │  │                 │  │              │ │
    │  │ • Custom codes  │  │ • Lookup        │  │ • Mapping    │ │
    │  │ • Generated     │  │ • Expiration    │  │ • Recent 100 │ │
    │  │ • Retry budget  │  │ • Visit submit  │  │ • Full count │ │
    │  └─────────────────┘  └─────────────────┘  └──────────────┘ │
    └─────────────────────────────────────────────────────────────┘
                │                    │                    │
                ▼                    ▼                    ▼
    ┌─────────────────────────────────────────────────────────────┐
    │        PostgreSQL (urls, visits) — unique key on code        │
    └─────────────────────────────────────────────────────────────┘

Request Flow Diagrams
=====================

URL Creation Flow
-----------------
::
    ┌─────────────┐
    │  POST /api  │
    │  /shorten    │
    └──────┬──────┘
           ▼
    ┌─────────────┐   custom code
    │ custom_code?│─────────────────────┐
    └──────┬──────┘                     ▼
           │ generated           ┌─────────────┐
           ▼                     │ exists?     │── yes ─▶ CodeConflict
    ┌─────────────┐              └──────┬──────┘
    │ candidate   │◀──┐                 ▼
    │ (6 chars)   │   │          ┌─────────────┐
    └──────┬──────┘   │          │ INSERT      │── dup key ─▶ CodeConflict
           ▼          │          └─────────────┘
    ┌─────────────┐   │ retry
    │ exists? or  │───┘ (1 + MAX_CODE_RETRIES attempts,
    │ dup on      │      then AllocationExhausted)
    │ INSERT?     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ 201 mapping │
    └─────────────┘

Redirect Flow
-------------
::
    ┌─────────────┐
    │  GET /:code │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SELECT by   │── missing ─▶ NotFound
    │ code        │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ expired?    │── yes ─▶ NotFound
    └──────┬──────┘
           ▼
    ┌─────────────┐      ┌──────────────────┐
    │ submit visit│─────▶│ background INSERT │
    └──────┬──────┘      └──────────────────┘
           ▼
    ┌─────────────┐
    │ 307 Redirect │
    └─────────────┘

Key Behaviours
==============
- The INSERT is the authoritative uniqueness gate; the preceding existence
  check only avoids a wasted write. A duplicate-key failure at INSERT maps
  to ``CodeConflictError`` for custom codes and to a regeneration for
  generated codes.
- Expired and missing codes are both ``NotFoundError`` on redirect; stats
  ignore expiration.
- Recent visits are ordered ``visited_at DESC, id DESC``.
- Any other SQLAlchemy failure surfaces as ``BackendFailureError``.

Usage Examples
=============

```python
@router.post("/api/shorten")
async def shorten_url(
    payload: URLCreate,
    service: URLShorteningService = Depends(get_url_service),
) -> URLResponse:
    mapping = await service.create_short_url(payload)
    return URLResponse.from_mapping(mapping, service.settings.BASE_URL)
```
"""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.enums import RequestStatus
from app.errors import AllocationExhaustedError, BackendFailureError, CodeConflictError, NotFoundError
from app.models import UrlMapping, Visit, utcnow
from app.schemas import URLCreate
from app.service import generate_short_code, is_reserved_code

if TYPE_CHECKING:
    from app.dependencies import RequestContext

__all__ = ["StatsSnapshot", "URLShorteningService"]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

URL_CREATION_REQUESTS_TOTAL = Counter(
    "url_shortener_creation_requests_total",
    "Total URL creation requests",
    ["status"],
)
URL_CREATION_DURATION = Histogram(
    "url_shortener_creation_duration_seconds",
    "Time taken to create short URLs",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
CODE_COLLISIONS_TOTAL = Counter(
    "url_shortener_code_collisions_total",
    "Generated candidates rejected because the code was taken",
)
URL_REDIRECT_REQUESTS_TOTAL = Counter(
    "url_shortener_redirect_requests_total",
    "Total URL redirect resolutions",
    ["status"],
)
URL_STATS_REQUESTS_TOTAL = Counter(
    "url_shortener_stats_requests_total",
    "Total URL statistics requests",
    ["status"],
)
DATABASE_READS_TOTAL = Counter(
    "url_shortener_database_reads_total",
    "Total database read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "url_shortener_database_writes_total",
    "Total database write operations",
)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class StatsSnapshot:
    """Mapping metadata plus a bounded, newest-first visit window."""

    mapping: UrlMapping
    total_visits: int
    visits: list[Visit] = field(default_factory=list)


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================

class URLShorteningService:
    """Core service class for URL shortening operations.

    Example:
        >>> service = URLShorteningService.from_context(ctx)
        >>> mapping = await service.create_short_url(URLCreate(url="https://example.com"))
        >>> print(f"Shortened: {mapping.code}")
    """

    def __init__(self, ctx: "RequestContext", code_generator: Callable[[int], str] | None = None):
        """Initialize service from a request context.

        Args:
            ctx: Request context carrying the session, logger, settings and
                visit recorder.
            code_generator: Candidate generator taking a length; defaults to
                ``generate_short_code``.
        """
        self._db = ctx.database
        self._logger = ctx.logger
        self._settings = ctx.settings
        self._visit_recorder = ctx.visit_recorder
        self._code_generator = code_generator or generate_short_code

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "URLShorteningService":
        return cls(ctx)

    @property
    def settings(self):
        return self._settings

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_short_url(self, request: URLCreate) -> UrlMapping:
        """Allocate a code for ``request.url`` and persist the mapping.

        Args:
            request: Validated creation request.

        Returns:
            UrlMapping: The committed mapping.

        Raises:
            CodeConflictError: The custom code is already taken.
            AllocationExhaustedError: No free generated code within the retry budget.
            BackendFailureError: Any other persistence failure.
        """
        start_time = time.perf_counter()
        status = RequestStatus.ERROR
        try:
            self._logger.info(f"Creating short URL for: {request.url}")
            if request.custom_code:
                mapping = await self._allocate_custom_code(request)
            else:
                mapping = await self._allocate_generated_code(request)
            status = RequestStatus.SUCCESS
            self._logger.info(
                f"URL created successfully: {mapping.code} in {time.perf_counter() - start_time:.3f}s"
            )
            return mapping

        except CodeConflictError as exc:
            status = RequestStatus.CONFLICT
            self._logger.warning(f"URL creation failed: {exc}")
            raise

        except AllocationExhaustedError as exc:
            status = RequestStatus.EXHAUSTED
            self._logger.error(f"URL creation failed: {exc}")
            raise

        finally:
            URL_CREATION_DURATION.observe(time.perf_counter() - start_time)
            URL_CREATION_REQUESTS_TOTAL.labels(status=status).inc()

    async def resolve_redirect(
        self,
        short_code: str,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> UrlMapping:
        """Resolve an active mapping and queue a visit for it.

        The visit write runs in the background; this method returns as soon
        as the mapping is known to be active.

        Raises:
            NotFoundError: The code is unknown or its mapping has expired.
            BackendFailureError: The lookup itself failed.
        """
        mapping = await self._fetch_mapping(short_code)
        if mapping is None:
            URL_REDIRECT_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND).inc()
            raise NotFoundError(short_code)

        if mapping.is_expired():
            URL_REDIRECT_REQUESTS_TOTAL.labels(status=RequestStatus.EXPIRED).inc()
            self._logger.info(f"Redirect refused for expired code: {short_code}")
            raise NotFoundError(short_code)

        self._visit_recorder.submit(mapping.code, client_ip, user_agent)
        URL_REDIRECT_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        return mapping

    async def get_url_statistics(self, short_code: str) -> StatsSnapshot:
        """Return the mapping, its total visit count and the recent visits.

        Expired mappings are still reported. The count and the window are
        two separate reads and may observe slightly different states.

        Raises:
            NotFoundError: The code was never allocated.
            BackendFailureError: A read failed.
        """
        self._logger.info(f"Getting statistics for code: {short_code}")

        mapping = await self._fetch_mapping(short_code)
        if mapping is None:
            URL_STATS_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND).inc()
            self._logger.warning(f"Statistics not found for code: {short_code}")
            raise NotFoundError(short_code)

        limit = self._settings.STATS_RECENT_VISITS_LIMIT
        with self._backend_errors("stats"):
            visits_result = await self._db.execute(
                select(Visit)
                .where(Visit.url_code == short_code)
                .order_by(Visit.visited_at.desc(), Visit.id.desc())
                .limit(limit)
            )
            visits = list(visits_result.scalars().all())

            count_result = await self._db.execute(
                select(func.count()).select_from(Visit).where(Visit.url_code == short_code)
            )
            total_visits = count_result.scalar_one()
        DATABASE_READS_TOTAL.inc(2)

        URL_STATS_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        return StatsSnapshot(mapping=mapping, total_visits=total_visits, visits=visits)

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _allocate_custom_code(self, request: URLCreate) -> UrlMapping:
        code = request.custom_code
        if await self._code_exists(code):
            raise CodeConflictError(code)

        mapping = await self._insert_mapping(code, request)
        if mapping is None:
            # lost a race with a concurrent writer between check and insert
            raise CodeConflictError(code)
        return mapping

    async def _allocate_generated_code(self, request: URLCreate) -> UrlMapping:
        attempts = self._settings.MAX_CODE_RETRIES + 1
        for attempt in range(1, attempts + 1):
            candidate = self._code_generator(self._settings.SHORT_CODE_LENGTH)

            if is_reserved_code(candidate) or await self._code_exists(candidate):
                CODE_COLLISIONS_TOTAL.inc()
                self._logger.debug(f"Generated code collision on attempt {attempt}: {candidate}")
                continue

            mapping = await self._insert_mapping(candidate, request)
            if mapping is not None:
                return mapping

            CODE_COLLISIONS_TOTAL.inc()
            self._logger.warning(f"Duplicate key on insert for generated code: {candidate}")

        raise AllocationExhaustedError(attempts)

    async def _code_exists(self, code: str) -> bool:
        with self._backend_errors("existence check"):
            result = await self._db.execute(select(UrlMapping.code).where(UrlMapping.code == code))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none() is not None

    async def _fetch_mapping(self, code: str) -> UrlMapping | None:
        with self._backend_errors("lookup"):
            result = await self._db.execute(select(UrlMapping).where(UrlMapping.code == code))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    async def _insert_mapping(self, code: str, request: URLCreate) -> UrlMapping | None:
        """INSERT the mapping; ``None`` means the code was taken at commit time."""
        mapping = UrlMapping(
            code=code,
            original_url=str(request.url),
            created_at=utcnow(),
            expires_at=request.expires_at,
        )
        self._db.add(mapping)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            return None
        except SQLAlchemyError as exc:
            await self._db.rollback()
            self._logger.exception(f"Insert failed for code: {code}")
            raise BackendFailureError("insert", exc) from exc

        DATABASE_WRITES_TOTAL.inc()
        return mapping

    @contextmanager
    def _backend_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self._logger.exception(f"Database error during {operation}")
            raise BackendFailureError(operation, exc) from exc
