"""Dependency injection with a singleton service manager.

This module provides a centralized way to inject the database session,
logger, settings and visit recorder with consistent naming across all API
endpoints, using a singleton for the shared resources to minimize
per-request overhead.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.database import async_session, get_db
from app.service import extract_client_ip
from app.url_service import URLShorteningService
from app.visits import VisitRecorder


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton service manager for shared resources.

    Holds everything that outlives a single request: settings, the
    configured logger and the background visit recorder.
    """

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if not self._initialized:
            self.settings = get_settings()
            self.logger = self._setup_logger()
            self.visit_recorder = VisitRecorder(async_session, self.logger)
            self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("urlshortener")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def cleanup(self) -> None:
        """Wait for queued visit writes, then release shared resources."""
        if hasattr(self, "visit_recorder"):
            pending = self.visit_recorder.pending
            if pending:
                self.logger.info(f"Draining {pending} pending visit writes")
            await self.visit_recorder.drain()
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Adapter that layers per-call ``extra`` over the request context."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request context with tracking and shared resource access.

    Attributes:
        database: Async database session (only per-request resource)
        service_manager: Singleton service manager with shared resources
        request_id: Unique identifier for this request
        user_agent: Client User-Agent header, if any
        client_ip: First X-Forwarded-For entry or "unknown"
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    database: AsyncSession
    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def visit_recorder(self) -> VisitRecorder:
        return self.service_manager.visit_recorder

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get shared logger with request context."""
        return RequestLoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager._initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    """Build the request context from headers and shared resources.

    The client address is taken from ``X-Forwarded-For`` only; without a
    proxy header it is recorded as ``"unknown"``.
    """
    return RequestContext(
        database=db,
        service_manager=manager,
        client_ip=extract_client_ip(request.headers.get("x-forwarded-for")),
        user_agent=request.headers.get("user-agent"),
    )


def get_url_service(ctx: RequestContext = Depends(get_request_context)) -> URLShorteningService:
    return URLShorteningService.from_context(ctx)
