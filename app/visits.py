"""Fire-and-forget visit recording for the redirect path.

The redirect handler must never wait on, or fail because of, the visit log.
``VisitRecorder.submit`` schedules the insert as its own asyncio task with
its own session, so the write survives the request that triggered it.

Flow Diagram — Visit Recording
==============================
::
    ┌─────────────┐
    │ resolve     │
    │ redirect    │
    └──────┬──────┘
           ▼
    ┌─────────────┐      ┌──────────────┐
    │ submit()    │─────▶│ 307 returned │
    │ create_task │      └──────────────┘
    └──────┬──────┘
           ▼ (background)
    ┌─────────────┐
    │ record():   │
    │ new session │
    │ INSERT visit│
    └──────┬──────┘
    OK?   │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ log +   │  │ counter │
│ counter │  │ ++      │
│ discard │  └─────────┘
└─────────┘

Key Behaviours
===============
- Delivery is at-most-once and best-effort; lost visits are acceptable.
- Failures are logged and counted, never raised.
- In-flight tasks are strongly referenced until they finish.
- ``drain()`` waits for in-flight writes (used on shutdown and in tests).
"""

import asyncio
import logging
from collections.abc import Callable

from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Visit, utcnow

__all__ = ["VisitRecorder"]

VISITS_RECORDED_TOTAL = Counter(
    "url_shortener_visits_recorded_total",
    "Visit events persisted by the background recorder",
)
VISIT_WRITE_FAILURES_TOTAL = Counter(
    "url_shortener_visit_write_failures_total",
    "Visit events dropped because the background write failed",
)


class VisitRecorder:
    """Background writer for visit events.

    Args:
        session_factory: Callable returning a new ``AsyncSession`` context manager.
        logger: Logger used to report dropped writes.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._session_factory = session_factory
        self._logger = logger or logging.getLogger("urlshortener")
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, code: str, ip_address: str | None, user_agent: str | None) -> asyncio.Task:
        task = asyncio.create_task(
            self.record(code, ip_address, user_agent),
            name=f"record-visit:{code}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def record(self, code: str, ip_address: str | None, user_agent: str | None) -> bool:
        try:
            async with self._session_factory() as session:
                session.add(
                    Visit(
                        url_code=code,
                        ip_address=ip_address,
                        user_agent=user_agent,
                        visited_at=utcnow(),
                    )
                )
                await session.commit()
        except Exception:
            VISIT_WRITE_FAILURES_TOTAL.inc()
            self._logger.exception(f"Visit write dropped for code: {code}")
            return False

        VISITS_RECORDED_TOTAL.inc()
        self._logger.debug(f"Visit recorded for code: {code}")
        return True

    async def drain(self) -> None:
        while self._tasks:
            in_flight = list(self._tasks)
            await asyncio.gather(*in_flight, return_exceptions=True)
            self._tasks.difference_update(in_flight)
