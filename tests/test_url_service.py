"""Unit tests for URLShorteningService with a mocked database session.

These cover the allocation retry budget, insert-time conflicts, expiration
and backend failure mapping without a live database.
"""

import datetime
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.errors import AllocationExhaustedError, BackendFailureError, CodeConflictError, NotFoundError
from app.models import UrlMapping, Visit
from app.schemas import URLCreate
from app.url_service import StatsSnapshot, URLShorteningService

# ============================================================================
# TEST FIXTURES AND UTILITIES
# ============================================================================


def _scalar_result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _integrity_error() -> IntegrityError:
    return IntegrityError("INSERT INTO urls ...", {}, Exception("UNIQUE constraint failed: urls.code"))


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def mock_database() -> AsyncMock:
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock(return_value=_scalar_result(None))
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


@pytest.fixture
def mock_recorder() -> MagicMock:
    recorder = MagicMock()
    recorder.submit = MagicMock()
    return recorder


@pytest.fixture
def ctx(mock_database, mock_recorder, settings) -> Mock:
    ctx = Mock()
    ctx.database = mock_database
    ctx.logger = MagicMock()
    ctx.settings = settings
    ctx.visit_recorder = mock_recorder
    return ctx


@pytest.fixture
def url_service(ctx) -> URLShorteningService:
    return URLShorteningService(ctx)


def _mapping(code: str = "abc123", expires_at: datetime.datetime | None = None) -> UrlMapping:
    return UrlMapping(
        code=code,
        original_url="https://example.com",
        created_at=datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc),
        expires_at=expires_at,
    )


# ============================================================================
# ALLOCATION
# ============================================================================


class TestAllocation:
    @pytest.mark.asyncio
    async def test_generated_code_is_persisted(self, url_service, mock_database):
        mapping = await url_service.create_short_url(URLCreate(url="https://example.com"))

        assert len(mapping.code) == 6
        assert mapping.original_url == "https://example.com"
        assert mapping.created_at.tzinfo is not None
        assert mapping.expires_at is None
        mock_database.add.assert_called_once_with(mapping)
        mock_database.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_custom_code_is_used_verbatim(self, url_service):
        mapping = await url_service.create_short_url(URLCreate(url="https://example.com", custom_code="promo1"))
        assert mapping.code == "promo1"

    @pytest.mark.asyncio
    async def test_existing_custom_code_conflicts(self, url_service, mock_database):
        mock_database.execute.return_value = _scalar_result("promo1")

        with pytest.raises(CodeConflictError):
            await url_service.create_short_url(URLCreate(url="https://example.com", custom_code="promo1"))
        mock_database.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_custom_code_duplicate_on_insert_conflicts(self, url_service, mock_database):
        mock_database.commit.side_effect = _integrity_error()

        with pytest.raises(CodeConflictError):
            await url_service.create_short_url(URLCreate(url="https://example.com", custom_code="promo1"))
        mock_database.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_generated_collisions_exhaust_retry_budget(self, ctx, mock_database, settings):
        generator = MagicMock(return_value="dup123")
        mock_database.execute.return_value = _scalar_result("dup123")
        service = URLShorteningService(ctx, code_generator=generator)

        with pytest.raises(AllocationExhaustedError) as exc_info:
            await service.create_short_url(URLCreate(url="https://example.com"))

        assert generator.call_count == settings.MAX_CODE_RETRIES + 1 == 11
        assert exc_info.value.attempts == 11
        mock_database.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_generated_collision_then_success(self, ctx, mock_database):
        generator = MagicMock(side_effect=["taken1", "taken2", "fresh1"])
        mock_database.execute.side_effect = [
            _scalar_result("taken1"),
            _scalar_result("taken2"),
            _scalar_result(None),
        ]
        service = URLShorteningService(ctx, code_generator=generator)

        mapping = await service.create_short_url(URLCreate(url="https://example.com"))

        assert mapping.code == "fresh1"
        generator.assert_called_with(6)

    @pytest.mark.asyncio
    async def test_generated_duplicate_on_insert_regenerates(self, ctx, mock_database):
        generator = MagicMock(side_effect=["raced1", "fresh1"])
        mock_database.commit.side_effect = [_integrity_error(), None]
        service = URLShorteningService(ctx, code_generator=generator)

        mapping = await service.create_short_url(URLCreate(url="https://example.com"))

        assert mapping.code == "fresh1"
        assert mock_database.commit.await_count == 2
        mock_database.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_generated_reserved_code_is_skipped(self, ctx, mock_database):
        generator = MagicMock(side_effect=["health", "fresh1"])
        service = URLShorteningService(ctx, code_generator=generator)

        mapping = await service.create_short_url(URLCreate(url="https://example.com"))

        assert mapping.code == "fresh1"
        assert generator.call_count == 2
        mock_database.add.assert_called_once_with(mapping)

    @pytest.mark.asyncio
    async def test_insert_backend_failure_is_wrapped(self, url_service, mock_database):
        original = OperationalError("INSERT", {}, Exception("connection reset"))
        mock_database.commit.side_effect = original

        with pytest.raises(BackendFailureError) as exc_info:
            await url_service.create_short_url(URLCreate(url="https://example.com"))

        assert exc_info.value.original is original
        assert exc_info.value.__cause__ is original
        mock_database.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_expiration_is_stored(self, url_service):
        expires = datetime.datetime(2099, 1, 1, tzinfo=datetime.timezone.utc)
        mapping = await url_service.create_short_url(URLCreate(url="https://example.com", expires_at=expires))
        assert mapping.expires_at == expires


# ============================================================================
# REDIRECT
# ============================================================================


class TestResolveRedirect:
    @pytest.mark.asyncio
    async def test_unknown_code_not_found(self, url_service, mock_recorder):
        with pytest.raises(NotFoundError):
            await url_service.resolve_redirect("missing")
        mock_recorder.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_code_not_found(self, url_service, mock_database, mock_recorder):
        past = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(seconds=1)
        mock_database.execute.return_value = _scalar_result(_mapping(expires_at=past))

        with pytest.raises(NotFoundError):
            await url_service.resolve_redirect("abc123")
        mock_recorder.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_naive_expiration_is_treated_as_utc(self, url_service, mock_database):
        past = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None) - datetime.timedelta(minutes=5)
        mock_database.execute.return_value = _scalar_result(_mapping(expires_at=past))

        with pytest.raises(NotFoundError):
            await url_service.resolve_redirect("abc123")

    @pytest.mark.asyncio
    async def test_active_code_submits_visit(self, url_service, mock_database, mock_recorder):
        mock_database.execute.return_value = _scalar_result(_mapping())

        mapping = await url_service.resolve_redirect("abc123", "203.0.113.7", "curl/8.0")

        assert mapping.original_url == "https://example.com"
        mock_recorder.submit.assert_called_once_with("abc123", "203.0.113.7", "curl/8.0")

    @pytest.mark.asyncio
    async def test_lookup_failure_is_backend_failure(self, url_service, mock_database):
        mock_database.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(BackendFailureError):
            await url_service.resolve_redirect("abc123")


# ============================================================================
# STATS
# ============================================================================


class TestStatistics:
    @pytest.mark.asyncio
    async def test_unknown_code_not_found(self, url_service):
        with pytest.raises(NotFoundError):
            await url_service.get_url_statistics("missing")

    @pytest.mark.asyncio
    async def test_snapshot_combines_window_and_count(self, url_service, mock_database):
        past = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(days=1)
        mapping = _mapping(expires_at=past)
        visits = [
            Visit(url_code="abc123", ip_address="unknown", visited_at=past),
        ]
        visits_result = MagicMock()
        visits_result.scalars.return_value.all.return_value = visits
        count_result = MagicMock()
        count_result.scalar_one.return_value = 250
        mock_database.execute.side_effect = [_scalar_result(mapping), visits_result, count_result]

        snapshot = await url_service.get_url_statistics("abc123")

        assert isinstance(snapshot, StatsSnapshot)
        assert snapshot.mapping is mapping
        assert snapshot.total_visits == 250
        assert snapshot.visits == visits
