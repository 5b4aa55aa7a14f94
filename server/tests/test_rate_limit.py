"""Tests for fixed-window action limits and per-IP client extraction."""

import json
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from starlette.responses import JSONResponse

from pollify.core.errors import RateLimitedError
from pollify.core.rate_limit import (
    _get_trusted_proxies,
    _is_trusted_proxy,
    get_client_ip,
    rate_limit_exceeded_handler,
)
from pollify.models.rate_limit import RateLimitRecord
from pollify.services.rate_limit import (
    CREATE_POLL_ACTION,
    VOTE_ACTION,
    _upsert_counter,
    check_rate_limit,
    retry_after_seconds,
    window_start_for,
)

WINDOW_MS = 60_000
# An epoch-aligned window start
BASE_MS = 28_333_334 * WINDOW_MS


def _check(db: Session, now_ms: int, identifier: str = "fp:abc", action: str = VOTE_ACTION):
    return check_rate_limit(db, identifier, action, 3, WINDOW_MS, now_ms=now_ms)


def _records(db: Session) -> list[RateLimitRecord]:
    return db.query(RateLimitRecord).order_by(RateLimitRecord.window_start).all()


# =============================================================================
# Window arithmetic
# =============================================================================


class TestWindowHelpers:
    def test_window_start_aligns_to_epoch_multiple(self):
        assert window_start_for(BASE_MS + 12_345, WINDOW_MS) == BASE_MS

    def test_window_start_at_boundary(self):
        assert window_start_for(BASE_MS, WINDOW_MS) == BASE_MS

    def test_retry_after_rounds_up(self):
        assert retry_after_seconds(BASE_MS, WINDOW_MS, BASE_MS + 500) == 60

    def test_retry_after_never_below_one(self):
        assert retry_after_seconds(BASE_MS, WINDOW_MS, BASE_MS + WINDOW_MS) == 1
        assert retry_after_seconds(BASE_MS, WINDOW_MS, BASE_MS + WINDOW_MS + 5000) == 1


# =============================================================================
# check_rate_limit()
# =============================================================================


class TestCheckRateLimit:
    def test_counts_up_within_window(self, db: Session):
        assert _check(db, BASE_MS + 100) == 1
        assert _check(db, BASE_MS + 200) == 2
        assert _check(db, BASE_MS + 300) == 3

    def test_exceeding_max_raises_with_retry_after(self, db: Session):
        for offset in (100, 200, 300):
            _check(db, BASE_MS + offset)

        with pytest.raises(RateLimitedError) as exc_info:
            _check(db, BASE_MS + 1000)

        assert exc_info.value.retry_after == 59
        assert exc_info.value.status_code == 429
        assert exc_info.value.action == VOTE_ACTION

    def test_rejected_attempt_does_not_increment(self, db: Session):
        for offset in (100, 200, 300):
            _check(db, BASE_MS + offset)
        with pytest.raises(RateLimitedError):
            _check(db, BASE_MS + 400)

        records = _records(db)
        assert len(records) == 1
        assert records[0].count == 3

    def test_new_window_admits_again(self, db: Session):
        for offset in (100, 200, 300):
            _check(db, BASE_MS + offset)

        assert _check(db, BASE_MS + WINDOW_MS + 1) == 1

    def test_elapsed_windows_are_deleted(self, db: Session):
        _check(db, BASE_MS + 100)
        _check(db, BASE_MS + WINDOW_MS + 1)

        records = _records(db)
        assert [r.window_start for r in records] == [BASE_MS + WINDOW_MS]

    def test_exact_boundary_still_sees_previous_window(self, db: Session):
        for offset in (100, 200, 300):
            _check(db, BASE_MS + offset)

        with pytest.raises(RateLimitedError) as exc_info:
            _check(db, BASE_MS + WINDOW_MS)
        assert exc_info.value.retry_after == 1

    def test_identifiers_are_independent(self, db: Session):
        for offset in (100, 200, 300):
            _check(db, BASE_MS + offset, identifier="fp:one")

        assert _check(db, BASE_MS + 400, identifier="fp:two") == 1

    def test_actions_are_independent(self, db: Session):
        for offset in (100, 200, 300):
            _check(db, BASE_MS + offset)

        assert _check(db, BASE_MS + 400, action=CREATE_POLL_ACTION) == 1

    def test_rollback_discards_charge(self, db: Session):
        _check(db, BASE_MS + 100)
        db.commit()
        _check(db, BASE_MS + 200)
        db.rollback()

        assert _records(db)[0].count == 1

    def test_counter_filled_by_concurrent_request(self, db: Session):
        _check(db, BASE_MS + 100)

        def fill_then_upsert(db, identifier, action, window_start, allowance):
            # Another request claims the remaining slots after the budget was read
            db.execute(
                update(RateLimitRecord)
                .where(RateLimitRecord.window_start == window_start)
                .values(count=3)
            )
            return _upsert_counter(db, identifier, action, window_start, allowance)

        with patch("pollify.services.rate_limit._upsert_counter", side_effect=fill_then_upsert):
            with pytest.raises(RateLimitedError) as exc_info:
                _check(db, BASE_MS + 200)

        assert exc_info.value.retry_after == 60
        assert db.execute(select(RateLimitRecord.count)).scalars().all() == [3]

    def test_upsert_returns_none_when_full(self, db: Session):
        for offset in (100, 200, 300):
            _check(db, BASE_MS + offset)

        assert _upsert_counter(db, "fp:abc", VOTE_ACTION, BASE_MS, 3) is None
        assert _upsert_counter(db, "fp:abc", VOTE_ACTION, BASE_MS, 4) == 4

    def test_message_names_wait(self, db: Session):
        for offset in (100, 200, 300):
            _check(db, BASE_MS + offset)
        with pytest.raises(RateLimitedError) as exc_info:
            _check(db, BASE_MS + 30_000)
        assert "30 seconds" in exc_info.value.detail


# =============================================================================
# Per-IP helpers for slowapi
# =============================================================================


@pytest.fixture
def _clear_proxy_cache():
    """Clear the lru_cache between tests so each test controls its own config."""
    _get_trusted_proxies.cache_clear()
    yield
    _get_trusted_proxies.cache_clear()


def _make_settings(trusted_proxies: str):
    settings = MagicMock()
    settings.trusted_proxies = trusted_proxies
    return settings


def _make_request(*, client_host: str = "10.0.0.1", headers: dict | None = None):
    request = MagicMock()
    request.client = MagicMock()
    request.client.host = client_host
    request.headers = headers or {}
    return request


@pytest.mark.usefixtures("_clear_proxy_cache")
class TestTrustedProxies:
    def test_parses_mixed_ips_and_cidrs(self):
        with patch(
            "pollify.core.rate_limit.get_settings",
            return_value=_make_settings("127.0.0.1, ::1 ,172.16.0.0/12"),
        ):
            exact, networks = _get_trusted_proxies()
        assert exact == frozenset({"127.0.0.1", "::1"})
        assert len(networks) == 1

    def test_cidr_match(self):
        with patch(
            "pollify.core.rate_limit.get_settings",
            return_value=_make_settings("172.16.0.0/12"),
        ):
            assert _is_trusted_proxy("172.18.0.1") is True
            assert _is_trusted_proxy("10.0.0.1") is False

    def test_invalid_ip_returns_false(self):
        with patch(
            "pollify.core.rate_limit.get_settings",
            return_value=_make_settings("172.16.0.0/12"),
        ):
            assert _is_trusted_proxy("not-an-ip") is False


@pytest.mark.usefixtures("_clear_proxy_cache")
class TestGetClientIp:
    def test_returns_direct_ip_when_untrusted(self):
        with patch(
            "pollify.core.rate_limit.get_settings",
            return_value=_make_settings("127.0.0.1"),
        ):
            request = _make_request(
                client_host="10.0.0.99",
                headers={"X-Real-IP": "1.2.3.4", "X-Forwarded-For": "5.6.7.8"},
            )
            assert get_client_ip(request) == "10.0.0.99"

    def test_returns_x_real_ip_from_trusted_proxy(self):
        with patch(
            "pollify.core.rate_limit.get_settings",
            return_value=_make_settings("172.16.0.0/12"),
        ):
            request = _make_request(client_host="172.18.0.3", headers={"X-Real-IP": "203.0.113.5"})
            assert get_client_ip(request) == "203.0.113.5"

    def test_x_forwarded_for_takes_first_entry(self):
        with patch(
            "pollify.core.rate_limit.get_settings",
            return_value=_make_settings("172.16.0.0/12"),
        ):
            request = _make_request(
                client_host="172.20.0.1",
                headers={"X-Forwarded-For": "1.2.3.4, 5.6.7.8"},
            )
            assert get_client_ip(request) == "1.2.3.4"


class TestRateLimitExceededHandler:
    def test_returns_429_with_retry_after(self):
        exc = MagicMock()
        exc.detail = "Rate limit exceeded: 5 per 1 minute"
        response = rate_limit_exceeded_handler(MagicMock(), exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 429
        assert "retry-after" in response.headers
        body = json.loads(response.body)
        assert body["code"] == "rate_limited"
        assert body["retry_after"] > 0
