"""security モジュールのテスト."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from storerank.security import (
    AllowAllRateLimiter,
    NullAuditSink,
    SupabaseAuditSink,
    SupabaseRateLimiter,
    default_audit_sink,
    default_rate_limiter,
)

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


class TestSupabaseRateLimiter:
    """SupabaseRateLimiter のテスト."""

    @patch("storerank.db.count_recent_actions", return_value=99)
    def test_under_limit(self, mock_count):
        limiter = SupabaseRateLimiter(limit=100, now=lambda: NOW)
        assert limiter.check("org-1", "catalog_search") is True
        mock_count.assert_called_once_with("org-1", "catalog_search", NOW - timedelta(hours=1))

    @patch("storerank.db.count_recent_actions", return_value=100)
    def test_at_limit(self, mock_count):
        limiter = SupabaseRateLimiter(limit=100, now=lambda: NOW)
        assert limiter.check("org-1", "catalog_search") is False

    @patch("storerank.db.count_recent_actions", side_effect=RuntimeError("db down"))
    def test_failure_allows(self, mock_count):
        """判定自体が失敗した場合は許可すること."""
        limiter = SupabaseRateLimiter(now=lambda: NOW)
        assert limiter.check("org-1", "catalog_search") is True


class TestAuditSinks:
    """監査ログ出力先のテスト."""

    @patch("storerank.db.insert_audit_log")
    def test_supabase_sink_inserts(self, mock_insert):
        record = {"tenant_id": "org-1", "action": "catalog_search"}
        SupabaseAuditSink().emit(record)
        mock_insert.assert_called_once_with(record)

    @patch("storerank.db.insert_audit_log", side_effect=RuntimeError("db down"))
    def test_supabase_sink_swallows_failure(self, mock_insert):
        SupabaseAuditSink().emit({"tenant_id": "org-1"})
        mock_insert.assert_called_once()

    def test_null_sink(self):
        NullAuditSink().emit({"tenant_id": "org-1"})


class TestDefaults:
    """Supabase 設定有無による実装の切り替え."""

    @patch("storerank.db.is_configured", return_value=False)
    def test_unconfigured(self, mock_configured):
        assert isinstance(default_rate_limiter(), AllowAllRateLimiter)
        assert isinstance(default_audit_sink(), NullAuditSink)

    @patch("storerank.db.is_configured", return_value=True)
    def test_configured(self, mock_configured):
        assert isinstance(default_rate_limiter(), SupabaseRateLimiter)
        assert isinstance(default_audit_sink(), SupabaseAuditSink)

    def test_allow_all(self):
        assert AllowAllRateLimiter().check("org-1", "catalog_search") is True
