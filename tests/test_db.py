"""db モジュールのモックテスト."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch


def _chain(data=None, count=None) -> MagicMock:
    """select/eq/order などを何回呼んでも自身を返すモック."""
    mock_chain = MagicMock()
    for method in ("select", "insert", "eq", "gte", "order", "limit"):
        getattr(mock_chain, method).return_value = mock_chain
    mock_chain.execute.return_value = MagicMock(data=data or [], count=count)
    return mock_chain


class TestInsertKeywordRankings:
    """insert_keyword_rankings のテスト."""

    @patch("storerank.db._table")
    def test_insert_records(self, mock_table):
        from storerank.db import insert_keyword_rankings

        mock_chain = _chain()
        mock_table.return_value = mock_chain

        records = [
            {
                "tenant_id": "org-1",
                "target_id": "1001",
                "keyword": "budget tracker",
                "position": 3,
                "volume_bucket": "Medium",
                "trend": "up",
                "confidence": "actual",
                "checked_at": "2026-10-01T00:00:00+00:00",
            }
        ]
        insert_keyword_rankings(records)

        mock_table.assert_called_once_with("keyword_rankings")
        mock_chain.insert.assert_called_once_with(records)

    @patch("storerank.db._table")
    def test_skip_empty(self, mock_table):
        from storerank.db import insert_keyword_rankings

        insert_keyword_rankings([])
        mock_table.assert_not_called()


class TestInsertAuditLog:
    """insert_audit_log のテスト."""

    @patch("storerank.db._table")
    def test_insert_record(self, mock_table):
        from storerank.db import insert_audit_log

        mock_chain = _chain()
        mock_table.return_value = mock_chain

        record = {"tenant_id": "org-1", "action": "catalog_search", "query": "calm"}
        insert_audit_log(record)

        mock_table.assert_called_once_with("audit_logs")
        mock_chain.insert.assert_called_once_with(record)
        mock_chain.execute.assert_called_once()


class TestCountRecentActions:
    """count_recent_actions のテスト."""

    @patch("storerank.db._table")
    def test_exact_count(self, mock_table):
        from storerank.db import count_recent_actions

        mock_chain = _chain(count=7)
        mock_table.return_value = mock_chain
        since = datetime(2026, 10, 1, tzinfo=timezone.utc)

        assert count_recent_actions("org-1", "catalog_search", since) == 7
        mock_chain.select.assert_called_once_with("id", count="exact")
        mock_chain.eq.assert_any_call("tenant_id", "org-1")
        mock_chain.eq.assert_any_call("action", "catalog_search")
        mock_chain.gte.assert_called_once_with("created_at", since.isoformat())

    @patch("storerank.db._table")
    def test_count_missing_uses_rows(self, mock_table):
        """count が返らない場合は行数で数えること."""
        from storerank.db import count_recent_actions

        mock_table.return_value = _chain(data=[{"id": 1}, {"id": 2}], count=None)
        since = datetime(2026, 10, 1, tzinfo=timezone.utc)
        assert count_recent_actions("org-1", "catalog_search", since) == 2


class TestGetPreviousPositions:
    """get_previous_positions のテスト."""

    @patch("storerank.db._table")
    def test_latest_position_per_keyword(self, mock_table):
        from storerank.db import get_previous_positions

        rows = [
            {"keyword": "budget", "position": 3, "checked_at": "2026-10-02"},
            {"keyword": "budget", "position": 5, "checked_at": "2026-10-01"},
            {"keyword": "money", "position": None, "checked_at": "2026-10-02"},
            {"keyword": "money", "position": 8, "checked_at": "2026-10-01"},
            {"keyword": "tracker", "position": "12", "checked_at": "2026-10-02"},
        ]
        mock_chain = _chain(data=rows)
        mock_table.return_value = mock_chain

        positions = get_previous_positions("org-1", "1001")

        # 直近が圏外のキーワードは履歴なし扱い
        assert positions == {"budget": 3, "tracker": 12}
        mock_chain.order.assert_called_once_with("checked_at", desc=True)


class TestClient:
    """クライアント生成のテスト."""

    def test_table_uses_schema(self):
        import storerank.db as db

        client = MagicMock()
        with patch("storerank.db._client", None), \
                patch("storerank.db.create_client", return_value=client) as mock_create:
            db._table("audit_logs")
            db._table("keyword_rankings")

        mock_create.assert_called_once()
        client.schema.assert_called_with(db.SUPABASE_SCHEMA)
        client.schema.return_value.table.assert_called_with("keyword_rankings")

    def test_is_configured(self):
        import storerank.db as db

        with patch("storerank.db.SUPABASE_URL", ""):
            assert db.is_configured() is False
        with patch("storerank.db.SUPABASE_URL", "https://x.supabase.co"), \
                patch("storerank.db.SUPABASE_SECRET_KEY", "secret"):
            assert db.is_configured() is True
