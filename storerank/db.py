"""Supabase データベース操作モジュール.

全テーブルは SUPABASE_SCHEMA（既定 storerank）スキーマに配置。
Supabase client のスキーマ指定は .schema() で行う。
クライアントは初回アクセス時に生成する（未設定の環境でも import できるように）。
"""

from __future__ import annotations

import logging
from datetime import datetime

from supabase import create_client

from storerank.config import SUPABASE_SCHEMA, SUPABASE_SECRET_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)

_client = None


def is_configured() -> bool:
    """Supabase の接続情報が設定されているかどうか."""
    return bool(SUPABASE_URL and SUPABASE_SECRET_KEY)


def _get_client():
    """Supabase クライアントを遅延生成して返す."""
    global _client
    if _client is None:
        _client = create_client(SUPABASE_URL, SUPABASE_SECRET_KEY)
    return _client


def _table(name: str):
    """SUPABASE_SCHEMA スキーマのテーブルを参照する."""
    return _get_client().schema(SUPABASE_SCHEMA).table(name)


def insert_audit_log(record: dict) -> None:
    """監査ログを1件挿入する.

    Args:
        record: {"tenant_id", "action", "query", "result_summary", "outcome"}
    """
    _table("audit_logs").insert(record).execute()


def count_recent_actions(tenant_id: str, action: str, since: datetime) -> int:
    """since 以降に記録された tenant_id × action の監査ログ件数."""
    resp = (
        _table("audit_logs")
        .select("id", count="exact")
        .eq("tenant_id", tenant_id)
        .eq("action", action)
        .gte("created_at", since.isoformat())
        .execute()
    )
    if resp.count is not None:
        return resp.count
    return len(resp.data or [])


def insert_keyword_rankings(records: list[dict]) -> None:
    """キーワード順位レコードを一括挿入する.

    Args:
        records: [{"tenant_id", "target_id", "keyword", "position", "volume_bucket",
                   "trend", "confidence", "checked_at"}, ...]
    """
    if not records:
        return
    _table("keyword_rankings").insert(records).execute()
    logger.info("keyword_rankings に %d 件挿入", len(records))


def get_previous_positions(tenant_id: str, target_id: str) -> dict[str, int]:
    """キーワードごとの直近の順位を取得する（圏外は含めない）.

    Returns:
        {keyword: position, ...}
    """
    resp = (
        _table("keyword_rankings")
        .select("keyword, position, checked_at")
        .eq("tenant_id", tenant_id)
        .eq("target_id", target_id)
        .order("checked_at", desc=True)
        .limit(500)
        .execute()
    )

    positions: dict[str, int] = {}
    seen: set[str] = set()
    for row in resp.data or []:
        keyword = row.get("keyword")
        if not keyword or keyword in seen:
            continue
        # 新しい順に並んでいるので最初の1件が直近
        seen.add(keyword)
        if row.get("position") is not None:
            positions[keyword] = int(row["position"])
    return positions
