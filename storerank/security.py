"""レート制限・監査ログモジュール.

レート制限は audit_logs の直近1時間の件数で判定する（RATE_LIMIT_PER_HOUR 件未満なら許可）。
どちらも自身の障害で検索を止めない:
  - レート制限の判定失敗 → 許可
  - 監査ログの書き込み失敗 → ログのみ
Supabase が未設定の場合は何もしない実装を使う。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from storerank import db
from storerank.config import RATE_LIMIT_PER_HOUR

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = timedelta(hours=1)


class AllowAllRateLimiter:
    """常に許可する."""

    def check(self, tenant_id: str, action: str) -> bool:
        """常に許可する."""
        return True


class SupabaseRateLimiter:
    """audit_logs の件数によるレート制限."""

    def __init__(
        self,
        limit: int = RATE_LIMIT_PER_HOUR,
        window: timedelta = RATE_LIMIT_WINDOW,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.limit = limit
        self.window = window
        self._now = now

    def check(self, tenant_id: str, action: str) -> bool:
        """許可するなら True."""
        since = self._now() - self.window
        try:
            count = db.count_recent_actions(tenant_id, action, since)
        except Exception as e:
            logger.warning("レート制限の確認に失敗（許可扱い）: tenant=%s, error=%s", tenant_id, e)
            return True
        return count < self.limit


class NullAuditSink:
    """監査ログを記録しない."""

    def emit(self, record: dict) -> None:
        """監査ログを記録せずデバッグログにだけ出す."""
        logger.debug("監査ログ（未記録）: %s", record)


class SupabaseAuditSink:
    """audit_logs テーブルへ書き込む."""

    def emit(self, record: dict) -> None:
        """audit_logs テーブルに1件書き込む. 失敗はログのみ."""
        try:
            db.insert_audit_log(record)
        except Exception as e:
            logger.warning("監査ログの書き込みに失敗: tenant=%s, error=%s", record.get("tenant_id"), e)


def default_rate_limiter():
    """Supabase 設定の有無に応じたレート制限を返す."""
    return SupabaseRateLimiter() if db.is_configured() else AllowAllRateLimiter()


def default_audit_sink():
    """Supabase 設定の有無に応じた監査ログ送信先を返す."""
    return SupabaseAuditSink() if db.is_configured() else NullAuditSink()
