"""パイプライン全体で使う例外クラス定義.

InputRejected     : 入力不正（リトライなし、呼び出し元へ検証エラーとして返す）
UpstreamUnavailable: 通信失敗・5xx（バックオフ付きリトライ → ブレーカー）
NotFound          : 検索結果 0 件（キーワードフォールバック対象）
PartialDegradation: 付加情報の取得失敗（致命的ではない）
"""

from __future__ import annotations


class StorerankError(Exception):
    """storerank の例外の基底クラス."""


class InputRejected(StorerankError):
    """クエリ文字列が検証に通らなかった."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class DiscoveryError(StorerankError):
    """ターゲット・競合の取得に失敗した."""


class UpstreamUnavailable(DiscoveryError):
    """上流 API に到達できない、または 5xx / 429 を返した."""


class CircuitOpenError(UpstreamUnavailable):
    """サーキットブレーカーが開いているため呼び出しを行わなかった."""


class NotFound(DiscoveryError):
    """上流は応答したが該当エントリが 0 件だった."""


class MalformedQuery(DiscoveryError):
    """上流がリクエスト自体を不正と判断した（リトライしない）."""


class PartialDegradation(StorerankError):
    """付加情報（ページ情報・競合）の取得に失敗したが本体は取得できた."""


class MalformedEntry(StorerankError, ValueError):
    """上流レスポンスのエントリが必要なフィールドを欠いている."""
