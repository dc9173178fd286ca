"""iTunes Search / Lookup API クライアント.

応答の扱い:
  - 通信失敗・タイムアウト・5xx・429 → UpstreamUnavailable（リトライ対象）
  - その他の 4xx → MalformedQuery（リトライしない）
  - 0 件 → 空リスト（0 件の解釈は呼び出し側で行う）
"""

from __future__ import annotations

import logging

import requests

from storerank.config import (
    ITUNES_HINTS_URL,
    ITUNES_LOOKUP_URL,
    ITUNES_SEARCH_URL,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from storerank.errors import MalformedEntry, MalformedQuery, UpstreamUnavailable
from storerank.models import CatalogEntry

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class CatalogClient:
    """上流カタログ API への読み取り専用アクセス."""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout

    def search(self, term: str, country: str, limit: int) -> list[CatalogEntry]:
        """キーワード検索. 上流の返却順を保ったまま返す."""
        data = self._get_json(
            ITUNES_SEARCH_URL,
            {"term": term, "country": country, "entity": "software", "limit": limit},
        )
        return _parse_results(data, term)

    def lookup(self, entry_id: str, country: str) -> list[CatalogEntry]:
        """ID 直接参照. 見つからなければ空リスト."""
        data = self._get_json(ITUNES_LOOKUP_URL, {"id": entry_id, "country": country})
        return _parse_results(data, entry_id)

    def hints(self, term: str, country: str) -> list[str]:
        """検索サジェスト（オートコンプリート）を取得する."""
        data = self._get_json(
            ITUNES_HINTS_URL,
            {"clientApplication": "Software", "term": term, "country": country},
        )
        hints = data.get("hints", [])
        results: list[str] = []
        for h in hints:
            # 文字列のリスト、または {"term": ...} のリストのどちらも受け付ける
            text = h.get("term") if isinstance(h, dict) else h
            if isinstance(text, str) and text.strip():
                results.append(text.strip())
        return results

    def _get_json(self, url: str, params: dict) -> dict:
        """GET して JSON を返す. 5xx・通信エラーは UpstreamUnavailable."""
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        }
        try:
            resp = self._session.get(url, params=params, headers=headers, timeout=self._timeout)
        except requests.Timeout as e:
            raise UpstreamUnavailable(f"タイムアウト: {url}") from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"通信エラー: {url}: {e}") from e

        if resp.status_code in _RETRYABLE_STATUS:
            raise UpstreamUnavailable(f"HTTP {resp.status_code}: {url}")
        if not 200 <= resp.status_code < 300:
            raise MalformedQuery(f"HTTP {resp.status_code}: {url} params={params}")

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"JSON デコード失敗: {url}") from e
        if not isinstance(data, dict):
            raise UpstreamUnavailable(f"想定外のレスポンス形式: {url}")
        return data


def _parse_results(data: dict, context: str) -> list[CatalogEntry]:
    """results 配列を検証済みエントリに変換する. 不正なエントリは捨てる."""
    raw_results = data.get("results") or []
    entries: list[CatalogEntry] = []
    for item in raw_results:
        try:
            entries.append(CatalogEntry.from_api(item))
        except MalformedEntry as e:
            logger.warning("不正なエントリを除外: query=%s, error=%s", context, e)
    return entries
