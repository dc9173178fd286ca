"""カタログ探索モジュール — 分類済みクエリからターゲットと競合を決定する.

  - url           : URL の ID で直接参照 → ターゲット。競合はカテゴリ名で検索
  - brand/keyword : 検索結果の先頭 → ターゲット、残り → 競合

上流呼び出しはすべてサーキットブレーカーと指数バックオフ付きリトライを通す。
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from storerank.catalog_client import CatalogClient
from storerank.circuit_breaker import CircuitBreaker
from storerank.config import BASE_DELAY, DEFAULT_COUNTRY, DEFAULT_MAX_COMPETITORS, MAX_RETRIES
from storerank.errors import (
    CircuitOpenError,
    DiscoveryError,
    MalformedQuery,
    NotFound,
    UpstreamUnavailable,
)
from storerank.models import KIND_URL, CatalogEntry, ClassifiedQuery, DiscoveredResultSet

logger = logging.getLogger(__name__)

T = TypeVar("T")

# apps.apple.com/{country}/app/{slug}/id{数字}
_ENTRY_ID_PATTERN = re.compile(r"/id(\d+)")

# リトライせず即座に失敗させる例外
_NON_RETRYABLE = (MalformedQuery, NotFound)


@dataclass(frozen=True)
class DiscoveryOptions:
    """discover() のオプション."""

    include_competitors: bool = True
    max_competitors: int = DEFAULT_MAX_COMPETITORS
    country: str = DEFAULT_COUNTRY


def extract_entry_id(url: str) -> str:
    """ストアフロント URL からカタログ ID を抽出する. 抽出失敗時は ""."""
    m = _ENTRY_ID_PATTERN.search(url)
    return m.group(1) if m else ""


class CatalogDiscovery:
    """上流 API を使ってターゲットと競合を解決する."""

    def __init__(
        self,
        client: CatalogClient,
        breaker: CircuitBreaker | None = None,
        hints_breaker: CircuitBreaker | None = None,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self.breaker = breaker if breaker is not None else CircuitBreaker("catalog")
        # サジェストの失敗は検索・lookup のブレーカーに数えない
        self.hints_breaker = hints_breaker if hints_breaker is not None else CircuitBreaker("hints")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    def discover(self, classified: ClassifiedQuery, options: DiscoveryOptions) -> DiscoveredResultSet:
        """分類済みクエリからターゲットと競合を取得する.

        Raises:
            DiscoveryError: NotFound / MalformedQuery / UpstreamUnavailable
        """
        if classified.kind == KIND_URL:
            return self._discover_from_url(classified.normalized_term, options)
        return self._discover_from_search(classified.normalized_term, options)

    def search_live(self, keyword: str, country: str, limit: int) -> list[CatalogEntry]:
        """ライブ順位チェック用の検索. 0 件は空リストで返す."""
        return self._call(
            f"search term={keyword}",
            lambda: self._client.search(keyword, country, limit),
        )

    def suggest(self, term: str, country: str) -> list[str]:
        """サジェスト語を取得する. hints_breaker で保護する."""
        return self._call(
            f"hints term={term}",
            lambda: self._client.hints(term, country),
            breaker=self.hints_breaker,
        )

    def _discover_from_url(self, url: str, options: DiscoveryOptions) -> DiscoveredResultSet:
        """URL の ID で lookup し、同カテゴリの検索結果を競合にする."""
        entry_id = extract_entry_id(url)
        if not entry_id:
            raise MalformedQuery(f"URL からカタログ ID を抽出できません: {url}")

        entries = self._call(
            f"lookup id={entry_id}",
            lambda: self._client.lookup(entry_id, options.country),
        )
        target = next((e for e in entries if e.id == entry_id), None)
        if target is None:
            raise NotFound(f"ID {entry_id} のエントリが見つかりません")

        competitors: tuple[CatalogEntry, ...] = ()
        degraded = False
        if options.include_competitors and options.max_competitors > 0 and target.category:
            try:
                found = self._call(
                    f"search category={target.category}",
                    lambda: self._client.search(
                        target.category, options.country, options.max_competitors + 1
                    ),
                )
                competitors = _without_target(found, target)[: options.max_competitors]
            except DiscoveryError as e:
                # ターゲットは取得済みなので競合なしで続行する
                logger.warning("競合の取得に失敗（競合なしで続行）: id=%s, error=%s", entry_id, e)
                degraded = True

        logger.info("URL 探索完了: id=%s, 競合 %d 件", entry_id, len(competitors))
        return DiscoveredResultSet(
            target=target,
            competitors=competitors,
            category=target.category or "Unknown",
            degraded=degraded,
        )

    def _discover_from_search(self, term: str, options: DiscoveryOptions) -> DiscoveredResultSet:
        """検索結果の先頭をターゲット、残りを競合にする."""
        if not term:
            raise MalformedQuery("検索語が空です")

        limit = max(options.max_competitors, 0) + 1
        entries = self._call(
            f"search term={term}",
            lambda: self._client.search(term, options.country, limit),
        )
        if not entries:
            raise NotFound(f'"{term}" に該当するエントリがありません')

        target = entries[0]
        competitors: tuple[CatalogEntry, ...] = ()
        if options.include_competitors:
            competitors = _without_target(entries[1:], target)[: max(options.max_competitors, 0)]

        logger.info("検索探索完了: term=%s, target=%s, 競合 %d 件", term, target.id, len(competitors))
        return DiscoveredResultSet(
            target=target,
            competitors=competitors,
            category=target.category or "Unknown",
        )

    def _call(
        self,
        description: str,
        fn: Callable[[], T],
        breaker: CircuitBreaker | None = None,
    ) -> T:
        """ブレーカー確認 → リトライ付き呼び出し.

        最大 max_retries + 1 回試行し、待機時間は base_delay から倍々に増やす。
        全試行が失敗した場合にのみブレーカーへ失敗を1回記録する。
        """
        if breaker is None:
            breaker = self.breaker
        if breaker.is_open():
            raise CircuitOpenError(f"サーキット {breaker.name} が open のため呼び出しを中止: {description}")

        attempts = self.max_retries + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                result = fn()
            except _NON_RETRYABLE:
                # 上流は応答しているのでブレーカーの失敗には数えない
                breaker.record_success()
                raise
            except Exception as e:
                last_error = e
                if attempt < attempts - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        "上流呼び出し失敗 (%d/%d): %s, error=%s、%.1f 秒後に再試行",
                        attempt + 1, attempts, description, e, delay,
                    )
                    self._sleep(delay)
                continue

            breaker.record_success()
            return result

        breaker.record_failure()
        logger.error("上流呼び出しが %d 回とも失敗: %s, error=%s", attempts, description, last_error)
        if isinstance(last_error, UpstreamUnavailable):
            raise last_error
        raise UpstreamUnavailable(f"{description}: {last_error}") from last_error


def _without_target(entries: list[CatalogEntry], target: CatalogEntry) -> tuple[CatalogEntry, ...]:
    """ターゲット自身と重複 ID を除外する（順序は維持）."""
    seen = {target.id}
    results: list[CatalogEntry] = []
    for e in entries:
        if e.id in seen:
            continue
        seen.add(e.id)
        results.append(e)
    return tuple(results)
