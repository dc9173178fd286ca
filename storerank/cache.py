"""検索結果キャッシュモジュール.

キーは (テナントID, 正規化済みクエリ) を SHA-256 化したもの。
期限切れエントリは読み出し時に削除し、古い値は返さない。
バックエンドの障害はパイプラインを止めない:
  - 読み出し失敗 → ミス扱い
  - 書き込み失敗 → ログのみ
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from storerank.config import CACHE_TTL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """キャッシュ1件."""

    key: tuple[str, str]  # (tenant_id, normalized_query)
    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        """有効期限を過ぎているか."""
        return now >= self.stored_at + self.ttl


class MemoryCacheBackend:
    """プロセス内の dict バックエンド. キー単位の get/set/delete はロックで原子的."""

    def __init__(self) -> None:
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, digest: str) -> CacheEntry | None:
        """ダイジェストに対応するエントリを返す."""
        with self._lock:
            return self._store.get(digest)

    def set(self, digest: str, entry: CacheEntry) -> None:
        """エントリを保存する."""
        with self._lock:
            self._store[digest] = entry

    def delete(self, digest: str) -> None:
        """エントリを削除する. 無ければ何もしない."""
        with self._lock:
            self._store.pop(digest, None)

    def items(self) -> list[tuple[str, CacheEntry]]:
        """全エントリのスナップショットを返す."""
        with self._lock:
            return list(self._store.items())


def normalize_query(query: str) -> str:
    """大文字小文字・空白の揺れを吸収する."""
    return re.sub(r"\s+", " ", (query or "").strip()).casefold()


def cache_key(tenant_id: str, query: str) -> tuple[str, str]:
    """テナントと正規化済みクエリの組をキーにする."""
    return (tenant_id, normalize_query(query))


def digest_key(key: tuple[str, str]) -> str:
    """キャッシュキーを保存用のダイジェスト文字列に変換する."""
    tenant_id, normalized = key
    return hashlib.sha256(f"{tenant_id}\x00{normalized}".encode("utf-8")).hexdigest()


class CacheManager:
    """TTL 付きの検索結果キャッシュ."""

    def __init__(
        self,
        backend: MemoryCacheBackend | None = None,
        default_ttl: float = CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend if backend is not None else MemoryCacheBackend()
        self._default_ttl = default_ttl
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._stats_lock = threading.Lock()

    def get(self, tenant_id: str, query: str) -> Any | None:
        """キャッシュ値を返す. 無い・期限切れ・バックエンド障害なら None."""
        key = cache_key(tenant_id, query)
        digest = digest_key(key)
        try:
            entry = self._backend.get(digest)
            if entry is not None and entry.is_expired(self._clock()):
                self._backend.delete(digest)
                entry = None
        except Exception as e:
            logger.warning("キャッシュ読み出し失敗（ミス扱い）: tenant=%s, error=%s", tenant_id, e)
            entry = None

        self._count(entry is not None)
        return entry.value if entry is not None else None

    def set(self, tenant_id: str, query: str, value: Any, ttl: float | None = None) -> None:
        """値を上書き保存する. 失敗しても例外は投げない."""
        key = cache_key(tenant_id, query)
        entry = CacheEntry(
            key=key,
            value=value,
            stored_at=self._clock(),
            ttl=self._default_ttl if ttl is None else ttl,
        )
        try:
            self._backend.set(digest_key(key), entry)
        except Exception as e:
            logger.warning("キャッシュ書き込み失敗: tenant=%s, error=%s", tenant_id, e)

    def invalidate(self, tenant_id: str, query: str) -> None:
        """指定クエリのエントリを削除する."""
        try:
            self._backend.delete(digest_key(cache_key(tenant_id, query)))
        except Exception as e:
            logger.warning("キャッシュ削除失敗: tenant=%s, error=%s", tenant_id, e)

    def clear_tenant(self, tenant_id: str) -> int:
        """テナントのエントリを全削除し、削除件数を返す."""
        removed = 0
        for digest, entry in self._backend.items():
            if entry.key[0] == tenant_id:
                self._backend.delete(digest)
                removed += 1
        logger.info("キャッシュクリア: tenant=%s, %d 件", tenant_id, removed)
        return removed

    def stats(self) -> dict:
        """ヒット・ミス件数を返す."""
        with self._stats_lock:
            return {"hits": self._hits, "misses": self._misses}

    def _count(self, hit: bool) -> None:
        """ヒット・ミス件数を加算する."""
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
