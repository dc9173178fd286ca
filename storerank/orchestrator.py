"""検索オーケストレーター — クエリ1件をターゲット・競合・キーワード順位に変換する.

処理フロー:
  1. 入力分類（不正なら rejected を返して終了）
  2. レート制限確認（超過は警告のみ）
  3. キャッシュ確認（同じオプションで計算済みなら cached を返す）
  4. 探索 → 製品ページ補完 → キーワード抽出・順位計算
  5. ok の結果のみキャッシュ
途中で失敗した場合は生の入力をキーワードとして1回だけ再検索し、
それも失敗したら no_match を返す。どの経路でも監査ログは1件だけ出す。
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass

from storerank import db
from storerank.cache import CacheManager
from storerank.classifier import classify
from storerank.config import (
    FALLBACK_MAX_COMPETITORS,
    SEARCH_ACTION,
    STOREFRONT_DOMAINS,
)
from storerank.discovery import CatalogDiscovery, DiscoveryOptions
from storerank.errors import DiscoveryError, InputRejected, PartialDegradation
from storerank.keywords import (
    brand_term,
    extract,
    harvest_competitor_keywords,
    merge_candidates,
    semantic_keywords,
    trending_keywords,
)
from storerank.models import (
    KIND_KEYWORD,
    STATUS_CACHED,
    STATUS_FALLBACK,
    STATUS_NO_MATCH,
    STATUS_OK,
    STATUS_REJECTED,
    CandidateKeyword,
    CatalogEntry,
    ClassifiedQuery,
    Query,
    Ranking,
    SearchContext,
    SearchOptions,
    SearchResult,
)
from storerank.ranking import KeywordRanker
from storerank.security import default_audit_sink, default_rate_limiter
from storerank.storefront import enrich_entry

logger = logging.getLogger(__name__)

REASON_COMPETITORS_UNAVAILABLE = "competitors_unavailable"
REASON_ENRICHMENT_FAILED = "enrichment_failed"


@dataclass(frozen=True)
class _CachedSearch:
    """キャッシュに保存する値. 計算時のオプションも一緒に持つ."""

    options: SearchOptions
    result: SearchResult


class SearchOrchestrator:
    """検索パイプライン全体を組み立てる唯一のクラス.

    キャッシュとブレーカーは複数スレッドから共有してよい。
    """

    def __init__(
        self,
        discovery: CatalogDiscovery,
        cache: CacheManager | None = None,
        rate_limiter=None,
        audit_sink=None,
        ranker: KeywordRanker | None = None,
        enrich: Callable[[CatalogEntry], CatalogEntry] | None = enrich_entry,
        history: Callable[[str, str], dict[str, int]] | None = None,
        persist: Callable[[list[dict]], None] | None = None,
        storefront_domains: tuple[str, ...] = STOREFRONT_DOMAINS,
        action: str = SEARCH_ACTION,
    ) -> None:
        self._discovery = discovery
        self._cache = cache if cache is not None else CacheManager()
        self._rate_limiter = rate_limiter if rate_limiter is not None else default_rate_limiter()
        self._audit_sink = audit_sink if audit_sink is not None else default_audit_sink()
        self._ranker = ranker if ranker is not None else KeywordRanker(discovery)
        self._enrich = enrich
        if history is None and db.is_configured():
            history = db.get_previous_positions
        if persist is None and db.is_configured():
            persist = db.insert_keyword_rankings
        self._history = history
        self._persist = persist
        self._storefront_domains = storefront_domains
        self._action = action

    def search(
        self, tenant_id: str, raw_query: str, options: SearchOptions | None = None
    ) -> SearchResult:
        """クエリ1件を処理する. 失敗も SearchResult の status / reason で返す.

        Raises:
            ValueError: tenant_id が空の場合のみ
        """
        if not tenant_id or not str(tenant_id).strip():
            raise ValueError("tenant_id は必須です")
        options = options or SearchOptions()
        query = Query(raw=raw_query or "", tenant_id=tenant_id)

        try:
            classified = classify(query.raw, self._storefront_domains)
        except InputRejected as e:
            logger.warning("入力を拒否: tenant=%s, code=%s", tenant_id, e.code)
            result = _rejected_result(query, options, e)
            self._audit(query, result)
            return result

        if not self._rate_limit_allows(tenant_id):
            logger.warning("レート制限超過（処理は継続）: tenant=%s", tenant_id)

        cached = self._cache.get(tenant_id, query.raw)
        if isinstance(cached, _CachedSearch) and cached.options == options:
            logger.info("キャッシュヒット: tenant=%s, query=%s", tenant_id, query.raw)
            context = dataclasses.replace(cached.result.search_context, status=STATUS_CACHED)
            result = dataclasses.replace(cached.result, search_context=context)
            self._audit(query, result)
            return result

        country = _resolve_country(classified, options)
        try:
            result = self._run(query, classified, options, country)
        except Exception as e:
            logger.warning(
                "検索失敗、キーワード検索にフォールバック: query=%s, error=%s: %s",
                query.raw, type(e).__name__, e,
            )
            result = self._fallback(query, options, country)
        else:
            self._cache.set(tenant_id, query.raw, _CachedSearch(options=options, result=result))

        self._audit(query, result)
        return result

    def _run(
        self,
        query: Query,
        classified: ClassifiedQuery,
        options: SearchOptions,
        country: str,
    ) -> SearchResult:
        """探索・補完・順位計算を行い SearchResult を組み立てる."""
        logger.info(
            "探索開始: query=%s, kind=%s, country=%s", classified.normalized_term, classified.kind, country,
        )
        found = self._discovery.discover(
            classified,
            DiscoveryOptions(
                include_competitors=options.include_competitor_analysis,
                max_competitors=options.max_competitors,
                country=country,
            ),
        )

        reasons: list[str] = []
        if found.degraded:
            reasons.append(REASON_COMPETITORS_UNAVAILABLE)

        target = found.target
        if options.enrich_target and self._enrich is not None:
            try:
                target = self._enrich(target)
            except PartialDegradation as e:
                logger.warning("製品ページ補完をスキップ: id=%s, error=%s", target.id, e)
                reasons.append(REASON_ENRICHMENT_FAILED)

        keywords, rankings = self._rank(
            query.tenant_id,
            target,
            found.competitors,
            country,
            options,
            max_live_checks=options.max_live_checks,
            harvest=options.harvest_competitor_keywords,
        )

        context = SearchContext(
            query=query.raw,
            kind=classified.kind,
            total_results=len(found.competitors) + 1,
            category=found.category,
            country=country,
            status=STATUS_OK,
            degraded=bool(reasons),
            reason=",".join(reasons) or None,
        )
        return SearchResult(
            target=target,
            competitors=found.competitors,
            search_context=context,
            keywords=keywords,
            rankings=rankings,
        )

    def _fallback(self, query: Query, options: SearchOptions, country: str) -> SearchResult:
        """生の入力をキーワードとして再検索する（競合数を絞り、ライブ検索なし）."""
        term = query.raw.strip()
        classified = ClassifiedQuery(
            normalized_term=term,
            kind=KIND_KEYWORD,
            confidence=0.5,
            country_hint=country,
        )
        try:
            found = self._discovery.discover(
                classified,
                DiscoveryOptions(
                    include_competitors=options.include_competitor_analysis,
                    max_competitors=min(options.max_competitors, FALLBACK_MAX_COMPETITORS),
                    country=country,
                ),
            )
            keywords, rankings = self._rank(
                query.tenant_id,
                found.target,
                found.competitors,
                country,
                options,
                max_live_checks=0,
                harvest=False,
            )
        except Exception as e:
            logger.error("フォールバック検索も失敗: query=%s, error=%s: %s", term, type(e).__name__, e)
            return _no_match_result(query, country, type(e).__name__)

        logger.info("フォールバック検索成功: query=%s, target=%s", term, found.target.id)
        context = SearchContext(
            query=query.raw,
            kind=KIND_KEYWORD,
            total_results=len(found.competitors) + 1,
            category=found.category,
            country=country,
            status=STATUS_FALLBACK,
            degraded=found.degraded,
            reason=REASON_COMPETITORS_UNAVAILABLE if found.degraded else None,
        )
        return SearchResult(
            target=found.target,
            competitors=found.competitors,
            search_context=context,
            keywords=keywords,
            rankings=rankings,
        )

    def _rank(
        self,
        tenant_id: str,
        target: CatalogEntry,
        competitors: tuple[CatalogEntry, ...],
        country: str,
        options: SearchOptions,
        max_live_checks: int,
        harvest: bool,
    ) -> tuple[tuple[CandidateKeyword, ...], tuple[Ranking, ...]]:
        """候補キーワードを集めて順位を計算する."""
        if not options.include_keyword_rankings:
            return (), ()

        candidates = extract(target, max_keywords=options.max_keywords)
        candidates += semantic_keywords(target)
        if harvest and competitors:
            candidates += harvest_competitor_keywords(competitors)
        if options.include_trending:
            candidates += self._trending(target, country)
        keywords = merge_candidates(candidates, max_keywords=options.max_keywords)

        analysis = self._ranker.analyze(
            target,
            keywords,
            country,
            max_live_checks=max_live_checks,
            previous_positions=self._previous_positions(tenant_id, target.id),
        )
        if analysis.circuit_open:
            logger.warning("サーキット open のため一部の順位は推定値: target=%s", target.id)
        if options.persist_rankings:
            self._save_rankings(tenant_id, target, analysis.rankings)
        return tuple(keywords), tuple(analysis.rankings)

    def _trending(self, target: CatalogEntry, country: str) -> list[CandidateKeyword]:
        """ブランド語のサジェストをトレンド候補にする. 失敗時は空."""
        seed = brand_term(target.name) or target.name
        try:
            return trending_keywords(self._discovery.suggest(seed, country))
        except DiscoveryError as e:
            logger.warning("サジェスト取得失敗（トレンド語なしで続行）: term=%s, error=%s", seed, e)
            return []

    def _previous_positions(self, tenant_id: str, target_id: str) -> dict[str, int]:
        """前回のキーワード別順位を取得する. 失敗時は空."""
        if self._history is None:
            return {}
        try:
            return self._history(tenant_id, target_id)
        except Exception as e:
            logger.warning("前回順位の取得に失敗（履歴なしで続行）: target=%s, error=%s", target_id, e)
            return {}

    def _save_rankings(self, tenant_id: str, target: CatalogEntry, rankings: list[Ranking]) -> None:
        """順位を保存する. 失敗はログのみ."""
        if self._persist is None:
            logger.info("保存先が未設定のため順位を保存しません")
            return
        records = [
            {
                "tenant_id": tenant_id,
                "target_id": target.id,
                "keyword": r.keyword,
                "position": r.position,
                "volume_bucket": r.volume_bucket,
                "trend": r.trend,
                "confidence": r.confidence,
                "checked_at": r.checked_at.isoformat(),
            }
            for r in rankings
        ]
        try:
            self._persist(records)
        except Exception as e:
            logger.warning("順位の保存に失敗: target=%s, error=%s", target.id, e)

    def _rate_limit_allows(self, tenant_id: str) -> bool:
        """レート制限内か. 確認に失敗したら許可扱い."""
        try:
            return self._rate_limiter.check(tenant_id, self._action)
        except Exception as e:
            logger.warning("レート制限の確認に失敗（許可扱い）: tenant=%s, error=%s", tenant_id, e)
            return True

    def _audit(self, query: Query, result: SearchResult) -> None:
        """検索結果の要約を監査ログに送る."""
        context = result.search_context
        record = {
            "tenant_id": query.tenant_id,
            "action": self._action,
            "query": query.raw,
            "result_summary": {
                "status": context.status,
                "kind": context.kind,
                "target_id": result.target.id if result.target else None,
                "competitors": len(result.competitors),
                "rankings": len(result.rankings),
                "reason": context.reason,
            },
            "outcome": "success" if context.status in (STATUS_OK, STATUS_CACHED) else context.status,
        }
        try:
            self._audit_sink.emit(record)
        except Exception as e:
            logger.warning("監査ログの送信に失敗: tenant=%s, error=%s", query.tenant_id, e)


def _resolve_country(classified: ClassifiedQuery, options: SearchOptions) -> str:
    """クエリ中の国指定（URL の地域・" in gb"）があればオプションより優先する."""
    return classified.country_hint or options.country


def _rejected_result(query: Query, options: SearchOptions, error: InputRejected) -> SearchResult:
    """入力拒否の結果を作る."""
    return SearchResult(
        target=None,
        competitors=(),
        search_context=SearchContext(
            query=query.raw,
            kind=KIND_KEYWORD,
            total_results=0,
            category="",
            country=options.country,
            status=STATUS_REJECTED,
            reason=error.message,
            rejection_code=error.code,
        ),
    )


def _no_match_result(query: Query, country: str, reason: str) -> SearchResult:
    """該当なしの結果を作る."""
    return SearchResult(
        target=None,
        competitors=(),
        search_context=SearchContext(
            query=query.raw,
            kind=KIND_KEYWORD,
            total_results=0,
            category="No Results",
            country=country,
            status=STATUS_NO_MATCH,
            reason=reason,
        ),
    )
