"""ストア検索・キーワード順位分析 — メインエントリーポイント.

処理フロー:
  1. コマンドライン引数からテナント・クエリ・オプションを受け取る
  2. 共有のキャッシュ・サーキットブレーカーでオーケストレーターを1つ組み立てる
  3. クエリごとにスレッドを割り当てて並行に検索
  4. クエリ単位で JSON を標準出力へ書き出す

使い方:
  python -m storerank.main --tenant ORG "meditation" "https://apps.apple.com/us/app/x/id123"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from storerank.cache import CacheManager
from storerank.catalog_client import CatalogClient
from storerank.config import DEFAULT_COUNTRY, DEFAULT_MAX_COMPETITORS, LOG_DIR, MAX_KEYWORDS
from storerank.discovery import CatalogDiscovery
from storerank.models import STATUS_NO_MATCH, STATUS_REJECTED, SearchOptions
from storerank.orchestrator import SearchOrchestrator


def setup_logging() -> None:
    """ロギングの初期設定."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / f"storerank_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """コマンドライン引数を解析する."""
    parser = argparse.ArgumentParser(description="ストア検索とキーワード順位分析")
    parser.add_argument("queries", nargs="+", metavar="QUERY", help="URL・アプリ名・キーワード")
    parser.add_argument("--tenant", required=True, help="テナント ID")
    parser.add_argument("--country", default=DEFAULT_COUNTRY, help="国コード (既定: %(default)s)")
    parser.add_argument("--max-competitors", type=int, default=DEFAULT_MAX_COMPETITORS)
    parser.add_argument("--max-keywords", type=int, default=MAX_KEYWORDS)
    parser.add_argument("--no-competitors", action="store_true", help="競合を取得しない")
    parser.add_argument("--no-rankings", action="store_true", help="キーワード順位を計算しない")
    parser.add_argument("--trending", action="store_true", help="サジェスト語を候補に加える")
    parser.add_argument("--persist", action="store_true", help="順位を DB に保存する")
    parser.add_argument("--workers", type=int, default=4, help="並行実行数")
    return parser.parse_args(argv)


def build_orchestrator() -> SearchOrchestrator:
    """プロセス内で共有するオーケストレーターを組み立てる."""
    discovery = CatalogDiscovery(CatalogClient())
    return SearchOrchestrator(discovery=discovery, cache=CacheManager())


def run(argv: list[str] | None = None) -> int:
    """メイン処理. 全クエリが no_match / rejected なら 1 を返す."""
    args = parse_args(argv)
    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("=== ストア検索 開始 ===")
    start_time = time.time()

    options = SearchOptions(
        include_competitor_analysis=not args.no_competitors,
        max_competitors=args.max_competitors,
        country=args.country.lower(),
        include_keyword_rankings=not args.no_rankings,
        max_keywords=args.max_keywords,
        include_trending=args.trending,
        persist_rankings=args.persist,
    )
    orchestrator = build_orchestrator()

    with ThreadPoolExecutor(max_workers=max(args.workers, 1)) as pool:
        futures = [pool.submit(orchestrator.search, args.tenant, q, options) for q in args.queries]
        results = [f.result() for f in futures]

    failed = 0
    for result in results:
        if result.search_context.status in (STATUS_NO_MATCH, STATUS_REJECTED):
            failed += 1
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))

    # サマリ
    elapsed = time.time() - start_time
    logger.info("=== ストア検索 完了 ===")
    logger.info("クエリ: %d 件, 失敗: %d 件, 所要時間: %.1f 秒", len(results), failed, elapsed)
    return 1 if results and failed == len(results) else 0


if __name__ == "__main__":
    sys.exit(run())
