"""キーワード順位計算モジュール.

順位の確度:
  - actual   : そのキーワードでライブ検索した結果セット内の位置
  - estimated: キーワード・カテゴリの特徴から推定（乱数は seed で固定し再現可能）
ライブ検索は1回の分析につき max_live_checks 回まで、間隔をあけて実行する。
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from storerank.config import LIVE_CHECK_INTERVAL, LIVE_CHECK_LIMIT, MAX_LIVE_CHECKS
from storerank.errors import DiscoveryError
from storerank.models import (
    CONFIDENCE_ACTUAL,
    CONFIDENCE_ESTIMATED,
    CandidateKeyword,
    CatalogEntry,
    KeywordAnalysis,
    Ranking,
)

logger = logging.getLogger(__name__)

VOLUME_LOW = "Low"
VOLUME_MEDIUM = "Medium"
VOLUME_HIGH = "High"

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"

# カテゴリごとの検索ボリューム係数
CATEGORY_VOLUME_MULTIPLIERS = {
    "health & fitness": 1.5,
    "lifestyle": 1.3,
    "productivity": 1.2,
    "education": 1.1,
    "entertainment": 1.4,
    "games": 2.0,
    "social networking": 1.6,
    "finance": 1.2,
    "utilities": 0.8,
}
BASE_VOLUME = 1000


def find_position(
    result_set: Sequence[CatalogEntry], target_id: str, target_name: str | None = None
) -> int | None:
    """結果セット内のターゲットの順位（1始まり）. ID 一致を優先し、次に名前の部分一致."""
    for i, entry in enumerate(result_set):
        if entry.id == target_id:
            return i + 1
    if target_name and target_name.strip():
        needle = target_name.strip().lower()
        for i, entry in enumerate(result_set):
            if needle in entry.name.lower():
                return i + 1
    return None


def volume_bucket(result_count: int, word_count: int) -> str:
    """結果件数が多く、語数が少ないほどボリュームが大きいとみなす."""
    competition = 2 if result_count >= 20 else 1 if result_count >= 8 else 0
    brevity = 2 if word_count <= 1 else 1 if word_count == 2 else 0
    score = competition + brevity
    if score >= 3:
        return VOLUME_HIGH
    if score >= 2:
        return VOLUME_MEDIUM
    return VOLUME_LOW


def derive_trend(previous_position: int | None, position: int | None) -> str:
    """前回順位との比較で up / down / stable を返す."""
    if previous_position is None:
        return TREND_STABLE
    if position is None:
        return TREND_DOWN
    if position < previous_position:
        return TREND_UP
    if position > previous_position:
        return TREND_DOWN
    return TREND_STABLE


def calculate_ranking(
    keyword: str,
    target_id: str,
    result_set: Sequence[CatalogEntry],
    *,
    target_name: str | None = None,
    live: bool = False,
    previous_position: int | None = None,
    checked_at: datetime | None = None,
) -> Ranking | None:
    """結果セットからターゲットの順位を求める.

    Args:
        keyword: 対象キーワード
        target_id: ターゲットのカタログ ID
        result_set: 検索結果（上流の返却順）
        target_name: ID で見つからない場合に使う名前
        live: result_set がこの keyword でライブ検索した結果かどうか
        previous_position: 前回の順位（トレンド算出用）

    Returns:
        Ranking。ターゲットが結果セットに無ければ None。
    """
    position = find_position(result_set, target_id, target_name)
    if position is None:
        return None
    return Ranking(
        keyword=keyword,
        position=position,
        volume_bucket=volume_bucket(len(result_set), len(keyword.split())),
        trend=derive_trend(previous_position, position),
        confidence=CONFIDENCE_ACTUAL if live else CONFIDENCE_ESTIMATED,
        checked_at=checked_at or datetime.now(timezone.utc),
        result_count=len(result_set),
    )


def estimate_volume(keyword: str, category: str) -> str:
    """カテゴリ係数と語数から検索ボリュームを推定する."""
    multiplier = CATEGORY_VOLUME_MULTIPLIERS.get((category or "").strip().lower(), 1.0)
    length_penalty = 0.7 if len(keyword.split()) > 2 else 1.0
    volume = BASE_VOLUME * multiplier * length_penalty
    if volume >= 1300:
        return VOLUME_HIGH
    if volume >= 900:
        return VOLUME_MEDIUM
    return VOLUME_LOW


def estimate_ranking(
    candidate: CandidateKeyword,
    category: str,
    seed: str = "",
    previous_position: int | None = None,
    checked_at: datetime | None = None,
) -> Ranking:
    """ライブ検索なしの推定順位. 同じ seed・キーワードなら常に同じ結果になる."""
    rng = random.Random(f"{seed}:{candidate.text}")
    score = candidate.relevance_score
    if score >= 0.9:
        low, high = 1, 10
    elif score >= 0.6:
        low, high = 5, 24
    else:
        low, high = 15, 54
    position = rng.randint(low, high)

    return Ranking(
        keyword=candidate.text,
        position=position,
        volume_bucket=estimate_volume(candidate.text, category),
        trend=derive_trend(previous_position, position),
        confidence=CONFIDENCE_ESTIMATED,
        checked_at=checked_at or datetime.now(timezone.utc),
        result_count=0,
    )


class KeywordRanker:
    """候補キーワードの順位を、上位数件はライブ検索・残りは推定で求める."""

    def __init__(
        self,
        discovery,
        max_live_checks: int = MAX_LIVE_CHECKS,
        interval: float = LIVE_CHECK_INTERVAL,
        live_limit: int = LIVE_CHECK_LIMIT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._discovery = discovery
        self.max_live_checks = max_live_checks
        self.interval = interval
        self.live_limit = live_limit
        self._sleep = sleep

    def analyze(
        self,
        target: CatalogEntry,
        candidates: Sequence[CandidateKeyword],
        country: str,
        max_live_checks: int | None = None,
        previous_positions: dict[str, int] | None = None,
    ) -> KeywordAnalysis:
        """候補キーワードごとの順位を求める.

        ライブ検索はブレーカーが open、または1回でも失敗した時点で打ち切り、
        以降のキーワードは推定に切り替える。
        """
        limit = self.max_live_checks
        if max_live_checks is not None:
            limit = min(max_live_checks, self.max_live_checks)
        previous = previous_positions or {}

        analysis = KeywordAnalysis()
        live_enabled = limit > 0
        for candidate in candidates:
            ranking = None
            if live_enabled and analysis.actual_count < limit:
                ranking, live_enabled = self._check_live(
                    target, candidate, country, previous.get(candidate.text), analysis,
                )
            if ranking is None:
                ranking = estimate_ranking(
                    candidate,
                    target.category,
                    seed=target.id,
                    previous_position=previous.get(candidate.text),
                )
            analysis.rankings.append(ranking)

        analysis.rankings.sort(key=lambda r: (r.position is None, r.position or 0))
        analysis.estimated_count = len(analysis.rankings) - analysis.actual_count
        analysis.circuit_open = analysis.circuit_open or self._discovery.breaker.is_open()
        logger.info(
            "キーワード分析完了: target=%s, actual=%d, estimated=%d",
            target.id, analysis.actual_count, analysis.estimated_count,
        )
        return analysis

    def _check_live(
        self,
        target: CatalogEntry,
        candidate: CandidateKeyword,
        country: str,
        previous_position: int | None,
        analysis: KeywordAnalysis,
    ) -> tuple[Ranking | None, bool]:
        """ライブ検索で順位を確認する.

        Returns:
            (Ranking または None, 以降もライブ検索を続けるか)
        """
        if self._discovery.breaker.is_open():
            logger.info("サーキット open のためライブ検索を中止: keyword=%s", candidate.text)
            analysis.circuit_open = True
            return None, False

        if analysis.actual_count > 0:
            # 上流のレート制限に配慮して間隔をあける
            self._sleep(self.interval)

        try:
            results = self._discovery.search_live(candidate.text, country, self.live_limit)
        except DiscoveryError as e:
            logger.warning("ライブ検索失敗（以降は推定）: keyword=%s, error=%s", candidate.text, e)
            return None, False

        analysis.actual_count += 1
        ranking = calculate_ranking(
            candidate.text,
            target.id,
            results,
            target_name=target.name,
            live=True,
            previous_position=previous_position,
        )
        if ranking is None:
            # 圏外として記録
            ranking = Ranking(
                keyword=candidate.text,
                position=None,
                volume_bucket=volume_bucket(len(results), len(candidate.text.split())),
                trend=derive_trend(previous_position, None),
                confidence=CONFIDENCE_ACTUAL,
                checked_at=datetime.now(timezone.utc),
                result_count=len(results),
            )
        status = f"{ranking.position}位" if ranking.position else "圏外"
        logger.info("  ライブ検索: %s → %s", candidate.text, status)
        return ranking, True
