"""データモデル定義."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime

from storerank.config import DEFAULT_COUNTRY, DEFAULT_MAX_COMPETITORS, MAX_KEYWORDS, MAX_LIVE_CHECKS
from storerank.errors import MalformedEntry

# クエリ種別
KIND_URL = "url"
KIND_BRAND = "brand"
KIND_KEYWORD = "keyword"

# 候補キーワードの出所
SOURCE_METADATA = "metadata"
SOURCE_SEMANTIC = "semantic"
SOURCE_COMPETITOR = "competitor"
SOURCE_CATEGORY = "category"
SOURCE_TRENDING = "trending"

# 順位の確度
CONFIDENCE_ACTUAL = "actual"  # そのキーワードでライブ検索して得た順位
CONFIDENCE_ESTIMATED = "estimated"  # ヒューリスティックによる推定

# 検索結果のステータス
STATUS_OK = "ok"
STATUS_CACHED = "cached"
STATUS_FALLBACK = "fallback"
STATUS_NO_MATCH = "no_match"
STATUS_REJECTED = "rejected"


@dataclass(frozen=True)
class Query:
    """受け付けた生のクエリ."""

    raw: str
    tenant_id: str


@dataclass(frozen=True)
class ClassifiedQuery:
    """分類済みクエリ."""

    normalized_term: str
    kind: str  # "url" / "brand" / "keyword"
    confidence: float  # 0.0〜1.0
    country_hint: str  # クエリ中の国指定、なければ空文字
    language: str = "en"
    category_hint: str = "Utilities"


@dataclass(frozen=True)
class CatalogEntry:
    """上流 API から取得したアプリ1件のスナップショット."""

    id: str
    name: str
    title: str
    subtitle: str = ""
    description: str = ""
    category: str = ""
    icon_url: str = ""
    rating: float = 0.0
    rating_count: int = 0
    price: float = 0.0
    url: str = ""
    developer: str = ""
    screenshots: tuple[str, ...] = ()

    @classmethod
    def from_api(cls, item: dict) -> CatalogEntry:
        """iTunes API の result 1件を検証して CatalogEntry に変換する.

        Raises:
            MalformedEntry: trackId / trackName が無い、または型が不正な場合
        """
        if not isinstance(item, dict):
            raise MalformedEntry(f"エントリが dict ではありません: {type(item).__name__}")

        track_id = item.get("trackId")
        name = item.get("trackName")
        if track_id is None or str(track_id).strip() == "":
            raise MalformedEntry("trackId がありません")
        if not isinstance(name, str) or not name.strip():
            raise MalformedEntry(f"trackName がありません: trackId={track_id}")

        name = name.strip()
        # trackCensoredName は多くの場合 trackName と同一なのでサブタイトル扱いしない
        subtitle = item.get("subtitle") or ""
        if not isinstance(subtitle, str):
            subtitle = ""

        return cls(
            id=str(track_id).strip(),
            name=name,
            title=name,
            subtitle=subtitle.strip(),
            description=_to_str(item.get("description")),
            category=_to_str(item.get("primaryGenreName")),
            icon_url=_to_str(item.get("artworkUrl512") or item.get("artworkUrl100")),
            rating=_to_float(item.get("averageUserRating")),
            rating_count=int(_to_float(item.get("userRatingCount"))),
            price=_to_float(item.get("price")),
            url=_to_str(item.get("trackViewUrl")),
            developer=_to_str(item.get("artistName")),
        )


def _to_str(value) -> str:
    """文字列なら前後の空白を除いて返す. それ以外は空文字."""
    return value.strip() if isinstance(value, str) else ""


def _to_float(value) -> float:
    """数値に変換する. 変換できなければ 0.0."""
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class DiscoveredResultSet:
    """ターゲット1件と競合リスト（上流の返却順）."""

    target: CatalogEntry
    competitors: tuple[CatalogEntry, ...]
    category: str
    degraded: bool = False  # 競合取得に失敗した場合 True


@dataclass(frozen=True)
class CandidateKeyword:
    """抽出した候補キーワード."""

    text: str
    source: str  # metadata / semantic / competitor / category / trending
    relevance_score: float


@dataclass(frozen=True)
class Ranking:
    """キーワードごとの順位."""

    keyword: str
    position: int | None  # None = 圏外
    volume_bucket: str  # "Low" / "Medium" / "High"
    trend: str  # "up" / "down" / "stable"
    confidence: str  # "actual" / "estimated"
    checked_at: datetime
    result_count: int = 0  # 順位を読み取った結果セットの件数（推定時は 0）


@dataclass(frozen=True)
class SearchOptions:
    """search() のオプション."""

    include_competitor_analysis: bool = True
    max_competitors: int = DEFAULT_MAX_COMPETITORS
    country: str = DEFAULT_COUNTRY
    include_keyword_rankings: bool = True
    max_keywords: int = MAX_KEYWORDS
    max_live_checks: int = MAX_LIVE_CHECKS
    harvest_competitor_keywords: bool = True
    include_trending: bool = False
    enrich_target: bool = True
    persist_rankings: bool = False


@dataclass(frozen=True)
class SearchContext:
    """検索の文脈情報."""

    query: str
    kind: str
    total_results: int
    category: str
    country: str
    status: str = STATUS_OK
    degraded: bool = False
    reason: str | None = None
    rejection_code: str | None = None


@dataclass(frozen=True)
class SearchResult:
    """search() の戻り値. 失敗時もこの形で返す."""

    target: CatalogEntry | None
    competitors: tuple[CatalogEntry, ...]
    search_context: SearchContext
    keywords: tuple[CandidateKeyword, ...] = ()
    rankings: tuple[Ranking, ...] = ()

    def to_dict(self) -> dict:
        """JSON 化できる dict に変換する."""
        data = asdict(self)
        for r in data["rankings"]:
            r["checked_at"] = r["checked_at"].isoformat()
        return data


@dataclass
class KeywordAnalysis:
    """キーワード順位分析の結果."""

    rankings: list[Ranking] = field(default_factory=list)
    actual_count: int = 0
    estimated_count: int = 0
    circuit_open: bool = False
