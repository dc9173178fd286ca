"""候補キーワード抽出モジュール.

抽出の優先順（max_keywords で切り詰めても重要な語が残るように）:
  1. タイトル・サブタイトルの単語と 2〜3 語のフレーズ（タイトルのフレーズが最上位）
  2. 説明文の先頭 DESCRIPTION_WINDOW 文字（低め）
  3. カテゴリごとのシード語（中位）
  4. 正規化テキストで重複除去（スコアは最大値を採用）
  5. 数字のみ・製品種別語を含む・長すぎる語を除外
並び順: 語数の多い順 → スコア順 → 文字数順
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from storerank.config import MAX_KEYWORDS
from storerank.models import (
    SOURCE_CATEGORY,
    SOURCE_COMPETITOR,
    SOURCE_METADATA,
    SOURCE_SEMANTIC,
    SOURCE_TRENDING,
    CandidateKeyword,
    CatalogEntry,
)

DESCRIPTION_WINDOW = 200
MIN_TOKEN_LENGTH = 3
MAX_PHRASE_WORDS = 3
MAX_TERM_LENGTH = 30
PRODUCT_SUFFIX = "app"

# 関連度スコア
TIER_TITLE_PHRASE = 1.0
TIER_TITLE_WORD = 0.9
TIER_SUBTITLE_PHRASE = 0.85
TIER_SUBTITLE_WORD = 0.75
TIER_SEMANTIC = 0.7
TIER_CATEGORY = 0.6
TIER_DESCRIPTION_PHRASE = 0.5
TIER_DESCRIPTION_WORD = 0.4
TIER_COMPETITOR = 0.3
TIER_TRENDING_TOP = 0.65
TIER_TRENDING_FLOOR = 0.35

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "your", "you", "our", "are", "from", "that",
    "this", "all", "any", "can", "get", "has", "have", "into", "its", "more",
    "not", "now", "one", "out", "over", "than", "their", "them", "then", "there",
    "these", "they", "was", "will", "what", "when", "who", "why", "how", "while",
    "best", "free", "new", "top", "most", "very", "just", "also", "every", "each",
    "use", "using", "make", "way", "ever", "like",
})

CATEGORY_SEEDS: dict[str, tuple[str, ...]] = {
    "finance": ("budget", "money", "expense tracker", "personal finance", "money manager"),
    "health & fitness": ("fitness", "workout", "health", "exercise plan", "fitness tracker"),
    "education": ("learn", "study", "course", "online course", "study guide"),
    "productivity": ("task", "organize", "notes", "task manager", "todo list"),
    "entertainment": ("game", "fun", "puzzle", "casual game", "brain game"),
    "games": ("game", "play", "puzzle", "casual game", "offline game"),
    "lifestyle": ("lifestyle", "habit", "daily planner", "habit tracker"),
    "social networking": ("social", "chat", "friends", "group chat", "meet people"),
    "photo & video": ("photo", "camera", "editor", "photo editor", "video editor"),
    "music": ("music", "songs", "playlist", "music player", "offline music"),
    "travel": ("travel", "trip", "flights", "hotel booking", "trip planner"),
    "food & drink": ("recipes", "cooking", "food", "meal planner", "food delivery"),
    "shopping": ("shopping", "deals", "coupons", "online shopping", "price tracker"),
    "utilities": ("tool", "utility", "scanner", "file manager", "qr scanner"),
    "business": ("business", "invoice", "meeting", "time tracking", "team chat"),
    "medical": ("health", "medical", "symptom checker", "pill reminder"),
    "weather": ("weather", "forecast", "rain radar", "weather forecast"),
    "news": ("news", "headlines", "breaking news", "local news"),
    "navigation": ("maps", "gps", "navigation", "offline maps", "route planner"),
    "sports": ("sports", "scores", "live scores", "fantasy sports"),
    "reference": ("dictionary", "reference", "translator", "encyclopedia"),
    "books": ("books", "reading", "ebook reader", "audiobooks"),
}

LANGUAGES = (
    "spanish", "french", "german", "italian", "portuguese", "russian",
    "japanese", "chinese", "korean", "arabic", "hindi", "english",
)

# フレーズを分断する区切り文字
_SEGMENT_SPLIT = re.compile(r"[^\w\s'&-]+|\s[-\u2013\u2014]\s")
_TOKEN_PATTERN = re.compile(r"[\w][\w'&-]*")
_BRAND_SPLIT = re.compile(r"\s*[-\u2013\u2014:|]\s*")


def extract(entry: CatalogEntry, max_keywords: int = MAX_KEYWORDS) -> list[CandidateKeyword]:
    """エントリのメタデータから候補キーワードを抽出する.

    Args:
        entry: 対象エントリ
        max_keywords: 返す最大件数

    Returns:
        候補キーワードのリスト（同じエントリなら常に同じ内容・順序）
    """
    candidates: list[CandidateKeyword] = []
    candidates += _from_text(entry.title, TIER_TITLE_PHRASE, TIER_TITLE_WORD)
    candidates += _from_text(entry.subtitle, TIER_SUBTITLE_PHRASE, TIER_SUBTITLE_WORD)
    candidates += _from_text(
        _description_window(entry.description),
        TIER_DESCRIPTION_PHRASE,
        TIER_DESCRIPTION_WORD,
    )
    candidates += category_keywords(entry.category)
    return merge_candidates(candidates, max_keywords=max_keywords)


def category_keywords(category: str) -> list[CandidateKeyword]:
    """カテゴリのシード語を候補キーワードにする."""
    return [
        CandidateKeyword(text=term, source=SOURCE_CATEGORY, relevance_score=TIER_CATEGORY)
        for term in category_seeds(category)
    ]


def category_seeds(category: str) -> tuple[str, ...]:
    """カテゴリ名からシード語を引く. 完全一致が無ければ部分一致."""
    key = (category or "").strip().lower()
    if not key:
        return ()
    if key in CATEGORY_SEEDS:
        return CATEGORY_SEEDS[key]
    for name, seeds in CATEGORY_SEEDS.items():
        if name in key or key in name:
            return seeds
    return ()


def semantic_keywords(entry: CatalogEntry) -> list[CandidateKeyword]:
    """ブランド名×カテゴリ語、語学系なら「learn + 言語」を生成する."""
    brand = brand_term(entry.name)
    results: list[CandidateKeyword] = []

    if brand:
        core_terms = [s for s in category_seeds(entry.category) if " " not in s][:3]
        for term in core_terms:
            if term not in brand.split():
                results.append(CandidateKeyword(
                    text=f"{brand} {term}",
                    source=SOURCE_SEMANTIC,
                    relevance_score=TIER_SEMANTIC,
                ))

    text = f"{entry.title} {entry.subtitle} {entry.description}".lower()
    for lang in LANGUAGES:
        if re.search(rf"\b{lang}\b", text):
            for pattern in ("learn {}", "{} lessons"):
                results.append(CandidateKeyword(
                    text=pattern.format(lang),
                    source=SOURCE_SEMANTIC,
                    relevance_score=TIER_SEMANTIC,
                ))
    return results


def brand_term(name: str) -> str:
    """アプリ名からブランド部分を取り出す.

    例: "Duolingo - Language Lessons" → "duolingo"（3 語以上なら先頭語のみ）
    """
    head = _BRAND_SPLIT.split((name or "").strip())[0]
    words = _TOKEN_PATTERN.findall(head.lower())
    if not words:
        return ""
    return words[0] if len(words) > 2 else " ".join(words)


def harvest_competitor_keywords(
    competitors: Iterable[CatalogEntry], per_entry: int = 5
) -> list[CandidateKeyword]:
    """競合エントリのメタデータから上位の語を集める."""
    results: list[CandidateKeyword] = []
    for c in competitors:
        for kw in extract(c, max_keywords=per_entry):
            results.append(CandidateKeyword(
                text=kw.text,
                source=SOURCE_COMPETITOR,
                relevance_score=TIER_COMPETITOR,
            ))
    return results


def trending_keywords(hints: Iterable[str]) -> list[CandidateKeyword]:
    """サジェスト語. 上位ほどスコアを高くする."""
    results: list[CandidateKeyword] = []
    for i, hint in enumerate(hints):
        score = max(TIER_TRENDING_TOP - i * 0.03, TIER_TRENDING_FLOOR)
        results.append(CandidateKeyword(
            text=hint,
            source=SOURCE_TRENDING,
            relevance_score=round(score, 4),
        ))
    return results


def merge_candidates(
    candidates: Iterable[CandidateKeyword], max_keywords: int = MAX_KEYWORDS
) -> list[CandidateKeyword]:
    """重複除去（最大スコア優先）→ 除外フィルタ → 並べ替え → 切り詰め."""
    best: dict[str, CandidateKeyword] = {}
    for c in candidates:
        text = normalize_keyword(c.text)
        if not text or not _is_acceptable(text):
            continue
        current = best.get(text)
        if current is None or c.relevance_score > current.relevance_score:
            best[text] = CandidateKeyword(text=text, source=c.source, relevance_score=c.relevance_score)

    ordered = sorted(best.values(), key=_sort_key)
    return ordered[: max(max_keywords, 0)]


def normalize_keyword(text: str) -> str:
    """小文字化し空白を詰める."""
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def _sort_key(c: CandidateKeyword) -> tuple:
    """語数・スコア・長さの降順、同順位は文字列順."""
    return (-len(c.text.split()), -c.relevance_score, -len(c.text), c.text)


def _is_acceptable(text: str) -> bool:
    """数字のみの語と製品サフィックスを含む語を除き、長さの上限も確認する."""
    if text.replace(" ", "").isdigit():
        return False
    if PRODUCT_SUFFIX in text.split():
        return False
    return len(text) <= MAX_TERM_LENGTH


def _description_window(description: str) -> str:
    """説明文の先頭部分. 単語の途中で切らない."""
    text = re.sub(r"\s+", " ", description or "").strip()
    if len(text) <= DESCRIPTION_WINDOW:
        return text
    cut = text[:DESCRIPTION_WINDOW]
    if text[DESCRIPTION_WINDOW] != " " and " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut


def _from_text(text: str, phrase_score: float, word_score: float) -> list[CandidateKeyword]:
    """テキストからフレーズと単語の候補を作る."""
    results: list[CandidateKeyword] = []
    for run in _token_runs(text):
        for n in range(1, MAX_PHRASE_WORDS + 1):
            for i in range(len(run) - n + 1):
                results.append(CandidateKeyword(
                    text=" ".join(run[i:i + n]),
                    source=SOURCE_METADATA,
                    relevance_score=phrase_score if n > 1 else word_score,
                ))
    return results


def _token_runs(text: str) -> list[list[str]]:
    """句読点・ストップワード・短い語で区切った連続トークン列."""
    runs: list[list[str]] = []
    for segment in _SEGMENT_SPLIT.split((text or "").lower()):
        run: list[str] = []
        for token in _TOKEN_PATTERN.findall(segment):
            token = token.strip("'-&")
            if len(token) < MIN_TOKEN_LENGTH or token in STOP_WORDS:
                if run:
                    runs.append(run)
                run = []
                continue
            run.append(token)
        if run:
            runs.append(run)
    return runs
