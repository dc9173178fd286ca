"""入力クエリの分類モジュール.

判定順:
  1. 長さ・危険パターンの検証（不正なら InputRejected）
  2. ストアフロント URL → url
  3. 大文字始まり／製品サフィックス語 → brand（汎用カテゴリ語を含む場合は keyword）
  4. それ以外 → keyword
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from storerank.config import STOREFRONT_DOMAINS, SUPPORTED_COUNTRIES
from storerank.errors import InputRejected
from storerank.models import KIND_BRAND, KIND_KEYWORD, KIND_URL, ClassifiedQuery

MIN_LENGTH = 2
MAX_LENGTH = 100

_DENYLIST = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"onload=", re.IGNORECASE),
    re.compile(r"onerror=", re.IGNORECASE),
]

_BRAND_PATTERNS = [
    re.compile(r"^[A-Z][a-zA-Z0-9\s]{2,30}$"),
    re.compile(r"\b(app|mobile|pro|premium|plus)\b", re.IGNORECASE),
]

GENERIC_TERMS = (
    "learning", "education", "fitness", "health", "music", "photo", "video",
    "social", "messaging", "productivity", "finance", "shopping", "travel",
    "food", "sports", "news", "weather", "dating", "meditation", "workout",
)

_CATEGORY_LEXICON = {
    "Education": ("learn", "education", "study", "language", "math", "science"),
    "Health & Fitness": ("fitness", "health", "workout", "meditation", "yoga"),
    "Entertainment": ("music", "video", "movie", "game", "streaming"),
    "Social Networking": ("social", "chat", "messaging", "dating", "community"),
    "Productivity": ("productivity", "task", "note", "calendar", "office"),
    "Finance": ("finance", "banking", "money", "budget", "crypto"),
    "Shopping": ("shopping", "ecommerce", "store", "marketplace"),
    "Photo & Video": ("photo", "camera", "video", "editor", "filter"),
}

# 文字種による簡易言語判定
_SCRIPT_LANGUAGES = [
    (re.compile(r"[\u3040-\u309f\u30a0-\u30ff]"), "ja"),
    (re.compile(r"[\u4e00-\u9fff]"), "zh"),
    (re.compile(r"[\uac00-\ud7af]"), "ko"),
    (re.compile(r"[\u0600-\u06ff]"), "ar"),
    (re.compile(r"[\u0590-\u05ff]"), "he"),
]

_REGION_PATTERN = re.compile(r"^[a-z]{2}$")
_COUNTRY_SUFFIX_PATTERN = re.compile(r"\s+in\s+([a-z]{2})$")


def classify(
    raw: str,
    storefront_domains: tuple[str, ...] = STOREFRONT_DOMAINS,
) -> ClassifiedQuery:
    """生のクエリ文字列を分類する.

    Args:
        raw: ユーザー入力
        storefront_domains: URL と判定するホスト（サブドメインも含む）

    Returns:
        ClassifiedQuery

    Raises:
        InputRejected: 短すぎる・長すぎる・危険なパターンを含む場合
    """
    text = (raw or "").strip()

    if len(text) < MIN_LENGTH:
        raise InputRejected("INPUT_TOO_SHORT", "検索語は 2 文字以上で入力してください")
    if len(text) > MAX_LENGTH:
        raise InputRejected("INPUT_TOO_LONG", "検索語は 100 文字以内で入力してください")
    for pattern in _DENYLIST:
        if pattern.search(text):
            raise InputRejected("MALICIOUS_INPUT", "検索語に使用できない文字列が含まれています")

    host, path = _parse_url(text)
    if host and _is_storefront_host(host, storefront_domains):
        return ClassifiedQuery(
            normalized_term=text,
            kind=KIND_URL,
            confidence=0.95,
            country_hint=_region_from_path(path),
        )

    term, country = normalize_term(text)
    kind, confidence = (KIND_BRAND, 0.8) if is_brand_name(text) else (KIND_KEYWORD, 0.7)
    return ClassifiedQuery(
        normalized_term=term,
        kind=kind,
        confidence=confidence,
        country_hint=country,
        language=detect_language(text),
        category_hint=predict_category(text),
    )


def normalize_term(text: str) -> tuple[str, str]:
    """検索語を正規化し、末尾の " in <国コード>" を国ヒントとして切り出す.

    Returns:
        (正規化済み検索語, 国コード). 国指定がなければ国コードは空文字
    """
    term = text.strip().lower()
    term = re.sub(r"[^\w\s-]", " ", term)
    term = re.sub(r"\s+", " ", term).strip()

    country = ""
    m = _COUNTRY_SUFFIX_PATTERN.search(term)
    if m and m.group(1) in SUPPORTED_COUNTRIES and term[: m.start()].strip():
        country = m.group(1)
        term = term[: m.start()].strip()
    return term, country


def is_brand_name(text: str) -> bool:
    """ブランド名らしいかどうか. 汎用カテゴリ語を含めば False."""
    lowered = text.lower()
    if any(term in lowered for term in GENERIC_TERMS):
        return False
    return any(p.search(text) for p in _BRAND_PATTERNS)


def detect_language(text: str) -> str:
    """文字種から言語コードを推定する. 判定できなければ en."""
    for pattern, lang in _SCRIPT_LANGUAGES:
        if pattern.search(text):
            return lang
    return "en"


def predict_category(text: str) -> str:
    """語彙からストアのカテゴリを推定する."""
    lowered = text.lower()
    for category, words in _CATEGORY_LEXICON.items():
        if any(w in lowered for w in words):
            return category
    return "Utilities"


def _parse_url(text: str) -> tuple[str, str]:
    """URL として解釈できればホストとパスを返す. スキーム省略も許容."""
    if " " in text:
        return "", ""
    candidate = text if re.match(r"^https?://", text, re.IGNORECASE) else f"https://{text}"
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return "", ""
    host = (parsed.hostname or "").lower()
    if "." not in host:
        return "", ""
    return host, parsed.path


def _is_storefront_host(host: str, domains: tuple[str, ...]) -> bool:
    """ホストがストアフロントのドメイン（サブドメイン含む）か."""
    return any(host == d or host.endswith("." + d) for d in domains)


def _region_from_path(path: str) -> str:
    """/gb/app/... の先頭セグメントが国コードならそれを返す. なければ空文字."""
    segments = [s for s in path.split("/") if s]
    if not segments:
        return ""
    region = segments[0].lower()
    if _REGION_PATTERN.match(region) and region in SUPPORTED_COUNTRIES:
        return region
    return ""
