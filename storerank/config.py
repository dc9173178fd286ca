"""設定モジュール — 環境変数・定数定義."""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env はプロジェクトルートに配置
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# --- Supabase ---
# 未設定の場合は監査ログ・レート制限・順位保存を行わない
SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_SECRET_KEY: str = os.getenv("SUPABASE_SECRET_KEY", "")
SUPABASE_SCHEMA: str = os.getenv("SUPABASE_SCHEMA", "storerank")

# --- iTunes Search API ---
ITUNES_SEARCH_URL = os.getenv("ITUNES_SEARCH_URL", "https://itunes.apple.com/search")
ITUNES_LOOKUP_URL = os.getenv("ITUNES_LOOKUP_URL", "https://itunes.apple.com/lookup")
ITUNES_HINTS_URL = os.getenv(
    "ITUNES_HINTS_URL",
    "https://search.itunes.apple.com/WebObjects/MZSearchHints.woa/wa/hints",
)

# --- ストアフロント ---
STOREFRONT_DOMAINS: tuple[str, ...] = tuple(
    d.strip().lower()
    for d in os.getenv("STOREFRONT_DOMAINS", "apps.apple.com,itunes.apple.com").split(",")
    if d.strip()
)
DEFAULT_COUNTRY = os.getenv("DEFAULT_COUNTRY", "us")
# App Store のストアフロント国コード
SUPPORTED_COUNTRIES = frozenset("""
    ae ag ai al am ao ar at au az bb be bf bg bh bj bm bn bo br bs bt bw by bz
    ca cg ch cl cn co cr cv cy cz de dk dm do dz ec ee eg es fi fj fm fr gb gd
    gh gm gr gt gw gy hk hn hr hu id ie il in is it jm jo jp ke kg kh kn kr kw
    ky kz la lb lc lk lr lt lu lv md mg mk ml mn mo mr ms mt mu mw mx my mz na
    ne ng ni nl no np nz om pa pe pg ph pk pl pt pw py qa ro ru sa sb sc se sg
    si sk sl sn sr st sv sz tc td th tj tm tn tr tt tw tz ua ug us uy uz vc ve
    vg vn ye za zw
""".split())

# --- User-Agent ---
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
)

# --- リクエスト設定 ---
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))  # 秒
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "2"))
BASE_DELAY = float(os.getenv("BASE_DELAY", "1.0"))  # 秒、試行ごとに倍

# --- サーキットブレーカー ---
CIRCUIT_MAX_FAILURES = int(os.getenv("CIRCUIT_MAX_FAILURES", "3"))
CIRCUIT_RESET_WINDOW = float(os.getenv("CIRCUIT_RESET_WINDOW", "30"))  # 秒

# --- キャッシュ ---
CACHE_TTL = float(os.getenv("CACHE_TTL", "1800"))  # 秒

# --- 競合・キーワード ---
DEFAULT_MAX_COMPETITORS = 10
FALLBACK_MAX_COMPETITORS = int(os.getenv("FALLBACK_MAX_COMPETITORS", "5"))
MAX_KEYWORDS = 20
MAX_LIVE_CHECKS = int(os.getenv("MAX_LIVE_CHECKS", "3"))
LIVE_CHECK_INTERVAL = float(os.getenv("LIVE_CHECK_INTERVAL", "1.0"))  # 秒
LIVE_CHECK_LIMIT = 50  # ライブ検索で取得する件数

# --- レート制限（監査ログ件数ベース）---
RATE_LIMIT_PER_HOUR = int(os.getenv("RATE_LIMIT_PER_HOUR", "100"))
SEARCH_ACTION = "catalog_search"

# --- ログ ---
LOG_DIR = Path(os.getenv("LOG_DIR", str(_PROJECT_ROOT / "logs")))
