"""ストアフロントの製品ページから補足情報を取得するモジュール.

検索 API が返さない項目（サブタイトル・スクリーンショット）をページ HTML から補う。
取得戦略:
  1. サブタイトル: h2.product-header__subtitle
  2. スクリーンショット: JSON-LD (schema.org/SoftwareApplication) の screenshot
     → 無ければ og:image にフォールバック
"""

from __future__ import annotations

import dataclasses
import json
import logging

import requests
from bs4 import BeautifulSoup

from storerank.config import REQUEST_TIMEOUT, USER_AGENT
from storerank.errors import PartialDegradation
from storerank.models import CatalogEntry

logger = logging.getLogger(__name__)


def fetch_storefront_page(url: str, session: requests.Session | None = None) -> str | None:
    """製品ページの HTML を取得する.

    Args:
        url: 製品ページ URL
        session: 使い回す requests.Session（省略時は requests.get）

    Returns:
        HTML 文字列。失敗時は None。
    """
    headers = {
        "User-Agent": USER_AGENT,
        "Accept-Language": "en-US,en;q=0.9",
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }
    getter = session.get if session is not None else requests.get

    try:
        resp = getter(url, headers=headers, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.text
    except requests.RequestException as e:
        logger.error("製品ページ取得失敗: url=%s, error=%s", url, e)
        return None


def parse_storefront_metadata(html: str) -> dict:
    """製品ページ HTML からサブタイトルとスクリーンショットを抽出する.

    Returns:
        {"subtitle": str, "screenshots": list[str]}
    """
    soup = BeautifulSoup(html, "html.parser")

    subtitle = ""
    tag = soup.find("h2", class_="product-header__subtitle")
    if tag is not None:
        subtitle = tag.get_text(" ", strip=True)

    screenshots = _screenshots_from_json_ld(soup)
    if not screenshots:
        og = soup.find("meta", attrs={"property": "og:image"})
        if og is not None and og.get("content"):
            screenshots = [og["content"].strip()]

    return {"subtitle": subtitle, "screenshots": screenshots}


def enrich_entry(entry: CatalogEntry, session: requests.Session | None = None) -> CatalogEntry:
    """ページ情報で CatalogEntry を補完した新しいエントリを返す.

    既に値がある項目は上書きしない。

    Raises:
        PartialDegradation: URL が無い、またはページが取得できない場合
    """
    if not entry.url:
        raise PartialDegradation(f"製品ページ URL がありません: id={entry.id}")

    html = fetch_storefront_page(entry.url, session=session)
    if html is None:
        raise PartialDegradation(f"製品ページを取得できません: id={entry.id}")

    meta = parse_storefront_metadata(html)
    changes: dict = {}
    if meta["subtitle"] and not entry.subtitle:
        changes["subtitle"] = meta["subtitle"]
    if meta["screenshots"] and not entry.screenshots:
        changes["screenshots"] = tuple(meta["screenshots"])

    if changes:
        logger.info("製品ページで補完: id=%s, 項目=%s", entry.id, ", ".join(sorted(changes)))
    return dataclasses.replace(entry, **changes)


def _screenshots_from_json_ld(soup: BeautifulSoup) -> list[str]:
    """JSON-LD (schema.org/SoftwareApplication) からスクリーンショット URL を抽出する."""
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string)
        except (json.JSONDecodeError, TypeError):
            continue

        if not isinstance(data, dict) or data.get("@type") != "SoftwareApplication":
            continue

        shots = data.get("screenshot") or []
        if isinstance(shots, (str, dict)):
            shots = [shots]

        urls: list[str] = []
        for shot in shots:
            # 文字列、または ImageObject {"url": ...} / {"contentUrl": ...}
            url = shot if isinstance(shot, str) else (
                _deep_get(shot, "url") or _deep_get(shot, "contentUrl")
            )
            if isinstance(url, str) and url.strip():
                urls.append(url.strip())
        if urls:
            return urls
    return []


def _deep_get(d: dict, *keys: str):
    """ネストされた dict から安全に値を取得する."""
    for key in keys:
        if not isinstance(d, dict):
            return None
        d = d.get(key)
    return d
