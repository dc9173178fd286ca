"""storefront モジュールのユニットテスト."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from storerank.errors import PartialDegradation
from storerank.models import CatalogEntry
from storerank.storefront import (
    _deep_get,
    enrich_entry,
    fetch_storefront_page,
    parse_storefront_metadata,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


def _entry(**kwargs) -> CatalogEntry:
    defaults = {
        "id": "1001",
        "name": "Acme Budget Tracker",
        "title": "Acme Budget Tracker",
        "category": "Finance",
        "url": "https://apps.apple.com/us/app/acme-budget-tracker/id1001",
    }
    defaults.update(kwargs)
    return CatalogEntry(**defaults)


class TestParseStorefrontMetadata:
    """parse_storefront_metadata のテスト."""

    def test_subtitle(self):
        """サブタイトルの空白・実体参照が正規化されること."""
        meta = parse_storefront_metadata(_load_fixture("product_page.html"))
        assert meta["subtitle"] == "Expense & money manager"

    def test_json_ld_screenshots(self):
        """JSON-LD の文字列・ImageObject の両方から URL を取れること."""
        meta = parse_storefront_metadata(_load_fixture("product_page.html"))
        assert meta["screenshots"] == [
            "https://is1-ssl.mzstatic.com/image/thumb/shot1/392x696bb.png",
            "https://is1-ssl.mzstatic.com/image/thumb/shot2/392x696bb.png",
        ]

    def test_og_image_fallback(self):
        """JSON-LD が壊れている場合は og:image にフォールバックすること."""
        meta = parse_storefront_metadata(_load_fixture("product_page_og.html"))
        assert meta["subtitle"] == ""
        assert meta["screenshots"] == [
            "https://is1-ssl.mzstatic.com/image/thumb/calm/1200x630wa.png",
        ]

    def test_empty_html(self):
        meta = parse_storefront_metadata("<html><body></body></html>")
        assert meta == {"subtitle": "", "screenshots": []}


class TestFetchStorefrontPage:
    """fetch_storefront_page のテスト."""

    @patch("storerank.storefront.requests.get")
    def test_success(self, mock_get):
        resp = MagicMock(text="<html></html>")
        mock_get.return_value = resp

        html = fetch_storefront_page("https://apps.apple.com/us/app/x/id1")

        assert html == "<html></html>"
        _, kwargs = mock_get.call_args
        assert "User-Agent" in kwargs["headers"]
        assert kwargs["timeout"] > 0

    @patch("storerank.storefront.requests.get")
    def test_connection_error(self, mock_get):
        """通信エラーでは None を返すこと."""
        mock_get.side_effect = requests.ConnectionError("refused")
        assert fetch_storefront_page("https://apps.apple.com/us/app/x/id1") is None

    @patch("storerank.storefront.requests.get")
    def test_http_error(self, mock_get):
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.HTTPError("404")
        mock_get.return_value = resp
        assert fetch_storefront_page("https://apps.apple.com/us/app/x/id1") is None

    def test_uses_session(self):
        session = MagicMock()
        session.get.return_value = MagicMock(text="ok")
        assert fetch_storefront_page("https://apps.apple.com/x", session=session) == "ok"
        session.get.assert_called_once()


class TestEnrichEntry:
    """enrich_entry のテスト."""

    @patch("storerank.storefront.fetch_storefront_page")
    def test_fills_missing_fields(self, mock_fetch):
        mock_fetch.return_value = _load_fixture("product_page.html")
        entry = _entry()

        enriched = enrich_entry(entry)

        assert enriched.subtitle == "Expense & money manager"
        assert len(enriched.screenshots) == 2
        assert enriched.id == entry.id
        # 元のエントリは変更しない
        assert entry.subtitle == ""

    @patch("storerank.storefront.fetch_storefront_page")
    def test_keeps_existing_subtitle(self, mock_fetch):
        mock_fetch.return_value = _load_fixture("product_page.html")
        enriched = enrich_entry(_entry(subtitle="Track spending"))
        assert enriched.subtitle == "Track spending"

    def test_missing_url(self):
        with pytest.raises(PartialDegradation):
            enrich_entry(_entry(url=""))

    @patch("storerank.storefront.fetch_storefront_page", return_value=None)
    def test_fetch_failure(self, mock_fetch):
        with pytest.raises(PartialDegradation):
            enrich_entry(_entry())


class TestDeepGet:
    """_deep_get のテスト."""

    def test_nested(self):
        assert _deep_get({"a": {"b": "c"}}, "a", "b") == "c"

    def test_missing(self):
        assert _deep_get({"a": "x"}, "a", "b") is None
