"""classifier モジュールのユニットテスト."""

import pytest

from storerank.classifier import (
    classify,
    detect_language,
    is_brand_name,
    normalize_term,
    predict_category,
)
from storerank.errors import InputRejected
from storerank.models import KIND_BRAND, KIND_KEYWORD, KIND_URL


class TestClassifyUrl:
    """URL 判定のテスト."""

    def test_storefront_url_with_region(self):
        q = classify("https://apps.apple.com/gb/app/calm/id571800810")
        assert q.kind == KIND_URL
        assert q.confidence == 0.95
        assert q.country_hint == "gb"
        assert q.normalized_term == "https://apps.apple.com/gb/app/calm/id571800810"

    def test_url_without_scheme(self):
        q = classify("apps.apple.com/app/calm/id571800810")
        assert q.kind == KIND_URL
        assert q.country_hint == ""

    def test_slug_is_not_region(self):
        """2文字のアプリ名スラッグを国コードと取り違えないこと."""
        q = classify("https://apps.apple.com/app/qq/id444934666")
        assert q.kind == KIND_URL
        assert q.country_hint == ""

    def test_region_must_be_first_segment(self):
        q = classify("https://apps.apple.com/app/gb/id444934666")
        assert q.country_hint == ""

    def test_explicit_us_region(self):
        assert classify("https://apps.apple.com/us/app/calm/id571800810").country_hint == "us"

    def test_uppercase_region(self):
        assert classify("https://apps.apple.com/JP/app/calm/id571800810").country_hint == "jp"

    def test_custom_storefront_domain(self):
        q = classify(
            "https://storefront.example/app/id123456789",
            storefront_domains=("storefront.example",),
        )
        assert q.kind == KIND_URL

    def test_subdomain(self):
        q = classify("https://m.storefront.example/app/id1", storefront_domains=("storefront.example",))
        assert q.kind == KIND_URL

    def test_unknown_host_is_not_url(self):
        q = classify("https://example.com/app/id1")
        assert q.kind != KIND_URL

    def test_trims_whitespace(self):
        q = classify("  https://apps.apple.com/us/app/calm/id571800810  ")
        assert q.normalized_term == "https://apps.apple.com/us/app/calm/id571800810"


class TestClassifyText:
    """ブランド名・キーワード判定のテスト."""

    def test_generic_keyword(self):
        q = classify("meditation")
        assert q.kind == KIND_KEYWORD
        assert q.confidence == 0.7
        assert q.normalized_term == "meditation"

    def test_brand(self):
        q = classify("Spotify")
        assert q.kind == KIND_BRAND
        assert q.confidence == 0.8
        assert q.normalized_term == "spotify"

    def test_product_suffix_is_brand(self):
        assert classify("notion app").kind == KIND_BRAND

    def test_generic_term_downgrades_brand(self):
        """汎用カテゴリ語を含む大文字始まりの語はキーワード扱い."""
        assert classify("Fitness Tracker").kind == KIND_KEYWORD

    def test_country_suffix(self):
        q = classify("budget planner in gb")
        assert q.normalized_term == "budget planner"
        assert q.country_hint == "gb"

    def test_unsupported_country_suffix_kept(self):
        q = classify("apps in zz")
        assert q.normalized_term == "apps in zz"
        assert q.country_hint == ""

    def test_category_hint(self):
        assert classify("learn spanish").category_hint == "Education"


class TestClassifyRejected:
    """不正入力のテスト."""

    @pytest.mark.parametrize("raw", ["", "x", "  a  "])
    def test_too_short(self, raw):
        with pytest.raises(InputRejected) as exc:
            classify(raw)
        assert exc.value.code == "INPUT_TOO_SHORT"

    def test_too_long(self):
        with pytest.raises(InputRejected) as exc:
            classify("a" * 101)
        assert exc.value.code == "INPUT_TOO_LONG"

    def test_exactly_max_length(self):
        assert classify("a" * 100).kind == KIND_KEYWORD

    @pytest.mark.parametrize("raw", [
        "<script>alert(1)</script>",
        "javascript:alert(1)",
        "data:text/html,hello",
        "img onerror=alert(1)",
    ])
    def test_malicious(self, raw):
        with pytest.raises(InputRejected) as exc:
            classify(raw)
        assert exc.value.code == "MALICIOUS_INPUT"


class TestHelpers:
    """補助関数のテスト."""

    def test_normalize_term(self):
        assert normalize_term("  Photo   Editor!! ") == ("photo editor", "")

    def test_normalize_keeps_hyphen(self):
        assert normalize_term("to-do list")[0] == "to-do list"

    def test_is_brand_name(self):
        assert is_brand_name("Headspace") is True
        assert is_brand_name("music player") is False

    def test_detect_language(self):
        assert detect_language("瞑想アプリ") == "ja"
        assert detect_language("명상") == "ko"
        assert detect_language("meditation") == "en"

    def test_predict_category_default(self):
        assert predict_category("qr code") == "Utilities"
