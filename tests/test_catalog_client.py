"""catalog_client モジュールのモックテスト."""

from unittest.mock import MagicMock

import pytest
import requests

from storerank.catalog_client import CatalogClient
from storerank.errors import MalformedQuery, UpstreamUnavailable


def _response(status_code: int = 200, payload=None) -> MagicMock:
    resp = MagicMock(status_code=status_code)
    resp.json.return_value = payload if payload is not None else {"resultCount": 0, "results": []}
    return resp


def _item(track_id: int, name: str, genre: str = "Health & Fitness") -> dict:
    return {
        "trackId": track_id,
        "trackName": name,
        "primaryGenreName": genre,
        "averageUserRating": 4.7,
        "userRatingCount": 1200,
        "price": 0,
        "trackViewUrl": f"https://apps.apple.com/us/app/x/id{track_id}",
        "artworkUrl100": "https://is1-ssl.mzstatic.com/icon100.png",
        "artistName": "Calm.com, Inc.",
        "description": "Sleep more. Stress less.",
    }


class TestSearch:
    """search のテスト."""

    def test_parses_results_in_order(self):
        session = MagicMock()
        session.get.return_value = _response(payload={
            "resultCount": 2,
            "results": [_item(571800810, "Calm"), _item(493145008, "Headspace")],
        })
        client = CatalogClient(session=session, timeout=3)

        entries = client.search("meditation", "us", 11)

        assert [e.id for e in entries] == ["571800810", "493145008"]
        assert entries[0].category == "Health & Fitness"
        assert entries[0].rating_count == 1200
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"term": "meditation", "country": "us", "entity": "software", "limit": 11}
        assert kwargs["timeout"] == 3

    def test_drops_malformed_entries(self):
        """trackId / trackName が無いエントリは除外されること."""
        session = MagicMock()
        session.get.return_value = _response(payload={
            "results": [{"trackName": "No Id"}, {"trackId": 1}, _item(2, "Valid"), "junk"],
        })
        entries = CatalogClient(session=session).search("x", "us", 5)
        assert [e.id for e in entries] == ["2"]

    def test_empty_results(self):
        session = MagicMock()
        session.get.return_value = _response()
        assert CatalogClient(session=session).search("zzzz", "us", 5) == []

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_status(self, status):
        session = MagicMock()
        session.get.return_value = _response(status_code=status)
        with pytest.raises(UpstreamUnavailable):
            CatalogClient(session=session).search("calm", "us", 5)

    def test_client_error_is_malformed_query(self):
        session = MagicMock()
        session.get.return_value = _response(status_code=400)
        with pytest.raises(MalformedQuery):
            CatalogClient(session=session).search("calm", "us", 5)

    @pytest.mark.parametrize("error", [requests.Timeout("slow"), requests.ConnectionError("refused")])
    def test_network_errors(self, error):
        session = MagicMock()
        session.get.side_effect = error
        with pytest.raises(UpstreamUnavailable):
            CatalogClient(session=session).search("calm", "us", 5)

    def test_invalid_json(self):
        session = MagicMock()
        resp = _response()
        resp.json.side_effect = ValueError("not json")
        session.get.return_value = resp
        with pytest.raises(UpstreamUnavailable):
            CatalogClient(session=session).search("calm", "us", 5)


class TestLookup:
    """lookup のテスト."""

    def test_lookup_by_id(self):
        session = MagicMock()
        session.get.return_value = _response(payload={"results": [_item(571800810, "Calm")]})

        entries = CatalogClient(session=session).lookup("571800810", "gb")

        assert entries[0].name == "Calm"
        assert entries[0].url == "https://apps.apple.com/us/app/x/id571800810"
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"id": "571800810", "country": "gb"}


class TestHints:
    """hints のテスト."""

    def test_accepts_strings_and_dicts(self):
        session = MagicMock()
        session.get.return_value = _response(payload={
            "hints": [{"term": "meditation app"}, "meditation music", {"term": " "}, 3],
        })
        hints = CatalogClient(session=session).hints("meditation", "us")
        assert hints == ["meditation app", "meditation music"]
