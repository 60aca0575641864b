from __future__ import annotations

from urllib import parse

import pytest

from image_scraper_api.app.filters import build_search_url, encode_filter
from image_scraper_api.app.models import SearchFilter


def test_empty_filter_encodes_to_empty_string() -> None:
    assert encode_filter(SearchFilter()) == ""
    assert encode_filter(None) == ""


def test_full_filter_uses_fixed_field_order() -> None:
    search_filter = SearchFilter(
        user_rights="cl",
        time="w",
        type="clipart",
        color="specific,isc:red",
        size="l",
    )
    assert encode_filter(search_filter) == "isz:l,ic:specific,isc:red,itp:clipart,qdr:w,il:cl"


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"size": "m"}, "isz:m"),
        ({"user_rights": "ol"}, "il:ol"),
        ({"color": "gray", "time": "d"}, "ic:gray,qdr:d"),
        ({"type": "animated", "user_rights": "cl"}, "itp:animated,il:cl"),
        ({"size": "i", "time": "y"}, "isz:i,qdr:y"),
    ],
)
def test_partial_filter_has_no_stray_separators(fields: dict[str, str], expected: str) -> None:
    encoded = encode_filter(SearchFilter(**fields))
    assert encoded == expected
    assert not encoded.startswith(",")
    assert not encoded.endswith(",")
    assert ",," not in encoded


def test_filter_accepts_wire_names() -> None:
    search_filter = SearchFilter.model_validate({"userRights": "ol", "size": "l"})
    assert encode_filter(search_filter) == "isz:l,il:ol"


def test_search_url_omits_tbs_for_empty_filter() -> None:
    url = build_search_url("cats & dogs")
    query = parse.parse_qs(parse.urlsplit(url).query)
    assert url.startswith("https://www.google.com/search?")
    assert query == {"tbm": ["isch"], "q": ["cats & dogs"]}


def test_search_url_carries_encoded_filter() -> None:
    url = build_search_url(
        "cats",
        SearchFilter(size="l", color="trans"),
        base_url="http://search.local/search",
    )
    parts = parse.urlsplit(url)
    query = parse.parse_qs(parts.query)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "http://search.local/search"
    assert query["tbs"] == ["isz:l,ic:trans"]
    assert query["q"] == ["cats"]
