from __future__ import annotations

from urllib import parse

from .models import SearchFilter

# Output order is fixed: size, color, type, recency, usage rights.
FILTER_KEYS: tuple[tuple[str, str], ...] = (
    ("size", "isz"),
    ("color", "ic"),
    ("type", "itp"),
    ("time", "qdr"),
    ("user_rights", "il"),
)


def encode_filter(search_filter: SearchFilter | None) -> str:
    """Render populated filter fields as `key:value` pairs joined by commas."""
    if search_filter is None:
        return ""
    parts: list[str] = []
    for field_name, key in FILTER_KEYS:
        value = getattr(search_filter, field_name)
        if value:
            parts.append(f"{key}:{value}")
    return ",".join(parts)


def build_search_url(
    search: str,
    search_filter: SearchFilter | None = None,
    *,
    base_url: str = "https://www.google.com/search",
) -> str:
    params = {"tbm": "isch", "q": search}
    encoded_filter = encode_filter(search_filter)
    if encoded_filter:
        params["tbs"] = encoded_filter
    return f"{base_url}?{parse.urlencode(params)}"
