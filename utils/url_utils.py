import hashlib
from urllib.parse import urlsplit


def strip_query_and_fragment(url: str) -> str:
    """
    Remove query parameters and fragments from a URL.

    Examples:
    - https://app.com/checkout?step=2#summary → https://app.com/checkout
    - /settings#profile → /settings
    """
    if not url:
        return url
    return url.split('?')[0].split('#')[0]


def page_id_for_url(url: str) -> str:
    """
    Build the graph key of a Page from its URL.

    The query string and fragment are dropped first, so every variant of the same
    page maps to one node. The remaining URL is hashed instead of slugified, which
    keeps '/a-b' and '/a_b' apart.
    """
    clean_url = strip_query_and_fragment(url)
    digest = hashlib.sha256(clean_url.encode("utf-8")).hexdigest()
    return f"page_{digest[:32]}"


def make_pretty_url(url: str) -> str:
    if not url:
        return ""
    cleaned = url.split('#')[0]
    parts = urlsplit(cleaned)
    if parts.scheme and parts.netloc:
        cleaned = parts.path or "/"
    if cleaned == "/":
        return "home"
    if cleaned.startswith("/"):
        cleaned = cleaned[1:]
    return cleaned.rstrip("/")
