from datetime import datetime, timezone

from .url_utils import make_pretty_url, page_id_for_url, strip_query_and_fragment


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


__all__ = ['make_pretty_url', 'page_id_for_url', 'strip_query_and_fragment', 'utcnow']
