# services/aggregators.py
from collections import Counter
from datetime import datetime
from itertools import islice
from typing import List

from models import PainPoint
from repositories.graph import GraphStore
from utils import make_pretty_url


def get_top_pages(graph_store: GraphStore, limit: int = 5):
    """Slowest pages by average time between interactions."""
    results = []
    for row in islice(graph_store.average_time_on_page(), limit):
        results.append({
            "page": make_pretty_url(row["page"]),
            "title": row["title"],
            "avgTime": f"{row['avgTime'] / 1000:.0f}s",
            "samples": row["samples"],
        })
    return results


def summarize_pain_points(pain_points: List[PainPoint]):
    return {
        "total": len(pain_points),
        "byType": dict(Counter(pp.type.value for pp in pain_points)),
        "bySeverity": dict(Counter(pp.severity.value for pp in pain_points)),
    }


def build_analytics_summary(graph_store: GraphStore, pain_points: List[PainPoint], events_processed: int,
                            period_start: datetime, period_end: datetime):
    """Dashboard-level summary of one batch run."""
    return {
        "period": {
            "start": period_start.isoformat(),
            "end": period_end.isoformat(),
        },
        "totalUsers": graph_store.count_users(),
        "totalEvents": events_processed,
        "topPages": get_top_pages(graph_store),
        "painPointsSummary": summarize_pain_points(pain_points),
    }
