import logging
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

import pandas as pd
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import GraphUser, Page, PageEvent, Navigation, Transition
from services.errors import GraphWriteError
from utils import strip_query_and_fragment, utcnow

logger = logging.getLogger(__name__)


class RowSet:
    """
    Result of a read query over the graph.

    Nothing runs until the set is iterated, and every new iteration runs the query
    again against the current graph, so the same RowSet can be consumed more than once.
    """

    def __init__(self, producer, *args, **kwargs):
        self._producer = producer
        self._args = args
        self._kwargs = kwargs

    def __iter__(self) -> Iterator[dict]:
        return iter(self._producer(*self._args, **self._kwargs))


class GraphStore:
    """
    Navigation graph persisted through SQLAlchemy.

    Writes are MERGE-style upserts keyed on node ids, so replaying the same batch
    converges instead of duplicating Users or Pages. Transition counts accumulate.
    """

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------ writes

    @contextmanager
    def _writing(self, what: str):
        try:
            yield
            self.session.flush()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise GraphWriteError(f"Failed to write {what}: {e}") from e

    def upsert_user(self, user_id: str):
        with self._writing(f"user {user_id}"):
            user = self.session.get(GraphUser, user_id)
            if user:
                user.last_updated = utcnow()
            else:
                self.session.add(GraphUser(id=user_id))

    def upsert_page(self, page_id: str, url: str, title: Optional[str] = None):
        with self._writing(f"page {url}"):
            page = self.session.get(Page, page_id)
            if page:
                page.url = url
                if title:
                    page.title = title
                page.last_updated = utcnow()
            else:
                self.session.add(Page(id=page_id, url=url, title=title, last_updated=utcnow()))

    def create_event(self, user_id: str, event_type: str, page_id: str, properties: dict, timestamp):
        with self._writing(f"event {event_type} on {page_id}"):
            self.session.add(PageEvent(
                user_id=user_id,
                page_id=page_id,
                event_type=event_type,
                properties=properties or {},
                timestamp=timestamp,
            ))

    def record_visit(self, user_id: str, page_id: str, timestamp):
        with self._writing(f"visit of {user_id} to {page_id}"):
            self.session.add(Navigation(user_id=user_id, page_id=page_id, timestamp=timestamp))

    def record_transition(self, from_page_id: str, to_page_id: str, timestamp):
        with self._writing(f"transition {from_page_id} -> {to_page_id}"):
            transition = (self.session.query(Transition)
                          .filter_by(from_page_id=from_page_id, to_page_id=to_page_id)
                          .first())
            if transition:
                # incremented in SQL so concurrent runs don't lose counts
                transition.count = Transition.count + 1
                transition.last_seen = timestamp
            else:
                self.session.add(Transition(
                    from_page_id=from_page_id,
                    to_page_id=to_page_id,
                    count=1,
                    first_seen=timestamp,
                    last_seen=timestamp,
                ))

    def commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise GraphWriteError(f"Failed to commit graph changes: {e}") from e

    def clear(self):
        for model in (Navigation, PageEvent, Transition, Page, GraphUser):
            self.session.query(model).delete(synchronize_session=False)
        self.commit()
        logger.info("Navigation graph cleared")

    # ------------------------------------------------------------------- reads

    def count_users(self) -> int:
        return self.session.query(func.count(GraphUser.id)).scalar() or 0

    def count_pages(self) -> int:
        return self.session.query(func.count(Page.id)).scalar() or 0

    def get_transition(self, from_url: str, to_url: str) -> Optional[Transition]:
        from_page = self.session.query(Page).filter_by(url=strip_query_and_fragment(from_url)).first()
        to_page = self.session.query(Page).filter_by(url=strip_query_and_fragment(to_url)).first()
        if not from_page or not to_page:
            return None
        return (self.session.query(Transition)
                .filter_by(from_page_id=from_page.id, to_page_id=to_page.id)
                .first())

    def _weights(self, column):
        return (self.session.query(column.label("page_id"), func.sum(Transition.count).label("weight"))
                .group_by(column)
                .subquery())

    def dropoff_pages(self, factor: float = 1.5, limit: int = 10) -> RowSet:
        return RowSet(self._dropoff_rows, factor, limit)

    def _dropoff_rows(self, factor, limit):
        # only pages that lead somewhere are candidates; pure exit pages are funnel ends
        incoming = self._weights(Transition.to_page_id)
        outgoing = self._weights(Transition.from_page_id)
        rate = (incoming.c.weight - outgoing.c.weight) * 100.0 / incoming.c.weight

        query = (self.session.query(
                    Page.url, Page.title,
                    incoming.c.weight.label("incoming"),
                    outgoing.c.weight.label("outgoing"),
                    rate.label("dropoff_rate"))
                 .join(incoming, incoming.c.page_id == Page.id)
                 .join(outgoing, outgoing.c.page_id == Page.id)
                 .filter(incoming.c.weight > outgoing.c.weight * factor)
                 .order_by(rate.desc(), Page.url)
                 .limit(limit))

        for row in query:
            yield {
                "page": row.url,
                "title": row.title,
                "incoming": int(row.incoming),
                "outgoing": int(row.outgoing),
                "dropoffRate": float(row.dropoff_rate),
            }

    def navigation_cycles(self, min_hops: int = 2, max_hops: int = 5, min_count: int = 5,
                          limit: int = 20) -> RowSet:
        if min_hops < 1 or max_hops < min_hops:
            raise ValueError(f"Invalid hop range {min_hops}..{max_hops}")
        return RowSet(self._cycle_rows, min_hops, max_hops, min_count, limit)

    def _adjacency(self) -> Dict[str, List[tuple]]:
        adjacency = defaultdict(list)
        edges = self.session.query(Transition.id, Transition.from_page_id, Transition.to_page_id, Transition.count)
        for edge_id, source, target, count in edges:
            adjacency[source].append((edge_id, target, count))
        return adjacency

    def _cycle_rows(self, min_hops, max_hops, min_count, limit):
        adjacency = self._adjacency()
        counts = {}
        for page_id in adjacency:
            cycle_count = _count_closed_paths(adjacency, page_id, min_hops, max_hops)
            if cycle_count > min_count:
                counts[page_id] = cycle_count

        if not counts:
            return
        pages = self._pages_by_id(counts.keys())
        ranked = sorted(counts.items(), key=lambda item: (-item[1], pages[item[0]].url))
        for page_id, cycle_count in ranked[:limit]:
            yield {
                "page": pages[page_id].url,
                "title": pages[page_id].title,
                "cycleCount": cycle_count,
            }

    def underused_pages(self, threshold: float = 0.05, limit: int = 20) -> RowSet:
        return RowSet(self._underused_rows, threshold, limit)

    def _underused_rows(self, threshold, limit):
        total_users = self.count_users()
        if not total_users:
            return

        incoming = self._weights(Transition.to_page_id)
        visits = func.coalesce(incoming.c.weight, 0)
        query = (self.session.query(Page.url, Page.title, visits.label("visits"))
                 .outerjoin(incoming, incoming.c.page_id == Page.id)
                 .filter(visits < total_users * threshold)
                 .order_by(visits.asc(), Page.url)
                 .limit(limit))

        for row in query:
            page_visits = int(row.visits)
            yield {
                "page": row.url,
                "title": row.title,
                "visits": page_visits,
                "totalUsers": total_users,
                "usageRate": page_visits * 100.0 / total_users,
            }

    def average_time_on_page(self, limit: int = 20) -> RowSet:
        return RowSet(self._time_on_page_rows, limit)

    def _time_on_page_rows(self, limit):
        events = self.session.query(PageEvent.page_id, PageEvent.timestamp).all()
        if not events:
            return

        df = pd.DataFrame(events, columns=['page_id', 'timestamp'])
        df['timestamp'] = pd.to_datetime(df['timestamp'])

        # every pair of events on a page where the first happened strictly before the second
        pairs = df.merge(df, on='page_id', suffixes=('_from', '_to'))
        pairs = pairs[pairs['timestamp_from'] < pairs['timestamp_to']].copy()
        if pairs.empty:
            return
        pairs['gap_ms'] = (pairs['timestamp_to'] - pairs['timestamp_from']).dt.total_seconds() * 1000

        stats = (pairs.groupby('page_id')['gap_ms']
                 .agg(['mean', 'count'])
                 .reset_index()
                 .sort_values(by=['mean', 'page_id'], ascending=[False, True])
                 .head(limit))

        pages = self._pages_by_id(stats['page_id'].tolist())
        for _, row in stats.iterrows():
            page = pages[row['page_id']]
            yield {
                "page": page.url,
                "title": page.title,
                "avgTime": float(row['mean']),
                "samples": int(row['count']),
            }

    def common_paths(self, start_url: Optional[str] = None, max_length: int = 5,
                     min_frequency: int = 10, limit: int = 20) -> RowSet:
        return RowSet(self._path_rows, start_url, max_length, min_frequency, limit)

    def _path_rows(self, start_url, max_length, min_frequency, limit):
        adjacency = self._adjacency()
        if start_url:
            start = self.session.query(Page).filter_by(url=strip_query_and_fragment(start_url)).first()
            if not start:
                return
            starts = [start.id]
        else:
            starts = list(adjacency)

        paths = []
        for page_id in starts:
            for nodes, frequency in _walk_paths(adjacency, page_id, max_length):
                if start_url or frequency > min_frequency:
                    paths.append((nodes, frequency))
        if not paths:
            return

        pages = self._pages_by_id({page_id for nodes, _ in paths for page_id in nodes})
        paths.sort(key=lambda item: (-item[1], [pages[p].url for p in item[0]]))
        for nodes, frequency in paths[:limit]:
            yield {"pages": [pages[p].url for p in nodes], "frequency": frequency}

    def _pages_by_id(self, page_ids) -> Dict[str, Page]:
        page_ids = list(page_ids)
        return {page.id: page for page in self.session.query(Page).filter(Page.id.in_(page_ids))}


def _count_closed_paths(adjacency, start: str, min_hops: int, max_hops: int) -> int:
    """
    Count directed paths that leave `start` and come back to it within
    [min_hops, max_hops] hops. A path may pass through a page more than once but
    never reuses the same TRANSITION_TO edge. The hop ceiling bounds the search.
    """
    count = 0
    stack = [(start, 0, frozenset())]
    while stack:
        node, depth, used = stack.pop()
        hops = depth + 1
        for edge_id, target, _ in adjacency.get(node, ()):
            if edge_id in used:
                continue
            if target == start and hops >= min_hops:
                count += 1
            if hops < max_hops:
                stack.append((target, hops, used | {edge_id}))
    return count


def _walk_paths(adjacency, start: str, max_length: int):
    """Yield (pages, frequency) for every path of 1..max_length hops from start; frequency multiplies edge counts."""
    stack = [([start], 1, frozenset())]
    while stack:
        nodes, frequency, used = stack.pop()
        for edge_id, target, count in adjacency.get(nodes[-1], ()):
            if edge_id in used:
                continue
            path = nodes + [target]
            path_frequency = frequency * count
            yield path, path_frequency
            if len(path) - 1 < max_length:
                stack.append((path, path_frequency, used | {edge_id}))
