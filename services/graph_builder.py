# services/graph_builder.py
import logging
from typing import Dict, Iterable, List, Tuple

from models import NormalizedEvent
from repositories.graph import GraphStore
from utils import page_id_for_url, strip_query_and_fragment

logger = logging.getLogger(__name__)


def group_by_session(events: Iterable[NormalizedEvent]) -> Dict[Tuple[str, str], List[NormalizedEvent]]:
    """
    Group events per (user, session) and order each group by timestamp.

    sorted() is stable, so events sharing a timestamp keep their input order.
    """
    sessions = {}
    for event in events:
        sessions.setdefault((event.user_id, event.session_id), []).append(event)
    return {key: sorted(evts, key=lambda e: e.timestamp) for key, evts in sessions.items()}


class GraphBuilder:
    """Writes a batch of events into the navigation graph."""

    def __init__(self, graph_store: GraphStore):
        self.graph_store = graph_store

    def build(self, events: Iterable[NormalizedEvent]) -> int:
        """
        Upsert Users, Pages, Events and TRANSITION_TO edges for every session in the batch.

        Each session is committed on its own. A failing write raises GraphWriteError and
        stops the build; sessions committed before it stay in the graph.
        Returns the number of events written.
        """
        sessions = group_by_session(events)
        logger.info(f"Processing {sum(len(e) for e in sessions.values())} events from {len(sessions)} sessions into the graph")

        processed = 0
        for (user_id, _session_id), session_events in sessions.items():
            self.graph_store.upsert_user(user_id)

            previous_page_id = None
            for event in session_events:
                page_id = page_id_for_url(event.page_url)
                self.graph_store.upsert_page(page_id, strip_query_and_fragment(event.page_url), event.page_title)
                self.graph_store.create_event(user_id, event.event_type, page_id, event.properties, event.timestamp)
                self.graph_store.record_visit(user_id, page_id, event.timestamp)

                if previous_page_id is not None:
                    self.graph_store.record_transition(previous_page_id, page_id, event.timestamp)

                previous_page_id = page_id
                processed += 1

            self.graph_store.commit()

        logger.info(f"Wrote {processed} events into the graph")
        return processed
