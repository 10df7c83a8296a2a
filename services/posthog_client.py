# services/posthog_client.py
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import requests

from models import NormalizedEvent
from services.errors import SourceFetchError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("event", "timestamp", "distinct_id")


class PostHogClient:
    """Pulls raw events for a time window from the PostHog events API."""

    def __init__(self, host: str, project_id: str, api_key: str, timeout: int = 30, http=None):
        self.base_url = f"{host.rstrip('/')}/api/projects/{project_id}"
        self.api_key = api_key
        self.timeout = timeout
        self.http = http or requests.Session()

    def get_events(self, start: datetime, end: datetime, event_names: Optional[List[str]] = None,
                   limit: int = 10000) -> List[dict]:
        """
        Fetch events between start and end, following `next` links until `limit` records.

        Raises SourceFetchError when PostHog can't be reached, answers with a non-2xx
        status, or returns records that lack event / timestamp / distinct_id.
        """
        params = {
            "after": start.isoformat(),
            "before": end.isoformat(),
            "limit": min(limit, 1000),
        }
        if event_names:
            params["event"] = ",".join(event_names)

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        events = []
        url = f"{self.base_url}/events"
        while url and len(events) < limit:
            try:
                response = self.http.get(url, params=params, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                payload = response.json()
            except (requests.RequestException, ValueError) as e:
                logger.error(f"Error fetching events from PostHog: {e}")
                raise SourceFetchError(f"PostHog events request failed: {e}") from e

            if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
                raise SourceFetchError("PostHog events response has no 'results' list")

            for record in payload["results"]:
                events.append(_validate_record(record))

            # the `next` link already carries the cursor and filters
            url = payload.get("next")
            params = None

        logger.info(f"Fetched {len(events[:limit])} events from PostHog")
        return events[:limit]


def _validate_record(record) -> dict:
    if not isinstance(record, dict):
        raise SourceFetchError(f"Malformed PostHog event: {record!r}")
    missing = [name for name in REQUIRED_FIELDS if not isinstance(record.get(name), str)]
    if missing:
        raise SourceFetchError(f"PostHog event is missing {', '.join(missing)}")
    properties = record.get("properties")
    if properties is not None and not isinstance(properties, dict):
        raise SourceFetchError("PostHog event properties must be an object")
    return record


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into naive UTC."""
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def normalize_events(records: Iterable[dict]) -> List[NormalizedEvent]:
    """
    Turn PostHog records into NormalizedEvents.

    Records without a `$current_url` property can't be placed on a page and are dropped.
    """
    events = []
    for record in records:
        properties = record.get("properties") or {}
        page_url = properties.get("$current_url")
        if not page_url:
            continue
        try:
            timestamp = parse_timestamp(record["timestamp"])
        except ValueError as e:
            raise SourceFetchError(f"Invalid event timestamp {record['timestamp']!r}") from e

        events.append(NormalizedEvent(
            user_id=record["distinct_id"],
            session_id=properties.get("$session_id") or "unknown",
            event_type=record["event"],
            page_url=page_url,
            page_title=properties.get("$title"),
            timestamp=timestamp,
            properties=properties,
        ))
    return events
