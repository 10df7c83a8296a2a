import json
from datetime import datetime, timedelta

import pytest

from app import create_app
from config import Config
from db import db
from models import GraphUser, NormalizedEvent, Page, Transition
from repositories.graph import GraphStore
from repositories.insights import InsightStore
from utils import page_id_for_url

T0 = datetime(2024, 1, 1, 12, 0, 0)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "WARNING"
    POSTHOG_PROJECT_ID = "1"
    POSTHOG_API_KEY = "phx_test"
    OPENAI_API_KEY = None
    JIRA_HOST = None
    JIRA_EMAIL = None
    JIRA_API_TOKEN = None
    JIRA_PROJECT_KEY = None
    INSIGHT_RERANK = True
    SLOW_PAGE_THRESHOLD_MS = None


DEFAULT_ANALYSIS = {
    "title": "Fix checkout drop-off",
    "summary": "Users abandon checkout.",
    "recommendation": "Simplify the checkout form.",
    "impact": "More completed orders.",
    "effort": "medium",
    "category": "conversion",
}


class FakeLLM:
    """
    Stands in for LLMClient.

    Ranking prompts are sent without a system prompt, analysis prompts with one.
    Replies may be strings, exceptions (raised) or callables taking the user prompt.
    """

    def __init__(self, analysis_reply=None, ranking_reply=""):
        self.analysis_reply = json.dumps(DEFAULT_ANALYSIS) if analysis_reply is None else analysis_reply
        self.ranking_reply = ranking_reply
        self.calls = []

    def complete(self, system_prompt, user_prompt, temperature=0.7, max_tokens=800):
        self.calls.append((system_prompt, user_prompt))
        reply = self.analysis_reply if system_prompt else self.ranking_reply
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(user_prompt)
        return reply

    @property
    def ranking_calls(self):
        return [call for call in self.calls if not call[0]]


class FakeEventSource:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.calls = []

    def get_events(self, start, end, event_names=None, limit=10000):
        self.calls.append((start, end))
        if self.error:
            raise self.error
        return list(self.records)


def posthog_record(user, session, url, timestamp, event="$pageview", title=None):
    properties = {"$current_url": url, "$session_id": session}
    if title:
        properties["$title"] = title
    return {
        "event": event,
        "timestamp": timestamp.isoformat() + "Z",
        "distinct_id": user,
        "properties": properties,
    }


def make_event(user, session, url, seconds, title=None, event_type="$pageview"):
    return NormalizedEvent(
        user_id=user,
        session_id=session,
        event_type=event_type,
        page_url=url,
        page_title=title,
        timestamp=T0 + timedelta(seconds=seconds),
        properties={"$current_url": url},
    )


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def event_source():
    return FakeEventSource()


@pytest.fixture
def app(fake_llm, event_source):
    app = create_app(TestingConfig, event_source=event_source, llm=fake_llm)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def graph_store(app):
    return GraphStore(db.session)


@pytest.fixture
def insight_store(app):
    return InsightStore(db.session)


def add_page(url, title=None):
    page_id = page_id_for_url(url)
    page = db.session.get(Page, page_id)
    if not page:
        page = Page(id=page_id, url=url, title=title)
        db.session.add(page)
        db.session.flush()
    return page


def add_transition(from_url, to_url, count):
    """Seed a TRANSITION_TO edge with an explicit count."""
    source, target = add_page(from_url), add_page(to_url)
    db.session.add(Transition(
        from_page_id=source.id, to_page_id=target.id, count=count, first_seen=T0, last_seen=T0,
    ))
    db.session.commit()


def add_users(count):
    db.session.add_all([GraphUser(id=f"user-{i}") for i in range(count)])
    db.session.commit()
