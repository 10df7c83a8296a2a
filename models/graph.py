import uuid
from utils import utcnow
from db import db

# The navigation graph is kept in relational form: one table per node label
# (User, Page, Event) and one per relationship type that carries data
# (NAVIGATED, TRANSITION_TO). PERFORMED and OCCURRED_ON are the foreign keys on Event.


class GraphUser(db.Model):
    __tablename__ = 'GraphUser'

    id = db.Column(db.String(255), primary_key=True)  # distinct_id from PostHog
    created_at = db.Column("createdAt", db.DateTime, default=utcnow)
    last_updated = db.Column("lastUpdated", db.DateTime, default=utcnow)


class Page(db.Model):
    __tablename__ = 'Page'

    id = db.Column(db.String(64), primary_key=True)  # see utils.page_id_for_url
    url = db.Column(db.String(2048), nullable=False)
    title = db.Column(db.String(512), nullable=True)
    last_updated = db.Column("lastUpdated", db.DateTime, default=utcnow)


class PageEvent(db.Model):
    __tablename__ = 'PageEvent'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_type = db.Column("eventType", db.String(255), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False)
    properties = db.Column(db.JSON, nullable=True)

    # (User)-[:PERFORMED]->(Event)
    user_id = db.Column("userId", db.String(255), db.ForeignKey('GraphUser.id'), nullable=False, index=True)
    # (Event)-[:OCCURRED_ON]->(Page)
    page_id = db.Column("pageId", db.String(64), db.ForeignKey('Page.id'), nullable=False, index=True)


class Navigation(db.Model):
    """(User)-[:NAVIGATED {timestamp}]->(Page), one row per visit."""
    __tablename__ = 'Navigation'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column("userId", db.String(255), db.ForeignKey('GraphUser.id'), nullable=False, index=True)
    page_id = db.Column("pageId", db.String(64), db.ForeignKey('Page.id'), nullable=False, index=True)
    timestamp = db.Column(db.DateTime, nullable=False)


class Transition(db.Model):
    """
    (Page)-[:TRANSITION_TO {count, firstSeen, lastSeen}]->(Page)

    Merged on (from, to). count accumulates across every batch run and is never reset.
    """
    __tablename__ = 'Transition'
    __table_args__ = (
        db.UniqueConstraint("fromPageId", "toPageId", name="uq_transition_pages"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    from_page_id = db.Column("fromPageId", db.String(64), db.ForeignKey('Page.id'), nullable=False, index=True)
    to_page_id = db.Column("toPageId", db.String(64), db.ForeignKey('Page.id'), nullable=False, index=True)
    count = db.Column(db.Integer, nullable=False, default=1)
    first_seen = db.Column("firstSeen", db.DateTime, nullable=False)
    last_seen = db.Column("lastSeen", db.DateTime, nullable=False)
