import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Insight, InsightStatus, InsightCategory, Priority
from utils import utcnow

logger = logging.getLogger(__name__)


class InsightStore:
    """Owns Insight rows once the synthesizer has produced them."""

    def __init__(self, session: Session):
        self.session = session

    def save_insights(self, insights: List[Insight]):
        """Insert new insights (or replace ones with the same id), keeping the list order."""
        next_position = (self.session.query(func.max(Insight.position)).scalar() or 0) + 1
        for offset, insight in enumerate(insights):
            insight.position = next_position + offset
            self.session.merge(insight)
        self.session.commit()
        logger.info(f"Saved {len(insights)} insights to store")

    def get_insights(self, status: Optional[str] = None, category: Optional[str] = None,
                     priority: Optional[str] = None) -> List[Insight]:
        query = self.session.query(Insight)
        if status:
            query = query.filter(Insight.status == InsightStatus(status))
        if category:
            query = query.filter(Insight.category == InsightCategory(category))
        if priority:
            query = query.filter(Insight.priority == Priority(priority))
        return query.order_by(Insight.position).all()

    def get_insight(self, insight_id: str) -> Optional[Insight]:
        return self.session.get(Insight, insight_id)

    def update_status(self, insight_id: str, status: InsightStatus) -> Optional[Insight]:
        insight = self.get_insight(insight_id)
        if not insight:
            return None
        insight.status = status
        insight.updated_at = utcnow()
        self.session.commit()
        logger.info(f"Updated insight {insight_id} status to {status.value}")
        return insight

    def attach_ticket(self, insight_id: str, ticket_ref: str) -> Optional[Insight]:
        insight = self.get_insight(insight_id)
        if not insight:
            return None
        insight.ticket_ref = ticket_ref
        insight.status = InsightStatus.IN_PROGRESS
        insight.updated_at = utcnow()
        self.session.commit()
        logger.info(f"Attached ticket {ticket_ref} to insight {insight_id}")
        return insight

    def clear(self):
        self.session.query(Insight).delete(synchronize_session=False)
        self.session.commit()
        logger.info("Cleared all insights from store")
