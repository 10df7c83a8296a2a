from enum import Enum
from db import db
from utils import utcnow


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Effort(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class InsightCategory(Enum):
    ONBOARDING = "onboarding"
    CONVERSION = "conversion"
    ENGAGEMENT = "engagement"
    PERFORMANCE = "performance"
    USABILITY = "usability"


class InsightStatus(Enum):
    NEW = "new"
    REVIEWED = "reviewed"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class Insight(db.Model):
    __tablename__ = 'Insight'

    id = db.Column(db.String(36), primary_key=True)
    pain_point_id = db.Column("painPointId", db.String(36), nullable=True)  # pain points are not stored
    title = db.Column(db.String(255), nullable=False)
    summary = db.Column(db.Text, nullable=False)
    recommendation = db.Column(db.Text, nullable=False)
    priority = db.Column(db.Enum(Priority), nullable=False)
    impact = db.Column(db.Text, nullable=False)
    effort = db.Column(db.Enum(Effort), nullable=False, default=Effort.MEDIUM)
    category = db.Column(db.Enum(InsightCategory), nullable=False, default=InsightCategory.USABILITY)
    metrics = db.Column(db.JSON, nullable=True)
    status = db.Column(db.Enum(InsightStatus), nullable=False, default=InsightStatus.NEW)
    ticket_ref = db.Column("ticketRef", db.String(255), nullable=True)
    position = db.Column(db.Integer, nullable=True, index=True)  # save order, keeps the ranking
    created_at = db.Column("createdAt", db.DateTime, default=utcnow)
    updated_at = db.Column("updatedAt", db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "painPointId": self.pain_point_id,
            "title": self.title,
            "summary": self.summary,
            "recommendation": self.recommendation,
            "priority": self.priority.value,
            "impact": self.impact,
            "effort": self.effort.value,
            "category": self.category.value,
            "metrics": self.metrics or {},
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "status": self.status.value,
            "ticketRef": self.ticket_ref,
        }
