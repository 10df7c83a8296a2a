from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class PainPointType(Enum):
    DROPOFF = "dropoff"
    CYCLE = "cycle"
    UNDERUSED = "underused"
    SLOW_INTERACTION = "slow_interaction"
    ERROR = "error"


class Severity(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class NormalizedEvent:
    user_id: str
    session_id: str
    event_type: str
    page_url: str
    timestamp: datetime
    page_title: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PainPoint:
    """A behavioural problem found in the navigation graph. Rebuilt on every run, never stored."""
    id: str
    type: PainPointType
    severity: Severity
    location: str
    description: str
    affected_users: int
    affected_percentage: float
    metrics: Dict[str, Any]
    detected_at: datetime

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "location": self.location,
            "description": self.description,
            "affectedUsers": self.affected_users,
            "affectedPercentage": self.affected_percentage,
            "metrics": self.metrics,
            "detectedAt": self.detected_at.isoformat(),
        }


@dataclass
class BatchMetrics:
    events_processed: int = 0
    pain_points_detected: int = 0
    insights_generated: int = 0
    duration: Optional[int] = None  # milliseconds

    def to_dict(self):
        return {
            "eventsProcessed": self.events_processed,
            "painPointsDetected": self.pain_points_detected,
            "insightsGenerated": self.insights_generated,
            "duration": self.duration,
        }


@dataclass
class BatchJob:
    id: str
    status: JobStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    metrics: BatchMetrics = field(default_factory=BatchMetrics)
    summary: Optional[Dict[str, Any]] = None

    def complete(self, now: datetime):
        self.status = JobStatus.COMPLETED
        self._finish(now)

    def fail(self, message: str, now: datetime):
        self.status = JobStatus.FAILED
        self.error = message
        self._finish(now)

    def _finish(self, now: datetime):
        self.completed_at = now
        self.metrics.duration = int((now - self.started_at).total_seconds() * 1000)

    def to_dict(self):
        return {
            "id": self.id,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "metrics": self.metrics.to_dict(),
            "summary": self.summary,
        }
