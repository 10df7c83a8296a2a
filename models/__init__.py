from .graph import GraphUser, Page, PageEvent, Navigation, Transition
from .insight import Insight, Priority, Effort, InsightCategory, InsightStatus
from .domain import (
    BatchJob, BatchMetrics, JobStatus, NormalizedEvent, PainPoint, PainPointType, Severity,
)

__all__ = [
    'GraphUser', 'Page', 'PageEvent', 'Navigation', 'Transition',
    'Insight', 'Priority', 'Effort', 'InsightCategory', 'InsightStatus',
    'BatchJob', 'BatchMetrics', 'JobStatus', 'NormalizedEvent', 'PainPoint', 'PainPointType', 'Severity',
]
