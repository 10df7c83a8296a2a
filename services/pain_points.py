# services/pain_points.py
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from models import PainPoint, PainPointType, Severity
from repositories.graph import GraphStore, RowSet
from utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class DetectionPolicy:
    """Thresholds used to turn graph measurements into pain points."""
    dropoff_factor: float = 1.5
    dropoff_min_rate: float = 30.0
    dropoff_high_rate: float = 50.0
    cycle_min_hops: int = 2
    cycle_max_hops: int = 5
    cycle_min_count: int = 5
    cycle_high_count: int = 20
    underused_threshold: float = 0.05
    underused_high_rate: float = 1.0
    slow_page_threshold_ms: Optional[float] = None

    @classmethod
    def from_config(cls, config):
        return cls(
            dropoff_factor=config["DROPOFF_FACTOR"],
            dropoff_min_rate=config["DROPOFF_MIN_RATE"],
            dropoff_high_rate=config["DROPOFF_HIGH_RATE"],
            cycle_min_hops=config["CYCLE_MIN_HOPS"],
            cycle_max_hops=config["CYCLE_MAX_HOPS"],
            cycle_min_count=config["CYCLE_MIN_COUNT"],
            cycle_high_count=config["CYCLE_HIGH_COUNT"],
            underused_threshold=config["UNDERUSED_THRESHOLD"],
            underused_high_rate=config["UNDERUSED_HIGH_RATE"],
            slow_page_threshold_ms=config.get("SLOW_PAGE_THRESHOLD_MS"),
        )


def _new_pain_point(type_, severity, location, description, affected_users, affected_percentage, metrics):
    return PainPoint(
        id=str(uuid.uuid4()),
        type=type_,
        severity=severity,
        location=location,
        description=description,
        affected_users=affected_users,
        affected_percentage=affected_percentage,
        metrics=metrics,
        detected_at=utcnow(),
    )


class PainPointDetector:
    """
    Runs the graph analyses and maps their rows to PainPoints.

    Every analysis only reads the graph, so the detector can be run as often as needed.
    """

    def __init__(self, graph_store: GraphStore, policy: DetectionPolicy = None):
        self.graph_store = graph_store
        self.policy = policy or DetectionPolicy()

    # raw analyses

    def dropoff_rows(self) -> RowSet:
        return self.graph_store.dropoff_pages(self.policy.dropoff_factor)

    def cycle_rows(self) -> RowSet:
        return self.graph_store.navigation_cycles(
            min_hops=self.policy.cycle_min_hops,
            max_hops=self.policy.cycle_max_hops,
            min_count=self.policy.cycle_min_count,
        )

    def underused_rows(self) -> RowSet:
        return self.graph_store.underused_pages(self.policy.underused_threshold)

    def page_timings(self) -> RowSet:
        """Mean time between any two ordered events on each page (ms), slowest first."""
        return self.graph_store.average_time_on_page()

    # pain points

    def detect_dropoffs(self) -> List[PainPoint]:
        pain_points = []
        for row in self.dropoff_rows():
            rate = row["dropoffRate"]
            if rate <= self.policy.dropoff_min_rate:
                continue
            pain_points.append(_new_pain_point(
                PainPointType.DROPOFF,
                Severity.HIGH if rate > self.policy.dropoff_high_rate else Severity.MEDIUM,
                row["page"],
                f"{rate:.1f}% of users drop off at {row['title'] or row['page']}",
                row["incoming"] - row["outgoing"],
                rate,
                {"incoming": row["incoming"], "outgoing": row["outgoing"], "dropoffRate": rate},
            ))
        return pain_points

    def detect_cycles(self) -> List[PainPoint]:
        pain_points = []
        for row in self.cycle_rows():
            count = row["cycleCount"]
            pain_points.append(_new_pain_point(
                PainPointType.CYCLE,
                Severity.HIGH if count > self.policy.cycle_high_count else Severity.MEDIUM,
                row["page"],
                f"Users are navigating in circles at {row['title'] or row['page']} ({count} occurrences)",
                count,
                0.0,
                {"cycleCount": count},
            ))
        return pain_points

    def detect_underused(self) -> List[PainPoint]:
        pain_points = []
        for row in self.underused_rows():
            usage_rate = row["usageRate"]
            pain_points.append(_new_pain_point(
                PainPointType.UNDERUSED,
                Severity.HIGH if usage_rate < self.policy.underused_high_rate else Severity.LOW,
                row["page"],
                f"Feature at {row['title'] or row['page']} is only used by {usage_rate:.1f}% of users",
                row["totalUsers"] - row["visits"],
                100.0 - usage_rate,
                {"visits": row["visits"], "totalUsers": row["totalUsers"], "usageRate": usage_rate},
            ))
        return pain_points

    def detect_slow_pages(self) -> List[PainPoint]:
        threshold = self.policy.slow_page_threshold_ms
        if not threshold:
            return []

        pain_points = []
        for row in self.page_timings():
            avg_time = row["avgTime"]
            if avg_time <= threshold:
                continue
            pain_points.append(_new_pain_point(
                PainPointType.SLOW_INTERACTION,
                Severity.HIGH if avg_time > threshold * 2 else Severity.MEDIUM,
                row["page"],
                f"Users spend {avg_time / 1000:.1f}s between interactions on {row['title'] or row['page']}",
                row["samples"],
                0.0,
                {"avgTime": avg_time, "samples": row["samples"], "thresholdMs": threshold},
            ))
        return pain_points

    def detect_all(self) -> List[PainPoint]:
        logger.info('Detecting pain points from graph data')
        pain_points = []
        pain_points += self.detect_dropoffs()
        pain_points += self.detect_cycles()
        pain_points += self.detect_underused()
        pain_points += self.detect_slow_pages()
        logger.info(f"Detected {len(pain_points)} pain points")
        return pain_points
