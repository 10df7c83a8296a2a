# services/insights.py
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from models import (
    Effort, Insight, InsightCategory, InsightStatus, PainPoint, PainPointType, Priority, Severity,
)
from services.errors import RankingError, SynthesisError
from utils import utcnow

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert UX analyst and product manager. "
    "Analyze user behavior data and provide actionable insights and recommendations. "
    "Be specific, data-driven, and focus on practical solutions that can be implemented."
)

TYPE_DESCRIPTIONS = {
    PainPointType.DROPOFF: "high user drop-off rate",
    PainPointType.CYCLE: "users navigating in circles or repeated patterns",
    PainPointType.UNDERUSED: "feature or page with very low engagement",
    PainPointType.SLOW_INTERACTION: "users spending excessive time without progress",
    PainPointType.ERROR: "frequent errors or failed interactions",
}

# used when the model gives no usable category
DEFAULT_CATEGORIES = {
    PainPointType.DROPOFF: InsightCategory.CONVERSION,
    PainPointType.CYCLE: InsightCategory.USABILITY,
    PainPointType.UNDERUSED: InsightCategory.ENGAGEMENT,
    PainPointType.SLOW_INTERACTION: InsightCategory.PERFORMANCE,
    PainPointType.ERROR: InsightCategory.USABILITY,
}

PRIORITY_BY_SEVERITY = {
    Severity.HIGH: Priority.HIGH,
    Severity.MEDIUM: Priority.MEDIUM,
    Severity.LOW: Priority.LOW,
}

PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


@dataclass
class Parsed:
    """A model reply that had the expected structure."""
    value: Any


@dataclass
class Unparseable:
    """A model reply we could not read; `reason` says why."""
    reason: str
    raw: str = field(default="", repr=False)


ParseResult = Union[Parsed, Unparseable]


def parse_insight_reply(reply: str) -> ParseResult:
    """Extract the single JSON object the analysis prompt asks for."""
    if not reply or not reply.strip():
        return Unparseable("empty reply", reply or "")

    match = re.search(r"\{[\s\S]*\}", reply)
    if not match:
        return Unparseable("no JSON object in reply", reply)
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        return Unparseable(f"invalid JSON: {e}", reply)
    if not isinstance(parsed, dict):
        return Unparseable("JSON value is not an object", reply)
    return Parsed(parsed)


def parse_ranking_reply(reply: str, size: int) -> ParseResult:
    """
    Read a comma-separated list of 1-based insight numbers.

    Returns Parsed(list of 0-based indexes) keeping only in-range integers, first
    occurrence wins. Unparseable when nothing valid is left.
    """
    if not reply or not reply.strip():
        return Unparseable("empty reply", reply or "")

    order = []
    for token in reply.split(","):
        token = token.strip()
        if not re.fullmatch(r"\d+", token):
            continue
        index = int(token) - 1
        if 0 <= index < size and index not in order:
            order.append(index)

    if not order:
        return Unparseable("no valid insight numbers", reply)
    return Parsed(order)


def _enum_or_default(enum_cls, value, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def fallback_insight(pain_point: PainPoint) -> Insight:
    """Templated insight built from the pain point alone, used when the model reply is unusable."""
    return Insight(
        id=str(uuid.uuid4()),
        pain_point_id=pain_point.id,
        title=f"{pain_point.type.value.replace('_', ' ').capitalize()} issue at {pain_point.location}",
        summary=pain_point.description,
        recommendation="Manual review required - automated analysis was not available",
        priority=PRIORITY_BY_SEVERITY[pain_point.severity],
        impact="Unknown",
        effort=Effort.MEDIUM,
        category=DEFAULT_CATEGORIES[pain_point.type],
        metrics=dict(pain_point.metrics),
        status=InsightStatus.NEW,
        created_at=utcnow(),
    )


def sort_by_priority(insights: List[Insight]) -> List[Insight]:
    return sorted(insights, key=lambda i: PRIORITY_RANK[i.priority])


class InsightSynthesizer:
    """Turns pain points into insights with the help of a language model."""

    def __init__(self, llm, rerank: bool = True):
        self.llm = llm
        self.rerank = rerank

    def build_analysis_prompt(self, pain_point: PainPoint) -> str:
        return f"""
Analyze this user behavior pain point:

Type: {TYPE_DESCRIPTIONS[pain_point.type]}
Location: {pain_point.location}
Severity: {pain_point.severity.value}
Affected Users: {pain_point.affected_users} ({pain_point.affected_percentage:.1f}%)
Description: {pain_point.description}

Additional Metrics:
{json.dumps(pain_point.metrics, indent=2, default=str)}

Please provide:
1. A clear title for this issue (max 10 words)
2. A brief summary explaining what's happening and why it matters (2-3 sentences)
3. A specific, actionable recommendation to address this issue
4. The potential impact if this is fixed (1 sentence)
5. Estimated effort level (low/medium/high)
6. Category (onboarding/conversion/engagement/performance/usability)

Format your response as JSON with these exact keys:
{{
  "title": "...",
  "summary": "...",
  "recommendation": "...",
  "impact": "...",
  "effort": "low|medium|high",
  "category": "..."
}}
"""

    def analyze_pain_point(self, pain_point: PainPoint) -> Insight:
        """
        One model call per pain point.

        Raises SynthesisError if the call itself fails. A reply that can't be parsed
        falls back to the templated insight.
        """
        try:
            reply = self.llm.complete(
                ANALYSIS_SYSTEM_PROMPT,
                self.build_analysis_prompt(pain_point),
                temperature=0.7,
                max_tokens=800,
            )
        except Exception as e:
            raise SynthesisError(f"Language model call failed for pain point {pain_point.id}: {e}") from e

        result = parse_insight_reply(reply)
        if isinstance(result, Unparseable):
            logger.warning(f"Unparseable analysis for pain point {pain_point.id} ({result.reason}), using template")
            return fallback_insight(pain_point)

        fields: Dict[str, Any] = result.value
        return Insight(
            id=str(uuid.uuid4()),
            pain_point_id=pain_point.id,
            title=str(fields.get("title") or "Untitled Insight"),
            summary=str(fields.get("summary") or pain_point.description),
            recommendation=str(fields.get("recommendation") or "No recommendation provided"),
            # never taken from the model
            priority=PRIORITY_BY_SEVERITY[pain_point.severity],
            impact=str(fields.get("impact") or "Impact not specified"),
            effort=_enum_or_default(Effort, fields.get("effort"), Effort.MEDIUM),
            category=_enum_or_default(InsightCategory, fields.get("category"), DEFAULT_CATEGORIES[pain_point.type]),
            metrics=dict(pain_point.metrics, affectedUsers=pain_point.affected_users),
            status=InsightStatus.NEW,
            created_at=utcnow(),
        )

    def build_ranking_prompt(self, insights: List[Insight]) -> str:
        lines = []
        for idx, insight in enumerate(insights, start=1):
            affected = (insight.metrics or {}).get("affectedUsers", "Unknown")
            lines.append(
                f"{idx}. {insight.title}\n"
                f"   Impact: {insight.impact}\n"
                f"   Effort: {insight.effort.value}\n"
                f"   Affected Users: {affected}"
            )
        listing = "\n\n".join(lines)
        return f"""
Given these product insights, rank them by priority considering:
- User impact (how many users affected and severity)
- Business value
- Implementation effort
- Dependencies

Insights:
{listing}

Return just the numbers in order of priority (highest to lowest), separated by commas.
Example: 3,1,5,2,4
"""

    def prioritize_insights(self, insights: List[Insight]) -> List[Insight]:
        """
        Ask the model for a holistic order.

        Insights the reply references come first, in its order; the rest follow in
        their current order. Any failure keeps the current order.
        """
        try:
            try:
                reply = self.llm.complete("", self.build_ranking_prompt(insights), temperature=0.3, max_tokens=100)
            except Exception as e:
                raise RankingError(f"Language model ranking call failed: {e}") from e

            result = parse_ranking_reply(reply, len(insights))
            if isinstance(result, Unparseable):
                raise RankingError(f"Unusable ranking reply: {result.reason}")
        except RankingError as e:
            logger.warning(f"Keeping severity order: {e}")
            return list(insights)

        order = result.value
        prioritized = [insights[idx] for idx in order]
        prioritized += [insight for idx, insight in enumerate(insights) if idx not in order]
        return prioritized

    def synthesize(self, pain_points: List[PainPoint]) -> List[Insight]:
        logger.info(f"Generating insights for {len(pain_points)} pain points")

        insights = []
        for pain_point in pain_points:
            try:
                insights.append(self.analyze_pain_point(pain_point))
            except SynthesisError as e:
                logger.error(f"Failed to generate insight for pain point {pain_point.id}: {e}")

        insights = sort_by_priority(insights)
        if self.rerank and len(insights) > 1:
            insights = self.prioritize_insights(insights)
        return insights
