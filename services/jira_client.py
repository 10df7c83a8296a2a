# services/jira_client.py
import logging
import requests

from services.errors import TicketingError

logger = logging.getLogger(__name__)

PRIORITY_NAMES = {"high": "High", "medium": "Medium", "low": "Low"}


def _paragraph(text):
    return {"type": "paragraph", "content": [{"type": "text", "text": text}]}


class JiraClient:
    """Files insights as Jira issues (REST API v3)."""

    def __init__(self, host=None, email=None, api_token=None, project_key=None, timeout=30, http=None):
        self.host = host.rstrip("/") if host else None
        self.email = email
        self.api_token = api_token
        self.project_key = project_key
        self.timeout = timeout
        self.http = http or requests.Session()

    def is_available(self) -> bool:
        return all([self.host, self.email, self.api_token, self.project_key])

    def build_issue(self, insight) -> dict:
        description = {
            "type": "doc",
            "version": 1,
            "content": [
                _paragraph(insight.summary),
                _paragraph(f"Recommendation: {insight.recommendation}"),
                _paragraph(f"Impact: {insight.impact}"),
                _paragraph(f"Effort: {insight.effort.value} | Category: {insight.category.value}"),
            ],
        }
        return {
            "fields": {
                "project": {"key": self.project_key},
                "summary": insight.title,
                "description": description,
                "issuetype": {"name": "Task"},
                "priority": {"name": PRIORITY_NAMES[insight.priority.value]},
                "labels": ["ux-insight", insight.category.value],
            }
        }

    def create_issue(self, insight) -> dict:
        """Create an issue and return Jira's reply ({"id", "key", "self"})."""
        if not self.is_available():
            raise TicketingError("Jira integration not configured")
        try:
            response = self.http.post(
                f"{self.host}/rest/api/3/issue",
                json=self.build_issue(insight),
                auth=(self.email, self.api_token),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            issue = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error creating Jira issue for insight {insight.id}: {e}")
            raise TicketingError(f"Jira issue creation failed: {e}") from e

        if not isinstance(issue, dict) or "key" not in issue:
            raise TicketingError("Jira response has no issue key")
        logger.info(f"Created Jira issue {issue['key']} for insight {insight.id}")
        return issue

    def browse_url(self, issue: dict) -> str:
        base = issue.get("self", "").split("/rest/")[0] or self.host
        return f"{base}/browse/{issue['key']}"
