from dotenv import load_dotenv
import os


def _env_float(name, default):
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name, default):
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


class Config:
    load_dotenv()

    SQLALCHEMY_DATABASE_URI = os.getenv("SQLALCHEMY_DATABASE_URI", "sqlite:///journey_insights.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # PostHog (event source)
    POSTHOG_HOST = os.getenv("POSTHOG_HOST", "https://app.posthog.com")
    POSTHOG_PROJECT_ID = os.getenv("POSTHOG_PROJECT_ID")
    POSTHOG_API_KEY = os.getenv("POSTHOG_API_KEY")
    POSTHOG_PAGE_LIMIT = _env_int("POSTHOG_PAGE_LIMIT", 10000)

    # Language model (any OpenAI-compatible endpoint, e.g. Groq)
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4")
    INSIGHT_RERANK = os.getenv("INSIGHT_RERANK", "true").lower() == "true"

    # Jira (optional)
    JIRA_HOST = os.getenv("JIRA_HOST")
    JIRA_EMAIL = os.getenv("JIRA_EMAIL")
    JIRA_API_TOKEN = os.getenv("JIRA_API_TOKEN")
    JIRA_PROJECT_KEY = os.getenv("JIRA_PROJECT_KEY")

    # Batch job
    BATCH_SCHEDULE_TIME = os.getenv("BATCH_SCHEDULE_TIME", "02:00")
    BATCH_SCHEDULE_TIMEZONE = os.getenv("BATCH_SCHEDULE_TIMEZONE", "UTC")
    BATCH_WINDOW_HOURS = _env_int("BATCH_WINDOW_HOURS", 24)
    BATCH_HISTORY_LIMIT = _env_int("BATCH_HISTORY_LIMIT", 100)

    # Pain-point detection policy
    DROPOFF_FACTOR = _env_float("DROPOFF_FACTOR", 1.5)
    DROPOFF_MIN_RATE = _env_float("DROPOFF_MIN_RATE", 30.0)
    DROPOFF_HIGH_RATE = _env_float("DROPOFF_HIGH_RATE", 50.0)
    CYCLE_MIN_HOPS = _env_int("CYCLE_MIN_HOPS", 2)
    CYCLE_MAX_HOPS = _env_int("CYCLE_MAX_HOPS", 5)
    CYCLE_MIN_COUNT = _env_int("CYCLE_MIN_COUNT", 5)
    CYCLE_HIGH_COUNT = _env_int("CYCLE_HIGH_COUNT", 20)
    UNDERUSED_THRESHOLD = _env_float("UNDERUSED_THRESHOLD", 0.05)
    UNDERUSED_HIGH_RATE = _env_float("UNDERUSED_HIGH_RATE", 1.0)
    SLOW_PAGE_THRESHOLD_MS = _env_float("SLOW_PAGE_THRESHOLD_MS", None)
