# services/job_runner.py
# Runs the whole insights pipeline as one tracked batch job.
import logging
import threading
import uuid
from datetime import timedelta

from models import BatchJob, JobStatus
from services.aggregators import build_analytics_summary
from services.batch_store import BatchJobStore
from services.graph_builder import GraphBuilder
from services.pain_points import PainPointDetector, DetectionPolicy
from services.posthog_client import normalize_events
from utils import utcnow

logger = logging.getLogger(__name__)


class BatchProcessor:
    """
    Pipeline stages, strictly in order:
      fetch events -> build graph -> detect pain points -> synthesize insights
      -> store insights -> aggregate summary

    The job's metrics are updated after each stage, so anyone polling the store
    sees progress while the run is going.
    """

    def __init__(self, event_source, graph_store, synthesizer, insight_store,
                 job_store: BatchJobStore, policy: DetectionPolicy = None, window_hours: int = 24,
                 page_limit: int = 10000):
        self.event_source = event_source
        self.graph_store = graph_store
        self.synthesizer = synthesizer
        self.insight_store = insight_store
        self.job_store = job_store
        self.graph_builder = GraphBuilder(graph_store)
        self.detector = PainPointDetector(graph_store, policy)
        self.window_hours = window_hours
        self.page_limit = page_limit

    def start(self, force: bool = False) -> BatchJob:
        """Create a running job and take the current-job slot (ConflictError if one is running)."""
        job = BatchJob(id=str(uuid.uuid4()), status=JobStatus.RUNNING, started_at=utcnow())
        self.job_store.acquire(job, force=force)
        logger.info(f"Starting batch job {job.id}")
        return job

    def execute(self, job: BatchJob) -> BatchJob:
        try:
            # 1. Raw events
            period_end = utcnow()
            period_start = period_end - timedelta(hours=self.window_hours)
            events = self.fetch_recent_events(period_start, period_end)
            job.metrics.events_processed = len(events)

            # 2. Graph
            self.graph_builder.build(events)

            # 3. Pain points
            pain_points = self.detector.detect_all()
            job.metrics.pain_points_detected = len(pain_points)

            # 4. Insights
            insights = self.synthesizer.synthesize(pain_points)
            job.metrics.insights_generated = len(insights)

            # 5. Store
            logger.info(f"Storing {len(insights)} insights")
            self.insight_store.save_insights(insights)

            # 6. Summary
            logger.info('Generating analytics summary')
            job.summary = build_analytics_summary(
                self.graph_store, pain_points, len(events), period_start, period_end,
            )
        except Exception as e:
            logger.exception(f"Batch job {job.id} failed")
            job.fail(str(e) or e.__class__.__name__, utcnow())
            self.job_store.release(job)
            raise

        job.complete(utcnow())
        logger.info(f"Batch job {job.id} completed successfully: {job.metrics.to_dict()}")
        self.job_store.release(job)
        return job

    def run(self, force: bool = False) -> BatchJob:
        return self.execute(self.start(force=force))

    def fetch_recent_events(self, start, end):
        logger.info(f"Fetching events from PostHog between {start.isoformat()} and {end.isoformat()}")
        records = self.event_source.get_events(start, end, limit=self.page_limit)
        return normalize_events(records)

    def run_in_background(self, app, job: BatchJob) -> threading.Thread:
        """Execute an already started job in a worker thread with its own app context."""
        def _target():
            with app.app_context():
                try:
                    self.execute(job)
                except Exception:
                    # already recorded on the job by execute()
                    logger.error(f"Background batch job {job.id} ended with status {job.status.value}")

        thread = threading.Thread(target=_target, name=f"batch-{job.id}", daemon=True)
        thread.start()
        return thread
