# services/scheduler.py
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from services.errors import ConflictError

logger = logging.getLogger(__name__)

JOB_ID = "daily-batch"


def parse_run_at(value: str):
    hour, minute = (int(part) for part in value.split(":"))
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid schedule time {value!r}, expected HH:MM")
    return hour, minute


class BatchScheduler:
    """
    Triggers one batch run per day at a fixed time through an APScheduler cron job.

    Pass BlockingScheduler as scheduler_cls to keep the calling thread busy (CLI use).
    """

    def __init__(self, app, processor, run_at: str = "02:00", timezone=None,
                 scheduler_cls=BackgroundScheduler):
        self.app = app
        self.processor = processor
        self.hour, self.minute = parse_run_at(run_at)
        self.timezone = timezone
        self.trigger = CronTrigger(hour=self.hour, minute=self.minute, timezone=timezone)
        self.scheduler_cls = scheduler_cls
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def next_run_time(self):
        job = self._scheduler.get_job(JOB_ID) if self._scheduler else None
        return job.next_run_time if job else None

    def start(self):
        if self.running:
            logger.warning('Batch scheduler is already running')
            return
        logger.info(f"Starting batch scheduler, daily at {self.hour:02d}:{self.minute:02d}")

        options = {"timezone": self.timezone} if self.timezone else {}
        self._scheduler = self.scheduler_cls(**options)
        # a run that is still going when the next one is due is skipped, not stacked
        self._scheduler.add_job(
            self.run_scheduled,
            trigger=self.trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()

    def stop(self):
        if self._scheduler:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=True)
            self._scheduler = None
            logger.info('Batch scheduler stopped')

    def run_once(self):
        logger.info('Running batch job once')
        with self.app.app_context():
            return self.processor.run()

    def run_scheduled(self):
        """Cron callback: failures are logged so the schedule keeps firing."""
        logger.info('Running scheduled batch job')
        try:
            return self.run_once()
        except ConflictError as e:
            logger.warning(f"Skipping scheduled run: {e}")
        except Exception:
            # the failure is already recorded on the job
            logger.exception('Scheduled batch job failed')
        return None
