# this file is used to run the insights batch job manually or on its daily schedule
import logging
import argparse
import sys

from apscheduler.schedulers.blocking import BlockingScheduler

from app import create_app
from services.errors import ConflictError
from services.scheduler import BatchScheduler

logger = logging.getLogger(__name__)


def run_jobs(force=False):
    app = create_app()
    processor = app.extensions["batch_processor"]
    with app.app_context():
        try:
            job = processor.run(force=force)
        except ConflictError as e:
            logger.warning(str(e))
            return 2
        except Exception:
            # already logged with traceback by the processor
            return 1

    logger.info(f"✅ Batch job {job.id} completed: {job.metrics.to_dict()}")
    return 0


def run_scheduler():
    app = create_app()
    scheduler = BatchScheduler(
        app,
        app.extensions["batch_processor"],
        app.config["BATCH_SCHEDULE_TIME"],
        timezone=app.config["BATCH_SCHEDULE_TIMEZONE"],
        scheduler_cls=BlockingScheduler,
    )
    try:
        # blocks until interrupted
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        scheduler.stop()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the journey insights batch job.")
    parser.add_argument("--force", action="store_true", help="Run even if another job is marked as running")
    parser.add_argument("--schedule", action="store_true", help="Stay up and run the job daily at BATCH_SCHEDULE_TIME")
    args = parser.parse_args()

    sys.exit(run_scheduler() if args.schedule else run_jobs(force=args.force))
