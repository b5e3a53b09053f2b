"""
APScheduler entry points for running the IPO news crawls on a schedule.
"""
from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler

from ipo_news.pipeline import PipelineCoordinator
from ipo_news.settings import load_settings

logger = logging.getLogger(__name__)


def build_scheduler(coordinator: PipelineCoordinator, timezone: str = "Asia/Seoul") -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone=timezone)

    def job_news():
        result = coordinator.run_crawl(coordinator.settings.default_query)
        logger.info("Scheduled crawl: %s (%s)", result.status.value, result.message)

    def job_schedules():
        result = coordinator.crawl_schedules()
        logger.info("Scheduled schedule crawl: %s (%s)", result.status.value, result.message)

    scheduler.add_job(job_news, "cron", minute=0, id="ipo_news", max_instances=1, coalesce=True)
    scheduler.add_job(job_schedules, "cron", hour="*/6", minute=30, id="ipo_schedules", max_instances=1, coalesce=True)
    return scheduler


def run_scheduler(coordinator: Optional[PipelineCoordinator] = None) -> None:
    scheduler = build_scheduler(coordinator or PipelineCoordinator(load_settings()))
    logger.info("Starting scheduler with jobs: %s", ", ".join(job.id for job in scheduler.get_jobs()))
    scheduler.start()


if __name__ == "__main__":  # pragma: no cover
    run_scheduler()
