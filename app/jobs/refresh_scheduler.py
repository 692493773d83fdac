from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DailySchedule:
    hour: int
    minute: int
    tz: ZoneInfo

    @classmethod
    def parse(cls, value: str, tz_name: str = "Asia/Seoul") -> DailySchedule:
        text = (value or "").strip()
        try:
            hour_text, minute_text = text.split(":", 1)
            hour, minute = int(hour_text), int(minute_text)
        except ValueError as exc:
            raise ValueError(f"invalid schedule time (expected HH:MM): {value!r}") from exc
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"invalid schedule time (expected HH:MM): {value!r}")
        return cls(hour=hour, minute=minute, tz=ZoneInfo(tz_name))

    def next_run_after(self, now: datetime) -> datetime:
        local_now = now.astimezone(self.tz)
        candidate = local_now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= local_now:
            candidate = (candidate + timedelta(days=1)).replace(hour=self.hour, minute=self.minute)
        return candidate.astimezone(timezone.utc)


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    run: Callable[[], Awaitable[Any]]
    schedule: DailySchedule | None = None
    needs_cold_start: Callable[[], bool] | None = None


class RefreshScheduler:
    """Runs each job on first start when its cache is cold, then daily.

    Jobs are independent tasks: one failing or hanging job does not delay the
    others, and job exceptions are logged, never propagated.
    """

    def __init__(
        self,
        jobs: list[ScheduledJob],
        *,
        clock: Callable[[], datetime] = utc_now,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.jobs = jobs
        self._clock = clock
        self._sleep = sleep_fn
        self._tasks: list[asyncio.Task] = []
        self.last_runs: dict[str, dict[str, Any]] = {}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [asyncio.create_task(self._job_loop(job), name=f"refresh:{job.name}") for job in self.jobs]
        logger.info("refresh_scheduler_started jobs=%s", ",".join(job.name for job in self.jobs))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("refresh_scheduler_stopped")

    async def run_job(self, job: ScheduledJob, *, trigger: str) -> Any:
        started_at = self._clock()
        logger.info("refresh_job_start job=%s trigger=%s", job.name, trigger)
        try:
            result = await job.run()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("refresh_job_failed job=%s trigger=%s error=%s", job.name, trigger, exc)
            self.last_runs[job.name] = {
                "trigger": trigger,
                "started_at": started_at.isoformat(),
                "ok": False,
                "error": f"{exc.__class__.__name__}: {exc}",
            }
            return None
        self.last_runs[job.name] = {"trigger": trigger, "started_at": started_at.isoformat(), "ok": True}
        logger.info("refresh_job_done job=%s trigger=%s", job.name, trigger)
        return result

    async def run_cold_start(self, job: ScheduledJob) -> bool:
        if job.needs_cold_start is None:
            return False
        try:
            cold = job.needs_cold_start()
        except Exception as exc:  # noqa: BLE001
            logger.warning("refresh_job_cold_check_failed job=%s error=%s", job.name, exc)
            cold = True
        if not cold:
            logger.info("refresh_job_warm job=%s", job.name)
            return False
        await self.run_job(job, trigger="cold_start")
        return True

    async def _job_loop(self, job: ScheduledJob) -> None:
        await self.run_cold_start(job)
        if job.schedule is None:
            return
        last_target: datetime | None = None
        while True:
            now = self._clock()
            # an early wake-up must not select the slot that just fired
            anchor = now if last_target is None else max(now, last_target)
            next_run = job.schedule.next_run_after(anchor)
            delay = max(0.0, (next_run - now).total_seconds())
            logger.info("refresh_job_scheduled job=%s next_run=%s", job.name, next_run.isoformat())
            await self._sleep(delay)
            last_target = next_run
            await self.run_job(job, trigger="schedule")
