# -*- coding: utf-8 -*-
"""
周期定时器

执行循环、自主思考、状态刷新、记忆维护各自独立计时
"""
import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger('schedule.timers')


@dataclass
class IntervalJob:
    """周期任务"""
    name: str
    interval: float
    task: Callable
    run_immediately: bool = False
    runs: int = 0
    failures: int = 0


class IntervalScheduler:
    """
    周期调度器

    每个任务一个 asyncio.Task；单次执行失败只记录日志，不影响下一次
    """

    def __init__(self):
        self.jobs: dict[str, IntervalJob] = {}
        self._running = False
        self._tasks: dict[str, asyncio.Task] = {}

    def schedule_interval(
        self,
        name: str,
        interval: float,
        task: Callable,
        run_immediately: bool = False
    ):
        """
        添加周期任务

        Args:
            name: 任务名称
            interval: 间隔（秒）
            task: 执行函数（同步或异步）
            run_immediately: 启动时先执行一次
        """
        if interval <= 0:
            raise ValueError(f"间隔必须为正数: {interval}")
        self.jobs[name] = IntervalJob(name=name, interval=interval, task=task, run_immediately=run_immediately)
        logger.info(f"添加周期任务: {name} (间隔: {interval}s)")
        if self._running:
            self._start_job(self.jobs[name])

    def unschedule(self, name: str) -> bool:
        """移除周期任务（运行中则取消对应的 asyncio.Task）"""
        job = self.jobs.pop(name, None)
        task = self._tasks.pop(name, None)
        if task:
            task.cancel()
        if job:
            logger.info(f"移除周期任务: {name}")
        return job is not None

    def _start_job(self, job: IntervalJob):
        old = self._tasks.pop(job.name, None)
        if old:
            old.cancel()
        self._tasks[job.name] = asyncio.create_task(self._run_job(job), name=f"interval_{job.name}")

    async def start(self):
        """启动全部周期任务（不阻塞）"""
        if self._running:
            return
        self._running = True
        for job in self.jobs.values():
            self._start_job(job)
        logger.info(f"定时器启动: {len(self._tasks)} 个任务")

    async def stop(self):
        """停止调度器"""
        self._running = False

        for task in self._tasks.values():
            task.cancel()

        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        logger.info("定时器停止")

    async def run_once(self, name: str) -> Optional[Any]:
        """立即执行一次指定任务"""
        job = self.jobs.get(name)
        if job is None:
            return None
        return await self._execute(job)

    async def _run_job(self, job: IntervalJob):
        if job.run_immediately:
            await self._execute(job)
        while self._running:
            await asyncio.sleep(job.interval)
            if not self._running:
                break
            await self._execute(job)

    async def _execute(self, job: IntervalJob) -> Optional[Any]:
        try:
            result = job.task()
            if inspect.isawaitable(result):
                result = await result
            job.runs += 1
            return result
        except Exception as e:
            job.failures += 1
            logger.error(f"周期任务 {job.name} 执行失败: {e}")
            return None

    def get_status(self) -> dict[str, Any]:
        """获取调度器状态"""
        return {
            "running": self._running,
            "jobs": {
                name: {"interval": job.interval, "runs": job.runs, "failures": job.failures}
                for name, job in self.jobs.items()
            },
            "active_tasks": len(self._tasks),
        }
