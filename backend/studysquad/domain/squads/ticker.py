"""Background 1 Hz tick loops for running squad timers."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional

from studysquad.domain.squads import models
from studysquad.domain.squads.snapshot import SnapshotError
from studysquad.obs import metrics as obs_metrics
from studysquad.settings import settings

if TYPE_CHECKING:
	from studysquad.domain.squads.service import SquadSessionEngine

logger = logging.getLogger(__name__)

TickFn = Callable[[str], Awaitable[Optional[models.TimerState]]]


class TimerDriver:
	"""One asyncio task per running squad, each calling ``tick`` once per interval.

	A loop ends on its own when the squad disappears, pauses or reaches zero;
	``stop`` cancels it early (host paused/reset, squad deleted).
	"""

	def __init__(self, interval: Optional[float] = None) -> None:
		self._interval = interval
		self._tasks: Dict[str, asyncio.Task] = {}
		self._lock = asyncio.Lock()

	@property
	def interval(self) -> float:
		value = self._interval if self._interval is not None else settings.tick_interval_seconds
		return max(0.01, float(value))

	async def start(self, squad_id: str, tick: TickFn) -> None:
		async with self._lock:
			task = self._tasks.get(squad_id)
			if task is not None and not task.done():
				return
			self._tasks[squad_id] = asyncio.create_task(self._run(squad_id, tick), name=f"squad-timer:{squad_id}")
			obs_metrics.set_timer_drivers(len(self._tasks))

	async def stop(self, squad_id: str) -> None:
		async with self._lock:
			task = self._tasks.pop(squad_id, None)
			obs_metrics.set_timer_drivers(len(self._tasks))
		if task is None or task is asyncio.current_task():
			return
		task.cancel()
		with suppress(asyncio.CancelledError):
			await task

	async def shutdown(self) -> None:
		"""Cancel all tick loops (application shutdown/tests)."""
		async with self._lock:
			tasks = list(self._tasks.values())
			self._tasks.clear()
			obs_metrics.set_timer_drivers(0)
		for task in tasks:
			task.cancel()
		for task in tasks:
			with suppress(asyncio.CancelledError):
				await task

	async def resume(self, engine: "SquadSessionEngine") -> int:
		"""Start loops for every squad whose timer is running (after a restore)."""
		started = 0
		for squad in await engine.list_squads():
			if squad.timer_state.is_running():
				await self.start(squad.id, engine.tick)
				started += 1
		return started

	def running(self) -> List[str]:
		return [squad_id for squad_id, task in self._tasks.items() if not task.done()]

	def is_running(self, squad_id: str) -> bool:
		task = self._tasks.get(squad_id)
		return task is not None and not task.done()

	async def _run(self, squad_id: str, tick: TickFn) -> None:
		try:
			while True:
				await asyncio.sleep(self.interval)
				try:
					state = await tick(squad_id)
				except SnapshotError:
					# The tick is already applied in memory; only the flush failed.
					logger.warning("squad timer snapshot failed for squad=%s", squad_id, exc_info=True)
					continue
				if state is None or not state.is_running():
					logger.debug("squad timer loop stopping for squad=%s", squad_id)
					return
		except asyncio.CancelledError:
			raise
		except Exception:  # pragma: no cover
			logger.exception("squad timer loop failed for squad=%s", squad_id)
		finally:
			async with self._lock:
				if self._tasks.get(squad_id) is asyncio.current_task():
					self._tasks.pop(squad_id, None)
				obs_metrics.set_timer_drivers(len(self._tasks))
