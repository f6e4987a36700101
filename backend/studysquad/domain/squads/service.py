"""Squad session engine: membership, chat and timer operations on one squad.

Every operation resolves the acting user through the injected identity
provider. Unauthenticated, missing-squad and non-host calls are silent no-ops
reported through the return value (``None``/``False``); nothing here raises
for them.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from studysquad.domain.squads import models, policy
from studysquad.domain.squads.repository import SquadRepository, utc_now
from studysquad.domain.squads.ticker import TimerDriver
from studysquad.infra.identity import CurrentUser, IdentityProvider
from studysquad.infra.transform import Base64Transform, ContentTransform
from studysquad.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class SquadSessionEngine:
	def __init__(
		self,
		repository: SquadRepository,
		identity: IdentityProvider,
		transform: Optional[ContentTransform] = None,
		*,
		driver: Optional[TimerDriver] = None,
		clock: Callable[[], datetime] = utc_now,
	) -> None:
		self._repo = repository
		self._identity = identity
		self._transform = transform or Base64Transform()
		self._driver = driver
		self._clock = clock

	@property
	def repository(self) -> SquadRepository:
		return self._repo

	async def create_squad(self, name: str, topic: str) -> Optional[models.StudySquad]:
		squad = await self._repo.create(name, topic, self._current_user())
		if squad is None:
			logger.debug("create_squad ignored: unauthenticated")
			return None
		obs_metrics.inc_squad_created()
		logger.info("squad created", extra={"squad_id": squad.id, "host_id": squad.host_id})
		await self._repo.commit()
		return squad

	async def join(self, squad_id: str) -> bool:
		user = self._current_user()
		if user is None:
			obs_metrics.inc_squad_join("unauthenticated")
			return False
		return await self._join(squad_id, user) is not None

	async def join_by_code(self, join_code: str) -> Optional[models.StudySquad]:
		user = self._current_user()
		if user is None:
			obs_metrics.inc_squad_join("unauthenticated")
			return None
		squad = await self._repo.find_by_join_code(join_code)
		if squad is None:
			obs_metrics.inc_squad_join("not_found")
			return None
		return await self._join(squad.id, user)

	async def leave(self, squad_id: str) -> bool:
		user = self._current_user()
		if user is None:
			return False
		async with self._repo.exclusive(squad_id) as squad:
			if squad is None:
				return False
			if not squad.has_member(user.uid):
				return True
			remaining = tuple(member for member in squad.members if member.uid != user.uid)
			emptied = not remaining
			if emptied:
				await self._repo.delete(squad_id)
			else:
				await self._repo.save(squad.evolve(members=remaining))
		obs_metrics.inc_squad_leave()
		if emptied:
			obs_metrics.inc_squad_deleted()
			await self._stop_ticking(squad_id)
		await self._repo.commit()
		return True

	async def send_message(self, squad_id: str, content: str) -> Optional[models.Message]:
		user = self._current_user()
		if user is None:
			return None
		message = await self._append_message(
			squad_id,
			author=policy.member_from_user(user),
			content=self._transform.transform(content),
			system=False,
		)
		if message is not None:
			obs_metrics.inc_squad_message("member")
		return message

	async def post_system_message(self, squad_id: str, content: str) -> Optional[models.Message]:
		"""Append machine-generated content under the reserved observer identity, untransformed."""
		message = await self._append_message(squad_id, author=policy.SYSTEM_AUTHOR, content=content, system=True)
		if message is not None:
			obs_metrics.inc_squad_message("system")
		return message

	async def toggle_timer(self, squad_id: str) -> bool:
		user = self._current_user()
		async with self._repo.exclusive(squad_id) as squad:
			if squad is None or not policy.is_host(squad, user):
				obs_metrics.inc_timer_control("toggle", "ignored")
				return False
			timer = replace(squad.timer_state, is_active=not squad.timer_state.is_active)
			if not await self._repo.save(squad.evolve(timer_state=timer)):
				return False
		obs_metrics.inc_timer_control("toggle", "applied")
		if timer.is_running():
			await self._start_ticking(squad_id)
		else:
			await self._stop_ticking(squad_id)
		await self._repo.commit()
		return True

	async def reset_timer(self, squad_id: str) -> bool:
		user = self._current_user()
		async with self._repo.exclusive(squad_id) as squad:
			if squad is None or not policy.is_host(squad, user):
				obs_metrics.inc_timer_control("reset", "ignored")
				return False
			timer = replace(squad.timer_state, time_left=policy.session_length(), is_active=False)
			if not await self._repo.save(squad.evolve(timer_state=timer)):
				return False
		obs_metrics.inc_timer_control("reset", "applied")
		await self._stop_ticking(squad_id)
		await self._repo.commit()
		return True

	async def tick(self, squad_id: str) -> Optional[models.TimerState]:
		"""Advance the countdown by one second.

		Reaching zero pauses the timer in the same write, so ``time_left == 0``
		with ``is_active`` set is never stored by a tick. Returns the resulting
		timer state, or None when the squad is gone.
		"""
		async with self._repo.exclusive(squad_id) as squad:
			if squad is None:
				return None
			timer = squad.timer_state
			if timer.time_left <= 0:
				return timer
			remaining = timer.time_left - 1
			timer = replace(timer, time_left=remaining, is_active=timer.is_active and remaining > 0)
			if not await self._repo.save(squad.evolve(timer_state=timer)):
				return None
		obs_metrics.inc_timer_tick()
		await self._repo.commit()
		return timer

	async def get_squad(self, squad_id: str) -> Optional[models.StudySquad]:
		return await self._repo.find_by_id(squad_id)

	async def list_squads(self) -> List[models.StudySquad]:
		return await self._repo.list()

	async def list_my_squads(self) -> List[models.StudySquad]:
		user = self._current_user()
		if user is None:
			return []
		return await self._repo.list_for_member(user.uid)

	def _current_user(self) -> Optional[CurrentUser]:
		return self._identity.current_user()

	async def _join(self, squad_id: str, user: CurrentUser) -> Optional[models.StudySquad]:
		async with self._repo.exclusive(squad_id) as squad:
			if squad is None:
				obs_metrics.inc_squad_join("not_found")
				return None
			if squad.has_member(user.uid):
				obs_metrics.inc_squad_join("already_member")
				return squad
			updated = squad.evolve(members=squad.members + (policy.member_from_user(user),))
			if not await self._repo.save(updated):
				return None
		obs_metrics.inc_squad_join("joined")
		logger.info("member joined", extra={"squad_id": squad_id, "user_id": user.uid})
		await self._repo.commit()
		return updated

	async def _append_message(
		self,
		squad_id: str,
		*,
		author: models.SquadMember,
		content: str,
		system: bool,
	) -> Optional[models.Message]:
		async with self._repo.exclusive(squad_id) as squad:
			if squad is None:
				return None
			message = models.Message(
				id=policy.message_id(squad, system=system),
				author=author,
				content=content,
				timestamp=self._clock(),
				is_ai_message=system,
			)
			if not await self._repo.save(squad.evolve(messages=squad.messages + (message,))):
				return None
		await self._repo.commit()
		return message

	async def _start_ticking(self, squad_id: str) -> None:
		if self._driver is not None:
			await self._driver.start(squad_id, self.tick)

	async def _stop_ticking(self, squad_id: str) -> None:
		if self._driver is not None:
			await self._driver.stop(squad_id)
